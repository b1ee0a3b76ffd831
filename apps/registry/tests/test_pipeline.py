import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from apps.registry.identifiers import project_id, script_id
from apps.registry.metadata import load_metadata_table
from apps.registry.models import MetadataTable
from apps.registry.pipeline import RunStats, load_import_rows, run_import, run_migration
from apps.registry.flattener import ImportRow
from apps.registry.resolver import ClassificationRecord

HASH_A = 'abcd' * 14
HASH_B = '0123456789' * 5 + 'abcdef'
HASH_C = 'c0ffee' * 9 + 'ee'
HASH_NATIVE = 'dd' * 28


class FakeResolver:
    def __init__(self, types: dict[str, str]) -> None:
        self.types = types
        self.lookups = 0

    def lookup(self, script_hash: str) -> ClassificationRecord | None:
        self.lookups += 1
        script_type = self.types.get(script_hash)
        if script_type is None:
            return None
        return ClassificationRecord(type=script_type, hash=script_hash)


def _read(path: Path) -> dict:
    return json.loads(path.read_text(encoding='utf-8'))


class ImportRunTests(unittest.TestCase):
    def _run(self, tmp: Path, rows: list[ImportRow], resolver: FakeResolver) -> RunStats:
        metadata_path = tmp / 'metadata-mapping.json'
        table = load_metadata_table(metadata_path)
        return run_import(
            rows,
            resolver,
            table,
            registry_dir=tmp,
            metadata_path=metadata_path
        )

    def test_single_row_creates_new_dapp(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            stats = self._run(
                tmp,
                [ImportRow('Minswap', 'OrderContract', HASH_A)],
                FakeResolver({HASH_A: 'plutusV2'})
            )
            document = _read(tmp / 'Minswap.json')
            metadata = _read(tmp / 'metadata-mapping.json')

        self.assertEqual(stats.processed, 1)
        self.assertEqual(stats.files_written, 1)
        self.assertTrue(stats.metadata_written)
        self.assertEqual(
            document,
            {
                'id': project_id('Minswap'),
                'projectName': 'Minswap',
                'category': 'DEFI',
                'subCategory': 'AMM_DEX',
                'scripts': [
                    {
                        'id': script_id(HASH_A),
                        'name': 'OrderContract',
                        'purpose': 'SPEND',
                        'type': 'PLUTUS',
                        'scriptHash': HASH_A,
                        'fullScriptHash': '71' + HASH_A,
                        'plutusVersion': 2
                    }
                ]
            }
        )
        self.assertEqual(
            metadata['mappings']['Minswap']['scriptMappings'],
            {'names': {'OrderContract': 'OrderContract'}, 'purposes': {'OrderContract': 'SPEND'}}
        )

    def test_outcomes_are_counted(self) -> None:
        rows = [
            ImportRow('Minswap', 'Pool', HASH_A),
            ImportRow('MinswapV2', 'Pool', HASH_B),
            ImportRow('Minswap', 'Batcher', HASH_NATIVE),
            ImportRow('Splash', 'Order', HASH_C)
        ]
        resolver = FakeResolver({HASH_A: 'plutusV1', HASH_B: 'plutusV2', HASH_NATIVE: 'timelock'})

        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            stats = self._run(tmp, rows, resolver)
            document = _read(tmp / 'Minswap.json')
            splash_exists = (tmp / 'SplashProtocol.json').exists()

        self.assertEqual((stats.processed, stats.not_found, stats.skipped_non_plutus), (2, 1, 1))
        self.assertFalse(splash_exists)
        hashes = [script['scriptHash'] for script in document['scripts']]
        self.assertEqual(hashes, [HASH_A, HASH_B])
        self.assertNotIn(HASH_NATIVE, hashes)
        self.assertNotIn('protocolVersion', document['scripts'][0])
        self.assertEqual(document['scripts'][1]['protocolVersion'], 2)
        self.assertEqual(stats.projects['Minswap'].protocol_versions(), [(1, 1), (2, 1)])

    def test_second_run_is_idempotent(self) -> None:
        rows = [
            ImportRow('Minswap', 'Pool', HASH_A),
            ImportRow('WingRiders', 'Pool', HASH_B),
            ImportRow('WingRidersV2', 'Order', HASH_C)
        ]
        resolver = FakeResolver({HASH_A: 'plutusV2', HASH_B: 'plutusV2', HASH_C: 'plutusV3'})

        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            first = self._run(tmp, rows, resolver)
            snapshot = {path.name: path.read_text(encoding='utf-8') for path in tmp.glob('*.json')}

            second = self._run(tmp, rows, resolver)
            after = {path.name: path.read_text(encoding='utf-8') for path in tmp.glob('*.json')}

        self.assertEqual(first.scripts_added, 3)
        self.assertEqual(second.scripts_added, 0)
        self.assertEqual(second.duplicates_skipped, first.processed)
        self.assertEqual(second.files_written, 0)
        self.assertFalse(second.metadata_written)
        self.assertEqual(after, snapshot)

    def test_manual_metadata_edits_are_not_reverted(self) -> None:
        rows = [ImportRow('Minswap', 'OrderContract', HASH_A)]
        resolver = FakeResolver({HASH_A: 'plutusV2'})

        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            self._run(tmp, rows, resolver)

            metadata_path = tmp / 'metadata-mapping.json'
            metadata = _read(metadata_path)
            mappings = metadata['mappings']['Minswap']['scriptMappings']
            mappings['names']['OrderContract'] = 'Order Book'
            mappings['purposes']['OrderContract'] = 'MINT'
            metadata_path.write_text(json.dumps(metadata, indent=2), encoding='utf-8')

            second = self._run(tmp, rows + [ImportRow('Minswap', 'PoolContract', HASH_B)], FakeResolver({
                HASH_A: 'plutusV2',
                HASH_B: 'plutusV2'
            }))
            reloaded = _read(metadata_path)['mappings']['Minswap']['scriptMappings']

        self.assertTrue(second.metadata_written)
        self.assertEqual(reloaded['names']['OrderContract'], 'Order Book')
        self.assertEqual(reloaded['purposes']['OrderContract'], 'MINT')
        self.assertEqual(reloaded['names']['PoolContract'], 'PoolContract')

    def test_broken_target_is_reported_not_overwritten(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            (tmp / 'Minswap.json').write_text('not json', encoding='utf-8')

            stats = self._run(tmp, [ImportRow('Minswap', 'Pool', HASH_A)], FakeResolver({HASH_A: 'plutusV2'}))
            content = (tmp / 'Minswap.json').read_text(encoding='utf-8')

        self.assertEqual(content, 'not json')
        self.assertEqual(stats.files_written, 0)
        self.assertEqual(len(stats.failed_projects), 1)

    def test_write_failure_keeps_previous_document(self) -> None:
        previous = {
            'id': project_id('Minswap'),
            'projectName': 'Minswap',
            'scripts': [
                {
                    'id': script_id(HASH_B),
                    'name': 'Pool',
                    'purpose': 'SPEND',
                    'type': 'PLUTUS',
                    'scriptHash': HASH_B,
                    'fullScriptHash': '71' + HASH_B,
                    'plutusVersion': 2
                }
            ]
        }
        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            (tmp / 'Minswap.json').write_text(json.dumps(previous), encoding='utf-8')

            with patch('apps.registry.documents.os.replace', side_effect=OSError('disk full')):
                stats = self._run(tmp, [ImportRow('Minswap', 'Order', HASH_A)], FakeResolver({HASH_A: 'plutusV2'}))

            document = _read(tmp / 'Minswap.json')
            leftovers = sorted(path.name for path in tmp.iterdir())

        self.assertEqual(document, previous)
        self.assertEqual(leftovers, ['Minswap.json'])
        self.assertEqual(stats.processed, 1)
        self.assertEqual(stats.files_written, 0)
        self.assertEqual([project.output_file for project in stats.failed_projects], ['Minswap.json'])
        self.assertIn('disk full', stats.failed_projects[0].error)
        self.assertFalse(stats.metadata_written)

    def test_empty_run_warns(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_name:
            with self.assertLogs('dapp_registry.pipeline', level='WARNING') as logs:
                stats = self._run(Path(tmp_name), [], FakeResolver({}))

        self.assertEqual(stats.rows, 0)
        self.assertTrue(any('no rows were read' in line for line in logs.output))

    def test_metadata_table_untouched_when_nothing_new(self) -> None:
        table = MetadataTable()
        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            stats = run_import(
                [ImportRow('Minswap', 'Pool', HASH_A)],
                FakeResolver({}),
                table,
                registry_dir=tmp,
                metadata_path=tmp / 'metadata-mapping.json'
            )
            self.assertFalse((tmp / 'metadata-mapping.json').exists())
        self.assertEqual(stats.not_found, 1)
        self.assertFalse(stats.metadata_written)


class CsvRowTests(unittest.TestCase):
    def test_rows_from_both_tables(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            (tmp / 'orders.csv').write_text(
                'dex,class,script_hash,extra\n'
                f'Minswap,OrderContract,{HASH_A},x\n'
                f',OrderContract,{HASH_B},x\n'
                'Minswap,OrderContract,,x\n'
                'Minswap,OrderContract,nothex\n',
                encoding='utf-8'
            )
            (tmp / 'pools.csv').write_text(
                'dex,class,script_hash\n'
                f'SundaeSwapV3,Pool,71{HASH_C}\n',
                encoding='utf-8'
            )
            stats = RunStats()
            rows = load_import_rows(tmp, stats)

        self.assertEqual(
            rows,
            [
                ImportRow('Minswap', 'OrderContract', HASH_A, 'order'),
                ImportRow('SundaeSwapV3', 'Pool', '71' + HASH_C, 'pool')
            ]
        )
        self.assertEqual(stats.rows_dropped, 3)

    def test_missing_csv_is_recorded(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_name:
            tmp = Path(tmp_name)
            (tmp / 'pools.csv').write_text(f'dex,class,script_hash\nMinswap,Pool,{HASH_A}\n', encoding='utf-8')
            stats = RunStats()
            rows = load_import_rows(tmp, stats)

        self.assertEqual(len(rows), 1)
        self.assertEqual(len(stats.errors), 1)
        self.assertIn('orders.csv', stats.errors[0])


class MigrationRunTests(unittest.TestCase):
    def test_legacy_documents_are_flattened(self) -> None:
        legacy = {
            'projectName': 'Indigo',
            'link': 'https://indigoprotocol.io',
            'category': 'DEFI',
            'subCategory': 'SYNTHETICS',
            'description': {'short': 'Synthetic assets'},
            'scripts': [
                {
                    'name': 'CDP',
                    'purpose': 'SPEND',
                    'type': 'PLUTUS',
                    'versions': [
                        {'scriptHash': HASH_A, 'version': 1},
                        {'scriptHash': '71' + HASH_B, 'version': 2}
                    ]
                },
                {
                    'name': 'iAsset policy',
                    'purpose': 'MINT',
                    'type': 'NATIVE',
                    'protocolVersion': 2,
                    'versions': [{'mintPolicyID': HASH_NATIVE}, {'mintPolicyID': HASH_C}]
                },
                {'name': 'No versions'}
            ]
        }
        resolver = FakeResolver({HASH_A: 'plutusV1', HASH_B: 'plutusV2', HASH_NATIVE: 'timelock'})

        with tempfile.TemporaryDirectory() as legacy_name, tempfile.TemporaryDirectory() as out_name:
            legacy_dir = Path(legacy_name)
            out_dir = Path(out_name)
            (legacy_dir / 'Indigo.json').write_text(json.dumps(legacy), encoding='utf-8')
            (legacy_dir / 'Broken.json').write_text('{', encoding='utf-8')

            stats = run_migration(legacy_dir, resolver, registry_dir=out_dir)
            document = _read(out_dir / 'Indigo.json')
            broken_written = (out_dir / 'Broken.json').exists()

            again = run_migration(legacy_dir, resolver, registry_dir=out_dir)

        self.assertFalse(broken_written)
        self.assertEqual(len(stats.errors), 1)
        self.assertEqual((stats.processed, stats.not_found, stats.skipped_non_plutus), (2, 1, 1))
        self.assertEqual(document['id'], project_id('Indigo'))
        self.assertEqual(document['description'], {'short': 'Synthetic assets'})
        self.assertEqual(document['subCategory'], 'SYNTHETICS')
        self.assertEqual([s['scriptHash'] for s in document['scripts']], [HASH_A, HASH_B])
        self.assertEqual([s['plutusVersion'] for s in document['scripts']], [1, 2])
        self.assertEqual(again.scripts_added, 0)
        self.assertEqual(again.duplicates_skipped, 2)
        self.assertEqual(again.files_written, 0)

    def test_project_name_falls_back_to_file_stem(self) -> None:
        with tempfile.TemporaryDirectory() as legacy_name, tempfile.TemporaryDirectory() as out_name:
            legacy_dir = Path(legacy_name)
            out_dir = Path(out_name)
            (legacy_dir / 'Nameless.json').write_text(json.dumps({'scripts': []}), encoding='utf-8')

            run_migration(legacy_dir, FakeResolver({}), registry_dir=out_dir)
            document = _read(out_dir / 'Nameless.json')

        self.assertEqual(document, {'id': project_id('Nameless'), 'projectName': 'Nameless', 'scripts': []})
