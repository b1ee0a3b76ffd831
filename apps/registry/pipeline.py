from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from .documents import list_json_files, read_csv_rows, read_json
from .errors import DocumentError, RegistryWriteError
from .flattener import (
    ACCEPTED,
    NOT_FOUND,
    FlattenResult,
    ImportRow,
    flatten_import_row,
    flatten_legacy_entry,
    is_script_hash,
    normalize_script_hash
)
from .merge import ShellFields, merge_into_file
from .metadata import METADATA_FILE_NAME, output_file_for, save_metadata_table
from .models import LegacyDApp, MetadataTable, Script
from .resolver import ClassificationResolver

LOGGER = logging.getLogger('dapp_registry.pipeline')

PROGRESS_EVERY = 50
STEELSWAP_SOURCES = (('orders.csv', 'order'), ('pools.csv', 'pool'))


@dataclass
class ProjectResult:
    key: str
    project_name: str
    output_file: str
    id_source: str
    shell: ShellFields
    scripts: list[Script] = field(default_factory=list)
    added: int = 0
    duplicates: int = 0
    written: bool = False
    error: str | None = None

    def protocol_versions(self) -> list[tuple[int, int]]:
        counts = Counter(script.protocol_version or 1 for script in self.scripts)
        return sorted(counts.items())


@dataclass
class RunStats:
    rows: int = 0
    processed: int = 0
    not_found: int = 0
    skipped_non_plutus: int = 0
    rows_dropped: int = 0
    metadata_written: bool = False
    errors: list[str] = field(default_factory=list)
    projects: dict[str, ProjectResult] = field(default_factory=dict)

    @property
    def files_written(self) -> int:
        return sum(1 for project in self.projects.values() if project.written)

    @property
    def scripts_added(self) -> int:
        return sum(project.added for project in self.projects.values())

    @property
    def duplicates_skipped(self) -> int:
        return sum(project.duplicates for project in self.projects.values())

    @property
    def failed_projects(self) -> list[ProjectResult]:
        return [project for project in self.projects.values() if project.error]

    def tally(self, result: FlattenResult) -> None:
        self.rows += 1
        if result.outcome == ACCEPTED:
            self.processed += 1
        elif result.outcome == NOT_FOUND:
            self.not_found += 1
        else:
            self.skipped_non_plutus += 1

        if self.rows % PROGRESS_EVERY == 0:
            LOGGER.info('progress rows=%s', self.rows)


def load_import_rows(data_dir: Path, stats: RunStats) -> list[ImportRow]:
    rows: list[ImportRow] = []
    for file_name, source in STEELSWAP_SOURCES:
        path = data_dir / file_name
        try:
            raw_rows, dropped = read_csv_rows(path)
        except DocumentError as exc:
            LOGGER.warning('skipping %s: %s', file_name, exc.detail)
            stats.errors.append(exc.detail)
            continue

        accepted = 0
        for raw in raw_rows:
            if not is_script_hash(normalize_script_hash(raw['script_hash'])):
                LOGGER.warning(
                    '%s: dropping row with malformed hash dex=%s hash=%s',
                    file_name,
                    raw['dex'],
                    raw['script_hash'][:16]
                )
                dropped += 1
                continue
            rows.append(
                ImportRow(
                    dex=raw['dex'],
                    class_label=raw['class'],
                    script_hash=raw['script_hash'],
                    source=source
                )
            )
            accepted += 1

        stats.rows_dropped += dropped
        LOGGER.info('found %s %s contracts in %s (%s rows dropped)', accepted, source, file_name, dropped)
    return rows


def _write_projects(stats: RunStats, registry_dir: Path) -> None:
    for project in stats.projects.values():
        path = registry_dir / project.output_file
        try:
            result = merge_into_file(
                path,
                project.scripts,
                id_source=project.id_source,
                shell=project.shell
            )
        except RegistryWriteError as exc:
            LOGGER.error('write failed for %s: %s', project.output_file, exc.detail)
            project.error = exc.detail
            continue
        except DocumentError as exc:
            LOGGER.warning('not merging into %s: %s', project.output_file, exc.detail)
            project.error = exc.detail
            continue

        project.added = result.added
        project.duplicates = result.duplicates
        project.written = result.changed
        if result.duplicates:
            status = f'+{result.added} new, {result.duplicates} duplicates skipped'
        else:
            status = f'{result.added} scripts'
        LOGGER.info('%s (%s)', project.output_file, status)


def run_import(
    rows: list[ImportRow],
    resolver: ClassificationResolver,
    table: MetadataTable,
    *,
    registry_dir: Path,
    metadata_path: Path,
    stats: RunStats | None = None
) -> RunStats:
    stats = stats or RunStats()
    before = table.to_document()

    LOGGER.info('processing %s contracts', len(rows))
    for row in rows:
        result = flatten_import_row(row, resolver, table)
        stats.tally(result)
        if result.outcome == NOT_FOUND:
            LOGGER.info('not found: %s - %s...', row.dex, result.script_hash[:16])
            continue
        if result.outcome != ACCEPTED:
            continue

        key = result.project_key
        project = stats.projects.get(key)
        if project is None:
            metadata = table.mappings[key]
            project = ProjectResult(
                key=key,
                project_name=metadata.project_name or key,
                output_file=output_file_for(row.dex, key),
                id_source=key,
                shell=ShellFields(
                    project_name=metadata.project_name or key,
                    link=metadata.link,
                    twitter=metadata.twitter,
                    category=metadata.category,
                    sub_category=metadata.sub_category,
                    description=metadata.description.short
                )
            )
            stats.projects[key] = project
        project.scripts.append(result.script)

    for project in stats.projects.values():
        LOGGER.info('%s (%s scripts) -> %s', project.project_name, len(project.scripts), project.output_file)
        for version, count in project.protocol_versions():
            LOGGER.info('  protocol V%s: %s scripts', version, count)

    if table.to_document() != before:
        try:
            save_metadata_table(table, metadata_path)
            stats.metadata_written = True
        except RegistryWriteError as exc:
            LOGGER.error('metadata mapping not saved: %s', exc.detail)
            stats.errors.append(exc.detail)

    _write_projects(stats, registry_dir)
    log_summary(stats, 'import')
    return stats


def _legacy_shell(legacy: LegacyDApp, project_name: str) -> ShellFields:
    return ShellFields(
        project_name=project_name,
        link=legacy.link,
        twitter=legacy.twitter,
        category=legacy.category,
        sub_category=legacy.sub_category,
        description=legacy.description.short if legacy.description else None
    )


def run_migration(
    legacy_dir: Path,
    resolver: ClassificationResolver,
    *,
    registry_dir: Path,
    stats: RunStats | None = None
) -> RunStats:
    stats = stats or RunStats()
    files = list_json_files(legacy_dir, exclude={METADATA_FILE_NAME})
    LOGGER.info('found %s legacy files in %s', len(files), legacy_dir)

    for path in files:
        try:
            payload = read_json(path)
            legacy = LegacyDApp.model_validate(payload)
        except DocumentError as exc:
            LOGGER.warning('skipping %s: %s', path.name, exc.detail)
            stats.errors.append(exc.detail)
            continue
        except ValidationError as exc:
            LOGGER.warning('skipping %s: not a legacy dApp document', path.name)
            stats.errors.append(f'{path}: {exc}')
            continue

        project_name = legacy.project_name or path.stem
        project = ProjectResult(
            key=path.stem,
            project_name=project_name,
            output_file=path.name,
            id_source=project_name,
            shell=_legacy_shell(legacy, project_name)
        )

        for legacy_script in legacy.scripts:
            for version in legacy_script.versions:
                if not version.hash:
                    continue
                if not is_script_hash(normalize_script_hash(version.hash)):
                    LOGGER.warning('%s: malformed hash %s', path.name, version.hash[:16])
                    stats.errors.append(f'{path}: malformed hash {version.hash!r}')
                    continue
                try:
                    result = flatten_legacy_entry(legacy_script, version.hash, resolver)
                except ValidationError as exc:
                    LOGGER.warning('%s: rejected script %s: %s', path.name, legacy_script.name, exc)
                    stats.errors.append(f'{path}: script {legacy_script.name!r} rejected')
                    continue
                stats.tally(result)
                if result.outcome == NOT_FOUND:
                    LOGGER.info('not found: %s - %s...', path.stem, result.script_hash[:16])
                elif result.outcome == ACCEPTED:
                    project.scripts.append(result.script)

        stats.projects[project.key] = project
        LOGGER.info('%s (%s scripts)', path.name, len(project.scripts))

    _write_projects(stats, registry_dir)
    log_summary(stats, 'migration')
    return stats


def log_summary(stats: RunStats, label: str) -> None:
    LOGGER.info('%s summary:', label)
    LOGGER.info('- total contracts processed: %s', stats.processed)
    LOGGER.info('- not found in database: %s', stats.not_found)
    LOGGER.info('- skipped (non-PLUTUS): %s', stats.skipped_non_plutus)
    LOGGER.info('- scripts added: %s, duplicates skipped: %s', stats.scripts_added, stats.duplicates_skipped)
    LOGGER.info('- files written: %s', stats.files_written)
    if stats.rows_dropped:
        LOGGER.info('- malformed rows dropped: %s', stats.rows_dropped)
    for project in stats.failed_projects:
        LOGGER.error('- not written %s: %s', project.output_file, project.error)
    for error in stats.errors:
        LOGGER.warning('- error: %s', error)
    if not stats.rows:
        LOGGER.warning('no rows were read; check the input files')
    elif not stats.processed:
        LOGGER.warning('no rows were accepted out of %s; check the inputs and the db-sync instance', stats.rows)
