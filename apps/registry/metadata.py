from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from .documents import read_json, write_json_atomic
from .errors import ConfigError, DocumentError
from .models import Description, MetadataTable, ProjectMetadata, ScriptMappings

LOGGER = logging.getLogger('dapp_registry.metadata')

METADATA_FILE_NAME = 'metadata-mapping.json'

DEFAULT_CATEGORY = 'DEFI'
DEFAULT_SUB_CATEGORY = 'AMM_DEX'
DEFAULT_PURPOSE = 'SPEND'

# Source-system project names -> canonical metadata key.
DEX_TO_METADATA_KEY: dict[str, str] = {
    'Minswap': 'Minswap',
    'MinswapV2': 'Minswap',
    'MuesliSwap': 'MuesliSwap',
    'Spectrum': 'Spectrum',
    'Splash': 'Splash',
    'SundaeSwap': 'SundaeSwap',
    'SundaeSwapV3': 'SundaeSwap',
    'VyFi': 'VyFinance',
    'WingRiders': 'Wingriders',
    'WingRidersV2': 'Wingriders',
    'GeniusYield': 'GeniusYield'
}

# Source-system project names -> registry document file name.
DEX_OUTPUT_FILES: dict[str, str] = {
    'Minswap': 'Minswap.json',
    'MinswapV2': 'Minswap.json',
    'MuesliSwap': 'MuesliSwap.json',
    'Spectrum': 'SpectrumFinance.json',
    'Splash': 'SplashProtocol.json',
    'SundaeSwap': 'SundaeSwap.json',
    'SundaeSwapV3': 'SundaeSwap.json',
    'VyFi': 'VyFinance.json',
    'WingRiders': 'Wingriders.json',
    'WingRidersV2': 'Wingriders.json',
    'GeniusYield': 'GeniusYield.json'
}


def canonical_key(raw_name: str) -> str:
    return DEX_TO_METADATA_KEY.get(raw_name, raw_name)


def output_file_for(raw_name: str, key: str) -> str:
    return DEX_OUTPUT_FILES.get(raw_name, f'{key}.json')


def load_metadata_table(path: Path) -> MetadataTable:
    if not path.exists():
        LOGGER.warning('metadata mapping not found at %s, starting empty', path)
        return MetadataTable()

    try:
        payload = read_json(path)
        table = MetadataTable.model_validate(payload)
    except DocumentError as exc:
        raise ConfigError(f'cannot load metadata mapping: {exc.detail}') from exc
    except ValidationError as exc:
        raise ConfigError(f'invalid metadata mapping {path}: {exc}') from exc

    LOGGER.info('loaded %s project metadata entries from %s', len(table.mappings), path)
    return table


def save_metadata_table(table: MetadataTable, path: Path) -> None:
    write_json_atomic(path, table.to_document())
    LOGGER.info('saved metadata mapping %s', path)


def ensure_project_entry(table: MetadataTable, raw_name: str) -> str:
    """Resolve ``raw_name`` to its canonical key, creating a default entry if needed."""
    key = canonical_key(raw_name)
    if key in table.mappings:
        return key

    table.mappings[key] = ProjectMetadata(
        project_name=key,
        category=DEFAULT_CATEGORY,
        sub_category=DEFAULT_SUB_CATEGORY,
        link='',
        twitter='',
        description=Description(short=''),
        script_mappings=ScriptMappings(names={}, purposes={})
    )
    LOGGER.info(
        'created metadata entry key=%s category=%s subCategory=%s',
        key,
        DEFAULT_CATEGORY,
        DEFAULT_SUB_CATEGORY
    )
    return key


def ensure_script_class_mapping(table: MetadataTable, key: str, class_label: str) -> bool:
    """Fill in a missing name/purpose for a script class. Returns True if anything was added.

    Existing (possibly hand-edited) values are never touched.
    """
    mappings = table.mappings[key].script_mappings
    created = False

    if not mappings.names.get(class_label):
        mappings.names[class_label] = class_label
        created = True
    if not mappings.purposes.get(class_label):
        mappings.purposes[class_label] = DEFAULT_PURPOSE
        created = True

    if created:
        LOGGER.info(
            'created script class mapping key=%s class=%s name=%s purpose=%s',
            key,
            class_label,
            mappings.names[class_label],
            mappings.purposes[class_label]
        )
    return created
