from __future__ import annotations

import re
from dataclasses import dataclass

from .identifiers import script_id
from .metadata import ensure_project_entry, ensure_script_class_mapping
from .models import NETWORK_TAG, SCRIPT_HASH_LENGTH, LegacyScript, MetadataTable, Script
from .resolver import ClassificationResolver, plutus_version_for

ACCEPTED = 'accepted'
NOT_FOUND = 'not_found'
SKIPPED_NON_PLUTUS = 'skipped_non_plutus'

_VERSION_SUFFIX = re.compile(r'V(\d+)$')
_HEX_HASH = re.compile(r'[0-9a-f]{56}')


@dataclass(frozen=True)
class ImportRow:
    dex: str
    class_label: str
    script_hash: str
    source: str = ''


@dataclass(frozen=True)
class FlattenResult:
    outcome: str
    script_hash: str
    script: Script | None = None
    project_key: str | None = None


def normalize_script_hash(value: str) -> str:
    cleaned = value.strip().lower()
    # Longer values carry a network/version prefix; the credential is the tail.
    if len(cleaned) > SCRIPT_HASH_LENGTH:
        cleaned = cleaned[-SCRIPT_HASH_LENGTH:]
    return cleaned


def is_script_hash(value: str) -> bool:
    return bool(_HEX_HASH.fullmatch(value))


def protocol_version_from_name(name: str) -> int | None:
    match = _VERSION_SUFFIX.search(name.strip())
    if not match:
        return None
    version = int(match.group(1))
    # V1 is the implied default and is never stored.
    return version if version >= 2 else None


def _build_script(
    *,
    script_hash: str,
    name: str,
    purpose: str,
    plutus_version: int,
    protocol_version: int | None
) -> Script:
    fields = {
        'id': script_id(script_hash),
        'name': name,
        'purpose': purpose,
        'type': 'PLUTUS',
        'scriptHash': script_hash,
        'fullScriptHash': f'{NETWORK_TAG}{script_hash}',
        'plutusVersion': plutus_version
    }
    if protocol_version is not None:
        fields['protocolVersion'] = protocol_version
    return Script.model_validate(fields)


def flatten_import_row(
    row: ImportRow,
    resolver: ClassificationResolver,
    table: MetadataTable
) -> FlattenResult:
    script_hash = normalize_script_hash(row.script_hash)

    record = resolver.lookup(script_hash)
    if record is None:
        return FlattenResult(NOT_FOUND, script_hash)

    plutus_version = plutus_version_for(record.type)
    if plutus_version is None:
        return FlattenResult(SKIPPED_NON_PLUTUS, script_hash)

    key = ensure_project_entry(table, row.dex)
    ensure_script_class_mapping(table, key, row.class_label)
    mappings = table.mappings[key].script_mappings

    if record.hash:
        script_hash = normalize_script_hash(record.hash)

    script = _build_script(
        script_hash=script_hash,
        name=mappings.names[row.class_label],
        purpose=mappings.purposes[row.class_label],
        plutus_version=plutus_version,
        protocol_version=protocol_version_from_name(row.dex)
    )
    return FlattenResult(ACCEPTED, script_hash, script=script, project_key=key)


def flatten_legacy_entry(
    legacy: LegacyScript,
    raw_hash: str,
    resolver: ClassificationResolver
) -> FlattenResult:
    """Turn one version of a legacy script into a flat record.

    Name and purpose come from the legacy script itself; the resolver decides
    whether it is a Plutus script at all.
    """
    script_hash = normalize_script_hash(raw_hash)

    record = resolver.lookup(script_hash)
    if record is None:
        return FlattenResult(NOT_FOUND, script_hash)

    plutus_version = plutus_version_for(record.type)
    if plutus_version is None:
        return FlattenResult(SKIPPED_NON_PLUTUS, script_hash)

    protocol_version = legacy.protocol_version
    if protocol_version is not None and protocol_version < 2:
        protocol_version = None

    script = _build_script(
        script_hash=script_hash,
        name=legacy.name or 'Unknown',
        purpose=(legacy.purpose or 'SPEND').strip().upper(),
        plutus_version=plutus_version,
        protocol_version=protocol_version
    )
    return FlattenResult(ACCEPTED, script_hash, script=script)
