from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

from .documents import list_json_files, read_json
from .errors import DocumentError
from .identifiers import is_valid_id
from .metadata import METADATA_FILE_NAME

LOGGER = logging.getLogger('dapp_registry.audit')


@dataclass
class IdAuditReport:
    files_checked: int = 0
    unreadable: list[str] = field(default_factory=list)
    malformed_ids: dict[str, str] = field(default_factory=dict)
    duplicate_dapp_ids: dict[str, list[str]] = field(default_factory=dict)
    script_id_collisions: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not (
            self.unreadable
            or self.malformed_ids
            or self.duplicate_dapp_ids
            or self.script_id_collisions
        )


def audit_registry_ids(registry_dir: Path) -> IdAuditReport:
    """Report dApp and script ID problems across a registry directory.

    Read-only: IDs are derived from hashes and names, so repairing a
    collision is a manual decision.
    """
    report = IdAuditReport()
    files_by_dapp_id: dict[str, list[str]] = defaultdict(list)
    hashes_by_script_id: dict[str, set[str]] = defaultdict(set)

    for path in list_json_files(registry_dir, exclude={METADATA_FILE_NAME}):
        try:
            payload = read_json(path)
        except DocumentError as exc:
            report.unreadable.append(exc.detail)
            continue
        if not isinstance(payload, dict):
            report.unreadable.append(f'{path}: expected a JSON object')
            continue

        report.files_checked += 1
        dapp_id = payload.get('id')
        if not is_valid_id(dapp_id):
            report.malformed_ids[path.name] = str(dapp_id or '')
        else:
            files_by_dapp_id[dapp_id].append(path.name)

        scripts = payload.get('scripts') if isinstance(payload.get('scripts'), list) else []
        for script in scripts:
            if not isinstance(script, dict):
                continue
            sid = script.get('id')
            script_hash = str(script.get('scriptHash', '')).strip().lower()
            if not is_valid_id(sid):
                report.malformed_ids[f'{path.name}:{script_hash[:16]}'] = str(sid or '')
                continue
            if script_hash:
                hashes_by_script_id[sid].add(script_hash)

    report.duplicate_dapp_ids = {
        dapp_id: files for dapp_id, files in files_by_dapp_id.items() if len(files) > 1
    }
    # The same script listed by two dApps shares an ID legitimately; only
    # distinct hashes behind one ID are a collision.
    report.script_id_collisions = {
        sid: sorted(hashes) for sid, hashes in hashes_by_script_id.items() if len(hashes) > 1
    }

    LOGGER.info(
        'audited %s files: %s malformed ids, %s duplicate dApp ids, %s script id collisions',
        report.files_checked,
        len(report.malformed_ids),
        len(report.duplicate_dapp_ids),
        len(report.script_id_collisions)
    )
    return report
