#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from apps.registry.audit import audit_registry_ids
from apps.registry.config import load_environment, log_level_from_env, registry_dir_from_env

LOGGER = logging.getLogger('dapp_registry.check_registry_ids')


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Report malformed or colliding IDs in the dApp registry')
    parser.add_argument(
        '--registry-dir',
        type=Path,
        help='Registry directory to scan (default: REGISTRY_DIR)'
    )
    args = parser.parse_args(argv)

    load_environment()
    logging.basicConfig(
        level=log_level_from_env(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    registry_dir = args.registry_dir or registry_dir_from_env()
    if not registry_dir.is_dir():
        LOGGER.error('registry directory not found: %s', registry_dir)
        return 1

    report = audit_registry_ids(registry_dir)
    for detail in report.unreadable:
        LOGGER.error('unreadable: %s', detail)
    for where, value in sorted(report.malformed_ids.items()):
        LOGGER.error('malformed id %r in %s', value, where)
    for dapp_id, files in sorted(report.duplicate_dapp_ids.items()):
        LOGGER.error('dApp id %s used in: %s', dapp_id, ' and '.join(files))
    for sid, hashes in sorted(report.script_id_collisions.items()):
        LOGGER.error('script id %s shared by hashes: %s', sid, ', '.join(hashes))

    if not report.ok:
        return 1
    LOGGER.info('all ids in %s files are well-formed and unique', report.files_checked)
    return 0


if __name__ == '__main__':
    sys.exit(main())
