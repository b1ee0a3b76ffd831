#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import psycopg2

from apps.registry.config import get_settings, load_environment, log_level_from_env
from apps.registry.errors import ConfigError
from apps.registry.pipeline import run_migration
from apps.registry.resolver import DbSyncResolver

LOGGER = logging.getLogger('dapp_registry.migrate_dapps')


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Migrate legacy dApp documents to the flat registry format')
    parser.add_argument('--legacy-dir', type=Path, help='Directory of legacy dApp JSON files')
    parser.add_argument('--registry-dir', type=Path, help='Registry output directory')
    args = parser.parse_args(argv)

    load_environment()
    logging.basicConfig(
        level=log_level_from_env(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    try:
        settings = get_settings()
    except ConfigError as exc:
        LOGGER.error('fatal: %s', exc.detail)
        return 1

    legacy_dir = args.legacy_dir or settings.legacy_dir
    if not legacy_dir.is_dir():
        LOGGER.error('fatal: legacy directory not found: %s', legacy_dir)
        return 1

    try:
        resolver = DbSyncResolver.connect(settings)
    except psycopg2.OperationalError as exc:
        LOGGER.error('fatal: cannot connect to db-sync: %s', exc)
        return 1

    with resolver:
        run_migration(
            legacy_dir,
            resolver,
            registry_dir=args.registry_dir or settings.registry_dir
        )
    return 0


if __name__ == '__main__':
    sys.exit(main())
