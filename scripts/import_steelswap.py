#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import psycopg2

from apps.registry.config import get_settings, load_environment, log_level_from_env
from apps.registry.errors import ConfigError
from apps.registry.metadata import load_metadata_table
from apps.registry.pipeline import RunStats, load_import_rows, run_import
from apps.registry.resolver import DbSyncResolver

LOGGER = logging.getLogger('dapp_registry.import_steelswap')


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Import SteelSwap order/pool contracts into the flat dApp registry')
    parser.add_argument('--data-dir', type=Path, help='Directory holding orders.csv and pools.csv')
    parser.add_argument('--registry-dir', type=Path, help='Registry output directory')
    parser.add_argument('--metadata', type=Path, help='metadata-mapping.json path')
    args = parser.parse_args(argv)

    load_environment()
    logging.basicConfig(
        level=log_level_from_env(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )

    try:
        settings = get_settings()
        metadata_path = args.metadata or settings.metadata_mapping_path
        table = load_metadata_table(metadata_path)
    except ConfigError as exc:
        LOGGER.error('fatal: %s', exc.detail)
        return 1

    stats = RunStats()
    rows = load_import_rows(args.data_dir or settings.steelswap_data_dir, stats)

    try:
        resolver = DbSyncResolver.connect(settings)
    except psycopg2.OperationalError as exc:
        LOGGER.error('fatal: cannot connect to db-sync: %s', exc)
        return 1

    with resolver:
        run_import(
            rows,
            resolver,
            table,
            registry_dir=args.registry_dir or settings.registry_dir,
            metadata_path=metadata_path,
            stats=stats
        )
    return 0


if __name__ == '__main__':
    sys.exit(main())
