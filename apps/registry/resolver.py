from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import psycopg2

from .config import Settings

LOGGER = logging.getLogger('dapp_registry.resolver')

PLUTUS_VERSION_BY_TYPE = {
    'plutusV1': 1,
    'plutusV2': 2,
    'plutusV3': 3
}

SCRIPT_LOOKUP_SQL = '''
    SELECT
      type,
      ENCODE(hash, 'hex') AS hash,
      json,
      ENCODE(bytes, 'hex') AS bytes,
      serialised_size
    FROM script
    WHERE hash = DECODE(%s, 'hex')
    LIMIT 1
'''


@dataclass(frozen=True)
class ClassificationRecord:
    type: str
    hash: str
    json: Any = None
    bytes: str | None = None
    size: int | None = None


class ClassificationResolver(Protocol):
    def lookup(self, script_hash: str) -> ClassificationRecord | None:
        ...


def plutus_version_for(script_type: str | None) -> int | None:
    if not script_type:
        return None
    return PLUTUS_VERSION_BY_TYPE.get(script_type)


class DbSyncResolver:
    """Looks script hashes up in a cardano-db-sync ``script`` table.

    Holds a single connection for the whole run. Use it as a context manager
    so the connection is released on every exit path.
    """

    def __init__(self, connection) -> None:
        self.conn = connection
        self.lookups = 0
        self.closed = False

    @classmethod
    def connect(cls, settings: Settings) -> DbSyncResolver:
        conn = psycopg2.connect(
            dbname=settings.db_name,
            host=settings.db_host,
            user=settings.db_user,
            password=settings.db_password,
            port=settings.db_port
        )
        # Read-only lookups; no transaction should stay open between rows.
        conn.autocommit = True
        LOGGER.info('db-sync connected host=%s db=%s', settings.db_host, settings.db_name)
        return cls(conn)

    def lookup(self, script_hash: str) -> ClassificationRecord | None:
        if not script_hash:
            return None
        if self.closed:
            raise RuntimeError('db-sync resolver is closed')

        with self.conn.cursor() as cur:
            cur.execute(SCRIPT_LOOKUP_SQL, (script_hash,))
            row = cur.fetchone()
        self.lookups += 1

        if row is None:
            return None
        script_type, hash_hex, payload, bytes_hex, size = row
        return ClassificationRecord(
            type=str(script_type),
            hash=str(hash_hex),
            json=payload,
            bytes=bytes_hex,
            size=size
        )

    def close(self) -> None:
        if self.closed:
            return
        self.conn.close()
        self.closed = True
        LOGGER.info('db-sync connection closed lookups=%s', self.lookups)

    def __enter__(self) -> DbSyncResolver:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
