from __future__ import annotations

import re

BASE62_CHARS = '0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz'
ID_LENGTH = 8
SCRIPT_ID_HEX_PREFIX = 12
PROJECT_HASH_MASK = 0xFFFFFFFFFFFF

_ID_PATTERN = re.compile(r'[0-9A-Za-z]{8}')


def _base62(num: int) -> str:
    # Fixed width: least significant digit first, prepended, so the
    # top digits beyond 62**8 are silently dropped.
    result = ''
    for _ in range(ID_LENGTH):
        num, remainder = divmod(num, 62)
        result = BASE62_CHARS[remainder] + result
    return result


def _utf16_units(value: str) -> list[int]:
    raw = value.encode('utf-16-le')
    return [int.from_bytes(raw[i:i + 2], 'little') for i in range(0, len(raw), 2)]


def script_id(script_hash: str) -> str:
    """Deterministic 8-character ID from the first 12 hex characters of a script hash.

    Hashes sharing the same 12-character prefix map to the same ID; no
    collision checking is done here.
    """
    hex_portion = script_hash[:SCRIPT_ID_HEX_PREFIX]
    try:
        num = int(hex_portion, 16)
    except ValueError as exc:
        raise ValueError(f'script hash is not hex: {script_hash!r}') from exc
    return _base62(num)


def project_id(project_name: str) -> str:
    """Deterministic 8-character ID from a project name (DJB2-style, 48-bit)."""
    acc = 0
    # Fold UTF-16 code units so names outside the BMP hash the same as in
    # the registry's other tooling.
    for code in _utf16_units(project_name):
        acc = ((acc << 5) - acc + code) & PROJECT_HASH_MASK
    return _base62(acc)


def is_valid_id(value: object) -> bool:
    return isinstance(value, str) and bool(_ID_PATTERN.fullmatch(value))
