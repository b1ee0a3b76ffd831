from __future__ import annotations

import csv
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from .errors import DocumentError, RegistryWriteError

CSV_REQUIRED_COLUMNS = ('dex', 'class', 'script_hash')


def read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as exc:
        raise DocumentError(str(path), f'invalid JSON: {exc}') from exc
    except OSError as exc:
        raise DocumentError(str(path), f'unreadable: {exc}') from exc


def dumps_document(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False) + '\n'


def write_json_atomic(path: Path, payload: Any) -> None:
    # Write next to the target then rename over it, so a failed write never
    # leaves a truncated file where a valid one used to be.
    body = dumps_document(payload)
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            'w',
            encoding='utf-8',
            dir=path.parent,
            prefix=f'.{path.name}.',
            suffix='.tmp',
            delete=False
        ) as handle:
            tmp_name = handle.name
            handle.write(body)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise RegistryWriteError(str(path), f'write failed: {exc}') from exc
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def read_csv_rows(path: Path) -> tuple[list[dict[str, str]], int]:
    """Return usable rows and the number of rows dropped.

    A row is dropped when ``dex`` or ``script_hash`` is empty or missing.
    Columns beyond the required ones are ignored.
    """
    try:
        with path.open(newline='', encoding='utf-8-sig') as handle:
            reader = csv.DictReader(handle)
            header = [name.strip() for name in (reader.fieldnames or [])]
            missing = [name for name in CSV_REQUIRED_COLUMNS if name not in header]
            if missing:
                raise DocumentError(str(path), f"missing columns: {', '.join(missing)}")
            reader.fieldnames = header

            rows: list[dict[str, str]] = []
            dropped = 0
            for raw in reader:
                row = {name: (raw.get(name) or '').strip() for name in CSV_REQUIRED_COLUMNS}
                if not row['dex'] or not row['script_hash']:
                    dropped += 1
                    continue
                rows.append(row)
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise DocumentError(str(path), f'unreadable CSV: {exc}') from exc
    return rows, dropped


def list_json_files(directory: Path, exclude: set[str] | None = None) -> list[Path]:
    skip = exclude or set()
    return sorted(
        path
        for path in directory.glob('*.json')
        if path.is_file() and path.name not in skip
    )
