from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from .documents import read_json, write_json_atomic
from .errors import DocumentError
from .identifiers import project_id
from .models import DApp, Script

LOGGER = logging.getLogger('dapp_registry.merge')


@dataclass
class ShellFields:
    """Project-level fields used only when a dApp document has to be created."""

    project_name: str
    link: str | None = None
    twitter: str | None = None
    category: str | None = None
    sub_category: str | None = None
    description: str | None = None


@dataclass
class MergeResult:
    document: DApp
    added: int
    duplicates: int
    created: bool

    @property
    def changed(self) -> bool:
        return self.created or self.added > 0


def new_dapp_shell(id_source: str, fields: ShellFields) -> DApp:
    payload: dict = {
        'id': project_id(id_source),
        'projectName': fields.project_name
    }
    if fields.link:
        payload['link'] = fields.link
    if fields.twitter:
        payload['twitter'] = fields.twitter
    if fields.category:
        payload['category'] = fields.category
    if fields.sub_category:
        payload['subCategory'] = fields.sub_category
    if fields.description:
        payload['description'] = {'short': fields.description}
    payload['scripts'] = []
    return DApp.model_validate(payload)


def merge_scripts(
    existing: DApp | None,
    scripts: Iterable[Script],
    *,
    id_source: str,
    shell: ShellFields
) -> MergeResult:
    """Append scripts whose hash is not yet listed. Existing entries always win."""
    created = existing is None
    document = new_dapp_shell(id_source, shell) if existing is None else existing

    seen = document.script_hashes()
    merged = list(document.scripts)
    added = 0
    duplicates = 0
    for script in scripts:
        key = script.script_hash.lower()
        if key in seen:
            duplicates += 1
            continue
        merged.append(script)
        seen.add(key)
        added += 1

    # Assign rather than mutate so the field counts as set when dumped.
    document.scripts = merged
    return MergeResult(document=document, added=added, duplicates=duplicates, created=created)


def load_dapp(path: Path) -> DApp | None:
    if not path.exists():
        return None
    payload = read_json(path)
    if not isinstance(payload, dict):
        raise DocumentError(str(path), 'expected a JSON object')
    try:
        return DApp.model_validate(payload)
    except ValidationError as exc:
        raise DocumentError(str(path), f'invalid dApp document: {exc}') from exc


def merge_into_file(
    path: Path,
    scripts: Iterable[Script],
    *,
    id_source: str,
    shell: ShellFields
) -> MergeResult:
    """Read-merge-write one registry document.

    An existing document that cannot be read or validated raises
    ``DocumentError`` and is left as it is. The file is only rewritten when
    scripts were added or the document is new.
    """
    existing = load_dapp(path)
    if existing is not None:
        LOGGER.info('found existing %s with %s scripts', path.name, len(existing.scripts))

    try:
        result = merge_scripts(existing, scripts, id_source=id_source, shell=shell)
    except ValidationError as exc:
        raise DocumentError(str(path), f'cannot build dApp document: {exc}') from exc

    if result.changed:
        write_json_atomic(path, result.document.to_document())
    return result
