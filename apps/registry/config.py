from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from .errors import ConfigError

REQUIRED_DB_VARS = (
    'DBS_DATABASE_NAME',
    'DBS_DATABASE_HOST',
    'DBS_DATABASE_USER',
    'DBS_DATABASE_PASSWORD',
    'DBS_DATABASE_PORT'
)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path_value: str) -> Path:
    path = Path(path_value)
    if path.is_absolute():
        return path
    return _repo_root() / path


def load_env_file(path: Path) -> None:
    """Export KEY=VALUE pairs from a .env file without overriding the environment."""
    if not path.exists():
        return

    try:
        lines = path.read_text(encoding='utf-8').splitlines()
    except OSError:
        return

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, value = line.split('=', 1)
        key = key.strip()
        if not key:
            continue
        cleaned = value.strip().strip("'").strip('"')
        if not cleaned:
            continue
        if os.environ.get(key, '').strip():
            continue
        os.environ[key] = cleaned


def load_environment() -> None:
    load_env_file(_repo_root() / '.env')


def log_level_from_env() -> str:
    return os.getenv('LOG_LEVEL', 'INFO').strip().upper() or 'INFO'


def registry_dir_from_env() -> Path:
    return _resolve_path(os.getenv('REGISTRY_DIR', 'dApps_v2'))


@dataclass(frozen=True)
class Settings:
    db_name: str
    db_host: str
    db_user: str
    db_password: str
    db_port: int
    registry_dir: Path
    legacy_dir: Path
    metadata_mapping_path: Path
    steelswap_data_dir: Path
    log_level: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    missing = [name for name in REQUIRED_DB_VARS if not os.getenv(name, '').strip()]
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}. "
            'Please ensure your .env file is properly configured.'
        )

    raw_port = os.getenv('DBS_DATABASE_PORT', '').strip()
    try:
        db_port = int(raw_port)
    except ValueError as exc:
        raise ConfigError(f'DBS_DATABASE_PORT must be an integer, got {raw_port!r}') from exc

    return Settings(
        db_name=os.getenv('DBS_DATABASE_NAME', '').strip(),
        db_host=os.getenv('DBS_DATABASE_HOST', '').strip(),
        db_user=os.getenv('DBS_DATABASE_USER', '').strip(),
        db_password=os.getenv('DBS_DATABASE_PASSWORD', ''),
        db_port=db_port,
        registry_dir=registry_dir_from_env(),
        legacy_dir=_resolve_path(os.getenv('LEGACY_DIR', 'dApps')),
        metadata_mapping_path=_resolve_path(
            os.getenv('METADATA_MAPPING_PATH', 'dApps_v2/metadata-mapping.json')
        ),
        steelswap_data_dir=_resolve_path(os.getenv('STEELSWAP_DATA_DIR', 'eternl/ssdata')),
        log_level=log_level_from_env()
    )
