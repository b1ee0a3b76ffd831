from __future__ import annotations


class RegistryError(Exception):
    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ConfigError(RegistryError):
    """Setup problem that must stop the run before any file is touched."""


class DocumentError(RegistryError):
    def __init__(self, path: str, detail: str) -> None:
        super().__init__(f'{path}: {detail}')
        self.path = path


class RegistryWriteError(DocumentError):
    pass
