from __future__ import annotations


class LoadError(Exception):
    """Base class for errors raised by the load generator."""


class ConfigError(LoadError):
    """Effective configuration is invalid."""


class SetupError(LoadError):
    """Client construction or database creation failed."""


class BatchWriteError(LoadError):
    def __init__(self, index: int, rows: int, message: str) -> None:
        super().__init__(f"batch {index} ({rows} rows): {message}")
        self.index = index
        self.rows = rows
