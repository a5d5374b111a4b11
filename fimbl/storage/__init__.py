# fimbl/storage/__init__.py
"""
Storage backends for the persisted record store.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional
from pathlib import Path
from fimbl.core.types import Record


class RecordStore(ABC):
    """
    Keyed collection of Records, one per canonical path.

    Per-key operations are atomic. Nothing spanning several keys is:
    iterate() may observe writes made by a concurrent invocation.
    """

    @abstractmethod
    def get(self, path: str) -> Optional[Record]:
        pass

    @abstractmethod
    def put(self, record: Record) -> None:
        """Insert or replace the record stored under record.path."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove the record; True if one existed."""

    @abstractmethod
    def iterate(self) -> Iterator[Record]:
        """Lazily yield every record, ordered by path."""

    @abstractmethod
    def close(self) -> None:
        pass

    def __contains__(self, path: str) -> bool:
        return self.get(path) is not None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_store(uri: str | Path) -> RecordStore:
    uri = str(uri)
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStore
        raw_path = uri[len("sqlite://"):]
        return SQLiteStore(Path(raw_path).expanduser().resolve())
    elif "://" in uri:
        raise ValueError(f"Unsupported storage URI: {uri}")
    else:
        # Plain file path -> SQLite
        from .sqlite import SQLiteStore
        return SQLiteStore(Path(uri).expanduser().resolve())


from .sqlite import SQLiteStore

__all__ = ["RecordStore", "create_store", "SQLiteStore"]
