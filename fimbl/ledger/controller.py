# fimbl/ledger/controller.py
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Union

from fimbl.config import LedgerConfig
from fimbl.core.attributes import snapshot
from fimbl.core.errors import (
    AlreadyTrackedError,
    IoError,
    NotTrackedError,
    PathError,
    StoreError,
)
from fimbl.core.paths import canonicalize, canonicalize_all
from fimbl.core.types import Outcome, OutcomeKind, Record
from fimbl.crypto.hashing import file_digest
from fimbl.storage import RecordStore, create_store
from fimbl.verify.verifier import compare

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def capture(path: str) -> Record:
    """Fresh candidate record: attributes first, then the digest."""
    attributes = snapshot(path)
    digest = file_digest(path)
    return Record(path=path, digest=digest, attributes=attributes, recorded_at=utc_now())


_ERROR_KINDS = {
    AlreadyTrackedError: OutcomeKind.ALREADY_TRACKED,
    NotTrackedError: OutcomeKind.NOT_TRACKED,
    IoError: OutcomeKind.IO_FAILURE,
}


def error_outcome(path: str, error: PathError) -> Outcome:
    return Outcome(path=path, kind=_ERROR_KINDS[type(error)], error=error)


class Ledger:
    """
    Applies add / verify / accept / remove to a record store.

    The *_path methods handle one path and raise PathError subclasses on
    policy or I/O problems. The batch methods run each path independently
    on a thread pool and turn those errors into per-path Outcomes; only a
    StoreError stops a batch.
    """

    def __init__(self, store: RecordStore, config: Optional[LedgerConfig] = None):
        self.store = store
        self.config = config or LedgerConfig()

    @classmethod
    def open(cls, uri: str | Path, config: Optional[LedgerConfig] = None) -> "Ledger":
        return cls(create_store(uri), config)

    @property
    def tolerant(self) -> bool:
        return self.config.tolerant

    def close(self) -> None:
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ── single path ──────────────────────────────────────────────

    def add_path(self, path: str | Path) -> Outcome:
        return self._add(canonicalize(path))

    def verify_path(self, path: str | Path) -> Outcome:
        return self._verify(canonicalize(path))

    def accept_path(self, path: str | Path) -> Outcome:
        return self._accept(canonicalize(path))

    def remove_path(self, path: str | Path) -> Outcome:
        return self._remove(canonicalize(path))

    def _add(self, key: str) -> Outcome:
        existing = self.store.get(key)
        if existing is not None:
            if not self.tolerant:
                raise AlreadyTrackedError(key)
            return self._check_existing(key, existing)

        record = capture(key)
        self.store.put(record)
        logger.info("Added %s (%s)", key, record.digest_hex)
        return Outcome(path=key, kind=OutcomeKind.ADDED, observed=record)

    def _check_existing(self, key: str, existing: Record) -> Outcome:
        """
        Tolerant add on a tracked path. The baseline stays as it is (only
        accept resets it), but the file is still compared against it.
        """
        try:
            observed = capture(key)
        except IoError as e:
            logger.warning("Cannot check %s: %s", key, e)
            return Outcome(path=key, kind=OutcomeKind.IO_FAILURE, expected=existing, error=e)

        outcome = compare(existing, observed)
        if outcome.kind is OutcomeKind.CHANGED:
            logger.warning("Content changed: %s", key)
            return outcome
        return Outcome(path=key, kind=OutcomeKind.ALREADY_TRACKED, expected=existing, observed=observed)

    def _verify(self, key: str) -> Outcome:
        expected = self.store.get(key)
        if expected is None:
            raise NotTrackedError(key)
        try:
            observed = capture(key)
        except IoError as e:
            # vanished or unreadable since tracking: reported, never skipped
            logger.warning("Cannot verify %s: %s", key, e)
            return Outcome(path=key, kind=OutcomeKind.IO_FAILURE, expected=expected, error=e)

        outcome = compare(expected, observed)
        if outcome.kind is OutcomeKind.CHANGED:
            logger.warning("Content changed: %s", key)
        return outcome

    def _accept(self, key: str) -> Outcome:
        existing = self.store.get(key)
        if existing is None and not self.tolerant:
            raise NotTrackedError(key)

        record = capture(key)
        self.store.put(record)
        if existing is None:
            logger.info("Added %s (%s) on accept", key, record.digest_hex)
            return Outcome(path=key, kind=OutcomeKind.ADDED, observed=record)
        logger.info("Accepted %s: %s -> %s", key, existing.digest_hex, record.digest_hex)
        return Outcome(path=key, kind=OutcomeKind.ACCEPTED, expected=existing, observed=record)

    def _remove(self, key: str) -> Outcome:
        existing = self.store.get(key)
        if existing is None or not self.store.delete(key):
            if not self.tolerant:
                raise NotTrackedError(key)
            return Outcome(path=key, kind=OutcomeKind.NOT_TRACKED)
        logger.info("Removed %s", key)
        return Outcome(path=key, kind=OutcomeKind.REMOVED, expected=existing)

    # ── batches ──────────────────────────────────────────────────

    def add(self, paths: Iterable[str | Path]) -> List[Outcome]:
        return self._run(self._add, canonicalize_all(paths))

    def verify(self, paths: Iterable[str | Path]) -> List[Outcome]:
        return self._run(self._verify, canonicalize_all(paths))

    def accept(self, paths: Iterable[str | Path]) -> List[Outcome]:
        return self._run(self._accept, canonicalize_all(paths))

    def remove(self, paths: Iterable[str | Path]) -> List[Outcome]:
        return self._run(self._remove, canonicalize_all(paths))

    def verify_all(self) -> List[Outcome]:
        """Verify every tracked path. Stored keys are used as-is, never re-resolved."""
        keys = [record.path for record in self.store.iterate()]
        return self._run(self._verify, keys)

    def tracked(self) -> Iterator[Record]:
        return self.store.iterate()

    def _run(self, op: Callable[[str], Outcome], keys: List[Union[str, IoError]]) -> List[Outcome]:
        """Run op over keys; an IoError in place of a key is a path that could not be resolved."""
        if not keys:
            return []

        aborted = threading.Event()

        def task(key: Union[str, IoError]) -> Outcome:
            if isinstance(key, IoError):
                logger.warning("%s", key)
                return error_outcome(key.path, key)
            if aborted.is_set():
                raise StoreError(f"skipped {key}: batch aborted after a store failure")
            try:
                return op(key)
            except PathError as e:
                logger.warning("%s", e)
                return error_outcome(key, e)
            except StoreError:
                aborted.set()
                raise

        workers = min(self.config.workers, len(keys))
        outcomes: List[Outcome] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fimbl") as executor:
            futures = [executor.submit(task, key) for key in keys]
            try:
                for future in futures:
                    outcomes.append(future.result())
            except StoreError:
                aborted.set()
                for future in futures:
                    future.cancel()
                raise
        return outcomes
