# tests/test_ledger.py
import pytest
from pathlib import Path
from typing import Dict, Iterator, Optional

from fimbl.config import LedgerConfig
from fimbl.core.errors import AlreadyTrackedError, IoError, NotTrackedError, StoreError
from fimbl.core.types import OutcomeKind, Record
from fimbl.ledger.controller import Ledger
from fimbl.storage import RecordStore, SQLiteStore
from fimbl.verify.verifier import summarize


class FailingStore(RecordStore):
    """In-memory store whose writes start failing after `fail_after` puts."""

    def __init__(self, fail_after: int = 0):
        self.records: Dict[str, Record] = {}
        self.fail_after = fail_after
        self.puts = 0

    def get(self, path: str) -> Optional[Record]:
        return self.records.get(path)

    def put(self, record: Record) -> None:
        if self.puts >= self.fail_after:
            raise StoreError("disk full")
        self.puts += 1
        self.records[record.path] = record

    def delete(self, path: str) -> bool:
        return self.records.pop(path, None) is not None

    def iterate(self) -> Iterator[Record]:
        for key in sorted(self.records):
            yield self.records[key]

    def close(self) -> None:
        pass


@pytest.fixture
def store(tmp_path: Path):
    s = SQLiteStore(tmp_path / "ledger.db")
    yield s
    s.close()


@pytest.fixture
def strict(store: SQLiteStore) -> Ledger:
    return Ledger(store, LedgerConfig(tolerant=False, workers=4))


@pytest.fixture
def tolerant(store: SQLiteStore) -> Ledger:
    return Ledger(store, LedgerConfig(tolerant=True, workers=4))


@pytest.fixture
def files(tmp_path: Path):
    d = tmp_path / "etc"
    d.mkdir()
    paths = []
    for name, body in [("hosts", b"127.0.0.1 localhost\n"), ("passwd", b"root:x:0:0\n"), ("bashrc", b"alias ll='ls -l'\n")]:
        p = d / name
        p.write_bytes(body)
        paths.append(p)
    return paths


def key(p: Path) -> str:
    return str(p.resolve())


def test_add_then_verify_unchanged(strict: Ledger, files):
    [added] = strict.add([files[0]])
    assert added.kind is OutcomeKind.ADDED
    assert added.observed.path == key(files[0])

    [verified] = strict.verify([files[0]])
    assert verified.kind is OutcomeKind.UNCHANGED
    assert verified.ok


def test_verify_is_idempotent_and_read_only(strict: Ledger, store: SQLiteStore, files):
    strict.add_path(files[0])
    before = store.get(key(files[0]))

    assert strict.verify_path(files[0]).kind is OutcomeKind.UNCHANGED
    assert strict.verify_path(files[0]).kind is OutcomeKind.UNCHANGED
    assert store.get(key(files[0])) == before


def test_single_byte_change_detected(strict: Ledger, store: SQLiteStore, files):
    strict.add_path(files[0])
    data = bytearray(files[0].read_bytes())
    data[-2] ^= 0x20
    files[0].write_bytes(bytes(data))

    outcome = strict.verify_path(files[0])
    assert outcome.kind is OutcomeKind.CHANGED
    assert outcome.expected.digest != outcome.observed.digest
    assert "digest" in outcome.changed_fields()
    # still the old baseline
    assert store.get(key(files[0])).digest == outcome.expected.digest


def test_accept_resets_baseline(strict: Ledger, files):
    strict.add_path(files[1])
    files[1].write_bytes(b"root:x:0:0:changed\n")
    assert strict.verify_path(files[1]).kind is OutcomeKind.CHANGED

    accepted = strict.accept_path(files[1])
    assert accepted.kind is OutcomeKind.ACCEPTED
    assert accepted.expected.digest != accepted.observed.digest

    assert strict.verify_path(files[1]).kind is OutcomeKind.UNCHANGED


def test_strict_add_twice_raises(strict: Ledger, files):
    strict.add_path(files[0])
    with pytest.raises(AlreadyTrackedError):
        strict.add_path(files[0])

    [outcome] = strict.add([files[0]])
    assert outcome.kind is OutcomeKind.ALREADY_TRACKED
    assert isinstance(outcome.error, AlreadyTrackedError)
    assert not outcome.ok


def test_tolerant_add_twice_keeps_baseline(tolerant: Ledger, store: SQLiteStore, files):
    tolerant.add_path(files[0])
    baseline = store.get(key(files[0]))

    outcome = tolerant.add_path(files[0])
    assert outcome.kind is OutcomeKind.ALREADY_TRACKED
    assert outcome.error is None
    assert outcome.ok
    assert outcome.expected == baseline
    assert outcome.observed.digest == baseline.digest
    assert store.get(key(files[0])) == baseline


def test_tolerant_add_on_modified_file_reports_change(tolerant: Ledger, store: SQLiteStore, files):
    tolerant.add_path(files[0])
    baseline = store.get(key(files[0]))
    files[0].write_bytes(b"something else entirely\n")

    outcome = tolerant.add_path(files[0])
    assert outcome.kind is OutcomeKind.CHANGED
    assert not outcome.ok
    assert outcome.expected == baseline
    assert outcome.observed.digest != baseline.digest
    # baseline is only reset by accept
    assert store.get(key(files[0])) == baseline

    [batched] = tolerant.add([files[0]])
    assert batched.kind is OutcomeKind.CHANGED
    assert not summarize([batched])


def test_tolerant_add_on_vanished_file(tolerant: Ledger, files):
    tolerant.add_path(files[0])
    files[0].unlink()

    outcome = tolerant.add_path(files[0])
    assert outcome.kind is OutcomeKind.IO_FAILURE
    assert outcome.expected is not None
    assert not outcome.ok


def test_strict_accept_untracked_raises(strict: Ledger, files):
    with pytest.raises(NotTrackedError):
        strict.accept_path(files[2])


def test_tolerant_accept_untracked_adds(tolerant: Ledger, store: SQLiteStore, files):
    outcome = tolerant.accept_path(files[2])
    assert outcome.kind is OutcomeKind.ADDED
    assert store.get(key(files[2])) is not None


def test_remove(strict: Ledger, store: SQLiteStore, files):
    strict.add_path(files[0])
    outcome = strict.remove_path(files[0])
    assert outcome.kind is OutcomeKind.REMOVED
    assert outcome.expected.path == key(files[0])
    assert store.get(key(files[0])) is None


def test_strict_remove_untracked_raises(strict: Ledger, files):
    with pytest.raises(NotTrackedError):
        strict.remove_path(files[0])

    # removing again after a successful removal behaves the same way
    strict.add_path(files[0])
    strict.remove_path(files[0])
    with pytest.raises(NotTrackedError):
        strict.remove_path(files[0])


def test_tolerant_remove_untracked(tolerant: Ledger, files):
    outcome = tolerant.remove_path(files[0])
    assert outcome.kind is OutcomeKind.NOT_TRACKED
    assert outcome.ok

    tolerant.add_path(files[0])
    assert tolerant.remove_path(files[0]).kind is OutcomeKind.REMOVED
    assert tolerant.remove_path(files[0]).kind is OutcomeKind.NOT_TRACKED


def test_verify_untracked_is_reported(tolerant: Ledger, files):
    with pytest.raises(NotTrackedError):
        tolerant.verify_path(files[0])
    [outcome] = tolerant.verify([files[0]])
    assert outcome.kind is OutcomeKind.NOT_TRACKED
    assert not outcome.ok


def test_vanished_file_is_io_failure(strict: Ledger, files):
    strict.add_path(files[0])
    files[0].unlink()

    outcome = strict.verify_path(files[0])
    assert outcome.kind is OutcomeKind.IO_FAILURE
    assert isinstance(outcome.error, IoError)
    assert outcome.expected is not None
    assert not outcome.ok


def test_batch_independence(strict: Ledger, files, tmp_path: Path):
    missing = tmp_path / "etc" / "shadow"
    batch = [files[0], missing, files[1], files[2]]

    outcomes = strict.add(batch)
    assert len(outcomes) == 4
    assert [o.kind for o in outcomes] == [
        OutcomeKind.ADDED,
        OutcomeKind.IO_FAILURE,
        OutcomeKind.ADDED,
        OutcomeKind.ADDED,
    ]
    assert [o.path for o in outcomes] == [key(p) for p in files[:1]] + [key(missing)] + [key(p) for p in files[1:]]
    assert sum(o.kind is OutcomeKind.IO_FAILURE for o in outcomes) == 1


def test_batch_preserves_order_and_dedupes_aliases(strict: Ledger, files, tmp_path: Path):
    alias = tmp_path / "hosts-link"
    alias.symlink_to(files[0])

    outcomes = strict.add([files[2], alias, files[0], files[1]])
    assert [o.path for o in outcomes] == [key(files[2]), key(files[0]), key(files[1])]
    assert all(o.kind is OutcomeKind.ADDED for o in outcomes)


def test_symlink_loop_does_not_abort_batch(strict: Ledger, files, tmp_path: Path):
    loop = tmp_path / "loop"
    loop.symlink_to(loop)

    outcomes = strict.add([files[0], loop, files[1]])
    assert [o.kind for o in outcomes] == [
        OutcomeKind.ADDED,
        OutcomeKind.IO_FAILURE,
        OutcomeKind.ADDED,
    ]
    assert isinstance(outcomes[1].error, IoError)
    assert outcomes[1].path.endswith("loop")

    verified = strict.verify([loop, files[0]])
    assert verified[0].kind in (OutcomeKind.IO_FAILURE, OutcomeKind.NOT_TRACKED)
    assert verified[1].kind is OutcomeKind.UNCHANGED


def test_verify_all(strict: Ledger, files):
    strict.add(files)
    files[1].write_bytes(b"tampered\n")

    outcomes = strict.verify_all()
    assert [o.path for o in outcomes] == sorted(key(p) for p in files)
    by_path = {o.path: o.kind for o in outcomes}
    assert by_path[key(files[1])] is OutcomeKind.CHANGED
    assert by_path[key(files[0])] is OutcomeKind.UNCHANGED
    assert not summarize(outcomes)


def test_verify_all_reports_vanished_files(strict: Ledger, files):
    strict.add(files)
    files[2].unlink()

    outcomes = strict.verify_all()
    assert len(outcomes) == 3
    assert {o.kind for o in outcomes} == {OutcomeKind.UNCHANGED, OutcomeKind.IO_FAILURE}


def test_verify_all_empty_store(strict: Ledger):
    outcomes = strict.verify_all()
    assert outcomes == []
    assert summarize(outcomes).is_valid


def test_tracked_lists_records(strict: Ledger, files):
    strict.add(files)
    assert [r.path for r in strict.tracked()] == sorted(key(p) for p in files)


def test_store_error_aborts_batch(files):
    store = FailingStore(fail_after=1)
    ledger = Ledger(store, LedgerConfig(workers=1))

    with pytest.raises(StoreError, match="disk full"):
        ledger.add(files)
    # first write went through, nothing after the failure did
    assert len(store.records) == 1


def test_open_and_close(tmp_path: Path, files):
    db = tmp_path / "scoped.db"
    with Ledger.open(db) as ledger:
        ledger.add_path(files[0])
    with pytest.raises(RuntimeError, match="closed"):
        ledger.verify_path(files[0])

    with Ledger.open(f"sqlite://{db}") as ledger:
        assert ledger.verify_path(files[0]).kind is OutcomeKind.UNCHANGED


def test_config_rejects_zero_workers():
    with pytest.raises(ValueError):
        LedgerConfig(workers=0)


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("FIMBL_TOLERANT", "yes")
    monkeypatch.setenv("FIMBL_WORKERS", "3")
    config = LedgerConfig.from_env()
    assert config.tolerant is True
    assert config.workers == 3

    explicit = LedgerConfig.from_env(tolerant=False, workers=1)
    assert explicit.tolerant is False
    assert explicit.workers == 1


def test_config_from_env_bad_workers(monkeypatch):
    monkeypatch.setenv("FIMBL_WORKERS", "many")
    with pytest.raises(ValueError, match="FIMBL_WORKERS"):
        LedgerConfig.from_env()
