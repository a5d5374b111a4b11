# fimbl/core/types.py
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from fimbl.core.errors import FimblError
from fimbl.crypto.hashing import digest_hex


@dataclass(frozen=True)
class Attributes:
    """Filesystem metadata captured next to the digest. Informational only."""
    size: int
    modified_ns: int                # st_mtime_ns
    permissions: int                # S_IMODE bits, e.g. 0o644

    @property
    def modified_time(self) -> datetime:
        return datetime.fromtimestamp(self.modified_ns / 1_000_000_000, tz=timezone.utc)

    @property
    def mode_string(self) -> str:
        return f"{self.permissions:04o}"


@dataclass(frozen=True)
class Record:
    """Baseline for one tracked file."""
    path: str                       # canonical absolute path, store key
    digest: bytes                   # sha3-256, 32 bytes
    attributes: Attributes
    recorded_at: str = ""           # ISO 8601 UTC, when the baseline was captured

    @property
    def digest_hex(self) -> str:
        return digest_hex(self.digest)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["digest"] = self.digest_hex
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Record":
        return cls(
            path=d["path"],
            digest=bytes.fromhex(d["digest"]),
            attributes=Attributes(**d["attributes"]),
            recorded_at=d.get("recorded_at", ""),
        )


class OutcomeKind(str, Enum):
    ADDED = "added"
    ALREADY_TRACKED = "already-tracked"
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    REMOVED = "removed"
    NOT_TRACKED = "not-tracked"
    ACCEPTED = "accepted"
    IO_FAILURE = "io-failure"


_SUCCESS_KINDS = {
    OutcomeKind.ADDED,
    OutcomeKind.UNCHANGED,
    OutcomeKind.REMOVED,
    OutcomeKind.ACCEPTED,
}

# informational in tolerant mode, i.e. when no error is attached
_TOLERABLE_KINDS = {OutcomeKind.ALREADY_TRACKED, OutcomeKind.NOT_TRACKED}


@dataclass(frozen=True)
class Outcome:
    """Per-path result of one ledger operation. Never persisted."""
    path: str
    kind: OutcomeKind
    expected: Optional[Record] = None   # stored baseline, if any
    observed: Optional[Record] = None   # freshly captured candidate, if any
    error: Optional[FimblError] = None

    @property
    def ok(self) -> bool:
        if self.kind in _SUCCESS_KINDS:
            return True
        return self.kind in _TOLERABLE_KINDS and self.error is None

    def changed_fields(self) -> List[str]:
        """Which of digest / size / modified_time / permissions differ."""
        if self.expected is None or self.observed is None:
            return []
        exp, obs = self.expected, self.observed
        fields = []
        if exp.digest != obs.digest:
            fields.append("digest")
        if exp.attributes.size != obs.attributes.size:
            fields.append("size")
        if exp.attributes.modified_ns != obs.attributes.modified_ns:
            fields.append("modified_time")
        if exp.attributes.permissions != obs.attributes.permissions:
            fields.append("permissions")
        return fields

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        return f"{self.kind.value}: {self.path}"
