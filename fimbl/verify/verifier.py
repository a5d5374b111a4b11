# fimbl/verify/verifier.py
from typing import List, Optional
from dataclasses import dataclass, field

from fimbl.core.types import Outcome, OutcomeKind, Record


def compare(expected: Record, observed: Record) -> Outcome:
    """
    The change-detection rule: UNCHANGED iff the digests are bit-identical.
    Attributes ride along for diagnostics but never decide the result.
    """
    if expected.path != observed.path:
        raise ValueError(f"Cannot compare records for different paths: {expected.path} vs {observed.path}")
    kind = OutcomeKind.UNCHANGED if expected.digest == observed.digest else OutcomeKind.CHANGED
    return Outcome(path=expected.path, kind=kind, expected=expected, observed=observed)


@dataclass
class BatchResult:
    is_valid: bool
    outcomes: List[Outcome] = field(default_factory=list)
    failures: List[Outcome] = field(default_factory=list)

    @property
    def first_failure(self) -> Optional[Outcome]:
        return self.failures[0] if self.failures else None

    @property
    def changed(self) -> List[Outcome]:
        return [o for o in self.failures if o.kind is OutcomeKind.CHANGED]

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return f"All {len(self.outcomes)} files OK"
        lines = [f"FAILED ({len(self.failures)} of {len(self.outcomes)} files):"]
        for o in self.failures:
            lines.append(f"  • {o.kind.value}: {o.message}")
        return "\n".join(lines)


def summarize(outcomes: List[Outcome]) -> BatchResult:
    """Single pass/fail signal for a batch. An empty batch passes."""
    failures = [o for o in outcomes if not o.ok]
    return BatchResult(is_valid=not failures, outcomes=list(outcomes), failures=failures)
