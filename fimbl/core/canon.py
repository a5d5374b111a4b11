# fimbl/core/canon.py
from typing import Any

try:
    import jcs
except ImportError:
    raise ImportError("Please install jcs: pip install jcs")

from fimbl.core.types import Record


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Same record always serializes to the same bytes, so exports diff cleanly.
    """
    return jcs.canonicalize(obj)


def canonical_json_str(obj: Any) -> str:
    return canonical_json(obj).decode("utf-8")


def record_line(record: Record) -> str:
    """One export line (no trailing newline) for a stored record."""
    return canonical_json_str(record.to_dict())
