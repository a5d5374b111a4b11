# fimbl/core/errors.py
from typing import Optional


class FimblError(Exception):
    """Base for every error raised by the ledger."""


class PathError(FimblError):
    """Error scoped to a single path. Collected per path, never aborts a batch."""

    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path


class IoError(PathError):
    """File could not be opened, read or stat'ed."""

    def __init__(self, path: str, cause: Optional[OSError] = None, message: Optional[str] = None):
        if message is None:
            reason = cause.strerror if cause is not None and cause.strerror else str(cause)
            message = f"cannot read {path}: {reason}"
        super().__init__(path, message)
        self.cause = cause


class PolicyError(PathError):
    """Strict-mode violation of an operation's precondition."""


class AlreadyTrackedError(PolicyError):
    def __init__(self, path: str):
        super().__init__(path, f"file already tracked: {path}")


class NotTrackedError(PolicyError):
    def __init__(self, path: str):
        super().__init__(path, f"file is not tracked: {path}")


class StoreError(FimblError):
    """The record store failed. Fatal for the whole invocation."""
