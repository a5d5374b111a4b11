# fimbl/config.py
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DB_ENV_VAR = "FIMBL_DB_PATH"
TOLERANT_ENV_VAR = "FIMBL_TOLERANT"
WORKERS_ENV_VAR = "FIMBL_WORKERS"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def default_db_path() -> Path:
    """FIMBL_DB_PATH if set, else ~/.config/fimbl/fimbl.db"""
    env_path = os.environ.get(DB_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".config" / "fimbl" / "fimbl.db"


def resolve_db_path(db_flag: Optional[Path] = None) -> Path:
    """Resolve DB path in this order:
    1. --db flag
    2. FIMBL_DB_PATH environment variable
    3. Default: ~/.config/fimbl/fimbl.db
    """
    if db_flag:
        path = Path(db_flag).expanduser().resolve()
    else:
        path = default_db_path()

    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def default_workers() -> int:
    return min(8, os.cpu_count() or 1)


@dataclass(frozen=True)
class LedgerConfig:
    """Policy and resource settings threaded into every ledger operation."""
    tolerant: bool = False
    workers: int = 1

    def __post_init__(self):
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    @classmethod
    def from_env(cls, tolerant: Optional[bool] = None, workers: Optional[int] = None) -> "LedgerConfig":
        """Explicit values win; otherwise FIMBL_TOLERANT / FIMBL_WORKERS, then defaults."""
        if tolerant is None:
            tolerant = os.environ.get(TOLERANT_ENV_VAR, "").strip().lower() in _TRUE_VALUES
        if workers is None:
            raw = os.environ.get(WORKERS_ENV_VAR, "").strip()
            if raw:
                try:
                    workers = int(raw)
                except ValueError:
                    raise ValueError(f"{WORKERS_ENV_VAR} must be an integer, got {raw!r}")
            else:
                workers = default_workers()
        return cls(tolerant=tolerant, workers=workers)
