# fimbl/core/paths.py
import os
from pathlib import Path
from typing import Iterable, List, Union

from fimbl.core.errors import IoError


def canonicalize(path: str | Path) -> str:
    """
    Turn a user-supplied path into the store's key form: absolute,
    user-expanded, every existing symlink resolved.

    A path that no longer exists still canonicalizes (as far as it can be
    resolved), so a vanished tracked file maps back onto its key.
    Symlink loops and other resolution failures raise IoError.
    """
    try:
        return os.fspath(Path(path).expanduser().resolve(strict=False))
    except (OSError, RuntimeError) as e:
        # RuntimeError is what pathlib raises for symlink loops before 3.13
        cause = e if isinstance(e, OSError) else None
        raise IoError(str(path), cause, message=f"cannot resolve {path}: {e}") from e


def canonicalize_all(paths: Iterable[str | Path]) -> List[Union[str, IoError]]:
    """
    Canonical keys in first-seen order, aliases collapsed.
    A path that cannot be resolved keeps its position as the IoError it raised.
    """
    seen = set()
    keys: List[Union[str, IoError]] = []
    for p in paths:
        try:
            key = canonicalize(p)
        except IoError as e:
            keys.append(e)
            continue
        if key not in seen:
            seen.add(key)
            keys.append(key)
    return keys
