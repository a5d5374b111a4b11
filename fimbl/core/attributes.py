# fimbl/core/attributes.py
import os
import stat
from pathlib import Path

from fimbl.core.errors import IoError
from fimbl.core.types import Attributes


def snapshot(path: str | Path) -> Attributes:
    """Size, mtime and permission bits for a regular file."""
    try:
        st = os.stat(path)
    except OSError as e:
        raise IoError(str(path), e) from e
    if not stat.S_ISREG(st.st_mode):
        raise IoError(str(path), message=f"not a regular file: {path}")
    return Attributes(
        size=st.st_size,
        modified_ns=st.st_mtime_ns,
        permissions=stat.S_IMODE(st.st_mode),
    )
