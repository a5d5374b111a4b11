# fimbl/crypto/hashing.py
import hashlib
import os
import stat
from pathlib import Path

from fimbl.core.errors import IoError

DIGEST_SIZE = 32
CHUNK_SIZE = 64 * 1024


def file_digest(path: str | Path, chunk_size: int = CHUNK_SIZE) -> bytes:
    """
    SHA3-256 of the file's bytes, read in fixed-size chunks.
    Raises IoError if the path is not a readable regular file.
    """
    hasher = hashlib.sha3_256()
    try:
        # opening a FIFO would block until a writer shows up
        if not stat.S_ISREG(os.stat(path).st_mode):
            raise IoError(str(path), message=f"not a regular file: {path}")
        with open(path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                hasher.update(chunk)
    except OSError as e:
        raise IoError(str(path), e) from e
    return hasher.digest()


def digest_hex(digest: bytes) -> str:
    return digest.hex()


def short_hex(digest: bytes, length: int = 12) -> str:
    """Abbreviated hex for tables."""
    return digest.hex()[:length]
