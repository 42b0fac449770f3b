"""Content fingerprints used to spot byte-identical duplicates."""

import hashlib
from pathlib import Path

CHUNK_SIZE = 1024 * 1024


def hash_file(path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """
    SHA-256 of the file's full content, read in chunks.

    Raises:
        OSError: the file can't be opened or a read fails part way.
    """
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()
