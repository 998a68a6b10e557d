from __future__ import annotations

import hashlib
from pathlib import Path
from typing import BinaryIO

from .errors import HashIOError

CHUNK_SIZE = 1024 * 1024
DEFAULT_ALGORITHM = "md5"


class ContentHasher:
    """Streams bytes through a hashlib digest and returns lowercase hex.

    The algorithm is anything `hashlib.new` accepts; the digest string is the
    canonical identity of a file's content.
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM, chunk_size: int = CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        # Fail at construction, not halfway through a batch.
        if hashlib.new(algorithm).digest_size == 0:
            raise ValueError(f"variable-length digest {algorithm!r} is not supported")
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def new(self) -> "hashlib._Hash":
        return hashlib.new(self.algorithm)

    def hash_stream(self, stream: BinaryIO, name: str = "<stream>") -> str:
        h = self.new()
        try:
            while True:
                b = stream.read(self.chunk_size)
                if not b:
                    break
                h.update(b)
        except OSError as e:
            raise HashIOError(f"cannot read {name}: {e}") from e
        return h.hexdigest()

    def hash_file(self, path: Path) -> str:
        path = Path(path)
        try:
            f = path.open("rb")
        except OSError as e:
            raise HashIOError(f"cannot open {path}: {e.strerror or e}") from e
        with f:
            return self.hash_stream(f, name=str(path))

    def hash_bytes(self, b: bytes) -> str:
        h = self.new()
        h.update(b)
        return h.hexdigest()
