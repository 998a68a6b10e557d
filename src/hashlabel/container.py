"""Two-entry container codec.

Containers use the SVR4 "newc" cpio layout so they stay inspectable with
stock tools (`cpio -itv < x.packaged-record`):

    entry   := header(110 bytes) name NUL pad4 payload pad4
    header  := "070701" + 13 x 8 hex digits
               (ino, mode, uid, gid, nlink, mtime, filesize,
                devmajor, devminor, rdevmajor, rdevminor, namesize, check)
    stream  := entry* trailer      (trailer = entry named "TRAILER!!!", no payload)

Reading is strictly forward and single pass: the underlying stream is never
seeked, so an entry's bytes are available only until the next call to
`ContainerReader.next_entry()`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional

from .cas import CHUNK_SIZE
from .errors import ContainerCorruptError, HashIOError, RecordDecodeError
from .record import MAX_RECORD_BYTES, RECORD_SUFFIX, FileRecord, decode_record

NEWC_MAGIC = b"070701"
HEADER_LEN = 110
TRAILER_NAME = "TRAILER!!!"
MAX_NAME_SIZE = 4096
MAX_FIELD = 0xFFFFFFFF
REGULAR_FILE_MODE = 0o100644

_HEADER_RE = re.compile(rb"070701[0-9A-Fa-f]{104}")


def _pad(n: int) -> int:
    return (4 - n % 4) % 4


@dataclass(frozen=True)
class ContainerEntry:
    name: str
    size: int
    mode: int = REGULAR_FILE_MODE
    mtime: int = 0

    @property
    def is_record(self) -> bool:
        return self.name.endswith(RECORD_SUFFIX)


class ContainerWriter:
    def __init__(self, stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> None:
        self._stream = stream
        self._chunk_size = chunk_size
        self._ino = 0
        self._finished = False

    def __enter__(self) -> "ContainerWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        # A failed write must not look like a complete container.
        if exc_type is None:
            self.finish()

    def _write_header(self, name: str, size: int, mode: int, mtime: int, ino: int, nlink: int) -> None:
        # Names are raw bytes on the wire; undecodable file names survive via surrogateescape.
        encoded = name.encode("utf-8", "surrogateescape") + b"\0"
        if len(encoded) > MAX_NAME_SIZE:
            raise ValueError(f"entry name too long: {name!r}")
        fields = (ino, mode, 0, 0, nlink, mtime, size, 0, 0, 0, 0, len(encoded), 0)
        hdr = NEWC_MAGIC + b"".join(b"%08X" % v for v in fields)
        self._stream.write(hdr + encoded + b"\0" * _pad(HEADER_LEN + len(encoded)))

    def add_entry(
        self,
        name: str,
        source: BinaryIO,
        size: int,
        mode: int = REGULAR_FILE_MODE,
        mtime: int = 0,
    ) -> ContainerEntry:
        if self._finished:
            raise ValueError("container already finished")
        if not name or name == TRAILER_NAME:
            raise ValueError(f"invalid entry name: {name!r}")
        if size > MAX_FIELD:
            raise ContainerCorruptError(f"entry {name!r} is too large for the container format ({size} bytes)")

        mtime = max(0, min(int(mtime), MAX_FIELD))
        self._ino += 1
        self._write_header(name, size, mode, mtime, ino=self._ino, nlink=1)

        remaining = size
        while remaining:
            try:
                b = source.read(min(self._chunk_size, remaining))
            except OSError as e:
                raise HashIOError(f"cannot read content for entry {name!r}: {e}") from e
            if not b:
                raise ContainerCorruptError(f"entry {name!r}: source ended {remaining} bytes early")
            self._stream.write(b)
            remaining -= len(b)
        self._stream.write(b"\0" * _pad(size))
        return ContainerEntry(name=name, size=size, mode=mode, mtime=mtime)

    def add_file(self, name: str, path: Path) -> ContainerEntry:
        path = Path(path)
        try:
            st = path.stat()
            f = path.open("rb")
        except OSError as e:
            raise HashIOError(f"cannot open {path}: {e.strerror or e}") from e
        with f:
            return self.add_entry(name, f, st.st_size, mtime=int(st.st_mtime))

    def finish(self) -> None:
        if self._finished:
            return
        self._write_header(TRAILER_NAME, 0, 0, 0, ino=0, nlink=1)
        self._finished = True


class ContainerReader:
    """Forward-only reader exposing the current entry and its remaining bytes."""

    def __init__(self, stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> None:
        self._stream = stream
        self._chunk_size = chunk_size
        self._entry: Optional[ContainerEntry] = None
        self._remaining = 0
        self._done = False

    @property
    def entry(self) -> Optional[ContainerEntry]:
        return self._entry

    @property
    def at_trailer(self) -> bool:
        return self._done

    def _raw_read(self, n: int) -> bytes:
        try:
            return self._stream.read(n)
        except OSError as e:
            raise HashIOError(f"cannot read container: {e}") from e

    def _read_exact(self, n: int, what: str) -> bytes:
        buf = bytearray()
        while len(buf) < n:
            b = self._raw_read(n - len(buf))
            if not b:
                raise ContainerCorruptError(f"truncated container: stream ended inside {what}")
            buf += b
        return bytes(buf)

    def _skip(self, n: int, what: str) -> None:
        while n:
            n -= len(self._read_exact(min(n, self._chunk_size), what))

    def next_entry(self) -> Optional[ContainerEntry]:
        """Advance to the next entry; None once the trailer has been read."""

        if self._done:
            return None
        if self._entry is not None:
            name = self._entry.name
            self._skip(self._remaining + _pad(self._entry.size), f"entry {name!r}")
            self._entry = None
            self._remaining = 0

        hdr = self._raw_read(HEADER_LEN)
        if not hdr:
            raise ContainerCorruptError("truncated container: missing trailer")
        if len(hdr) < HEADER_LEN:
            hdr += self._read_exact(HEADER_LEN - len(hdr), "entry header")
        if not hdr.startswith(NEWC_MAGIC):
            raise ContainerCorruptError(f"bad entry magic: {hdr[:6]!r}")
        if not _HEADER_RE.fullmatch(hdr):
            raise ContainerCorruptError("entry header field is not hexadecimal")

        fields = [int(hdr[6 + 8 * i : 14 + 8 * i], 16) for i in range(13)]
        mode, mtime, size, namesize = fields[1], fields[5], fields[6], fields[11]
        if namesize == 0 or namesize > MAX_NAME_SIZE:
            raise ContainerCorruptError(f"invalid entry name size: {namesize}")

        raw = self._read_exact(namesize + _pad(HEADER_LEN + namesize), "entry name")
        name_bytes = raw[:namesize]
        if not name_bytes.endswith(b"\0"):
            raise ContainerCorruptError("entry name is not NUL terminated")
        name = name_bytes[:-1].decode("utf-8", "surrogateescape")

        if name == TRAILER_NAME:
            self._skip(size + _pad(size), "trailer")
            self._done = True
            return None

        self._entry = ContainerEntry(name=name, size=size, mode=mode, mtime=mtime)
        self._remaining = size
        return self._entry

    def read(self, size: int = -1) -> bytes:
        """Return up to `size` bytes of the current entry (b"" when exhausted)."""

        if self._entry is None or self._remaining == 0:
            return b""
        if size < 0:
            parts = []
            while self._remaining:
                parts.append(self.read(self._chunk_size))
            return b"".join(parts)
        b = self._raw_read(min(size, self._remaining))
        if not b:
            raise ContainerCorruptError(
                f"truncated container: entry {self._entry.name!r} is missing {self._remaining} bytes"
            )
        self._remaining -= len(b)
        return b

    def __iter__(self) -> Iterator[ContainerEntry]:
        while True:
            e = self.next_entry()
            if e is None:
                return
            yield e


def read_bundle(
    stream: BinaryIO,
    on_payload: Callable[[ContainerReader, ContainerEntry], None],
    source: str = "<container>",
) -> FileRecord:
    """Walk a container once, decoding its record entry.

    `on_payload` is called while the payload entry is current and may consume
    as much of it as it likes. Entries may come in either order.
    """

    record: Optional[FileRecord] = None
    seen_payload = False
    reader = ContainerReader(stream)
    for entry in reader:
        if entry.is_record:
            if entry.size > MAX_RECORD_BYTES:
                raise RecordDecodeError(f"{source}: record entry is too large ({entry.size} bytes)")
            record = decode_record(reader.read(), source=f"{source}:{entry.name}")
        elif seen_payload:
            raise ContainerCorruptError(f"{source}: more than one payload entry")
        else:
            on_payload(reader, entry)
            seen_payload = True

    if record is None:
        raise RecordDecodeError(f"{source}: container has no record entry")
    if not seen_payload:
        raise ContainerCorruptError(f"{source}: container has no payload entry")
    return record
