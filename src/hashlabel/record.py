from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from .cas import ContentHasher
from .errors import (
    FilesystemOpError,
    HashIOError,
    MissingExtensionError,
    MissingParentError,
    RecordDecodeError,
)

RECORD_SUFFIX = ".record"
CONTAINER_SUFFIX = ".packaged-record"
TEMP_RECORD_SUFFIX = ".tmp-record"
EXTRACT_SUFFIX = ".tmp-extracted"
MAX_RECORD_BYTES = 64 * 1024

RECORD_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "hashlabel sidecar record v1",
    "type": "object",
    "properties": {
        "digest": {"type": "string", "pattern": "^[0-9a-f]+$"},
        "original_path": {"type": "string", "minLength": 1},
        "labeled_path": {"type": "string", "minLength": 1},
        "record_path": {"type": "string", "minLength": 1},
    },
    "required": ["digest", "original_path", "labeled_path", "record_path"],
    "additionalProperties": False,
}

_validator = Draft202012Validator(RECORD_SCHEMA)


def _base_name(value: str, field: str) -> str:
    name = Path(value).name
    if name in ("", ".", ".."):
        raise RecordDecodeError(f"record.{field} has no usable file name: {value!r}")
    return name


@dataclass(frozen=True)
class FileRecord:
    digest: str
    original_path: str
    labeled_path: str
    record_path: str

    # Only base names are trusted when resolving a record on disk; the
    # directory always comes from wherever the sidecar/container lives now.
    @property
    def original_name(self) -> str:
        return _base_name(self.original_path, "original_path")

    @property
    def labeled_name(self) -> str:
        return _base_name(self.labeled_path, "labeled_path")

    @property
    def record_name(self) -> str:
        return _base_name(self.record_path, "record_path")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "digest": self.digest,
            "original_path": self.original_path,
            "labeled_path": self.labeled_path,
            "record_path": self.record_path,
        }


def file_suffix(path: Path) -> str:
    """Return the file name from its last '.' onward ("a.tar.gz" -> ".gz")."""

    name = Path(path).name
    i = name.rfind(".")
    if i < 0:
        raise MissingExtensionError(f"file name has no extension: {path}")
    return name[i:]


def swap_suffix(path: Path, old: str, new: str) -> Path:
    path = Path(path)
    if not path.name.endswith(old):
        raise ValueError(f"{path} does not end with {old!r}")
    return path.with_name(path.name[: -len(old)] + new)


def derive(original_path: Path, hasher: ContentHasher) -> FileRecord:
    """Build a fresh record for an untouched file.

    Path shape is checked before the content is read, so a rejected file is
    never opened.
    """

    p = Path(original_path)
    if p.name in ("", ".", "..") or p.parent == p:
        raise MissingParentError(f"path has no parent directory: {original_path}")
    suffix = file_suffix(p)

    digest = hasher.hash_file(p)
    parent = p.parent
    return FileRecord(
        digest=digest,
        original_path=str(p),
        labeled_path=str(parent / f"{digest}{suffix}"),
        record_path=str(parent / f"{digest}{RECORD_SUFFIX}"),
    )


# ---- Codec ----

def encode_record(record: FileRecord) -> bytes:
    txt = json.dumps(record.to_dict(), indent=2, sort_keys=True) + "\n"
    return txt.encode("utf-8")


def _schema_errors(obj: Any) -> List[str]:
    errs = sorted(_validator.iter_errors(obj), key=lambda e: (list(map(str, e.path)), e.message))
    return [f"{'/'.join(map(str, e.path)) or '<root>'}: {e.message}" for e in errs]


def decode_record(data: bytes, source: str = "<record>") -> FileRecord:
    try:
        obj = json.loads(data.decode("utf-8"))
    except (ValueError, RecursionError) as e:
        raise RecordDecodeError(f"{source}: not a valid record: {e}") from e

    errs = _schema_errors(obj)
    if errs:
        raise RecordDecodeError(f"{source}: " + "; ".join(errs[:5]))

    return FileRecord(
        digest=obj["digest"],
        original_path=obj["original_path"],
        labeled_path=obj["labeled_path"],
        record_path=obj["record_path"],
    )


def write_record(path: Path, record: FileRecord) -> Path:
    p = Path(path)
    try:
        p.write_bytes(encode_record(record))
    except OSError as e:
        raise FilesystemOpError("create", p, e) from e
    return p


def read_record(path: Path) -> FileRecord:
    p = Path(path)
    try:
        with p.open("rb") as f:
            data = f.read(MAX_RECORD_BYTES + 1)
    except OSError as e:
        raise HashIOError(f"cannot read {p}: {e.strerror or e}") from e
    if len(data) > MAX_RECORD_BYTES:
        raise RecordDecodeError(f"{p}: record is larger than {MAX_RECORD_BYTES} bytes")
    return decode_record(data, source=str(p))
