"""Label / Restore / Bundle / Unbundle transitions.

Each transition handles exactly one input path and either completes or
raises a `HashLabelError`; deciding whether the rest of a batch runs is the
caller's job (see `hashlabel.batch`).

States of one content item, all inside a single directory:

    Original   name.ext
    Labeled    <digest>.ext + <digest>.record
    Bundled    <digest>.packaged-record
    Restored   name.ext

Records are only trusted for base names: every path is re-anchored on the
directory that currently holds the sidecar or container.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from .cas import ContentHasher
from .container import ContainerEntry, ContainerReader, ContainerWriter, read_bundle
from .errors import FilesystemOpError, HashIOError, IntegrityMismatchError, UnrecognizedSuffixError
from .fsops import create, discard, remove, rename
from .record import (
    CONTAINER_SUFFIX,
    EXTRACT_SUFFIX,
    RECORD_SUFFIX,
    TEMP_RECORD_SUFFIX,
    FileRecord,
    derive,
    read_record,
    swap_suffix,
    write_record,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    source: Path
    target: Path | None = None
    record: FileRecord | None = None
    skipped: bool = False


def is_sidecar(path: Path) -> bool:
    return Path(path).name.endswith(RECORD_SUFFIX)


def is_container(path: Path) -> bool:
    return Path(path).name.endswith(CONTAINER_SUFFIX)


def _unrecognized(path: Path) -> UnrecognizedSuffixError:
    return UnrecognizedSuffixError(
        f"expected a {RECORD_SUFFIX} sidecar or a {CONTAINER_SUFFIX} container: {path}"
    )


# ---- Label ----

def label(path: Path, hasher: ContentHasher) -> TransitionResult:
    src = Path(path)
    if is_sidecar(src) or is_container(src):
        log.debug("skip %s: already in labeled form", src)
        return TransitionResult(src, skipped=True)

    record = derive(src, hasher)
    labeled = Path(record.labeled_path)
    write_record(Path(record.record_path), record)
    rename(src, labeled)
    log.info("labeled %s -> %s", src, labeled)
    return TransitionResult(src, labeled, record)


# ---- Restore ----

def restore(path: Path, hasher: ContentHasher) -> TransitionResult:
    """Return a labeled or bundled item to its original name."""

    src = Path(path)
    if is_sidecar(src):
        return _restore_sidecar(src)
    if is_container(src):
        return unbundle(src, hasher)
    raise _unrecognized(src)


def _restore_sidecar(sidecar: Path) -> TransitionResult:
    record = read_record(sidecar)
    labeled = sidecar.parent / record.labeled_name
    original = sidecar.parent / record.original_name

    rename(labeled, original)
    remove(sidecar)
    log.info("restored %s -> %s", labeled, original)
    return TransitionResult(labeled, original, record)


def unbundle(path: Path, hasher: ContentHasher) -> TransitionResult:
    """Extract a container and accept the content only if its digest matches."""

    src = Path(path)
    if not is_container(src):
        raise _unrecognized(src)

    tmp = swap_suffix(src, CONTAINER_SUFFIX, EXTRACT_SUFFIX)
    try:
        f = src.open("rb")
    except OSError as e:
        raise HashIOError(f"cannot open {src}: {e.strerror or e}") from e

    try:
        with f, create(tmp) as out:

            def copy_payload(reader: ContainerReader, entry: ContainerEntry) -> None:
                log.debug("extract %s:%s (%d bytes) -> %s", src, entry.name, entry.size, tmp)
                while True:
                    b = reader.read(hasher.chunk_size)
                    if not b:
                        break
                    try:
                        out.write(b)
                    except OSError as e:
                        raise FilesystemOpError("write", tmp, e) from e

            record = read_bundle(f, copy_payload, source=str(src))

        actual = hasher.hash_file(tmp)
    except Exception:
        discard(tmp)
        raise

    if actual != record.digest:
        remove(tmp)
        raise IntegrityMismatchError(src, record.digest, actual)

    original = src.parent / record.original_name
    rename(tmp, original)
    remove(src)
    log.info("unbundled %s -> %s", src, original)
    return TransitionResult(src, original, record)


# ---- Bundle ----

def _write_container(container: Path, entries: List[Tuple[str, Path]]) -> None:
    try:
        with create(container) as out, ContainerWriter(out) as w:
            for name, p in entries:
                w.add_file(name, p)
    except OSError as e:
        discard(container)
        raise FilesystemOpError("write", container, e) from e
    except Exception:
        discard(container)
        raise


def bundle(path: Path, hasher: ContentHasher) -> TransitionResult:
    src = Path(path)
    if is_container(src):
        log.debug("skip %s: already bundled", src)
        return TransitionResult(src, skipped=True)
    if is_sidecar(src):
        return _bundle_labeled(src)
    return _bundle_original(src, hasher)


def _bundle_labeled(sidecar: Path) -> TransitionResult:
    record = read_record(sidecar)
    labeled = sidecar.parent / record.labeled_name
    container = swap_suffix(sidecar, RECORD_SUFFIX, CONTAINER_SUFFIX)

    _write_container(container, [(sidecar.name, sidecar), (record.labeled_name, labeled)])
    remove(sidecar)
    remove(labeled)
    log.info("bundled %s + %s -> %s", sidecar, labeled, container)
    return TransitionResult(sidecar, container, record)


def _bundle_original(src: Path, hasher: ContentHasher) -> TransitionResult:
    record = derive(src, hasher)
    record_path = Path(record.record_path)
    tmp_record = swap_suffix(record_path, RECORD_SUFFIX, TEMP_RECORD_SUFFIX)
    container = swap_suffix(record_path, RECORD_SUFFIX, CONTAINER_SUFFIX)

    write_record(tmp_record, record)
    try:
        _write_container(container, [(record.record_name, tmp_record), (record.labeled_name, src)])
    except Exception:
        discard(tmp_record)
        raise
    remove(src)
    remove(tmp_record)
    log.info("bundled %s -> %s", src, container)
    return TransitionResult(src, container, record)
