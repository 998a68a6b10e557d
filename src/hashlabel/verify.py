from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from .cas import ContentHasher
from .container import ContainerEntry, ContainerReader, read_bundle
from .errors import HashIOError, UnrecognizedSuffixError
from .fsops import makedirs, rename
from .lifecycle import is_container, is_sidecar
from .record import CONTAINER_SUFFIX, RECORD_SUFFIX, FileRecord, read_record

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifyResult:
    path: Path
    ok: bool
    expected: str
    actual: str
    original_name: str
    quarantined: Path | None = None


def _verify_sidecar(sidecar: Path, hasher: ContentHasher) -> Tuple[FileRecord, str, List[Path]]:
    record = read_record(sidecar)
    content = sidecar.parent / record.labeled_name
    return record, hasher.hash_file(content), [content, sidecar]


def _verify_container(container: Path, hasher: ContentHasher) -> Tuple[FileRecord, str, List[Path]]:
    digests: List[str] = []

    def hash_payload(reader: ContainerReader, entry: ContainerEntry) -> None:
        digests.append(hasher.hash_stream(reader, name=f"{container}:{entry.name}"))

    try:
        f = container.open("rb")
    except OSError as e:
        raise HashIOError(f"cannot open {container}: {e.strerror or e}") from e
    with f:
        record = read_bundle(f, hash_payload, source=str(container))
    return record, digests[0], [container]


def quarantine(directory: Path, files: List[Path]) -> Path:
    """Move `files` into `directory` (created on demand), keeping base names."""

    makedirs(directory)
    for p in files:
        rename(p, directory / p.name)
    return directory


def verify(path: Path, hasher: ContentHasher, separate_mismatches: bool = False) -> VerifyResult:
    """Recompute the digest of a labeled or bundled item and compare.

    A mismatch is reported in the result rather than raised, so a batch can
    keep checking the remaining files. With `separate_mismatches`, the
    mismatching files are moved to `<parent>/<recorded digest>/`.
    """

    p = Path(path)
    if is_sidecar(p):
        record, actual, files = _verify_sidecar(p, hasher)
    elif is_container(p):
        record, actual, files = _verify_container(p, hasher)
    else:
        raise UnrecognizedSuffixError(
            f"expected a {RECORD_SUFFIX} sidecar or a {CONTAINER_SUFFIX} container: {p}"
        )

    if actual == record.digest:
        log.debug("%s: digest %s matches", p, actual)
        return VerifyResult(p, True, record.digest, actual, record.original_name)

    log.warning("%s: expected %s, got %s", p, record.digest, actual)
    moved = None
    if separate_mismatches:
        moved = quarantine(p.parent / record.digest, files)
        log.warning("%s: quarantined into %s", p, moved)
    return VerifyResult(p, False, record.digest, actual, record.original_name, quarantined=moved)
