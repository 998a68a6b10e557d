from __future__ import annotations

import io
import json
import shutil
import sys
import tempfile
from pathlib import Path
from typing import List

import pytest

from hashlabel.cas import ContentHasher
from hashlabel.container import ContainerReader, ContainerWriter
from hashlabel.errors import (
    ContainerCorruptError,
    FilesystemOpError,
    IntegrityMismatchError,
    MissingExtensionError,
    RecordDecodeError,
    UnrecognizedSuffixError,
)
from hashlabel.lifecycle import bundle, label, restore, unbundle
from hashlabel.record import derive, encode_record

HELLO_MD5 = "5d41402abc4b2a76b9719d911017c592"


def _names(d: Path) -> List[str]:
    return sorted(p.name for p in d.iterdir())


def test_label_then_restore_report_txt() -> None:
    hasher = ContentHasher()
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        src = root / "report.txt"
        src.write_bytes(b"hello")

        r = label(src, hasher)
        assert r.target == root / f"{HELLO_MD5}.txt"
        assert _names(root) == [f"{HELLO_MD5}.record", f"{HELLO_MD5}.txt"]

        sidecar = json.loads((root / f"{HELLO_MD5}.record").read_text(encoding="utf-8"))
        assert sidecar["digest"] == HELLO_MD5
        assert Path(sidecar["original_path"]).name == "report.txt"

        r = restore(root / f"{HELLO_MD5}.record", hasher)
        assert r.target == src
        assert _names(root) == ["report.txt"]
        assert src.read_bytes() == b"hello"


def test_label_skips_sidecars_and_containers() -> None:
    hasher = ContentHasher()
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        for name in ("x.record", "x.packaged-record"):
            (root / name).write_bytes(b"{}")
            assert label(root / name, hasher).skipped
        assert _names(root) == ["x.packaged-record", "x.record"]


def test_label_without_extension_fails_untouched() -> None:
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        (root / "Makefile").write_bytes(b"all:\n")
        with pytest.raises(MissingExtensionError):
            label(root / "Makefile", ContentHasher())
        assert _names(root) == ["Makefile"]
        assert (root / "Makefile").read_bytes() == b"all:\n"


def test_bundle_from_original_then_unbundle() -> None:
    hasher = ContentHasher(chunk_size=5)
    data = b"some longer payload " * 50
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        src = root / "notes.md"
        src.write_bytes(data)
        digest = hasher.hash_bytes(data)

        r = bundle(src, hasher)
        container = root / f"{digest}.packaged-record"
        assert r.target == container
        assert _names(root) == [container.name]

        with container.open("rb") as f:
            names = [e.name for e in ContainerReader(f)]
        assert names == [f"{digest}.record", f"{digest}.md"]

        r = unbundle(container, hasher)
        assert r.target == src
        assert _names(root) == ["notes.md"]
        assert src.read_bytes() == data


def test_bundle_from_labeled_then_restore() -> None:
    hasher = ContentHasher()
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        (root / "report.txt").write_bytes(b"hello")
        label(root / "report.txt", hasher)

        r = bundle(root / f"{HELLO_MD5}.record", hasher)
        assert r.target == root / f"{HELLO_MD5}.packaged-record"
        assert _names(root) == [f"{HELLO_MD5}.packaged-record"]

        assert bundle(r.target, hasher).skipped

        restore(r.target, hasher)
        assert _names(root) == ["report.txt"]
        assert (root / "report.txt").read_bytes() == b"hello"


def test_truncated_payload_entry_is_integrity_mismatch() -> None:
    hasher = ContentHasher()
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        src = root / "report.txt"
        src.write_bytes(b"hello")
        record = derive(src, hasher)
        src.unlink()

        container = root / f"{HELLO_MD5}.packaged-record"
        with container.open("wb") as out, ContainerWriter(out) as w:
            rec = encode_record(record)
            w.add_entry(record.record_name, io.BytesIO(rec), len(rec))
            w.add_entry(record.labeled_name, io.BytesIO(b"hel"), 3)

        with pytest.raises(IntegrityMismatchError) as ei:
            unbundle(container, hasher)
        assert ei.value.expected == HELLO_MD5
        assert _names(root) == [container.name]


def test_cut_off_container_leaves_nothing_behind() -> None:
    hasher = ContentHasher()
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        (root / "report.txt").write_bytes(b"hello world, this is the payload")
        container = bundle(root / "report.txt", hasher).target
        data = container.read_bytes()
        container.write_bytes(data[: len(data) - 150])

        with pytest.raises(ContainerCorruptError):
            unbundle(container, hasher)
        assert _names(root) == [container.name]


def test_restore_rejects_unknown_suffix() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "report.txt"
        p.write_bytes(b"hello")
        with pytest.raises(UnrecognizedSuffixError):
            restore(p, ContentHasher())
        with pytest.raises(UnrecognizedSuffixError):
            unbundle(p, ContentHasher())
        assert p.read_bytes() == b"hello"


def test_labeled_pair_can_move_between_directories() -> None:
    hasher = ContentHasher()
    with tempfile.TemporaryDirectory() as td:
        a = Path(td) / "a"
        b = Path(td) / "b"
        a.mkdir()
        (a / "report.txt").write_bytes(b"hello")
        label(a / "report.txt", hasher)
        shutil.move(str(a), str(b))

        r = restore(b / f"{HELLO_MD5}.record", hasher)
        assert r.target == b / "report.txt"
        assert (b / "report.txt").read_bytes() == b"hello"


def test_restore_without_content_keeps_sidecar() -> None:
    hasher = ContentHasher()
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        (root / "report.txt").write_bytes(b"hello")
        label(root / "report.txt", hasher)
        (root / f"{HELLO_MD5}.txt").unlink()

        with pytest.raises(FilesystemOpError):
            restore(root / f"{HELLO_MD5}.record", hasher)
        assert _names(root) == [f"{HELLO_MD5}.record"]


def test_restore_of_nested_garbage_sidecar_is_decode_error() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "abc.record"
        p.write_bytes(b"[" * 200000)
        with pytest.raises(RecordDecodeError):
            restore(p, ContentHasher())


@pytest.mark.skipif(sys.platform != "linux", reason="needs a filesystem that accepts non-UTF-8 names")
def test_bundle_round_trip_with_undecodable_name() -> None:
    hasher = ContentHasher()
    with tempfile.TemporaryDirectory() as td:
        root = Path(td)
        src = root / "report.\udcff"
        src.write_bytes(b"hello")

        container = bundle(src, hasher).target
        assert _names(root) == [container.name]

        unbundle(container, hasher)
        assert _names(root) == [src.name]
        assert src.read_bytes() == b"hello"
