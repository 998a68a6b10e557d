from __future__ import annotations

import logging
from pathlib import Path

from .errors import FilesystemOpError

log = logging.getLogger(__name__)


def rename(src: Path, dst: Path) -> Path:
    log.debug("rename %s -> %s", src, dst)
    try:
        Path(src).replace(dst)
    except OSError as e:
        raise FilesystemOpError("rename", Path(src), e) from e
    return Path(dst)


def remove(path: Path) -> None:
    log.debug("remove %s", path)
    try:
        Path(path).unlink()
    except OSError as e:
        raise FilesystemOpError("delete", Path(path), e) from e


def discard(path: Path) -> None:
    """Best-effort removal of a scratch file while another error propagates."""

    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning("could not remove %s: %s", path, e)


def makedirs(path: Path) -> Path:
    log.debug("mkdir %s", path)
    try:
        Path(path).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemOpError("mkdir", Path(path), e) from e
    return Path(path)


def create(path: Path):
    log.debug("create %s", path)
    try:
        return Path(path).open("wb")
    except OSError as e:
        raise FilesystemOpError("create", Path(path), e) from e
