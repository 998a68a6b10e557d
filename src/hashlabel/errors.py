from __future__ import annotations

from pathlib import Path

# ---- Exit codes (Frozen) ----
EXIT_OK = 0
EXIT_USAGE = 2
EXIT_HASH_IO = 3
EXIT_MISSING_EXTENSION = 4
EXIT_MISSING_PARENT = 5
EXIT_RECORD_DECODE = 6
EXIT_CONTAINER_CORRUPT = 7
EXIT_FILESYSTEM_OP = 8
EXIT_UNRECOGNIZED_SUFFIX = 9
EXIT_INTEGRITY_MISMATCH = 10
EXIT_INTERRUPTED = 130
EXIT_INTERNAL_ERROR = 99


class HashLabelError(Exception):
    """Base class for every failure the lifecycle engine reports per path."""

    exit_code = EXIT_INTERNAL_ERROR


class HashIOError(HashLabelError):
    """Source content could not be opened or read."""

    exit_code = EXIT_HASH_IO


class MissingExtensionError(HashLabelError):
    exit_code = EXIT_MISSING_EXTENSION


class MissingParentError(HashLabelError):
    exit_code = EXIT_MISSING_PARENT


class RecordDecodeError(HashLabelError):
    """A sidecar or container record entry is malformed."""

    exit_code = EXIT_RECORD_DECODE


class ContainerCorruptError(HashLabelError):
    """Container stream truncated, missing its trailer, or has a bad header."""

    exit_code = EXIT_CONTAINER_CORRUPT


class IntegrityMismatchError(HashLabelError):
    exit_code = EXIT_INTEGRITY_MISMATCH

    def __init__(self, path: Path, expected: str, actual: str) -> None:
        super().__init__(f"digest mismatch for {path}: expected {expected}, got {actual}")
        self.path = path
        self.expected = expected
        self.actual = actual


class FilesystemOpError(HashLabelError):
    """A create/rename/delete/mkdir failed."""

    exit_code = EXIT_FILESYSTEM_OP

    def __init__(self, op: str, path: Path, cause: OSError) -> None:
        super().__init__(f"{op} failed for {path}: {cause.strerror or cause}")
        self.op = op
        self.path = path


class UnrecognizedSuffixError(HashLabelError):
    exit_code = EXIT_UNRECOGNIZED_SUFFIX
