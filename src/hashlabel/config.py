from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .cas import CHUNK_SIZE, DEFAULT_ALGORITHM, ContentHasher

ENV_ALGORITHM = "HASHLABEL_ALGORITHM"
ENV_CHUNK_SIZE = "HASHLABEL_CHUNK_SIZE"
ENV_KEEP_GOING = "HASHLABEL_KEEP_GOING"


def _truthy(v: str) -> bool:
    s = v.strip().lower()
    return s in ("1", "true", "yes", "y", "on")


def _falsey(v: str) -> bool:
    s = v.strip().lower()
    return s in ("0", "false", "no", "n", "off")


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    """Unknown values fall back to the default."""

    v = env.get(name)
    if v is None:
        return default
    if _truthy(v):
        return True
    if _falsey(v):
        return False
    return default


@dataclass(frozen=True)
class Settings:
    algorithm: str = DEFAULT_ALGORITHM
    chunk_size: int = CHUNK_SIZE
    keep_going: bool = False

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        algorithm = env.get(ENV_ALGORITHM, "").strip().lower() or DEFAULT_ALGORITHM

        chunk_size = CHUNK_SIZE
        raw = env.get(ENV_CHUNK_SIZE)
        if raw is not None and raw.strip():
            try:
                chunk_size = int(raw.strip())
            except ValueError:
                raise ValueError(f"{ENV_CHUNK_SIZE} must be an integer, got {raw!r}") from None
            if chunk_size <= 0:
                raise ValueError(f"{ENV_CHUNK_SIZE} must be positive, got {chunk_size}")

        return Settings(
            algorithm=algorithm,
            chunk_size=chunk_size,
            keep_going=_env_flag(env, ENV_KEEP_GOING, False),
        )

    def override(self, **changes: object) -> "Settings":
        """Apply CLI overrides; None means "not given"."""

        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def hasher(self) -> ContentHasher:
        return ContentHasher(self.algorithm, self.chunk_size)
