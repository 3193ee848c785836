"""Path resolution confined to a single sandbox directory."""

from __future__ import annotations

import os
from pathlib import Path


class PathEscape(ValueError):
    """Raised when a requested path resolves outside the sandbox root."""

    def __init__(self, target: str) -> None:
        super().__init__(f"Path escape attempt blocked: {target}")
        self.target = target


def resolve_path(base: str | os.PathLike[str], target: str | os.PathLike[str]) -> Path:
    """Return the canonical absolute path of ``target`` inside ``base``.

    Relative targets are joined onto ``base``; absolute targets are taken as-is.
    Both sides are canonicalized (symlinks followed, ``..`` collapsed) before the
    containment check, so neither traversal nor a symlink pointing outward can
    slip through. The comparison is by path segments: ``/srv/base2`` is not
    inside ``/srv/base``.
    """
    root = Path(base).resolve()
    resolved = (root / Path(target)).resolve()
    if resolved != root and root not in resolved.parents:
        raise PathEscape(str(target))
    return resolved


def is_within(base: str | os.PathLike[str], target: str | os.PathLike[str]) -> bool:
    try:
        resolve_path(base, target)
    except PathEscape:
        return False
    return True
