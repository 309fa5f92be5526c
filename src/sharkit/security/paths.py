"""Path resolution helpers for extraction confined to a target directory."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

from sharkit.errors import PathTraversalRejected

WINDOWS_ABSOLUTE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z]:[\\/]")


def _normalize_relative_input(candidate: str) -> tuple[str, bool]:
    """Normalize path separators and detect absolute-style inputs."""
    normalized = candidate.replace("\\", "/")
    if normalized.startswith(("/", "~")):
        return normalized, True
    if WINDOWS_ABSOLUTE_PATTERN.match(normalized):
        return normalized, True
    return normalized, False


def resolve_target_path(target_root: Path, candidate: str, current: str = "") -> Path:
    """Resolve an archive path under the target directory with sandbox enforcement.

    `current` is the archive's working directory relative to the target, as
    changed by `cd` directives.
    """
    root = target_root.resolve()
    normalized, is_absolute_style = _normalize_relative_input(candidate)

    if not normalized:
        raise PathTraversalRejected(
            reason="Path is empty.",
            hint="Archive members must have a relative name.",
            path=candidate,
        )

    if is_absolute_style:
        raise PathTraversalRejected(
            reason="Absolute paths are blocked.",
            hint="Archive members must be relative to the target directory.",
            path=candidate,
        )

    parts = [part for part in normalized.split("/") if part not in ("", ".")]
    if any(part == ".." for part in parts):
        raise PathTraversalRejected(
            reason="Path traversal is blocked.",
            hint="Archive members may not contain '..' segments.",
            path=candidate,
        )

    base = (root / current).resolve(strict=False) if current else root
    resolved = (base / Path(*parts)).resolve(strict=False) if parts else base
    if not resolved.is_relative_to(root):
        raise PathTraversalRejected(
            reason="Resolved path escapes the target directory.",
            hint="Remove symbolic links that point outside the target directory.",
            path=candidate,
        )
    return resolved


def relative_to_target(target_root: Path, resolved: Path) -> str:
    """Return a resolved path as a POSIX path relative to the target directory."""
    rel = resolved.relative_to(target_root.resolve())
    return rel.as_posix() or "."
