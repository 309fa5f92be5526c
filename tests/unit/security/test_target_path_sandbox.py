from __future__ import annotations

import os
from pathlib import Path

import pytest

from sharkit.errors import PathTraversalRejected
from sharkit.security.paths import relative_to_target, resolve_target_path


@pytest.mark.parametrize(
    "candidate",
    ["../escape.txt", "docs/../../escape.txt", "/etc/passwd", "~/notes", "C:\\Windows\\x", ""],
)
def test_unsafe_names_are_rejected(tmp_path: Path, candidate: str) -> None:
    with pytest.raises(PathTraversalRejected):
        resolve_target_path(tmp_path, candidate)


def test_relative_names_resolve_under_the_target(tmp_path: Path) -> None:
    resolved = resolve_target_path(tmp_path, "./docs//guide\\a.txt")

    assert resolved == tmp_path.resolve() / "docs" / "guide" / "a.txt"
    assert relative_to_target(tmp_path, resolved) == "docs/guide/a.txt"


def test_current_directory_is_applied(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()

    resolved = resolve_target_path(tmp_path, "a.txt", current="sub")

    assert resolved == tmp_path.resolve() / "sub" / "a.txt"
    assert relative_to_target(tmp_path, tmp_path.resolve()) == "."


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_symlink_escape_is_rejected(tmp_path: Path) -> None:
    target = tmp_path / "target"
    outside = tmp_path / "outside"
    target.mkdir()
    outside.mkdir()
    (target / "link").symlink_to(outside, target_is_directory=True)

    with pytest.raises(PathTraversalRejected, match="escapes"):
        resolve_target_path(target, "link/a.txt")
