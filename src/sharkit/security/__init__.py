"""Sandboxing and path safety primitives."""

from .paths import relative_to_target, resolve_target_path

__all__ = ["relative_to_target", "resolve_target_path"]
