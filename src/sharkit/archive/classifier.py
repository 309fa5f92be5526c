"""Text versus binary classification for archive members."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Final

MAX_TEXT_LINE_LENGTH: Final[int] = 200
_ALLOWED_CONTROL_BYTES: Final[frozenset[int]] = frozenset({0x08, 0x09, 0x0A, 0x0C})
_READ_SIZE: Final[int] = 64 * 1024


class Classification(Enum):
    """Outcome of the text heuristic."""

    TEXT = "text"
    BINARY = "binary"


def _is_disallowed_byte(value: int) -> bool:
    if value >= 0x80:
        return True
    if value < 0x20 or value == 0x7F:
        return value not in _ALLOWED_CONTROL_BYTES
    return False


class _TextScan:
    """Incremental state for the five text rules."""

    __slots__ = ("line_prefix", "line_length", "last_byte", "violated")

    def __init__(self) -> None:
        self.line_prefix = b""
        self.line_length = 0
        self.last_byte: int | None = None
        self.violated = False

    def feed(self, block: bytes) -> None:
        for value in block:
            if _is_disallowed_byte(value):
                self.violated = True
                return
            if value == 0x0A:
                self.line_prefix = b""
                self.line_length = 0
            else:
                self.line_length += 1
                if self.line_length > MAX_TEXT_LINE_LENGTH:
                    self.violated = True
                    return
                if len(self.line_prefix) < 5:
                    self.line_prefix += bytes((value,))
                    if self.line_prefix.lower() == b"from ":
                        self.violated = True
                        return
            self.last_byte = value

    def result(self) -> Classification:
        if self.violated:
            return Classification.BINARY
        if self.last_byte is not None and self.last_byte != 0x0A:
            return Classification.BINARY
        return Classification.TEXT


def classify(source: bytes | BinaryIO | Iterable[bytes]) -> Classification:
    """Classify content, stopping at the first rule violation."""
    scan = _TextScan()
    if isinstance(source, (bytes, bytearray, memoryview)):
        scan.feed(bytes(source))
        return scan.result()
    if hasattr(source, "read"):
        while not scan.violated:
            block = source.read(_READ_SIZE)
            if not block:
                break
            scan.feed(block)
        return scan.result()
    for block in source:
        scan.feed(block)
        if scan.violated:
            break
    return scan.result()


def classify_file(path: Path) -> Classification:
    """Classify a file on disk."""
    with path.open("rb") as handle:
        return classify(handle)
