"""Byte-count and MD5 digest markers embedded in archives."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum


class VerificationResult(Enum):
    """Outcome of comparing extracted content with archive markers."""

    MATCH = "match"
    COUNT_MISMATCH = "count_mismatch"
    DIGEST_MISMATCH = "digest_mismatch"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class IntegrityMarkers:
    """Expected values carried by an archive for one file."""

    byte_count: int | None
    digest: str | None


def digest(data: bytes) -> str:
    """Return the hex MD5 digest used by archive check lines."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


class IntegrityTracker:
    """Accumulate count and digest while content is streamed."""

    def __init__(self) -> None:
        self._hash = hashlib.md5(usedforsecurity=False)
        self._count = 0

    def update(self, data: bytes) -> None:
        self._hash.update(data)
        self._count += len(data)

    @property
    def byte_count(self) -> int:
        return self._count

    def hexdigest(self) -> str:
        return self._hash.hexdigest()

    def verify(self, expected: IntegrityMarkers) -> VerificationResult:
        """Compare the streamed totals with the expected markers."""
        return compare(self._count, self.hexdigest(), expected)


def compare(actual_count: int, actual_digest: str, expected: IntegrityMarkers) -> VerificationResult:
    """Check the byte count first, then the digest; absent markers are skipped."""
    if expected.byte_count is None and expected.digest is None:
        return VerificationResult.SKIPPED
    if expected.byte_count is not None and expected.byte_count != actual_count:
        return VerificationResult.COUNT_MISMATCH
    if expected.digest is not None and expected.digest.lower() != actual_digest:
        return VerificationResult.DIGEST_MISMATCH
    return VerificationResult.MATCH


def verify(
    data: bytes,
    expected_count: int | None,
    expected_digest: str | None,
) -> VerificationResult:
    """Verify in-memory content against optional count and digest."""
    return compare(len(data), digest(data), IntegrityMarkers(expected_count, expected_digest))
