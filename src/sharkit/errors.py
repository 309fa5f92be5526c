"""Error taxonomy shared by the codec, archive builder, and unshar engine."""

from __future__ import annotations


class SharError(Exception):
    """Base class carrying enough context for user-facing diagnostics."""

    code = "SHAR_ERROR"

    def __init__(
        self,
        reason: str,
        hint: str = "",
        *,
        path: str | None = None,
        line_number: int | None = None,
        expected: object = None,
        actual: object = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.hint = hint
        self.path = path
        self.line_number = line_number
        self.expected = expected
        self.actual = actual

    def describe(self) -> str:
        """Render a one-line diagnostic with the available context."""
        parts: list[str] = []
        if self.path is not None:
            parts.append(self.path)
        if self.line_number is not None:
            parts.append(f"line {self.line_number}")
        prefix = ":".join(parts)
        message = f"{prefix}: {self.reason}" if prefix else self.reason
        if self.expected is not None or self.actual is not None:
            message = f"{message} (expected {self.expected!r}, got {self.actual!r})"
        return message


class CodecError(SharError):
    """Raised when an encoded block cannot be decoded."""

    code = "CODEC_ERROR"


class MissingBeginMarker(CodecError):
    code = "MISSING_BEGIN_MARKER"


class MalformedHeader(CodecError):
    code = "MALFORMED_HEADER"


class LineLengthMismatch(CodecError):
    code = "LINE_LENGTH_MISMATCH"


class InvalidAlphabetByte(CodecError):
    code = "INVALID_ALPHABET_BYTE"


class MissingEndMarker(CodecError):
    code = "MISSING_END_MARKER"


class IntegrityMismatch(SharError):
    """Byte count or digest of an extracted file differs from the archive."""

    code = "INTEGRITY_MISMATCH"


class CountMismatch(IntegrityMismatch):
    code = "COUNT_MISMATCH"


class DigestMismatch(IntegrityMismatch):
    code = "DIGEST_MISMATCH"


class PathTraversalRejected(SharError):
    """A destination path would resolve outside the target directory."""

    code = "PATH_TRAVERSAL_REJECTED"


class OverwriteRefused(SharError):
    """The overwrite policy did not allow replacing an existing file."""

    code = "OVERWRITE_REFUSED"


class TruncatedArchive(SharError):
    """A split part is missing, out of order, or input ended mid-segment."""

    code = "TRUNCATED_ARCHIVE"


class CompactionToolFailure(SharError):
    """The external compaction tool exited unsuccessfully."""

    code = "COMPACTION_TOOL_FAILURE"


class DestinationUnwritable(SharError):
    """A file or directory could not be created at the destination."""

    code = "DESTINATION_UNWRITABLE"


class ValidationError(SharError):
    """Malformed configuration reached the core."""

    code = "VALIDATION_ERROR"


class InputUnreadable(SharError):
    """An input file or stream could not be opened for reading."""

    code = "INPUT_UNREADABLE"
