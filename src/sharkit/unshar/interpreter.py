"""Execute parsed directives against the target directory.

Nothing here starts a shell: each directive kind maps to one filesystem
operation, and every path is resolved through the target-directory sandbox
first.
"""

from __future__ import annotations

import bz2
import lzma
import os
import zlib
from collections.abc import Sequence
from pathlib import Path
from typing import BinaryIO, Protocol, TextIO

from sharkit.archive.directives import (
    BeginFileWrite,
    ChangeDirectory,
    Directive,
    EndFileWrite,
    EnsureDirectory,
    FileDataLine,
    Message,
    PartComplete,
    RestoreTimestamp,
    ResumeFileWrite,
    SegmentEnd,
    SequenceCheck,
    SuspendFileWrite,
    Trace,
    UnrecognizedCommand,
)
from sharkit.archive.integrity import IntegrityMarkers, IntegrityTracker, VerificationResult
from sharkit.codec import BlockDecoder
from sharkit.errors import (
    CompactionToolFailure,
    CountMismatch,
    DestinationUnwritable,
    DigestMismatch,
    OverwriteRefused,
    PathTraversalRejected,
    SharError,
    TruncatedArchive,
    ValidationError,
)
from sharkit.logging.audit import ExtractionEvent, JsonlAuditLogger, utc_timestamp
from sharkit.security.paths import relative_to_target, resolve_target_path
from sharkit.unshar.models import (
    ExtractionContext,
    FileAction,
    FileOutcome,
    OverwritePolicy,
    OverwritePrompt,
    SegmentReport,
)

TEXT_ENCODING = "latin-1"


class _Decompressor(Protocol):
    def decompress(self, data: bytes) -> bytes: ...

    @property
    def eof(self) -> bool: ...


def _decompressor(tool: str) -> _Decompressor:
    if tool == "gzip":
        return zlib.decompressobj(wbits=31)
    if tool == "bzip2":
        return bz2.BZ2Decompressor()
    if tool == "xz":
        return lzma.LZMADecompressor()
    raise ValidationError(
        reason=f"Unsupported compaction tool '{tool}'.",
        hint="Archives may use gzip, bzip2, or xz.",
    )


class _AbortSegment(Exception):
    """Stop interpreting the current segment."""

    def __init__(self, error: SharError) -> None:
        super().__init__(error.reason)
        self.error = error


class _FileWrite:
    """One file being reconstructed, possibly across several parts."""

    def __init__(
        self,
        name: str | None,
        mode_bits: int | None,
        encoded: bool,
        compaction: str | None,
        strip_prefix: str | None,
    ) -> None:
        self.name = name
        self.mode_bits = mode_bits
        self.strip_prefix = strip_prefix
        self.decoder = BlockDecoder() if encoded or compaction is not None else None
        self.expander = _decompressor(compaction) if compaction is not None else None
        self.tracker = IntegrityTracker()
        self.path: Path | None = None
        self.handle: BinaryIO | None = None
        self.error: SharError | None = None
        self.skipped = False
        self.opened = False

    @property
    def label(self) -> str:
        return self.name or "(unnamed)"

    def close_handle(self) -> None:
        if self.handle is not None:
            self.handle.close()
            self.handle = None


class Interpreter:
    """Run directive segments for one extraction run.

    State that spans segments (the last completed part of a split archive and
    a file write suspended at a part boundary) lives on the instance, so all
    parts of a split archive must pass through the same interpreter.
    """

    def __init__(
        self,
        context: ExtractionContext,
        *,
        prompt: OverwritePrompt | None = None,
        messages: TextIO | None = None,
        trace: TextIO | None = None,
        audit: JsonlAuditLogger | None = None,
    ) -> None:
        if context.overwrite_policy is OverwritePolicy.INTERACTIVE and prompt is None:
            raise ValidationError(
                reason="Interactive overwrite needs a prompt.",
                hint="Pass a prompt callable or choose another overwrite policy.",
            )
        self._context = context
        self._root = context.target_directory
        self._prompt = prompt
        self._messages = messages
        self._trace = trace
        self._audit = audit
        self._last_part: int | None = None
        self._suspended: _FileWrite | None = None
        self._written: set[Path] = set()

        self._cwd = ""
        self._tracing = context.debug
        self._write: _FileWrite | None = None
        self._report = SegmentReport(index=0, start_line=0)

    @property
    def context(self) -> ExtractionContext:
        return self._context

    def run_segment(
        self,
        directives: Sequence[Directive],
        index: int,
        start_line: int = 1,
        line_numbers: Sequence[int] | None = None,
    ) -> SegmentReport:
        """Execute one segment and report per-file outcomes."""
        self._cwd = ""
        self._tracing = self._context.debug
        self._write = None
        self._report = SegmentReport(index=index, start_line=start_line)
        try:
            for position, directive in enumerate(directives):
                line_number = line_numbers[position] if line_numbers is not None else None
                if isinstance(directive, SegmentEnd):
                    self._emit_trace(directive)
                    break
                try:
                    self._execute(directive)
                except (PathTraversalRejected, TruncatedArchive) as error:
                    if error.line_number is None:
                        error.line_number = line_number
                    raise _AbortSegment(error) from error
                except SharError as error:
                    if error.line_number is None:
                        error.line_number = line_number
                    if not self._fail_write(error):
                        self._report.errors.append(error)
        except _AbortSegment as abort:
            self._report.aborted = True
            if not self._fail_write(abort.error):
                self._report.errors.append(abort.error)
        write = self._write
        if write is not None and write.error is None:
            self._fail_write(
                TruncatedArchive(
                    reason="Segment ended while a file was still being written.",
                    hint="The archive was cut short; obtain a complete copy.",
                    path=write.name,
                )
            )
        self._write = None
        self._audit_segment()
        return self._report

    def finish(self) -> list[SharError]:
        """Report split-archive state left incomplete at the end of input."""
        errors: list[SharError] = []
        suspended = self._suspended
        if suspended is not None:
            self._suspended = None
            errors.append(
                TruncatedArchive(
                    reason=f"File {suspended.label} continues in a part that never arrived.",
                    hint="Supply every part of the archive, in ascending order.",
                    path=suspended.name,
                )
            )
            self._discard(suspended)
        elif self._last_part is not None:
            errors.append(
                TruncatedArchive(
                    reason=f"Input ended after part {self._last_part:02d} of a split archive.",
                    hint="Supply every part of the archive, in ascending order.",
                    expected=self._last_part + 1,
                )
            )
        self._last_part = None
        return errors

    def _execute(self, directive: Directive) -> None:
        if isinstance(directive, FileDataLine):
            self._write_line(directive.text)
            return
        self._emit_trace(directive)
        if isinstance(directive, Message):
            if not self._context.quiet and self._messages is not None:
                self._messages.write(f"{directive.text}\n")
        elif isinstance(directive, Trace):
            self._tracing = directive.enabled
        elif isinstance(directive, ChangeDirectory):
            self._change_directory(directive.path)
        elif isinstance(directive, EnsureDirectory):
            self._ensure_directory(directive.path)
        elif isinstance(directive, BeginFileWrite):
            self._begin(directive)
        elif isinstance(directive, ResumeFileWrite):
            self._resume(directive)
        elif isinstance(directive, EndFileWrite):
            self._end(directive)
        elif isinstance(directive, SuspendFileWrite):
            self._suspend()
        elif isinstance(directive, RestoreTimestamp):
            self._restore_timestamp(directive)
        elif isinstance(directive, SequenceCheck):
            self._check_sequence(directive.part)
        elif isinstance(directive, PartComplete):
            self._last_part = None if directive.final else directive.part
        elif isinstance(directive, UnrecognizedCommand):
            where = f"line {directive.line_number}: " if directive.line_number else ""
            self._report.warnings.append(f"{where}not executed: {directive.text}")

    def _emit_trace(self, directive: Directive) -> None:
        if not self._tracing or self._trace is None:
            return
        rendered = directive.render()
        if rendered and rendered[0]:
            self._trace.write(f"+ {rendered[0]}\n")

    def _resolve(self, name: str) -> Path:
        return resolve_target_path(self._root, name, current=self._cwd)

    def _change_directory(self, path: str) -> None:
        resolved = self._resolve(path)
        if not resolved.is_dir():
            raise _AbortSegment(
                DestinationUnwritable(
                    reason="Directory does not exist.",
                    hint="Archives must create a directory before changing into it.",
                    path=path,
                )
            )
        relative = relative_to_target(self._root, resolved)
        self._cwd = "" if relative == "." else relative

    def _ensure_directory(self, path: str) -> None:
        resolved = self._resolve(path)
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise DestinationUnwritable(
                reason="Directory could not be created.",
                hint="Check permissions in the target directory.",
                path=path,
                actual=str(error),
            ) from error

    def _begin(self, directive: BeginFileWrite) -> None:
        if self._write is not None:
            self._fail_write(
                TruncatedArchive(
                    reason="A new file started before the previous one ended.",
                    hint="The archive is malformed.",
                    path=self._write.name,
                )
            )
        write = _FileWrite(
            name=directive.name,
            mode_bits=directive.mode_bits,
            encoded=directive.encoded,
            compaction=directive.compaction,
            strip_prefix=directive.strip_prefix,
        )
        self._write = write
        if directive.name is not None:
            self._open(write, directive.name, append=False)

    def _resume(self, directive: ResumeFileWrite) -> None:
        suspended = self._suspended
        if suspended is None or suspended.name != directive.name:
            raise TruncatedArchive(
                reason=f"Part continues {directive.name}, which no earlier part started.",
                hint="Supply every part of the archive, in ascending order.",
                path=directive.name,
            )
        self._suspended = None
        self._write = suspended
        if suspended.error is not None or suspended.skipped or suspended.path is None:
            return
        try:
            suspended.handle = suspended.path.open("ab")
        except OSError as error:
            raise DestinationUnwritable(
                reason="File could not be reopened for appending.",
                hint="Check permissions in the target directory.",
                path=directive.name,
                actual=str(error),
            ) from error

    def _open(self, write: _FileWrite, name: str, append: bool) -> None:
        path = self._resolve(name)
        write.path = path
        if path.is_dir():
            raise DestinationUnwritable(
                reason="A directory is in the way of the file.",
                hint="Remove the directory or extract elsewhere.",
                path=name,
            )
        if path.exists() and not self._may_overwrite(name):
            write.skipped = True
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            write.handle = path.open("ab" if append else "wb")
            write.opened = True
        except OSError as error:
            raise DestinationUnwritable(
                reason="File could not be created.",
                hint="Check permissions in the target directory.",
                path=name,
                actual=str(error),
            ) from error

    def _may_overwrite(self, name: str) -> bool:
        policy = self._context.overwrite_policy
        if policy is OverwritePolicy.FORCE:
            return True
        if policy is OverwritePolicy.INTERACTIVE:
            assert self._prompt is not None
            return self._prompt(name)
        raise OverwriteRefused(
            reason="File already exists.",
            hint="Pass --overwrite to replace existing files.",
            path=name,
        )

    def _write_line(self, text: str) -> None:
        write = self._write
        if write is None or write.error is not None:
            return
        if write.decoder is None:
            if write.strip_prefix and text.startswith(write.strip_prefix):
                text = text[len(write.strip_prefix) :]
            self._store(write, text.encode(TEXT_ENCODING) + b"\n")
            return
        data = write.decoder.feed(text)
        header = write.decoder.header
        if write.name is None and header is not None:
            write.name = header.name
            write.mode_bits = header.mode_bits
            self._open(write, header.name, append=False)
        if write.expander is not None and data:
            try:
                data = write.expander.decompress(data)
            except (zlib.error, OSError, lzma.LZMAError) as error:
                raise CompactionToolFailure(
                    reason="Compressed data could not be expanded.",
                    hint="The archive is corrupted.",
                    path=write.name,
                    actual=str(error),
                ) from error
        if data:
            self._store(write, data)

    def _store(self, write: _FileWrite, data: bytes) -> None:
        write.tracker.update(data)
        if write.handle is None:
            return
        try:
            write.handle.write(data)
        except OSError as error:
            raise DestinationUnwritable(
                reason="File could not be written.",
                hint="Check free space and permissions.",
                path=write.name,
                actual=str(error),
            ) from error

    def _suspend(self) -> None:
        write = self._write
        self._write = None
        if write is None:
            return
        write.close_handle()
        self._suspended = write

    def _end(self, directive: EndFileWrite) -> None:
        write = self._write
        self._write = None
        if write is None:
            return
        if write.error is not None:
            write.close_handle()
            return
        try:
            if write.decoder is not None:
                write.decoder.close()
            if write.expander is not None and not write.expander.eof:
                raise TruncatedArchive(
                    reason="Compressed data ended early.",
                    hint="The archive was cut short; obtain a complete copy.",
                    path=write.name,
                )
        except SharError as error:
            write.close_handle()
            self._record(FileOutcome(write.label, FileAction.FAILED, error=error))
            return
        write.close_handle()

        if write.skipped or write.path is None:
            self._record(FileOutcome(write.label, FileAction.SKIPPED))
            return
        self._written.add(write.path)
        if write.mode_bits is not None:
            self._chmod(write)
        verification, error = self._verify(write, directive)
        self._record(FileOutcome(write.label, FileAction.WRITTEN, verification, error))

    def _chmod(self, write: _FileWrite) -> None:
        assert write.path is not None and write.mode_bits is not None
        try:
            os.chmod(write.path, write.mode_bits & 0o777)
        except OSError as error:
            self._report.warnings.append(f"{write.label}: mode not set: {error}")

    def _verify(
        self, write: _FileWrite, directive: EndFileWrite
    ) -> tuple[VerificationResult, SharError | None]:
        if not self._context.check_integrity:
            return VerificationResult.SKIPPED, None
        markers = IntegrityMarkers(directive.expected_byte_count, directive.expected_digest)
        result = write.tracker.verify(markers)
        if result is VerificationResult.COUNT_MISMATCH:
            return result, CountMismatch(
                reason="Restored size differs from the original.",
                hint="The archive was damaged in transit.",
                path=write.name,
                expected=markers.byte_count,
                actual=write.tracker.byte_count,
            )
        if result is VerificationResult.DIGEST_MISMATCH:
            return result, DigestMismatch(
                reason="MD5 digest of the restored file differs from the original.",
                hint="The archive was damaged in transit.",
                path=write.name,
                expected=markers.digest,
                actual=write.tracker.hexdigest(),
            )
        return result, None

    def _restore_timestamp(self, directive: RestoreTimestamp) -> None:
        if not self._context.restore_timestamps:
            return
        path = self._resolve(directive.name)
        if path not in self._written:
            return
        try:
            os.utime(path, (directive.mtime, directive.mtime))
        except OSError as error:
            self._report.warnings.append(f"{directive.name}: timestamp not restored: {error}")

    def _check_sequence(self, part: int) -> None:
        if self._last_part == part - 1:
            return
        suspended = self._suspended
        if suspended is not None:
            self._suspended = None
            self._discard(suspended)
        raise TruncatedArchive(
            reason=f"Part {part:02d} arrived before part {part - 1:02d} was unpacked.",
            hint="Supply every part of the archive, in ascending order.",
            expected=part - 1,
            actual=self._last_part,
        )

    def _fail_write(self, error: SharError) -> bool:
        """Attach an error to the open file write; False when none is open."""
        write = self._write
        if write is None or write.error is not None:
            return False
        write.error = error
        write.close_handle()
        self._record(FileOutcome(write.label, FileAction.FAILED, error=error))
        return True

    def _discard(self, write: _FileWrite) -> None:
        write.close_handle()
        if write.path is not None and write.opened:
            write.path.unlink(missing_ok=True)

    def _record(self, outcome: FileOutcome) -> None:
        self._report.outcomes.append(outcome)
        if self._audit is None:
            return
        metadata: dict[str, object] = {}
        if outcome.verification is not None:
            metadata["verification"] = outcome.verification.value
        if outcome.error is not None:
            metadata["reason"] = outcome.error.reason
        self._audit.append(
            ExtractionEvent(
                timestamp=utc_timestamp(),
                segment=self._report.index,
                action=outcome.action.value,
                path=outcome.name,
                ok=outcome.ok,
                error_code=outcome.error.code if outcome.error is not None else None,
                metadata=metadata,
            )
        )

    def _audit_segment(self) -> None:
        if self._audit is None:
            return
        report = self._report
        self._audit.append(
            ExtractionEvent(
                timestamp=utc_timestamp(),
                segment=report.index,
                action="segment",
                path=None,
                ok=report.ok,
                error_code=report.errors[0].code if report.errors else None,
                metadata={
                    "start_line": report.start_line,
                    "files": len(report.outcomes),
                    "aborted": report.aborted,
                    "warnings": len(report.warnings),
                },
            )
        )
