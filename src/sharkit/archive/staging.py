"""Stage source files into FileBundle records."""

from __future__ import annotations

import os
import stat
import subprocess
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from sharkit.archive.classifier import Classification, classify_file
from sharkit.archive.integrity import IntegrityTracker
from sharkit.archive.models import BuildOptions, CompactionSpec, EncodingMode, FileBundle
from sharkit.codec import encode_block
from sharkit.errors import CompactionToolFailure, InputUnreadable, ValidationError

ARCHIVE_ENCODING = "latin-1"
_READ_SIZE = 64 * 1024

CompactionRunner = Callable[..., subprocess.CompletedProcess[bytes]]


def archive_member_name(path: str | Path, basename_only: bool = False) -> str:
    """Return the relative POSIX name a file is stored under."""
    raw = os.fsencode(path).decode(ARCHIVE_ENCODING).replace("\\", "/")
    if basename_only:
        name = PurePosixPath(raw).name
        if not name or name in (".", ".."):
            raise ValidationError(
                reason="File has no usable base name.",
                hint="Pass a regular file path.",
                path=raw,
            )
        return name
    parts = [part for part in raw.split("/") if part not in ("", ".")]
    if not parts:
        raise ValidationError(
            reason="File name is empty.",
            hint="Pass a regular file path.",
            path=raw,
        )
    if any(part == ".." for part in parts):
        raise ValidationError(
            reason="File names with '..' segments cannot be archived.",
            hint="Archive from a directory that contains the file, or use --basename.",
            path=raw,
        )
    return "/".join(parts)


def run_compaction(
    data: bytes,
    spec: CompactionSpec,
    runner: CompactionRunner = subprocess.run,
) -> bytes:
    """Pipe raw bytes through the external compression tool."""
    command = [spec.tool, "-c", f"-{spec.level}"]
    try:
        completed = runner(command, input=data, capture_output=True, check=False)
    except OSError as error:
        raise CompactionToolFailure(
            reason=f"Could not run '{spec.tool}'.",
            hint=f"Install {spec.tool} or disable compression.",
            actual=str(error),
        ) from error
    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        raise CompactionToolFailure(
            reason=f"'{spec.tool}' exited with status {completed.returncode}.",
            hint=stderr or f"Check that {spec.tool} accepts level {spec.level}.",
            expected=0,
            actual=completed.returncode,
        )
    return completed.stdout


def _read_with_totals(path: Path) -> tuple[bytes, IntegrityTracker]:
    tracker = IntegrityTracker()
    chunks: list[bytes] = []
    with path.open("rb") as handle:
        while True:
            block = handle.read(_READ_SIZE)
            if not block:
                break
            tracker.update(block)
            chunks.append(block)
    return b"".join(chunks), tracker


def _choose_classification(path: Path, data: bytes, mode: EncodingMode) -> Classification:
    if mode is EncodingMode.BINARY:
        return Classification.BINARY
    if mode is EncodingMode.TEXT:
        # here-documents always end in a newline
        if data and not data.endswith(b"\n"):
            return Classification.BINARY
        return Classification.TEXT
    return classify_file(path)


def stage_file(
    path: Path,
    options: BuildOptions,
    archive_name: str | None = None,
    runner: CompactionRunner = subprocess.run,
) -> FileBundle:
    """Read, classify, and encode one file for archiving."""
    name = archive_name or archive_member_name(path, options.basename_only)
    try:
        info = path.stat()
    except OSError as error:
        raise InputUnreadable(
            reason="Input file cannot be read.",
            hint="Check that the file exists and is readable.",
            path=str(path),
            actual=str(error),
        ) from error
    if not stat.S_ISREG(info.st_mode):
        raise ValidationError(
            reason="Only regular files can be archived.",
            hint="Pass files, or let the caller expand directories.",
            path=str(path),
        )

    data, tracker = _read_with_totals(path)
    classification = _choose_classification(path, data, options.encoding_mode)
    mode_bits = stat.S_IMODE(info.st_mode)

    encoded = None
    raw_text = None
    if options.compaction is not None:
        payload = run_compaction(data, options.compaction, runner=runner)
        encoded = encode_block(
            payload,
            scheme=options.scheme,
            name=name,
            mode_bits=mode_bits,
            encode_filename=options.encode_filename,
        )
    elif classification is Classification.BINARY:
        encoded = encode_block(
            data,
            scheme=options.scheme,
            name=name,
            mode_bits=mode_bits,
            encode_filename=options.encode_filename,
        )
    else:
        text = data.decode(ARCHIVE_ENCODING)
        raw_text = tuple(text.split("\n")[:-1]) if text else ()

    return FileBundle(
        path=path,
        archive_name=name,
        mode_bits=mode_bits,
        mtime=int(info.st_mtime),
        classification=classification,
        compaction=options.compaction,
        encoded=encoded,
        raw_text=raw_text,
        byte_count=tracker.byte_count,
        digest=tracker.hexdigest(),
    )
