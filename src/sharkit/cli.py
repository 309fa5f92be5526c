"""Command-line entry points for shar, unshar, uuencode, and uudecode."""

from __future__ import annotations

import argparse
import os
import stat
import sys
import traceback
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import BinaryIO, Final, NoReturn

from sharkit import __version__
from sharkit.archive import build_parts, part_output_name, stage_file
from sharkit.archive.models import EncodingMode
from sharkit.codec import BlockDecoder, encode, is_header_line
from sharkit.config import (
    SharConfig,
    UnsharConfig,
    UudecodeConfig,
    UuencodeConfig,
    load_effective_config,
)
from sharkit.errors import (
    CodecError,
    CompactionToolFailure,
    DestinationUnwritable,
    InputUnreadable,
    MissingBeginMarker,
    PathTraversalRejected,
    SharError,
    ValidationError,
)
from sharkit.logging import JsonlAuditLogger
from sharkit.security import resolve_target_path
from sharkit.unshar import OverwritePolicy, RunReport, Unsharer

EXIT_OK: Final[int] = 0
EXIT_USAGE: Final[int] = 1
EXIT_NO_INPUT: Final[int] = 2
EXIT_CANNOT_CREATE: Final[int] = 3
EXIT_EXTRACT_FAILED: Final[int] = 4
EXIT_BUG: Final[int] = 70

STDOUT_NAMES: Final[tuple[str, ...]] = ("-", "/dev/stdout")
ARCHIVE_ENCODING: Final[str] = "latin-1"


class _ArgumentParser(argparse.ArgumentParser):
    """Report usage errors with the option-error exit status."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _report(prog: str, error: SharError) -> None:
    print(f"{prog}: {error.describe()}", file=sys.stderr)
    if error.hint:
        print(f"{prog}: hint: {error.hint}", file=sys.stderr)


def _exit_code(error: SharError) -> int:
    if isinstance(error, ValidationError):
        return EXIT_USAGE
    if isinstance(error, InputUnreadable):
        return EXIT_NO_INPUT
    if isinstance(error, (DestinationUnwritable, CompactionToolFailure)):
        return EXIT_CANNOT_CREATE
    return EXIT_EXTRACT_FAILED


def _guarded(prog: str, run: Callable[[], int]) -> int:
    try:
        return run()
    except SharError as error:
        _report(prog, error)
        return _exit_code(error)
    except Exception:
        traceback.print_exc()
        print(f"{prog}: internal error, please report this", file=sys.stderr)
        return EXIT_BUG


def _binary_stdout() -> BinaryIO:
    sys.stdout.flush()
    return sys.stdout.buffer


def _write_output(name: str | None, text: str) -> None:
    data = text.encode(ARCHIVE_ENCODING)
    if name is None or name in STDOUT_NAMES:
        out = _binary_stdout()
        out.write(data)
        out.flush()
        return
    try:
        Path(name).write_bytes(data)
    except OSError as error:
        raise DestinationUnwritable(
            reason="Output file could not be created.",
            hint="Check the output prefix and directory permissions.",
            path=name,
            actual=str(error),
        ) from error


# shar


def build_shar_parser() -> argparse.ArgumentParser:
    """Build argument parser for archive creation."""
    parser = _ArgumentParser(prog="shar", description="Create a shell archive.")
    parser.add_argument("files", nargs="+", metavar="FILE")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--load-opts", type=Path, default=None, metavar="FILE")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-M", "--mixed-uuencode", dest="encoding_mode", action="store_const",
                      const=EncodingMode.AUTO.value)
    mode.add_argument("-T", "--text-files", dest="encoding_mode", action="store_const",
                      const=EncodingMode.TEXT.value)
    mode.add_argument("-B", "--uuencode", dest="encoding_mode", action="store_const",
                      const=EncodingMode.BINARY.value)
    parser.add_argument("-m", "--base64", action="store_const", const=True, default=None)
    parser.add_argument("-e", "--encode-file-name", action="store_const", const=True, default=None)

    compaction = parser.add_mutually_exclusive_group()
    compaction.add_argument("-z", "--gzip", dest="compaction", action="store_const", const="gzip")
    compaction.add_argument("-j", "--bzip2", dest="compaction", action="store_const", const="bzip2")
    compaction.add_argument("-J", "--xz", dest="compaction", action="store_const", const="xz")
    parser.add_argument("-g", "--level-of-compression", dest="compaction_level", type=int,
                        default=None, metavar="LEVEL")

    parser.add_argument("-n", "--archive-name", default=None, metavar="NAME")
    parser.add_argument("-s", "--submitter", default=None, metavar="WHO@WHERE")
    parser.add_argument("-a", "--net-headers", action="store_const", const=True, default=None)
    parser.add_argument("-c", "--cut-mark", action="store_const", const=True, default=None)
    parser.add_argument("-d", "--here-delimiter", default=None, metavar="DELIM")

    parser.add_argument("-o", "--output-prefix", default=None, metavar="PREFIX")
    limits = parser.add_mutually_exclusive_group()
    limits.add_argument("-l", "--whole-size-limit", default=None, metavar="SIZE")
    limits.add_argument("-L", "--split-size-limit", default=None, metavar="SIZE")

    parser.add_argument("-w", "--no-character-count", dest="character_count",
                        action="store_const", const=False, default=None)
    parser.add_argument("-D", "--no-md5-digest", dest="md5_digest",
                        action="store_const", const=False, default=None)
    parser.add_argument("-Q", "--quiet-unshar", action="store_const", const=True, default=None)
    parser.add_argument("-x", "--no-timestamp", dest="restore_timestamps",
                        action="store_const", const=False, default=None)
    parser.add_argument("-F", "--force-prefix", action="store_const", const=True, default=None)
    parser.add_argument("-f", "--basename", action="store_const", const=True, default=None)
    return parser


def expand_inputs(names: Iterable[str]) -> list[Path]:
    """Expand directories into the regular files below them, in sorted order."""
    paths: list[Path] = []
    for name in names:
        path = Path(name)
        if path.is_dir():
            paths.extend(sorted(child for child in path.rglob("*") if child.is_file()))
        else:
            paths.append(path)
    return paths


def _shar_overrides(args: argparse.Namespace) -> dict[str, object]:
    keys = (
        "encoding_mode",
        "base64",
        "encode_file_name",
        "compaction",
        "compaction_level",
        "archive_name",
        "submitter",
        "net_headers",
        "cut_mark",
        "here_delimiter",
        "output_prefix",
        "whole_size_limit",
        "split_size_limit",
        "character_count",
        "md5_digest",
        "quiet_unshar",
        "restore_timestamps",
        "force_prefix",
        "basename",
    )
    return {key: getattr(args, key) for key in keys}


def run_shar(args: argparse.Namespace) -> int:
    config = load_effective_config(SharConfig(), args.load_opts, _shar_overrides(args))
    options = config.build_options()
    bundles = [stage_file(path, options) for path in expand_inputs(args.files)]
    parts = build_parts(bundles, config.header(), options, config.split_plan())
    for part in parts:
        target = (
            part_output_name(config.output_prefix, part.index)
            if config.output_prefix
            else None
        )
        _write_output(target, part.render())
    return EXIT_OK


def shar_main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint for archive creation."""
    args = build_shar_parser().parse_args(argv)
    return _guarded("shar", lambda: run_shar(args))


# unshar


def build_unshar_parser() -> argparse.ArgumentParser:
    """Build argument parser for safe archive extraction."""
    parser = _ArgumentParser(prog="unshar", description="Unpack shell archives safely.")
    parser.add_argument("files", nargs="*", metavar="FILE")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--load-opts", type=Path, default=None, metavar="FILE")
    parser.add_argument("-d", "--directory", default=None, metavar="DIR")

    overwrite = parser.add_mutually_exclusive_group()
    overwrite.add_argument("-c", "--overwrite", dest="overwrite", action="store_const",
                           const=OverwritePolicy.FORCE.value)
    overwrite.add_argument("-f", "--force", dest="overwrite", action="store_const",
                           const=OverwritePolicy.FORCE.value)
    overwrite.add_argument("-I", "--query-user", dest="overwrite", action="store_const",
                           const=OverwritePolicy.INTERACTIVE.value)

    boundary = parser.add_mutually_exclusive_group()
    boundary.add_argument("-e", "--exit-0", dest="exit_0", action="store_const", const=True,
                          default=None)
    boundary.add_argument("-E", "--split-at", default=None, metavar="PATTERN")

    parser.add_argument("-D", "--debug", action="store_const", const=True, default=None)
    parser.add_argument("-q", "--quiet", action="store_const", const=True, default=None)
    parser.add_argument("--audit-log", default=None, metavar="PATH")
    return parser


def tty_prompt(name: str) -> bool:
    """Ask on the controlling terminal whether to overwrite `name`."""
    try:
        with open("/dev/tty", "r+", encoding="utf-8") as tty:
            tty.write(f"overwrite {name}? [y/N] ")
            tty.flush()
            answer = tty.readline()
    except OSError:
        print(f"unshar: no terminal to confirm overwriting {name}; skipped", file=sys.stderr)
        return False
    return answer.strip().lower() in ("y", "yes")


def _print_run_report(report: RunReport) -> None:
    for segment in report.segments:
        for warning in segment.warnings:
            print(f"unshar: segment {segment.index}: {warning}", file=sys.stderr)
    for error in report.all_errors():
        print(f"unshar: {error.describe()}", file=sys.stderr)


def run_unshar(args: argparse.Namespace, prompt: Callable[[str], bool] = tty_prompt) -> int:
    overrides = {
        "directory": args.directory,
        "overwrite": args.overwrite,
        "exit_0": args.exit_0,
        "split_at": args.split_at,
        "debug": args.debug,
        "quiet": args.quiet,
        "audit_log": args.audit_log,
    }
    config = load_effective_config(UnsharConfig(), args.load_opts, overrides)
    inputs = [Path(name) for name in args.files if name != "-"]
    for path in inputs:
        if not path.is_file():
            raise InputUnreadable(
                reason="Input file not found.",
                hint="Check the archive path.",
                path=str(path),
            )
    try:
        config.directory.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise DestinationUnwritable(
            reason="Target directory could not be created.",
            hint="Check the --directory path.",
            path=str(config.directory),
            actual=str(error),
        ) from error

    unsharer = Unsharer(
        config.context(),
        split_at=config.split_at,
        exit_0=config.exit_0,
        prompt=prompt,
        messages=sys.stdout,
        trace=sys.stderr,
        audit=JsonlAuditLogger(config.audit_log) if config.audit_log is not None else None,
    )
    if not args.files:
        unsharer.feed_stream(sys.stdin.buffer)
    for name in args.files:
        if name == "-":
            unsharer.feed_stream(sys.stdin.buffer)
        else:
            unsharer.feed_path(Path(name))
    report = unsharer.finish()
    _print_run_report(report)
    return EXIT_OK if report.ok else EXIT_EXTRACT_FAILED


def unshar_main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint for safe archive extraction."""
    args = build_unshar_parser().parse_args(argv)
    return _guarded("unshar", lambda: run_unshar(args))


# uuencode


def build_uuencode_parser() -> argparse.ArgumentParser:
    """Build argument parser for the stand-alone encoder."""
    parser = _ArgumentParser(prog="uuencode", description="Encode a file for mail transport.")
    parser.add_argument("operands", nargs="+", metavar="[INFILE] REMOTEFILE")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--load-opts", type=Path, default=None, metavar="FILE")
    parser.add_argument("-m", "--base64", action="store_const", const=True, default=None)
    parser.add_argument("-e", "--encode-file-name", action="store_const", const=True,
                        default=None)
    return parser


def run_uuencode(args: argparse.Namespace) -> int:
    config = load_effective_config(
        UuencodeConfig(),
        args.load_opts,
        {"base64": args.base64, "encode_file_name": args.encode_file_name},
    )
    if len(args.operands) > 2:
        raise ValidationError(
            reason="Too many operands.",
            hint="Usage: uuencode [INFILE] REMOTEFILE",
        )
    remote_name = args.operands[-1]
    mode_bits = 0o644
    if len(args.operands) == 2:
        source = Path(args.operands[0])
        try:
            mode_bits = stat.S_IMODE(source.stat().st_mode)
            data = source.read_bytes()
        except OSError as error:
            raise InputUnreadable(
                reason="Input file cannot be read.",
                hint="Check that the file exists and is readable.",
                path=str(source),
                actual=str(error),
            ) from error
    else:
        data = sys.stdin.buffer.read()
    lines = encode(
        data,
        scheme=config.scheme,
        name=remote_name,
        mode_bits=mode_bits,
        encode_filename=config.encode_file_name,
    )
    _write_output(None, "".join(f"{line}\n" for line in lines))
    return EXIT_OK


def uuencode_main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint for the stand-alone encoder."""
    args = build_uuencode_parser().parse_args(argv)
    return _guarded("uuencode", lambda: run_uuencode(args))


# uudecode


def build_uudecode_parser() -> argparse.ArgumentParser:
    """Build argument parser for the stand-alone decoder."""
    parser = _ArgumentParser(prog="uudecode", description="Decode encoded files.")
    parser.add_argument("files", nargs="*", metavar="FILE")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--load-opts", type=Path, default=None, metavar="FILE")
    parser.add_argument("-o", "--output-file", default=None, metavar="FILE")
    parser.add_argument("-c", "--ignore-chmod", action="store_const", const=True, default=None)
    parser.add_argument("-d", "--directory", default=None, metavar="DIR")
    return parser


def _decode_target(config: UudecodeConfig, header_name: str) -> tuple[Path | None, bool]:
    """Return the output path (None for stdout) and whether it came from the block."""
    if config.output_file is not None:
        if config.output_file in STDOUT_NAMES:
            return None, False
        return Path(config.output_file), False
    if header_name in STDOUT_NAMES:
        return None, True
    return resolve_target_path(config.directory.resolve(), header_name), True


def decode_blocks(lines: Iterable[bytes], config: UudecodeConfig) -> int:
    """Decode every block in one input; return the number of blocks written."""
    decoder: BlockDecoder | None = None
    handle: BinaryIO | None = None
    target: Path | None = None
    from_block = False
    written = 0
    try:
        for number, raw in enumerate(lines, start=1):
            line = raw.decode(ARCHIVE_ENCODING).rstrip("\r\n")
            if decoder is None:
                if not is_header_line(line):
                    continue
                decoder = BlockDecoder()
                decoder.feed(line, number)
                header = decoder.header
                assert header is not None
                target, from_block = _decode_target(config, header.name)
                try:
                    handle = target.open("wb") if target is not None else _binary_stdout()
                except OSError as error:
                    raise DestinationUnwritable(
                        reason="Output file could not be created.",
                        hint="Check the output path and permissions.",
                        path=str(target),
                        actual=str(error),
                    ) from error
                continue
            data = decoder.feed(line, number)
            assert handle is not None
            if data:
                handle.write(data)
            if not decoder.finished:
                continue
            header = decoder.header
            assert header is not None
            if target is not None:
                handle.close()
                if from_block and not config.ignore_chmod:
                    os.chmod(target, header.mode_bits & 0o777)
            else:
                handle.flush()
            decoder, handle, target = None, None, None
            written += 1
        if decoder is not None:
            decoder.close()
    finally:
        if handle is not None and target is not None:
            handle.close()
    return written


def run_uudecode(args: argparse.Namespace) -> int:
    config = load_effective_config(
        UudecodeConfig(),
        args.load_opts,
        {
            "output_file": args.output_file,
            "ignore_chmod": args.ignore_chmod,
            "directory": args.directory,
        },
    )
    names = args.files or ["-"]
    if config.output_file is not None and len(names) > 1:
        raise ValidationError(
            reason="--output-file accepts a single input.",
            hint="Decode the inputs one at a time.",
        )
    status = EXIT_OK
    for name in names:
        try:
            if name == "-":
                written = decode_blocks(sys.stdin.buffer, config)
            else:
                written = _decode_path(Path(name), config)
            if written == 0:
                raise MissingBeginMarker(
                    reason="No begin line found.",
                    hint="Make sure the input contains a 'begin MODE NAME' header.",
                    path=name,
                )
        except (CodecError, PathTraversalRejected) as error:
            _report("uudecode", error)
            status = EXIT_EXTRACT_FAILED
    return status


def _decode_path(path: Path, config: UudecodeConfig) -> int:
    try:
        handle = path.open("rb")
    except OSError as error:
        raise InputUnreadable(
            reason="Input file cannot be read.",
            hint="Check that the file exists and is readable.",
            path=str(path),
            actual=str(error),
        ) from error
    with handle:
        return decode_blocks(handle, config)


def uudecode_main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint for the stand-alone decoder."""
    args = build_uudecode_parser().parse_args(argv)
    return _guarded("uudecode", lambda: run_uudecode(args))
