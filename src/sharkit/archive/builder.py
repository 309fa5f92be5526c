"""Assemble staged files into the directive stream of one logical archive."""

from __future__ import annotations

import stat
from collections.abc import Sequence
from pathlib import PurePosixPath
from typing import Final

from sharkit import __version__
from sharkit.archive.directives import (
    TEXT_PREFIX,
    BeginFileWrite,
    Comment,
    Directive,
    EndFileWrite,
    EnsureDirectory,
    FileDataLine,
    ItemBanner,
    Message,
    Preamble,
    RestoreTimestamp,
    SegmentEnd,
)
from sharkit.archive.models import ArchiveHeader, BuildOptions, FileBundle, SplitPlan
from sharkit.archive.split import ArchivePart, split_archive

PRODUCER: Final[str] = f"sharkit {__version__}"
CUT_MARK: Final[str] = "---- Cut Here and feed the following to sh ----"
INTERPRETER_LINE: Final[str] = "#!/bin/sh"
EXIT_LINE: Final[str] = "exit 0"
_MANGLED_LEADERS: Final[tuple[str, ...]] = (TEXT_PREFIX, ".", "~", "-")


def needs_prefix(line: str, force: bool) -> bool:
    """Return True when a text line must carry the strip prefix."""
    if force:
        return True
    return line.startswith(_MANGLED_LEADERS) or line == EXIT_LINE


def choose_delimiter(fenced: str, body: Sequence[str]) -> str:
    """Vary the fenced delimiter until no body line collides with it."""
    lines = {line.rstrip("\r") for line in body}
    if fenced not in lines:
        return fenced
    stem = fenced.strip("_")
    counter = 1
    while True:
        candidate = f"_{stem}{counter}_"
        if candidate not in lines:
            return candidate
        counter += 1


def net_archive_name(archive_name: str, part: int) -> str:
    """`name/partNN`, unless the name already carries a path separator."""
    if "/" in archive_name:
        return archive_name
    return f"{archive_name}/part{part:02d}"


class ArchiveBuilder:
    """Build the directive sequence for a set of staged files."""

    def __init__(self, header: ArchiveHeader, options: BuildOptions | None = None) -> None:
        self._header = header
        self._options = options or BuildOptions()

    @property
    def header(self) -> ArchiveHeader:
        return self._header

    def preamble(
        self,
        part: int,
        multipart: bool,
        bundles: Sequence[FileBundle] = (),
    ) -> list[Directive]:
        """Header directives that open part `part`."""
        header = self._header
        directives: list[Directive] = []
        if header.net_headers and header.archive_name:
            if header.submitter:
                directives.append(Preamble(f"Submitted-by: {header.submitter}"))
            directives.append(
                Preamble(f"Archive-name: {net_archive_name(header.archive_name, part)}")
            )
            directives.append(Preamble(""))
        if header.cut_mark:
            directives.append(Comment(CUT_MARK))
        directives.append(Preamble(INTERPRETER_LINE))
        if multipart:
            directives.append(
                Comment(f"This is part {part:02d} of a multipart archive (produced by {PRODUCER}).")
            )
        else:
            directives.append(Comment(f"This is a shell archive (produced by {PRODUCER})."))
        if header.archive_name:
            directives.append(Comment(f"Archive: {header.archive_name}"))
        directives.extend(
            [
                Comment("To extract the files from this archive, save it to some FILE, remove"),
                Comment("everything before the '#!/bin/sh' line above, then type 'sh FILE'."),
                Comment(""),
            ]
        )
        if part == 1 and bundles:
            directives.extend(self._listing(bundles))
        return directives

    def _listing(self, bundles: Sequence[FileBundle]) -> list[Directive]:
        directives: list[Directive] = [
            Comment("This shar contains:"),
            Comment("length mode       name"),
            Comment("------ ---------- ------------------------------------------"),
        ]
        for bundle in bundles:
            mode = stat.filemode(stat.S_IFREG | bundle.mode_bits)
            directives.append(Comment(f"{bundle.byte_count:6d} {mode} {bundle.archive_name}"))
        directives.append(Comment(""))
        return directives

    def item_directives(self, bundle: FileBundle) -> list[Directive]:
        """Directives that recreate one staged file."""
        header = self._header
        options = self._options
        name = bundle.archive_name
        directives: list[Directive] = [ItemBanner(name)]

        parent = str(PurePosixPath(name).parent)
        if not options.basename_only and parent not in ("", "."):
            directives.append(EnsureDirectory(parent))
        if not header.quiet_unshar:
            directives.append(Message(f"x - extracting {name} ({bundle.describe_kind()})"))

        if bundle.encoded is not None:
            body = bundle.encoded.all_lines()
        else:
            body = [
                f"{TEXT_PREFIX}{line}"
                if needs_prefix(line, header.force_prefix_every_line)
                else line
                for line in bundle.raw_text or ()
            ]
        delimiter = choose_delimiter(header.fenced_delimiter, body)

        directives.append(
            BeginFileWrite(
                name=name,
                mode_bits=bundle.mode_bits,
                delimiter=delimiter,
                encoded=bundle.encoded is not None,
                compaction=bundle.compaction.tool if bundle.compaction is not None else None,
            )
        )
        directives.extend(FileDataLine(line) for line in body)
        directives.append(
            EndFileWrite(
                name=name,
                delimiter=delimiter,
                expected_byte_count=bundle.byte_count if options.character_count else None,
                expected_digest=bundle.digest if options.md5_digest else None,
            )
        )
        if header.restore_timestamps:
            directives.append(RestoreTimestamp(name=name, mtime=bundle.mtime))
        return directives

    def build(self, bundles: Sequence[FileBundle]) -> list[Directive]:
        """Directives of the whole archive as a single part."""
        directives = self.preamble(part=1, multipart=False, bundles=bundles)
        for bundle in bundles:
            directives.extend(self.item_directives(bundle))
        directives.append(SegmentEnd())
        return directives


def build_parts(
    bundles: Sequence[FileBundle],
    header: ArchiveHeader,
    options: BuildOptions | None = None,
    plan: SplitPlan | None = None,
) -> list[ArchivePart]:
    """Build an archive and split it into parts per `plan`."""
    builder = ArchiveBuilder(header, options)

    def preamble(part: int, multipart: bool) -> list[Directive]:
        return builder.preamble(part, multipart, bundles)

    return split_archive(
        builder.build(bundles),
        plan or SplitPlan(),
        preamble=preamble,
        notices=not header.quiet_unshar,
    )
