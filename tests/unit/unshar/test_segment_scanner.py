from __future__ import annotations

from pathlib import Path

import pytest

from sharkit.errors import InputUnreadable, ValidationError
from sharkit.unshar import Unsharer, decode_lines, is_archive_start, iter_segments
from sharkit.unshar.models import ExtractionContext


@pytest.mark.parametrize(
    "line",
    [
        "#!/bin/sh",
        "#! /bin/sh",
        "#!/usr/bin/env sh",
        "# ---- Cut Here and feed the following to sh ----",
        "# This is a shell archive (produced by sharkit 1.0.0).",
        "# This is part 02 of a multipart archive (produced by sharkit 1.0.0).",
        ": run sh on this file",
    ],
)
def test_archive_start_lines(line: str) -> None:
    assert is_archive_start(line)


@pytest.mark.parametrize("line", ["From: someone", "#!/usr/bin/perl", "echo hi", ""])
def test_other_lines_do_not_start_an_archive(line: str) -> None:
    assert not is_archive_start(line)


def test_leading_mail_text_is_discarded() -> None:
    lines = ["From: someone", "Subject: tools", "", "#!/bin/sh", "echo hi", "exit 0", "-- ", "sig"]

    [segment] = list(iter_segments(lines))

    assert segment.start_line == 4
    assert segment.lines == ["#!/bin/sh", "echo hi", "exit 0", "-- ", "sig"]


def test_exit_0_boundary_finds_several_archives() -> None:
    lines = ["#!/bin/sh", "echo one", "exit 0", "noise", "#!/bin/sh", "echo two", "exit 0"]

    segments = list(iter_segments(lines, exit_0=True))

    assert [segment.start_line for segment in segments] == [1, 5]
    assert segments[1].lines == ["#!/bin/sh", "echo two", "exit 0"]


def test_split_at_boundary_ends_before_the_separator() -> None:
    lines = ["#!/bin/sh", "echo one", "--", "#!/bin/sh", "echo two"]

    segments = list(iter_segments(lines, split_at="--"))

    assert [segment.lines for segment in segments] == [
        ["#!/bin/sh", "echo one"],
        ["#!/bin/sh", "echo two"],
    ]


def test_boundary_rules_are_exclusive() -> None:
    with pytest.raises(ValidationError, match="mutually exclusive"):
        list(iter_segments([], split_at="--", exit_0=True))


def test_decode_lines_keeps_carriage_returns_and_latin1() -> None:
    assert list(decode_lines([b"a\r\n", b"caf\xe9\n", b"tail"])) == ["a\r", "café", "tail"]


def test_unreadable_input_is_reported(tmp_path: Path) -> None:
    unsharer = Unsharer(ExtractionContext(target_directory=tmp_path))

    with pytest.raises(InputUnreadable):
        unsharer.feed_path(tmp_path / "missing.shar")


def test_truncated_segment_is_reported(tmp_path: Path) -> None:
    unsharer = Unsharer(ExtractionContext(target_directory=tmp_path))

    unsharer.feed_lines(["#!/bin/sh", "sed 's/^X//' << 'EOF' > a.txt", "Xpartial"])
    report = unsharer.finish()

    assert not report.ok
    assert report.segments[0].errors[0].code == "TRUNCATED_ARCHIVE"
    assert not (tmp_path / "a.txt").exists()


def test_default_mode_seeks_again_after_exit(tmp_path: Path) -> None:
    unsharer = Unsharer(ExtractionContext(target_directory=tmp_path))

    unsharer.feed_lines(
        [
            "#!/bin/sh",
            "cat << 'EOF' > one.txt",
            "exit 0",
            "EOF",
            "exit 0",
            "-- ",
            "signature",
            "#!/bin/sh",
            "echo two",
            "exit 0",
            "trailing text",
        ]
    )
    report = unsharer.finish()

    assert report.ok, report.all_errors()
    assert [segment.index for segment in report.segments] == [1, 2]
    assert (tmp_path / "one.txt").read_bytes() == b"exit 0\n"
