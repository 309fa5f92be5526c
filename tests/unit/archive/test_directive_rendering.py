from __future__ import annotations

from sharkit.archive.directives import (
    BeginFileWrite,
    ChangeDirectory,
    EndFileWrite,
    EnsureDirectory,
    ItemBanner,
    Message,
    PartComplete,
    RestoreTimestamp,
    ResumeFileWrite,
    SegmentEnd,
    SequenceCheck,
    SuspendFileWrite,
    Trace,
    format_timestamp,
    parse_timestamp,
    render_text,
    rendered_size,
)


def test_text_write_uses_prefix_stripping_here_document() -> None:
    directive = BeginFileWrite(name="notes.txt", mode_bits=0o644, delimiter="_SHAR_EOF_")

    assert directive.render() == [
        "sed 's/^X//' << '_SHAR_EOF_' > notes.txt && chmod 0644 notes.txt"
    ]


def test_encoded_and_compacted_writes() -> None:
    encoded = BeginFileWrite(name="a.bin", mode_bits=0o755, delimiter="_E_", encoded=True)
    compacted = BeginFileWrite(
        name="b.bin", mode_bits=0o600, delimiter="_E_", encoded=True, compaction="gzip"
    )

    assert encoded.render() == ["uudecode -o a.bin << '_E_' && chmod 0755 a.bin"]
    assert compacted.render() == [
        "uudecode -o /dev/stdout << '_E_' | gzip -dc > b.bin && chmod 0600 b.bin"
    ]


def test_resumed_writes_append() -> None:
    assert ResumeFileWrite(name="a.txt", delimiter="_E_").render() == [
        "sed 's/^X//' << '_E_' >> a.txt"
    ]
    assert ResumeFileWrite(name="a.bin", delimiter="_E_", encoded=True).render() == [
        "uudecode -o a.bin << '_E_' # continued"
    ]


def test_names_are_shell_quoted() -> None:
    directive = BeginFileWrite(name="my file's.txt", mode_bits=None, delimiter="_E_")

    assert directive.render() == [
        "sed 's/^X//' << '_E_' > 'my file'\"'\"'s.txt'"
    ]


def test_end_write_renders_requested_checks_only() -> None:
    both = EndFileWrite(name="a", delimiter="_E_", expected_byte_count=3, expected_digest="d" * 32)
    none = EndFileWrite(name="a", delimiter="_E_")

    lines = both.render()
    assert lines[0] == "_E_"
    assert lines[1] == "test $( LC_ALL=C wc -c < a ) -ne 3 && echo 'a: original size 3, restored size differs'"
    assert lines[2].startswith(f"echo '{'d' * 32}  a' | md5sum -c")
    assert none.render() == ["_E_"]


def test_multipart_bookkeeping() -> None:
    assert SequenceCheck(3).render() == [
        "test \"$( cat _sh_seq 2>/dev/null )\" = 2 || { echo 'Please unpack part 02 first!'; exit 1; }"
    ]
    assert PartComplete(part=2).render() == ["echo 2 > _sh_seq"]
    assert PartComplete(part=None, final=True).render() == ["rm -f _sh_seq"]
    assert SuspendFileWrite(name="a", delimiter="_E_", next_part=2).render() == [
        "_E_",
        "echo 'File a is continued in part 02'",
    ]


def test_simple_directives() -> None:
    directives = [
        ItemBanner("a"),
        ChangeDirectory("sub dir"),
        EnsureDirectory("docs"),
        Message("x - extracting a (text)"),
        Trace(enabled=True),
        SegmentEnd(),
    ]

    assert render_text(directives) == (
        "# ============= a ==============\n"
        "cd 'sub dir'\n"
        "mkdir -p docs\n"
        "echo 'x - extracting a (text)'\n"
        "set -x\n"
        "exit 0\n"
    )


def test_timestamps_round_trip_in_utc() -> None:
    stamp = format_timestamp(1_700_000_000)

    assert stamp == "202311142213.20"
    assert parse_timestamp(stamp) == 1_700_000_000
    assert RestoreTimestamp(name="a", mtime=1_700_000_000).render() == [
        "TZ=UTC0 touch -t 202311142213.20 a"
    ]


def test_rendered_size_counts_newlines() -> None:
    assert rendered_size(SegmentEnd()) == len("exit 0\n")
    assert rendered_size(SuspendFileWrite(name="a", delimiter="_E_", next_part=2)) == len(
        "_E_\necho 'File a is continued in part 02'\n"
    )
