from __future__ import annotations

import gzip
import os
import subprocess
from pathlib import Path

from sharkit.archive import (
    ArchiveHeader,
    BuildOptions,
    CompactionSpec,
    EncodingMode,
    SplitPlan,
    VerificationResult,
    build_parts,
    stage_file,
)
from sharkit.unshar import ExtractionContext, FileAction, Unsharer, unshar_stream


def _write(root: Path, name: str, data: bytes, mode: int = 0o644, mtime: int = 1_600_000_000) -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    os.chmod(path, mode)
    os.utime(path, (mtime, mtime))
    return path


def _stage_tree(root: Path, files: dict[str, bytes], options: BuildOptions, **kwargs: object):
    return [
        stage_file(_write(root, name, data), options, archive_name=name, **kwargs)  # type: ignore[arg-type]
        for name, data in files.items()
    ]


def _chunks(text: str) -> list[bytes]:
    return text.encode("latin-1").splitlines(keepends=True)


FILES = {
    "README": b"Top level readme\n.dot line\nexit 0\nX marks\n",
    "docs/guide/intro.txt": b"\tindented\n~tilde\n-dash\n\n",
    "bin/tool.bin": bytes(range(256)) * 3,
    "empty.txt": b"",
    "latin.txt": b"caf\xe9\n",
}


def test_archive_round_trip_restores_content_mode_and_mtime(tmp_path: Path) -> None:
    source = tmp_path / "src"
    bundles = _stage_tree(source, FILES, BuildOptions())
    os.chmod(source / "bin/tool.bin", 0o755)
    bundles[2] = stage_file(source / "bin/tool.bin", BuildOptions(), archive_name="bin/tool.bin")
    [part] = build_parts(bundles, ArchiveHeader(archive_name="demo"), BuildOptions())
    target = tmp_path / "out"
    target.mkdir()

    report = unshar_stream(_chunks(part.render()), ExtractionContext(target_directory=target))

    assert report.ok, report.all_errors()
    for name, data in FILES.items():
        restored = target / name
        assert restored.read_bytes() == data, name
        assert restored.stat().st_mtime == 1_600_000_000, name
    assert (target / "bin/tool.bin").stat().st_mode & 0o777 == 0o755
    outcomes = report.segments[0].outcomes
    assert [outcome.name for outcome in outcomes] == list(FILES)
    assert all(outcome.verification is VerificationResult.MATCH for outcome in outcomes)


def test_two_archives_in_one_message_with_damage_in_the_first(tmp_path: Path) -> None:
    first = build_parts(
        _stage_tree(tmp_path / "a", {"first.txt": b"first file\n"}, BuildOptions()),
        ArchiveHeader(),
    )[0].render()
    second = build_parts(
        _stage_tree(tmp_path / "b", {"second.txt": b"second file\n"}, BuildOptions()),
        ArchiveHeader(),
    )[0].render()
    damaged = first.replace("\nfirst file\n", "\nfirst fileX\n")
    message = f"From: someone\nSubject: two\n\n{damaged}\n-- \nsignature\n{second}"
    target = tmp_path / "out"
    target.mkdir()

    report = unshar_stream(
        _chunks(message), ExtractionContext(target_directory=target), exit_0=True
    )

    assert len(report.segments) == 2
    [broken] = report.segments[0].outcomes
    assert broken.action is FileAction.WRITTEN
    assert broken.verification is VerificationResult.COUNT_MISMATCH
    assert broken.error is not None and broken.error.code == "COUNT_MISMATCH"
    assert report.segments[1].ok
    assert (target / "second.txt").read_bytes() == b"second file\n"
    assert not report.ok


def _split_round_trip(
    tmp_path: Path,
    plan: SplitPlan,
    files: dict[str, bytes],
    reverse: bool = False,
    one_stream: bool = False,
) -> Path:
    bundles = _stage_tree(tmp_path / "src", files, BuildOptions())
    parts = build_parts(bundles, ArchiveHeader(), BuildOptions(), plan)
    assert len(parts) > 1
    if reverse:
        parts.reverse()
    target = tmp_path / "out"
    target.mkdir()

    unsharer = Unsharer(ExtractionContext(target_directory=target))
    if one_stream:
        unsharer.feed_stream(_chunks("".join(part.render() for part in parts)))
    else:
        for part in parts:
            unsharer.feed_stream(_chunks(part.render()))
    report = unsharer.finish()

    assert report.ok, report.all_errors()
    assert len(report.segments) == len(parts)
    return target


def test_whole_item_split_reassembles(tmp_path: Path) -> None:
    files = {f"file{index}.txt": f"line of file {index}\n".encode() * 40 for index in range(5)}

    target = _split_round_trip(tmp_path, SplitPlan(limit_bytes=2048), files)

    for name, data in files.items():
        assert (target / name).read_bytes() == data


def test_mid_item_split_reassembles_text_and_binary(tmp_path: Path) -> None:
    files = {
        "big.txt": b"".join(f"X{index:05d} text line\n".encode() for index in range(300)),
        "big.bin": bytes(range(256)) * 20,
    }

    target = _split_round_trip(
        tmp_path, SplitPlan(limit_bytes=1024, allow_mid_item_split=True), files
    )

    for name, data in files.items():
        assert (target / name).read_bytes() == data


def test_whole_item_parts_unpack_in_reverse_order(tmp_path: Path) -> None:
    files = {f"file{index}.txt": f"line of file {index}\n".encode() * 40 for index in range(5)}

    target = _split_round_trip(tmp_path, SplitPlan(limit_bytes=2048), files, reverse=True)

    for name, data in files.items():
        assert (target / name).read_bytes() == data


def test_mid_item_parts_unpack_from_one_concatenated_stream(tmp_path: Path) -> None:
    files = {
        "big.txt": b"".join(f"X{index:05d} text line\n".encode() for index in range(300)),
        "big.bin": bytes(range(256)) * 20,
    }

    target = _split_round_trip(
        tmp_path, SplitPlan(limit_bytes=1024, allow_mid_item_split=True), files, one_stream=True
    )

    for name, data in files.items():
        assert (target / name).read_bytes() == data


def test_delimiter_with_carriage_return_round_trip(tmp_path: Path) -> None:
    options = BuildOptions(encoding_mode=EncodingMode.TEXT)
    data = b"one\n_SHAR_EOF_\r\ntwo\n"
    bundles = _stage_tree(tmp_path / "src", {"crlf.txt": data}, options)
    [part] = build_parts(bundles, ArchiveHeader(), options)
    target = tmp_path / "out"
    target.mkdir()

    report = unshar_stream(_chunks(part.render()), ExtractionContext(target_directory=target))

    assert report.ok, report.all_errors()
    assert report.segments[0].outcomes[0].verification is VerificationResult.MATCH
    assert (target / "crlf.txt").read_bytes() == data


def test_symlink_escape_writes_nothing_outside_the_target(tmp_path: Path) -> None:
    outside = tmp_path / "outside"
    outside.mkdir()
    target = tmp_path / "out"
    target.mkdir()
    (target / "link").symlink_to(outside, target_is_directory=True)
    archive = "#!/bin/sh\ncat << 'EOF' > link/evil\npayload\nEOF\necho after\nexit 0\n"

    report = unshar_stream(_chunks(archive), ExtractionContext(target_directory=target))

    [segment] = report.segments
    assert segment.aborted
    assert [error.code for error in report.all_errors()] == ["PATH_TRAVERSAL_REJECTED"]
    assert list(outside.iterdir()) == []


def test_parts_out_of_order_are_truncated(tmp_path: Path) -> None:
    bundles = _stage_tree(tmp_path / "src", {"big.txt": b"0123456789\n" * 300}, BuildOptions())
    parts = build_parts(
        bundles,
        ArchiveHeader(),
        BuildOptions(),
        SplitPlan(limit_bytes=1024, allow_mid_item_split=True),
    )
    target = tmp_path / "out"
    target.mkdir()

    unsharer = Unsharer(ExtractionContext(target_directory=target))
    unsharer.feed_stream(_chunks(parts[0].render()))
    unsharer.feed_stream(_chunks(parts[2].render()))
    report = unsharer.finish()

    assert not report.ok
    assert report.segments[1].aborted
    assert report.segments[1].errors[0].code == "TRUNCATED_ARCHIVE"
    assert not (target / "big.txt").exists()


def test_gzip_compacted_archive_round_trip(tmp_path: Path) -> None:
    def fake_gzip(command: list[str], input: bytes, capture_output: bool, check: bool):  # noqa: A002
        assert command == ["gzip", "-c", "-9"]
        return subprocess.CompletedProcess(command, 0, stdout=gzip.compress(input), stderr=b"")

    options = BuildOptions(compaction=CompactionSpec(tool="gzip"))
    data = b"repetitive text\n" * 200
    bundles = _stage_tree(tmp_path / "src", {"notes.txt": data}, options, runner=fake_gzip)
    [part] = build_parts(bundles, ArchiveHeader(), options)
    assert "| gzip -dc > notes.txt && chmod 0644 notes.txt" in part.render()
    target = tmp_path / "out"
    target.mkdir()

    report = unshar_stream(_chunks(part.render()), ExtractionContext(target_directory=target))

    assert report.ok, report.all_errors()
    assert (target / "notes.txt").read_bytes() == data
