from __future__ import annotations

import io
from pathlib import Path

import pytest

from sharkit.archive import Classification, classify, classify_file


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"plain text\n",
        b"tab\tand backspace\b and form feed\f\n",
        b"x" * 200 + b"\n",
        b"a line that mentions from somewhere\n",
    ],
)
def test_text_inputs(data: bytes) -> None:
    assert classify(data) is Classification.TEXT


@pytest.mark.parametrize(
    "data",
    [
        b"bell \x07 character\n",
        b"caf\xe9\n",
        b"From someone\n",
        b"first line\nfrom: a mailbox line\n",
        b"no trailing newline",
        b"x" * 201 + b"\n",
        b"carriage return\r\n",
    ],
)
def test_binary_inputs(data: bytes) -> None:
    assert classify(data) is Classification.BINARY


def test_classification_is_deterministic() -> None:
    data = b"same input\n" * 10
    assert classify(data) is classify(data)


def test_streaming_stops_reading_at_first_violation() -> None:
    class CountingStream(io.BytesIO):
        reads = 0

        def read(self, size: int | None = -1) -> bytes:
            CountingStream.reads += 1
            return super().read(size)

    stream = CountingStream(b"\x00" + b"a" * (256 * 1024))

    assert classify(stream) is Classification.BINARY
    assert CountingStream.reads == 1


def test_chunked_iterable_matches_whole_input() -> None:
    data = b"From here\n"
    chunks = [data[:2], data[2:4], data[4:]]

    assert classify(chunks) is classify(data) is Classification.BINARY


def test_classify_file(tmp_path: Path) -> None:
    text = tmp_path / "notes.txt"
    text.write_bytes(b"hello\n")
    binary = tmp_path / "image.bin"
    binary.write_bytes(b"\x89PNG\r\n")

    assert classify_file(text) is Classification.TEXT
    assert classify_file(binary) is Classification.BINARY
