from __future__ import annotations

from sharkit.codec import BlockDecoder, Scheme, encode, is_header_line


def test_decoder_yields_bytes_line_by_line() -> None:
    payload = b"x" * 100
    decoder = BlockDecoder()

    pieces = [decoder.feed(line, number) for number, line in enumerate(encode(payload), start=1)]

    assert [len(piece) for piece in pieces] == [0, 45, 45, 10, 0, 0]
    assert decoder.finished is True
    decoder.close()


def test_leading_blank_lines_are_skipped() -> None:
    decoder = BlockDecoder(scheme=Scheme.BASE64)
    for line in ["", "  ", *encode(b"abc", scheme=Scheme.BASE64, name="abc")]:
        decoder.feed(line)

    assert decoder.header is not None
    assert decoder.header.name == "abc"
    assert decoder.finished is True


def test_carriage_returns_are_tolerated() -> None:
    decoder = BlockDecoder()
    data = b"".join(decoder.feed(f"{line}\r\n") for line in encode(b"Cat", name="cat"))

    assert data == b"Cat"


def test_header_detection() -> None:
    assert is_header_line("begin 644 file.txt")
    assert is_header_line("begin-base64 600 x")
    assert not is_header_line("beginning of the message")
    assert not is_header_line("begin 9z9 file.txt")
    assert not is_header_line("begin 644 ")
