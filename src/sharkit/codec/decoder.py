"""Streaming uuencode and base64 line decoders."""

from __future__ import annotations

import binascii
import re
from collections.abc import Iterable
from typing import Final

from sharkit.codec.encoder import NAME_ENCODING
from sharkit.codec.models import (
    BASE64_BEGIN,
    BASE64_END_OF_DATA,
    BASE64_ENCODED_NAME_BEGIN,
    END_MARKER,
    UU_BEGIN,
    BlockHeader,
    DecodedBlock,
    Scheme,
)
from sharkit.errors import (
    InvalidAlphabetByte,
    LineLengthMismatch,
    MalformedHeader,
    MissingBeginMarker,
    MissingEndMarker,
)

HEADER_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?P<keyword>begin(?:-base64(?:-encoded)?)?) (?P<mode>\S+) (?P<name>.*)$"
)
BASE64_ALPHABET: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9+/=]*$")
MODE_PATTERN: Final[re.Pattern[str]] = re.compile(r"[0-7]{1,4}")

_KEYWORDS: Final[dict[str, tuple[Scheme, bool]]] = {
    UU_BEGIN: (Scheme.UU, False),
    BASE64_BEGIN: (Scheme.BASE64, False),
    BASE64_ENCODED_NAME_BEGIN: (Scheme.BASE64, True),
}


def is_header_line(line: str) -> bool:
    """Return True when a line is a `begin` header with an octal mode and a name."""
    match = HEADER_PATTERN.match(line.rstrip("\r\n"))
    if match is None or MODE_PATTERN.fullmatch(match.group("mode")) is None:
        return False
    return bool(match.group("name").strip())


def parse_header(line: str, line_number: int | None = None) -> BlockHeader:
    """Parse a `begin`/`begin-base64` line into a BlockHeader."""
    stripped = line.rstrip("\r\n")
    if not stripped.startswith(UU_BEGIN):
        raise MissingBeginMarker(
            reason="Encoded block does not start with a begin line.",
            hint="Make sure the input contains a 'begin MODE NAME' header.",
            line_number=line_number,
            actual=stripped[:40],
        )
    match = HEADER_PATTERN.match(stripped)
    if match is None:
        raise MalformedHeader(
            reason="Begin line must carry a mode and a name.",
            hint="Expected 'begin MODE NAME' or 'begin-base64 MODE NAME'.",
            line_number=line_number,
            actual=stripped,
        )
    scheme, encoded_filename = _KEYWORDS[match.group("keyword")]
    mode_text = match.group("mode")
    if MODE_PATTERN.fullmatch(mode_text) is None:
        raise MalformedHeader(
            reason="Begin line mode is not an octal permission string.",
            hint="Use an octal mode such as 644.",
            line_number=line_number,
            actual=mode_text,
        )
    name = match.group("name")
    if not name.strip():
        raise MalformedHeader(
            reason="Begin line name is empty.",
            hint="Expected 'begin MODE NAME'.",
            line_number=line_number,
        )
    if encoded_filename:
        try:
            name = binascii.a2b_base64(name.encode("ascii"), strict_mode=True).decode(
                NAME_ENCODING
            )
        except (binascii.Error, UnicodeEncodeError) as error:
            raise MalformedHeader(
                reason="Encoded file name is not valid base64.",
                hint="Re-create the block with --encode-file-name.",
                line_number=line_number,
                actual=name,
            ) from error
        if not name:
            raise MalformedHeader(
                reason="Encoded file name decodes to an empty name.",
                hint="Expected a base64-encoded file name.",
                line_number=line_number,
            )
    return BlockHeader(
        scheme=scheme,
        mode_bits=int(mode_text, 8),
        name=name,
        encoded_filename=encoded_filename,
    )


def decode_uu_line(line: str, line_number: int | None = None) -> bytes:
    """Decode one classic uuencode body line, validating its declared length."""
    if not line:
        raise LineLengthMismatch(
            reason="Empty uuencoded line.",
            hint="Each body line starts with a length character.",
            line_number=line_number,
        )
    for char in line:
        if not " " <= char <= "`":
            raise InvalidAlphabetByte(
                reason="Character outside the uuencode alphabet.",
                hint="The block may have been mangled in transit.",
                line_number=line_number,
                actual=char,
            )
    count = (ord(line[0]) - 32) & 0o77
    needed = (count + 2) // 3 * 4
    body_length = len(line) - 1
    if body_length < needed or body_length >= needed + 4:
        raise LineLengthMismatch(
            reason="Declared line length disagrees with the encoded data.",
            hint="The line was truncated or padded in transit.",
            line_number=line_number,
            expected=needed,
            actual=body_length,
        )
    return binascii.a2b_uu(line[: needed + 1])


def decode_base64_line(line: str, line_number: int | None = None) -> bytes:
    """Decode one base64 body line."""
    if not BASE64_ALPHABET.match(line):
        bad = next(char for char in line if not BASE64_ALPHABET.match(char))
        raise InvalidAlphabetByte(
            reason="Character outside the base64 alphabet.",
            hint="The block may have been mangled in transit.",
            line_number=line_number,
            actual=bad,
        )
    if len(line) % 4:
        raise LineLengthMismatch(
            reason="Base64 line length is not a multiple of four.",
            hint="The line was truncated in transit.",
            line_number=line_number,
            expected=(len(line) + 3) // 4 * 4,
            actual=len(line),
        )
    try:
        return binascii.a2b_base64(line, strict_mode=True)
    except binascii.Error as error:
        raise InvalidAlphabetByte(
            reason="Misplaced base64 padding.",
            hint="The block may have been mangled in transit.",
            line_number=line_number,
            actual=line,
        ) from error


class BlockDecoder:
    """Incremental decoder for one `begin ... end` block.

    Lines are fed one at a time so payloads never have to be resident as a
    whole; `feed` returns the bytes decoded from that line.
    """

    def __init__(self, scheme: Scheme | None = None) -> None:
        self._expected_scheme = scheme
        self._header: BlockHeader | None = None
        self._data_ended = False
        self._finished = False
        self._last_line_number: int | None = None

    @property
    def header(self) -> BlockHeader | None:
        return self._header

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, line: str, line_number: int | None = None) -> bytes:
        """Consume one line and return any bytes it decodes to."""
        self._last_line_number = line_number
        line = line.rstrip("\r\n")
        if self._finished:
            if line.strip():
                raise MissingEndMarker(
                    reason="Data found after the end line.",
                    hint="Each block ends with a single 'end' line.",
                    line_number=line_number,
                    actual=line[:40],
                )
            return b""
        if self._header is None:
            if not line.strip():
                return b""
            header = parse_header(line, line_number)
            if self._expected_scheme is not None and header.scheme is not self._expected_scheme:
                raise MalformedHeader(
                    reason="Begin line announces a different scheme.",
                    hint="Decode the block with the scheme it was encoded with.",
                    line_number=line_number,
                    expected=self._expected_scheme.value,
                    actual=header.scheme.value,
                )
            self._header = header
            return b""
        if line == END_MARKER:
            if self._header.scheme is Scheme.BASE64 and not self._data_ended:
                raise MissingEndMarker(
                    reason="Base64 block is missing its '====' end-of-data line.",
                    hint="The block was truncated.",
                    line_number=line_number,
                    expected=BASE64_END_OF_DATA,
                    actual=line,
                )
            self._finished = True
            return b""
        if self._data_ended:
            raise MissingEndMarker(
                reason="Expected 'end' after the end-of-data line.",
                hint="The block was truncated or corrupted.",
                line_number=line_number,
                expected=END_MARKER,
                actual=line[:40],
            )
        if self._header.scheme is Scheme.UU:
            decoded = decode_uu_line(line, line_number)
            if not decoded:
                self._data_ended = True
            return decoded
        if line == BASE64_END_OF_DATA:
            self._data_ended = True
            return b""
        return decode_base64_line(line, line_number)

    def close(self) -> None:
        """Verify that the block was completely consumed."""
        if self._header is None:
            raise MissingBeginMarker(
                reason="No begin line found.",
                hint="Make sure the input contains a 'begin MODE NAME' header.",
                line_number=self._last_line_number,
            )
        if not self._finished:
            raise MissingEndMarker(
                reason="Encoded block ended without an 'end' line.",
                hint="The block was truncated.",
                path=self._header.name,
                line_number=self._last_line_number,
                expected=END_MARKER,
            )


def decode(lines: Iterable[str], scheme: Scheme | None = None) -> DecodedBlock:
    """Decode a complete block; leading blank lines are ignored."""
    decoder = BlockDecoder(scheme=scheme)
    chunks: list[bytes] = []
    for number, line in enumerate(lines, start=1):
        chunks.append(decoder.feed(line, number))
        if decoder.finished:
            break
    decoder.close()
    header = decoder.header
    assert header is not None
    return DecodedBlock(header=header, data=b"".join(chunks))
