"""Streaming uuencode and base64 line encoders."""

from __future__ import annotations

import binascii
from collections.abc import Iterable, Iterator
from typing import BinaryIO

from sharkit.codec.models import (
    BASE64_BEGIN,
    BASE64_END_OF_DATA,
    BASE64_ENCODED_NAME_BEGIN,
    BASE64_LINE_BYTES,
    END_MARKER,
    UU_BEGIN,
    UU_END_OF_DATA,
    UU_LINE_BYTES,
    EncodedBlock,
    Scheme,
)
from sharkit.errors import ValidationError

NAME_ENCODING = "latin-1"


def format_mode(mode_bits: int) -> str:
    """Render permission bits the way `begin` lines carry them."""
    return format(mode_bits & 0o7777, "03o")


def encode_header(
    scheme: Scheme,
    mode_bits: int,
    name: str,
    encode_filename: bool = False,
) -> str:
    """Build the `begin` line for a block."""
    if not name:
        raise ValidationError(
            reason="Encoded block name is empty.",
            hint="Provide the file name the decoder should create.",
        )
    if "\n" in name or "\r" in name:
        raise ValidationError(
            reason="Encoded block name contains a line break.",
            hint="Rename the file before encoding it.",
            path=name,
        )
    mode = format_mode(mode_bits)
    if encode_filename:
        if scheme is not Scheme.BASE64:
            raise ValidationError(
                reason="File name encoding requires the base64 scheme.",
                hint="Combine --encode-file-name with --base64.",
                path=name,
            )
        encoded_name = binascii.b2a_base64(name.encode(NAME_ENCODING), newline=False)
        return f"{BASE64_ENCODED_NAME_BEGIN} {mode} {encoded_name.decode('ascii')}"
    keyword = UU_BEGIN if scheme is Scheme.UU else BASE64_BEGIN
    return f"{keyword} {mode} {name}"


def iter_chunks(source: bytes | BinaryIO | Iterable[bytes], size: int) -> Iterator[bytes]:
    """Regroup arbitrary input into fixed-size chunks, last one possibly short."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        view = bytes(source)
        for offset in range(0, len(view), size):
            yield view[offset : offset + size]
        return

    pieces: Iterable[bytes]
    if hasattr(source, "read"):
        handle = source

        def _read_all() -> Iterator[bytes]:
            while True:
                block = handle.read(64 * 1024)
                if not block:
                    return
                yield block

        pieces = _read_all()
    else:
        pieces = source

    pending = b""
    for piece in pieces:
        pending += piece
        while len(pending) >= size:
            yield pending[:size]
            pending = pending[size:]
    if pending:
        yield pending


def iter_body_lines(source: bytes | BinaryIO | Iterable[bytes], scheme: Scheme) -> Iterator[str]:
    """Yield encoded body lines followed by the end-of-data and `end` lines."""
    if scheme is Scheme.UU:
        for chunk in iter_chunks(source, UU_LINE_BYTES):
            yield binascii.b2a_uu(chunk, backtick=True).decode("ascii").rstrip("\n")
        yield UU_END_OF_DATA
    else:
        for chunk in iter_chunks(source, BASE64_LINE_BYTES):
            yield binascii.b2a_base64(chunk, newline=False).decode("ascii")
        yield BASE64_END_OF_DATA
    yield END_MARKER


def encode(
    data: bytes | BinaryIO | Iterable[bytes],
    scheme: Scheme = Scheme.UU,
    name: str = "-",
    mode_bits: int = 0o644,
    encode_filename: bool = False,
) -> list[str]:
    """Encode a payload into a complete list of lines, header included."""
    return encode_block(
        data,
        scheme=scheme,
        name=name,
        mode_bits=mode_bits,
        encode_filename=encode_filename,
    ).all_lines()


def encode_block(
    data: bytes | BinaryIO | Iterable[bytes],
    scheme: Scheme,
    name: str,
    mode_bits: int = 0o644,
    encode_filename: bool = False,
) -> EncodedBlock:
    """Encode a payload into an EncodedBlock."""
    header_line = encode_header(
        scheme=scheme,
        mode_bits=mode_bits,
        name=name,
        encode_filename=encode_filename,
    )
    return EncodedBlock(
        scheme=scheme,
        mode_bits=mode_bits & 0o7777,
        logical_name=name,
        encoded_filename=encode_filename,
        header_line=header_line,
        lines=tuple(iter_body_lines(data, scheme)),
    )
