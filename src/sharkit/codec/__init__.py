"""Line codecs: classic uuencode and base64."""

from .decoder import BlockDecoder, decode, is_header_line, parse_header
from .encoder import encode, encode_block, encode_header, format_mode, iter_body_lines
from .models import BlockHeader, DecodedBlock, EncodedBlock, Scheme

__all__ = [
    "BlockDecoder",
    "BlockHeader",
    "DecodedBlock",
    "EncodedBlock",
    "Scheme",
    "decode",
    "encode",
    "encode_block",
    "encode_header",
    "format_mode",
    "is_header_line",
    "iter_body_lines",
    "parse_header",
]
