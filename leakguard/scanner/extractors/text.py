"""Plain text extractor.

Decodes raw bytes strictly. A byte-order mark selects UTF-8, UTF-16, or
UTF-32; everything else must be valid UTF-8. Invalid input raises
EncodingError instead of producing replacement characters that could hide
or fabricate matches.
"""

import codecs
from typing import Tuple

from ...core.exceptions import EncodingError

# UTF-32 BOMs must be checked before UTF-16 (UTF-32-LE starts with the UTF-16-LE BOM)
_BOM_ENCODINGS: Tuple[Tuple[bytes, str], ...] = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF32_LE, "utf-32"),
    (codecs.BOM_UTF32_BE, "utf-32"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def sniff_encoding(content: bytes) -> str:
    """Pick a codec from the byte-order mark, defaulting to UTF-8."""
    for bom, encoding in _BOM_ENCODINGS:
        if content.startswith(bom):
            return encoding
    return "utf-8"


def extract_plain_text(content: bytes, name: str) -> str:
    """
    Decode file content as text.

    Args:
        content: Raw file bytes
        name: File name, used for error context

    Raises:
        EncodingError: If the bytes are not valid in the sniffed encoding
    """
    encoding = sniff_encoding(content)
    try:
        return content.decode(encoding)
    except UnicodeDecodeError as e:
        raise EncodingError(
            f"Cannot decode {name} as {encoding}: {e.reason} at byte {e.start}",
            path=name,
            encoding=encoding,
        ) from e
