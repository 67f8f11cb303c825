"""PDF text extractor (pypdf).

Extracts text page by page in page order. Embedded images are not OCR'd
and encrypted documents are skipped.
"""

import io
import logging

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ...core.exceptions import CorruptFileError, UnsupportedFormatError
from ..constants import MAX_DOCUMENT_PAGES

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"

# pypdf surfaces malformed object streams as plain Python errors too
_PDF_PARSE_ERRORS = (PyPdfError, ValueError, KeyError, TypeError, IndexError, AttributeError)


def extract_pdf_text(content: bytes, name: str, max_pages: int = MAX_DOCUMENT_PAGES) -> str:
    """
    Extract the text of every page, joined with a blank line.

    Raises:
        UnsupportedFormatError: The PDF is encrypted
        CorruptFileError: The PDF cannot be parsed
    """
    try:
        reader = PdfReader(io.BytesIO(content))
        if reader.is_encrypted:
            raise UnsupportedFormatError(
                f"Encrypted PDF cannot be scanned: {name}",
                path=name,
                reason="encrypted",
            )

        pages = []
        for index, page in enumerate(reader.pages):
            if index >= max_pages:
                logger.warning(f"PDF {name} has more than {max_pages} pages, truncating")
                break
            pages.append(page.extract_text() or "")

    except _PDF_PARSE_ERRORS as e:
        raise CorruptFileError(f"Invalid PDF {name}: {e}", path=name) from e

    return PAGE_SEPARATOR.join(pages)
