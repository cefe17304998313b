"""
PDF text extraction (pypdf).

Text only: no layout, OCR or image handling. Pages are joined with a blank
line so page boundaries survive into the instruction prompt.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from observability.metrics import timed


class ExtractionError(Exception):
    """The upload could not be read as a PDF."""


@dataclass(frozen=True)
class PdfExtraction:
    text: str
    page_count: int
    info: dict[str, Any] = field(default_factory=dict)


def _clean_info(raw: Any) -> dict[str, Any]:
    # Document info keys come back as PDF names ("/Title"); values may be
    # indirect objects, so stringify anything that isn't a plain scalar.
    info: dict[str, Any] = {}
    if not raw:
        return info
    for key, value in dict(raw).items():
        name = str(key).lstrip("/")
        if value is None or isinstance(value, (str, int, float, bool)):
            info[name] = value
        else:
            info[name] = str(value)
    return info


def extract_pdf(data: bytes) -> PdfExtraction:
    if not data:
        raise ExtractionError("empty file")

    with timed("pdf_extract", details={"bytes": len(data)}) as details:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
            info = _clean_info(reader.metadata)
        except (PyPdfError, ValueError, OSError, KeyError) as e:
            raise ExtractionError(str(e) or type(e).__name__) from e
        details["pages"] = len(pages)

    return PdfExtraction(text="\n\n".join(pages), page_count=len(pages), info=info)
