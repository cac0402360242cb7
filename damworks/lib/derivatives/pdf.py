"""PDF text extraction and first-page previews via PyMuPDF."""

from __future__ import annotations

import asyncio
from typing import Callable

import fitz  # PyMuPDF

from damworks.lib.derivatives.base import (
    PDF_EXTRACTION_ERROR,
    THUMBNAIL_ERROR,
    DerivativeKind,
    DerivativeOutput,
    ProcessingContext,
    store_thumbnail,
)
from damworks.lib.imaging import make_thumbnail

RENDER_ZOOM = 2.0


def extract_pdf_text(data: bytes) -> tuple[str, int]:
    """Return ``(text, page_count)`` for every page of the document."""
    with fitz.open(stream=data, filetype="pdf") as doc:
        text = "\n".join(page.get_text() for page in doc)
        return text.strip(), doc.page_count


def render_first_page(data: bytes) -> bytes:
    """Rasterize page 1 to PNG bytes."""
    with fitz.open(stream=data, filetype="pdf") as doc:
        if doc.page_count == 0:
            raise ValueError("PDF has no pages")
        page = doc.load_page(0)
        pix = page.get_pixmap(matrix=fitz.Matrix(RENDER_ZOOM, RENDER_ZOOM), alpha=False)
        return pix.tobytes("png")


class PdfStrategy:
    kind = DerivativeKind.PDF

    def __init__(
        self,
        extractor: Callable[[bytes], tuple[str, int]] = extract_pdf_text,
        rasterizer: Callable[[bytes], bytes] = render_first_page,
    ) -> None:
        self._extract = extractor
        self._rasterize = rasterizer

    async def process(self, data: bytes, ctx: ProcessingContext) -> DerivativeOutput:
        output = DerivativeOutput()

        try:
            text, page_count = await asyncio.to_thread(self._extract, data)
            output.fields["extracted_text"] = text
            output.fields["page_count"] = page_count
        except Exception as exc:
            ctx.logger.warning(
                "PDF text extraction failed",
                extra=ctx.log_extra(strategy=self.kind.value, error=str(exc)),
            )
            output.metadata[PDF_EXTRACTION_ERROR] = str(exc)

        # The preview is attempted even when text extraction failed
        try:
            png = await asyncio.to_thread(self._rasterize, data)
            cfg = ctx.thumbnails
            jpeg = await asyncio.to_thread(
                make_thumbnail, png, cfg.max_width, cfg.max_height, cfg.quality
            )
            output.fields["thumbnail_path"] = await store_thumbnail(ctx, jpeg)
        except Exception as exc:
            ctx.logger.warning(
                "PDF thumbnail failed",
                extra=ctx.log_extra(strategy=self.kind.value, error=str(exc)),
            )
            output.metadata[THUMBNAIL_ERROR] = str(exc)

        return output
