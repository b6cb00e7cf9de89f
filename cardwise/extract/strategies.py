"""Model-backed extraction strategies for PDF and image invoices.

Tried in this order by DocumentExtractor:

  1. InlineDocumentStrategy  document/image content sent inline (base64)
  2. PresignedUrlStrategy    model fetches the stored file by presigned URL
  3. RasterizedPdfStrategy   PDF only: page 1 rendered to PNG, sent as image
  4. InlineImageStrategy     images only: vision model, inline base64

All share the claude_fn callback: (system, content, *, model, max_tokens,
timeout) -> str, which raises ExternalServiceError on API failure.
"""

from __future__ import annotations

import base64
import logging
from typing import Callable

import fitz  # PyMuPDF

from cardwise.errors import ExternalServiceError, ExtractionError
from cardwise.storage.base import BlobStorage

from .base import (
    IMAGE_EXTENSIONS,
    PDF_EXTENSIONS,
    ExtractionContext,
    ExtractionStrategy,
    RawTransaction,
)
from .response import parse_transactions_response

logger = logging.getLogger(__name__)

EXTRACTION_MAX_TOKENS = 4000

# Render scale for rasterized pages; 2x keeps small print legible
RASTER_ZOOM = 2


def build_system_prompt(category_codes: list[str]) -> str:
    codes = ", ".join(category_codes)
    return (
        "You extract transactions from credit card invoices. "
        "Return ONLY a JSON array, no other text. Each element is an object with:\n"
        '  - "merchant_name": merchant as printed on the invoice\n'
        '  - "transaction_date": date as YYYY-MM-DD\n'
        '  - "amount": integer amount in cents, positive for charges, '
        "negative for credits and refunds\n"
        '  - "description": short free-text description, or null\n'
        f'  - "category_code": one of [{codes}], or null if unsure\n'
        "Skip totals, payments of previous invoices, fees summaries and "
        "any line that is not an individual purchase or credit."
    )


USER_PROMPT = "Extract every transaction from this invoice."


class _ModelStrategy(ExtractionStrategy):
    def __init__(
        self,
        claude_fn: Callable[..., str],
        model: str,
        category_codes: list[str],
        timeout: float = 90.0,
    ):
        self.claude_fn = claude_fn
        self.model = model
        self.category_codes = list(category_codes)
        self.timeout = timeout

    def _ask(self, blocks: list[dict]) -> list[RawTransaction]:
        content = blocks + [{"type": "text", "text": USER_PROMPT}]
        reply = self.claude_fn(
            build_system_prompt(self.category_codes),
            content,
            model=self.model,
            max_tokens=EXTRACTION_MAX_TOKENS,
            timeout=self.timeout,
        )
        return parse_transactions_response(reply, set(self.category_codes))


def _inline_block(data: bytes, extension: str, media_type: str) -> dict:
    encoded = base64.standard_b64encode(data).decode("ascii")
    block_type = "document" if extension in PDF_EXTENSIONS else "image"
    return {
        "type": block_type,
        "source": {"type": "base64", "media_type": media_type, "data": encoded},
    }


class InlineDocumentStrategy(_ModelStrategy):
    """Primary path: the whole file inline, read by the document model."""

    name = "inline_document"

    def supports(self, extension: str) -> bool:
        return extension in PDF_EXTENSIONS or extension in IMAGE_EXTENSIONS

    def extract(self, ctx: ExtractionContext) -> list[RawTransaction]:
        return self._ask([_inline_block(ctx.file_bytes, ctx.extension, ctx.media_type)])


class PresignedUrlStrategy(_ModelStrategy):
    """Let the model fetch the stored file through a short-lived URL."""

    name = "presigned_url"

    def __init__(self, storage: BlobStorage, *args, url_ttl: int = 300, **kwargs):
        super().__init__(*args, **kwargs)
        self.storage = storage
        self.url_ttl = url_ttl

    def supports(self, extension: str) -> bool:
        return extension in PDF_EXTENSIONS or extension in IMAGE_EXTENSIONS

    def extract(self, ctx: ExtractionContext) -> list[RawTransaction]:
        if not ctx.file_path:
            raise ExternalServiceError("No stored file path to presign")
        url = self.storage.presigned_url(ctx.file_path, expires_in=self.url_ttl)
        block_type = "document" if ctx.extension in PDF_EXTENSIONS else "image"
        return self._ask([{"type": block_type, "source": {"type": "url", "url": url}}])


class RasterizedPdfStrategy(_ModelStrategy):
    """Render the first PDF page to PNG and read it as an image."""

    name = "rasterized_pdf"

    def supports(self, extension: str) -> bool:
        return extension in PDF_EXTENSIONS

    def extract(self, ctx: ExtractionContext) -> list[RawTransaction]:
        png = rasterize_first_page(ctx.file_bytes)
        return self._ask([_inline_block(png, "png", "image/png")])


class InlineImageStrategy(_ModelStrategy):
    """Direct image upload to the vision model."""

    name = "inline_image"

    def supports(self, extension: str) -> bool:
        return extension in IMAGE_EXTENSIONS

    def extract(self, ctx: ExtractionContext) -> list[RawTransaction]:
        return self._ask([_inline_block(ctx.file_bytes, ctx.extension, ctx.media_type)])


def rasterize_first_page(pdf_bytes: bytes, zoom: int = RASTER_ZOOM) -> bytes:
    """Render page 1 of a PDF to PNG bytes.

    Raises:
        ExtractionError: If the bytes are not a readable PDF or it has no pages.
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ExtractionError(f"Cannot open PDF for rasterizing: {e}") from e
    try:
        if doc.page_count == 0:
            raise ExtractionError("PDF has no pages")
        pix = doc[0].get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return pix.tobytes("png")
    except RuntimeError as e:
        raise ExtractionError(f"Cannot rasterize PDF: {e}") from e
    finally:
        doc.close()
