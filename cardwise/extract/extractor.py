"""DocumentExtractor: file bytes → RawTransactions.

CSV goes straight to the CSV parser. PDF and images walk the ordered
strategy list; a strategy failing with ExternalServiceError or
ExtractionError hands over to the next one. Once every applicable strategy
has failed, ExternalServiceError is raised if all failures were transient
(so the job can be retried), ExtractionError otherwise.
"""

from __future__ import annotations

import logging
from typing import Callable

from cardwise.config import Config, Settings
from cardwise.errors import ExternalServiceError, ExtractionError, UnsupportedFormatError
from cardwise.storage.base import BlobStorage

from .base import (
    SUPPORTED_EXTENSIONS,
    ExtractionContext,
    ExtractionStrategy,
    RawTransaction,
    normalize_extension,
)
from .csv_parser import CsvInvoiceParser
from .mock import MockExtractionStrategy
from .strategies import (
    InlineDocumentStrategy,
    InlineImageStrategy,
    PresignedUrlStrategy,
    RasterizedPdfStrategy,
)

logger = logging.getLogger(__name__)


class DocumentExtractor:
    """Run extraction strategies in priority order.

    Args:
        strategies: Ordered strategies for PDF/image documents.
        csv_parser: Parser used for .csv files.
    """

    def __init__(
        self,
        strategies: list[ExtractionStrategy],
        csv_parser: CsvInvoiceParser | None = None,
    ):
        self.strategies = list(strategies)
        self.csv_parser = csv_parser or CsvInvoiceParser()

    def extract(
        self, file_bytes: bytes, file_extension: str, file_path: str | None = None,
    ) -> list[RawTransaction]:
        """Extract transactions from one invoice file.

        Raises:
            UnsupportedFormatError: Extension is not pdf/jpg/jpeg/png/csv.
            ExtractionError: Every strategy failed on document content.
            ExternalServiceError: Every strategy failed on a transient AI or
                storage error; the job may be retried.
        """
        extension = normalize_extension(file_extension)
        if extension not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFormatError(file_extension)

        ctx = ExtractionContext(file_bytes=file_bytes, extension=extension, file_path=file_path)

        if self.csv_parser.supports(extension):
            transactions = self.csv_parser.extract(ctx)
            if not transactions:
                logger.warning(
                    "CSV contained no valid transactions (%d rows skipped)",
                    self.csv_parser.skipped_count,
                )
            return transactions

        failures: list[str] = []
        transient = True
        for strategy in self.strategies:
            if not strategy.supports(extension):
                continue
            try:
                transactions = strategy.extract(ctx)
            except (ExternalServiceError, ExtractionError) as e:
                logger.warning("Extraction strategy %s failed: %s", strategy.name, e)
                failures.append(f"{strategy.name}: {e}")
                transient = transient and isinstance(e, ExternalServiceError)
                continue
            logger.info(
                "Extracted %d transactions with strategy %s",
                len(transactions), strategy.name,
            )
            return transactions

        if not failures:
            raise ExtractionError(f"No extraction strategy available for .{extension}")
        message = "All extraction strategies failed; " + "; ".join(failures)
        if transient:
            raise ExternalServiceError(message)
        raise ExtractionError(message)


def build_extractor(
    settings: Settings,
    config: Config,
    storage: BlobStorage,
    claude_fn: Callable[..., str] | None,
    classify: Callable[[str], str | None] | None = None,
) -> DocumentExtractor:
    """Wire the production strategy chain.

    Without a claude_fn the mock generator stands in for the model.
    """
    csv_parser = CsvInvoiceParser(classify=classify)
    if claude_fn is None:
        logger.info("No AI credentials configured, using mock extraction")
        return DocumentExtractor([MockExtractionStrategy()], csv_parser)

    codes = config.category_codes
    timeout = settings.document_timeout
    strategies: list[ExtractionStrategy] = [
        InlineDocumentStrategy(claude_fn, settings.document_model, codes, timeout=timeout),
        PresignedUrlStrategy(
            storage, claude_fn, settings.document_model, codes,
            timeout=timeout, url_ttl=settings.presigned_url_ttl,
        ),
        RasterizedPdfStrategy(claude_fn, settings.vision_model, codes, timeout=timeout),
        InlineImageStrategy(claude_fn, settings.vision_model, codes, timeout=timeout),
    ]
    return DocumentExtractor(strategies, csv_parser)
