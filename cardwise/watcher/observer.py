"""File watcher: drop-folder ingestion of invoice files.

Layout: ``<watch_dir>/<card_id>/<invoice file>``. A new file is uploaded
for the card named by its parent folder once it is stable (size+mtime
unchanged for 10s) and looks complete:
  detect → stable → validate → upload (→ queued for the worker pool)

Uses PollingObserver as primary (not fallback) due to NAS/Docker volume
unreliability with inotify.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import FileSystemEventHandler

from cardwise.errors import CardwiseError
from cardwise.extract.base import SUPPORTED_EXTENSIONS
from cardwise.services.invoices import InvoiceService

logger = logging.getLogger(__name__)

# Default stability check parameters
DEFAULT_STABILITY_SECONDS = 10
DEFAULT_CHECK_INTERVAL = 2.0

# Default polling interval for PollingObserver
DEFAULT_POLL_INTERVAL = 30

_JPEG_END = b"\xff\xd9"
_PNG_END = b"IEND"


@dataclass
class WatchResult:
    """Result of ingesting a single dropped file."""
    file_name: str
    status: str  # "queued", "error"
    invoice_id: str | None = None
    error_message: str | None = None


class FileStabilityError(Exception):
    """Raised when a file fails post-stability validation."""


# ── File stability & validation ──────────────────────────


def wait_for_stable(
    filepath: Path,
    stability_seconds: int = DEFAULT_STABILITY_SECONDS,
    check_interval: float = DEFAULT_CHECK_INTERVAL,
    max_wait: float = 300.0,
) -> None:
    """Wait until file size and mtime are stable for stability_seconds.

    Raises:
        TimeoutError: If file doesn't stabilize within max_wait.
    """
    prev_size = -1
    prev_mtime = -1.0
    stable_since: float | None = None
    start = time.monotonic()

    while True:
        if time.monotonic() - start > max_wait:
            raise TimeoutError(
                f"File did not stabilize within {max_wait}s: {filepath}"
            )

        stat = filepath.stat()
        if stat.st_size == prev_size and stat.st_mtime == prev_mtime:
            if stable_since is None:
                stable_since = time.monotonic()
            elif time.monotonic() - stable_since >= stability_seconds:
                return
        else:
            stable_since = None

        prev_size = stat.st_size
        prev_mtime = stat.st_mtime
        time.sleep(check_interval)


def validate_file_completeness(filepath: Path) -> None:
    """Post-stability validation: ensure file content is complete.

    - CSV: must end with a newline
    - PDF: must contain the %%EOF marker near the end
    - PNG: must contain the IEND chunk
    - JPEG: must end with the FFD9 end-of-image marker

    Raises:
        FileStabilityError: If file appears incomplete.
    """
    size = filepath.stat().st_size
    if size == 0:
        raise FileStabilityError(f"Empty file: {filepath}")

    suffix = filepath.suffix.lower()
    with open(filepath, "rb") as f:
        f.seek(max(0, size - 1024))
        tail = f.read()

    if suffix == ".csv":
        if tail[-1:] not in (b"\n", b"\r"):
            raise FileStabilityError(f"CSV file does not end with newline: {filepath}")
    elif suffix == ".pdf":
        if b"%%EOF" not in tail:
            raise FileStabilityError(f"PDF file missing %%EOF marker: {filepath}")
    elif suffix == ".png":
        if _PNG_END not in tail:
            raise FileStabilityError(f"PNG file missing IEND chunk: {filepath}")
    elif suffix in (".jpg", ".jpeg"):
        if not tail.rstrip(b"\x00").endswith(_JPEG_END):
            raise FileStabilityError(f"JPEG file missing end marker: {filepath}")


def card_id_for(filepath: Path, watch_dir: Path) -> str | None:
    """The card folder a dropped file sits in, or None if not <card_id>/<file>."""
    try:
        parts = filepath.resolve().relative_to(watch_dir.resolve()).parts
    except ValueError:
        return None
    if len(parts) != 2:
        return None
    return parts[0]


# ── File watcher ─────────────────────────────────────────


class FileWatcher(FileSystemEventHandler):
    """Watch a drop folder for invoice files using PollingObserver.

    Processes files sequentially; the actual extraction happens on the
    worker pool once the upload is queued.

    Args:
        watch_dir: Root directory; one sub-folder per card id.
        service: InvoiceService used to store and enqueue uploads.
        stability_seconds: Seconds of stability before processing.
        check_interval: Seconds between stability checks.
    """

    def __init__(
        self,
        watch_dir: Path,
        service: InvoiceService,
        stability_seconds: int = DEFAULT_STABILITY_SECONDS,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.watch_dir = Path(watch_dir)
        self.service = service
        self.stability_seconds = stability_seconds
        self.check_interval = check_interval
        self.poll_interval = poll_interval
        self._observer = None

    def start(self) -> None:
        """Start watching the drop folder."""
        from watchdog.observers.polling import PollingObserver

        if not self.watch_dir.exists():
            self.watch_dir.mkdir(parents=True, exist_ok=True)

        self._observer = PollingObserver(timeout=self.poll_interval)
        self._observer.schedule(self, str(self.watch_dir), recursive=True)
        self._observer.start()
        logger.info("Watching %s for invoice files", self.watch_dir)

    def stop(self) -> None:
        """Stop watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("File watcher stopped")

    def on_created(self, event) -> None:
        """Handle new file creation events."""
        if event.is_directory:
            return

        filepath = Path(event.src_path)
        if filepath.suffix.lower().lstrip(".") not in SUPPORTED_EXTENSIONS:
            return

        logger.info("New file detected: %s", filepath.name)
        self._process_file(filepath)

    def _process_file(self, filepath: Path) -> WatchResult:
        """Wait for stability, validate, then upload for the folder's card."""
        card_id = card_id_for(filepath, self.watch_dir)
        if card_id is None:
            logger.warning("Ignoring %s: expected <watch_dir>/<card_id>/<file>", filepath)
            return WatchResult(
                file_name=filepath.name, status="error",
                error_message="File is not inside a card folder",
            )

        try:
            wait_for_stable(
                filepath,
                stability_seconds=self.stability_seconds,
                check_interval=self.check_interval,
            )
            validate_file_completeness(filepath)

            result = self.service.upload_for_card(card_id, filepath.name, filepath.read_bytes())
            logger.info("Queued %s as invoice %s", filepath.name, result["invoice_id"])
            return WatchResult(
                file_name=filepath.name, status="queued", invoice_id=result["invoice_id"],
            )

        except FileStabilityError as e:
            logger.error("File validation failed: %s", e)
            return WatchResult(file_name=filepath.name, status="error", error_message=str(e))
        except TimeoutError as e:
            logger.error("File stability timeout: %s", e)
            return WatchResult(file_name=filepath.name, status="error", error_message=str(e))
        except CardwiseError as e:
            logger.error("Upload rejected for %s: %s", filepath.name, e)
            return WatchResult(file_name=filepath.name, status="error", error_message=str(e))
        except Exception as e:
            logger.exception("Unexpected error processing %s", filepath.name)
            return WatchResult(file_name=filepath.name, status="error", error_message=str(e))
