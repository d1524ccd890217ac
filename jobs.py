import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from ai_pipeline.ocr import extract_text
from capture import ImageEntry

logger = logging.getLogger("text_capture.jobs")

NO_TEXT_FOUND = "No text found in the image."
EXTRACTION_FAILED = "[Text extraction failed for this image.]"
EXTRACTION_ERROR_MESSAGE = (
    "Failed to extract text. The image might be too complex or not contain clearly "
    "visible text. Please try another image."
)
NO_IMAGE_MESSAGE = "Please select or capture an image first."


@dataclass(frozen=True)
class Notification:
    """A toast shown to the user."""

    title: str
    description: str
    destructive: bool = False


Notifier = Callable[[Notification], None]


@dataclass(frozen=True, eq=False)
class ExtractionResult:
    """Outcome of one OCR request."""

    entry: ImageEntry
    text: str
    succeeded: bool


class ErrorState:
    """Current session error message; the last write wins."""

    def __init__(self):
        self._lock = threading.Lock()
        self._message = ""

    @property
    def message(self) -> str:
        with self._lock:
            return self._message

    def set(self, message: str) -> None:
        with self._lock:
            self._message = message

    def clear(self) -> None:
        self.set("")


class ResultCollection:
    """Image entries in submission order and their results in completion order."""

    def __init__(self):
        self._lock = threading.RLock()
        self._entries: list[ImageEntry] = []
        self._results: list[ExtractionResult] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    @property
    def entries(self) -> list[ImageEntry]:
        with self._lock:
            return list(self._entries)

    @property
    def results(self) -> list[ExtractionResult]:
        with self._lock:
            return list(self._results)

    @property
    def texts(self) -> list[str]:
        with self._lock:
            return [result.text for result in self._results]

    def add_entry(self, entry: ImageEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def append_result(self, result: ExtractionResult) -> None:
        with self._lock:
            self._results.append(result)

    def remove_at(self, index: int) -> ExtractionResult:
        """
        Remove the result shown at index together with its image entry.

        Args:
            index: Zero-based position in the result list.

        Returns:
            The removed result.

        Raises:
            IndexError: If index is out of range.
        """
        with self._lock:
            if not 0 <= index < len(self._results):
                raise IndexError(f"No result at position {index}")
            result = self._results.pop(index)
            self._entries = [entry for entry in self._entries if entry is not result.entry]
        logger.info("Removed result %d (%s)", index + 1, result.entry.name)
        return result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._results.clear()

    def copy(self, index: int, clipboard: Callable[[str], None]) -> bool:
        """
        Copy the text of one result to the clipboard.

        Args:
            index: Zero-based position in the result list.
            clipboard: Callable that writes text to the system clipboard.

        Returns:
            True on success, False if the clipboard write failed.
        """
        with self._lock:
            text = self._results[index].text
        try:
            clipboard(text)
        except Exception as exc:
            logger.exception("Clipboard copy failed for result %d: %s", index + 1, exc)
            return False
        return True


class JobOrchestrator:
    """Runs one OCR request per image and records every outcome."""

    def __init__(
        self,
        collection: ResultCollection,
        errors: ErrorState,
        extract: Callable[[str], str] = extract_text,
        notify: Optional[Notifier] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.collection = collection
        self.errors = errors
        self._extract = extract
        self._notify = notify or (lambda notification: None)
        self._on_change = on_change or (lambda: None)
        self._lock = threading.Lock()
        self._outstanding = 0
        self._generation = 0

    @property
    def outstanding(self) -> int:
        with self._lock:
            return self._outstanding

    @property
    def is_extracting(self) -> bool:
        return self.outstanding > 0

    def dispatch(self, entry: ImageEntry) -> Optional[threading.Thread]:
        """
        Start text extraction for one image.

        Args:
            entry: Image to process.

        Returns:
            The worker thread, or None if the entry has no payload.
        """
        if not entry.encoded_payload:
            self.errors.set(NO_IMAGE_MESSAGE)
            return None

        with self._lock:
            self.collection.add_entry(entry)
            self._outstanding += 1
            generation = self._generation

        worker = threading.Thread(
            target=self._run, args=(entry, generation), name=f"ocr-{entry.name}", daemon=True
        )
        worker.start()
        logger.info("Dispatched %s (%d outstanding)", entry.name, self.outstanding)
        return worker

    def _run(self, entry: ImageEntry, generation: int) -> None:
        """Worker body: call OCR and settle exactly once."""
        try:
            text = self._extract(entry.encoded_payload)
        except Exception as exc:
            logger.exception("Text extraction failed for %s: %s", entry.name, exc)
            result = ExtractionResult(entry, EXTRACTION_FAILED, succeeded=False)
        else:
            result = ExtractionResult(entry, text or NO_TEXT_FOUND, succeeded=True)

        with self._lock:
            if generation != self._generation:
                logger.info("Discarding result for %s from a cleared session", entry.name)
                return
            self._outstanding -= 1
            self.collection.append_result(result)
            if not result.succeeded:
                self.errors.set(EXTRACTION_ERROR_MESSAGE)

        if not result.succeeded:
            self._notify(
                Notification(
                    "Extraction Error",
                    "Could not extract text from the image.",
                    destructive=True,
                )
            )
        self._on_change()

    def reset(self) -> None:
        """Empty the collection and forget outstanding requests; their late results are dropped."""
        with self._lock:
            self._generation += 1
            self._outstanding = 0
            self.collection.clear()
        logger.debug("Orchestrator reset to generation %d", self._generation)
