# Purpose: the one channel both monitors push candidates into
# consumer: dedup -> store -> enrichment, identical for clipboard and screenshot candidates
# a single consumer thread makes "check then insert" atomic across producers

import logging
import queue
import threading
from typing import Optional

from cliptrail.core.errors import StorageError
from cliptrail.db.models import Item
from cliptrail.db.store import ItemStore
from cliptrail.enrich.pipeline import EnrichmentPipeline
from cliptrail.ingest.dedup import Deduplicator

log = logging.getLogger(__name__)

_STOP = object()


class CapturePipeline:

    def __init__(self, store: ItemStore, dedup: Deduplicator, enrichment: Optional[EnrichmentPipeline] = None):
        self.store = store
        self.dedup = dedup
        self.enrichment = enrichment
        self.channel: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        # Stats counters
        self.total_captured = 0
        self.duplicates_skipped = 0
        self.failures = 0

    def submit(self, candidate: Item) -> None:
        """Called by producers, never blocks"""
        self.channel.put(candidate)

    def process(self, candidate: Item) -> Optional[Item]:
        """
        Run one candidate through dedup -> insert -> enrichment
        returns the stored item, or None when suppressed or not saved
        """
        self.total_captured += 1

        if self.dedup.is_duplicate(candidate):
            self.duplicates_skipped += 1
            return None

        try:
            item = self.store.insert(candidate)
        except StorageError as e:
            self.failures += 1
            log.error("[ERROR] Could not save %s item: %s", candidate.kind.value, e)
            return None

        log.info("[ITEM] Saved %s item %s | %s", item.kind.value, item.id, preview(item))

        if self.enrichment is not None:
            self.enrichment.submit(item)

        return item

    def drain(self) -> int:
        """Process everything queued right now in the calling thread"""
        handled = 0
        while True:
            try:
                candidate = self.channel.get_nowait()
            except queue.Empty:
                return handled
            if candidate is _STOP:
                continue
            self._safe_process(candidate)
            handled += 1

    def _safe_process(self, candidate: Item) -> None:
        try:
            self.process(candidate)
        except Exception:
            self.failures += 1
            log.exception("[ERROR] Failed to process %s candidate", candidate.kind.value)

    def _consume(self) -> None:
        while True:
            candidate = self.channel.get()
            if candidate is _STOP:
                return
            self._safe_process(candidate)

    # ===== LIFECYCLE =====

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.is_running:
                return
            self._thread = threading.Thread(target=self._consume, daemon=True, name="CapturePipeline")
            self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Finish what is queued, then stop the consumer (idempotent)"""
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self.channel.put(_STOP)
        thread.join(timeout=timeout)


def preview(item: Item, width: int = 80) -> str:
    """Short single-line description for log lines"""
    payload = item.payload
    text = getattr(payload, "content", None) or getattr(payload, "url", None) \
        or getattr(payload, "code", None) or getattr(payload, "file_name", None)
    if text is None:
        return f"<{len(payload.image_data)} bytes>"
    if len(text) > width:
        text = text[:width] + "..."
    return repr(text)
