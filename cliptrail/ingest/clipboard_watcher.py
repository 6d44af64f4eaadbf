# Purpose: watch the OS clipboard. Whenever it changes, push a candidate into the capture pipeline
# image on the clipboard wins over text, both are never captured from one poll
# copy_to_clipboard* update the remembered change counter so our own writes are never re-captured

import logging
import threading
from typing import Optional

from cliptrail.core.config import settings
from cliptrail.core.errors import TransientIOError
from cliptrail.db.models import ImageContent, Item
from cliptrail.ingest.classifier import classify
from cliptrail.ingest.clipboard import ClipboardHandle
from cliptrail.ingest.pipeline import CapturePipeline

log = logging.getLogger(__name__)

IDLE = "idle"
PROCESSING = "processing"


class ClipboardWatcher:
    """
    Polls the clipboard change counter every poll_ms
    Owns the last seen counter value, nothing else writes it
    """

    def __init__(self, handle: ClipboardHandle, pipeline: CapturePipeline, poll_ms: int = None):
        self.handle = handle
        self.pipeline = pipeline
        self.poll_ms = poll_ms or settings.clipboard_poll_ms
        self.state = IDLE

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # whatever is on the clipboard at launch is not history
        self._last_change = self._read_change_count()
        # set when our own write could not be followed by a counter read
        self._skip_next_change = False

    def _read_change_count(self) -> Optional[int]:
        try:
            return self.handle.change_count()
        except TransientIOError as e:
            log.warning("[WARN] Clipboard unavailable: %s", e)
            return None

    def poll_once(self) -> Optional[Item]:
        """
        One Idle -> Processing -> Idle step
        returns the candidate pushed into the pipeline, or None
        """
        with self._lock:
            count = self._read_change_count()
            if count is None or count == self._last_change:
                return None
            self._last_change = count
            if self._skip_next_change:
                self._skip_next_change = False
                log.debug("[SKIP] Clipboard change from our own write")
                return None

            self.state = PROCESSING
            try:
                return self._capture()
            except TransientIOError as e:
                log.warning("[WARN] Clipboard read failed, retrying next poll: %s", e)
                return None
            finally:
                self.state = IDLE

    def _capture(self) -> Optional[Item]:
        # 1. images skip the classifier
        image = self.handle.read_image()
        if image:
            candidate = Item(payload=ImageContent(image_data=image))
            self.pipeline.submit(candidate)
            return candidate

        # 2. strings
        text = self.handle.read_text()
        if text is None or not text.strip():
            return None

        candidate = classify(text)
        self.pipeline.submit(candidate)
        return candidate

    # ===== SELF WRITES =====

    def copy_to_clipboard(self, text: str) -> None:
        with self._lock:
            self.handle.write_text(text)
            # prevent the monitor from immediately re-capturing it
            self._remember_own_write()

    def copy_image_to_clipboard(self, data: bytes) -> None:
        with self._lock:
            self.handle.write_image(data)
            self._remember_own_write()

    def _remember_own_write(self) -> None:
        count = self._read_change_count()
        if count is None:
            # counter unreadable right now, the next change seen is ours
            self._skip_next_change = True
            return
        self._last_change = count
        self._skip_next_change = False

    # ===== LIFECYCLE =====

    @property
    def is_monitoring(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        log.info("[SYSTEM] Clipboard watcher started (every %d ms)", self.poll_ms)
        while not self._stop.wait(self.poll_ms / 1000.0):
            try:
                self.poll_once()
            except Exception:
                log.exception("[ERROR] Clipboard poll failed")
        log.info("[SYSTEM] Clipboard watcher stopped")

    def start(self) -> None:
        if self.is_monitoring:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="ClipboardMonitor")
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Idempotent, returns once the timer thread is gone"""
        thread = self._thread
        self._thread = None
        self._stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
