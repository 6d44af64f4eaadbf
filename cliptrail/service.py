# Purpose: wires store, dedup, enrichment, capture pipeline and both monitors together
# this is the surface the UI layer calls: queries, favorite/delete/clear, copy/open actions, monitor control

import logging
from typing import Dict, List, Optional

from cliptrail.core.config import Settings, settings as default_settings
from cliptrail.core.errors import NotFoundError, TransientIOError
from cliptrail.db.models import CodeContent, ImageContent, Item, ItemKind, ScreenshotContent, TextContent, URLContent
from cliptrail.db.store import ItemStore
from cliptrail.enrich.pipeline import EnrichmentPipeline
from cliptrail.ingest.clipboard import ClipboardHandle, SystemClipboard
from cliptrail.ingest.clipboard_watcher import ClipboardWatcher
from cliptrail.ingest.dedup import Deduplicator
from cliptrail.ingest.pipeline import CapturePipeline
from cliptrail.ingest.screenshot_watcher import ScreenshotWatcher
from cliptrail.search.history import DaySection, group_by_day, query_items
from cliptrail.utils import desktop

log = logging.getLogger(__name__)

CLIPBOARD = "clipboard"
SCREENSHOTS = "screenshots"


class ClipTrail:

    def __init__(
            self,
            config: Settings = None,
            store: ItemStore = None,
            clipboard: ClipboardHandle = None,
            enrichment: EnrichmentPipeline = None,
            screenshot_folder=None,
    ):
        self.config = config or default_settings
        self.store = store or ItemStore()
        self.dedup = Deduplicator(self.store, self.config.dedup_window_seconds)
        self.enrichment = enrichment or EnrichmentPipeline(self.store, self.config)
        self.pipeline = CapturePipeline(self.store, self.dedup, self.enrichment)
        self.clipboard = ClipboardWatcher(
            clipboard or SystemClipboard(), self.pipeline, self.config.clipboard_poll_ms
        )
        self.screenshots = ScreenshotWatcher(
            self.pipeline,
            folder=screenshot_folder,
            bookmark=self.config.screenshot_folder_bookmark,
            poll_seconds=self.config.screenshot_poll_seconds,
        )

    # ===== LIFECYCLE =====

    def open(self) -> "ClipTrail":
        self.store.open()
        return self

    def start(self) -> None:
        """Start the capture consumer and whichever monitors are enabled in settings"""
        self.pipeline.start()
        if self.config.auto_start_clipboard_monitoring:
            self.clipboard.start()
        if self.config.auto_start_screenshot_monitoring:
            self.screenshots.start()

    def stop(self) -> None:
        self.clipboard.stop()
        self.screenshots.stop()
        self.pipeline.stop()
        self.enrichment.shutdown(wait=False)

    def start_monitor(self, name: str) -> bool:
        if name == CLIPBOARD:
            self.clipboard.start()
            return True
        if name == SCREENSHOTS:
            return self.screenshots.start()
        raise ValueError(f"Unknown monitor {name!r}")

    def stop_monitor(self, name: str) -> None:
        if name == CLIPBOARD:
            self.clipboard.stop()
        elif name == SCREENSHOTS:
            self.screenshots.stop()
        else:
            raise ValueError(f"Unknown monitor {name!r}")

    def monitor_status(self) -> Dict[str, bool]:
        return {
            CLIPBOARD: self.clipboard.is_monitoring,
            SCREENSHOTS: self.screenshots.is_monitoring,
        }

    def set_screenshot_folder(self, path: Optional[str]) -> bool:
        """New user folder; the running watch is released before the new one starts"""
        self.config.screenshot_folder_bookmark = path
        return self.screenshots.set_folder(path)

    # ===== QUERIES =====

    def items(self, **filters) -> List[Item]:
        return query_items(self.store, **filters)

    def sections(self, **filters) -> List[DaySection]:
        return group_by_day(self.items(**filters))

    def get(self, item_id) -> Optional[Item]:
        return self.store.get(item_id)

    def stats(self) -> Dict[str, int]:
        counts = {kind.value: self.store.count(kind) for kind in ItemKind}
        counts["total"] = sum(counts.values())
        counts["duplicates_skipped"] = self.pipeline.duplicates_skipped
        return counts

    # ===== MUTATIONS =====

    def toggle_favorite(self, item: Item) -> bool:
        item.is_favorite = not item.is_favorite
        try:
            self.store.update(item, "is_favorite")
        except NotFoundError as e:
            log.info("[SKIP] %s", e)
            return False
        return True

    def delete(self, item: Item) -> bool:
        return self.store.delete(item)

    def clear_all(self) -> int:
        return self.store.clear_all()

    # ===== ACTIONS =====

    def copy_to_clipboard(self, text: str) -> bool:
        try:
            self.clipboard.copy_to_clipboard(text)
        except TransientIOError as e:
            log.warning("[WARN] %s", e)
            return False
        return True

    def copy_image_to_clipboard(self, data: bytes) -> bool:
        try:
            self.clipboard.copy_image_to_clipboard(data)
        except TransientIOError as e:
            log.warning("[WARN] %s", e)
            return False
        return True

    def copy_item(self, item: Item) -> bool:
        """Put an item back on the clipboard without capturing it again"""
        match item.payload:
            case TextContent(content=content):
                return self.copy_to_clipboard(content)
            case URLContent(url=url):
                return self.copy_to_clipboard(url)
            case CodeContent(code=code):
                return self.copy_to_clipboard(code)
            case ImageContent(image_data=data):
                return self.copy_image_to_clipboard(data)
            case ScreenshotContent(ocr_text=ocr_text):
                if not ocr_text:
                    return False
                return self.copy_to_clipboard(ocr_text)
        return False

    def open_url(self, url: str) -> bool:
        return desktop.open_url(url)

    def open_file(self, path: str) -> bool:
        try:
            desktop.open_file(path)
        except TransientIOError as e:
            log.warning("[WARN] %s", e)
            return False
        return True
