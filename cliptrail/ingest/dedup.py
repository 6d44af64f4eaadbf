# Purpose: decide whether a candidate is a duplicate of something already stored
# text/url/code: compare with the latest item of the same kind only
# screenshots: file name already stored
# images: 5 second window against screenshots (36x36 fingerprint) and images (raw bytes)
# latest-only / windowed checks keep every decision O(1) on an unbounded store

import logging
import os
from datetime import datetime, timedelta
from typing import Callable, Optional

from cliptrail.core.config import settings
from cliptrail.core.errors import EnrichmentError
from cliptrail.db.models import (
    CodeContent,
    ImageContent,
    Item,
    ItemKind,
    ScreenshotContent,
    TextContent,
    URLContent,
)
from cliptrail.db.store import ItemStore
from cliptrail.enrich.thumbnails import fingerprint, fingerprint_from_thumbnail, try_fingerprint

log = logging.getLogger(__name__)


class Deduplicator:

    def __init__(
            self,
            store: ItemStore,
            window_seconds: float = None,
            clock: Callable[[], datetime] = None,
    ):
        self.store = store
        self.window = timedelta(
            seconds=window_seconds if window_seconds is not None else settings.dedup_window_seconds
        )
        self.clock = clock or store.clock

    def is_duplicate(self, candidate: Item) -> bool:
        """True when the candidate should be suppressed"""
        match candidate.payload:
            case TextContent(content=content):
                return self._same_as_latest(ItemKind.TEXT, "content", content)
            case URLContent(url=url):
                return self._same_as_latest(ItemKind.URL, "url", url)
            case CodeContent(code=code):
                return self._same_as_latest(ItemKind.CODE, "code", code)
            case ScreenshotContent(file_name=file_name):
                return self.screenshot_exists(file_name)
            case ImageContent(image_data=data):
                return self._image_seen_recently(data)
        return False

    def _same_as_latest(self, kind: ItemKind, name: str, value: str) -> bool:
        latest = self.store.most_recent(kind, limit=1)
        if latest and getattr(latest[0].payload, name) == value:
            log.info("[SKIP] Duplicate %s item (same as latest)", kind.value)
            return True
        return False

    def screenshot_exists(self, file_name: str) -> bool:
        return bool(self.store.find_by_field(ItemKind.SCREENSHOT, file_name=file_name))

    def _image_seen_recently(self, data: bytes) -> bool:
        cutoff = self.clock() - self.window

        # 1. clipboard echo of a screenshot
        recent_screenshots = self.store.find_by_field(ItemKind.SCREENSHOT, since=cutoff)
        if recent_screenshots:
            candidate_print = try_fingerprint(data)
            if candidate_print is not None:
                for screenshot in recent_screenshots:
                    if self._screenshot_fingerprint(screenshot.payload) == candidate_print:
                        log.info("[SKIP] Duplicate image item (matches recent screenshot %s)",
                                 screenshot.payload.file_name)
                        return True

        # 2. same bytes copied twice
        for image in self.store.find_by_field(ItemKind.IMAGE, since=cutoff):
            if image.payload.image_data == data:
                log.info("[SKIP] Duplicate image item (matches recent image)")
                return True

        return False

    @staticmethod
    def _screenshot_fingerprint(shot: ScreenshotContent) -> Optional[bytes]:
        # thumbnail may still be rendering, fall back to the file itself
        try:
            if shot.thumbnail_data is not None:
                return fingerprint_from_thumbnail(shot.thumbnail_data)
            if os.path.exists(shot.file_path):
                return fingerprint(shot.file_path)
        except EnrichmentError as e:
            log.debug("[SKIP] Screenshot %s not comparable: %s", shot.file_name, e)
        return None
