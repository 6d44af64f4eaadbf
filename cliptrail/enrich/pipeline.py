# Purpose: post-insert augmentation of stored items
# screenshot -> thumbnail + OCR (two independent tasks)
# image      -> thumbnail
# url        -> page title + favicon
# text, code -> nothing
# every task runs on the pool, updates only its own fields and never raises into the caller

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional

import httpx

from cliptrail.core.config import Settings, settings as default_settings
from cliptrail.core.errors import ClipTrailError, NetworkError, NotFoundError
from cliptrail.db.models import ImageContent, Item, ScreenshotContent, URLContent
from cliptrail.db.store import ItemStore
from cliptrail.enrich.ocr import Recognizer, extract_text_from_image
from cliptrail.enrich.thumbnails import render_thumbnail
from cliptrail.enrich.url_metadata import fetch_metadata

log = logging.getLogger(__name__)


class EnrichmentPipeline:
    """
    Fire-and-forget enrichment, one task per field group per item
    A failing task leaves its fields unset; the item and other tasks are untouched
    """

    def __init__(
            self,
            store: ItemStore,
            config: Settings = None,
            executor: ThreadPoolExecutor = None,
            recognizer: Optional[Recognizer] = None,
            http_client: Optional[httpx.Client] = None,
    ):
        self.store = store
        self.config = config or default_settings
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.config.enrichment_workers, thread_name_prefix="Enrichment"
        )
        self.recognizer = recognizer
        self.http_client = http_client
        self._pending: List[Future] = []

    def submit(self, item: Item) -> List[Future]:
        """Schedule the enrichment tasks for a freshly inserted item"""
        tasks = self.tasks_for(item)
        futures = [self.executor.submit(self._run, name, task, item) for name, task in tasks]

        self._pending = [f for f in self._pending if not f.done()] + futures
        return futures

    def tasks_for(self, item: Item) -> List[tuple]:
        match item.payload:
            case ScreenshotContent():
                tasks = [("thumbnail", self.screenshot_thumbnail)]
                if self.config.enable_ocr:
                    tasks.append(("ocr", self.screenshot_ocr))
                return tasks
            case ImageContent():
                return [("thumbnail", self.image_thumbnail)]
            case URLContent():
                if self.config.fetch_favicons:
                    return [("metadata", self.url_metadata)]
        return []

    def _run(self, name: str, task: Callable[[Item], None], item: Item) -> None:
        try:
            task(item)
        except NotFoundError:
            log.info("[SKIP] %s item %s deleted before %s finished", item.kind.value, item.id, name)
        except NetworkError as e:
            log.debug("[ENRICH] No metadata for %s: %s", item.id, e)
        except ClipTrailError as e:
            log.warning("[ENRICH] %s failed for %s item %s: %s", name, item.kind.value, item.id, e)
        except Exception:
            log.exception("[ERROR] Unexpected %s failure for item %s", name, item.id)

    # ===== TASKS =====

    def screenshot_thumbnail(self, item: Item) -> None:
        shot: ScreenshotContent = item.payload
        shot.thumbnail_data = render_thumbnail(shot.file_path, self.config.thumbnail_size)
        self.store.update(item, "thumbnail_data")
        log.info("[ENRICH] Thumbnail ready for %s", shot.file_name)

    def screenshot_ocr(self, item: Item) -> None:
        shot: ScreenshotContent = item.payload
        shot.ocr_text = extract_text_from_image(shot.file_path, self.recognizer)
        self.store.update(item, "ocr_text")
        log.info("[ENRICH] OCR for %s: %d chars", shot.file_name, len(shot.ocr_text))

    def image_thumbnail(self, item: Item) -> None:
        image: ImageContent = item.payload
        image.thumbnail_data = render_thumbnail(image.image_data, self.config.thumbnail_size)
        self.store.update(item, "thumbnail_data")
        log.info("[ENRICH] Thumbnail ready for image %s", item.id)

    def url_metadata(self, item: Item) -> None:
        link: URLContent = item.payload
        metadata = fetch_metadata(link.url, self.http_client)
        link.title = metadata.title
        link.favicon_url = metadata.favicon_url
        self.store.update(item, "title", "favicon_url")
        log.info("[ENRICH] Metadata for %s: title=%r", link.url, link.title)

    # ===== LIFECYCLE =====

    def wait(self, timeout: float = None) -> None:
        """Block until every task submitted so far has finished"""
        pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
