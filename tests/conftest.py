from __future__ import annotations

import io
import time
from concurrent.futures import Executor, Future
from datetime import datetime, timedelta

import httpx
import pytest
from PIL import Image

from cliptrail.core.config import Settings
from cliptrail.db.session import build_engine
from cliptrail.db.store import ItemStore
from cliptrail.enrich.pipeline import EnrichmentPipeline
from cliptrail.ingest.clipboard import ClipboardHandle
from cliptrail.ingest.dedup import Deduplicator
from cliptrail.ingest.pipeline import CapturePipeline

PAGE_HTML = (
    "<html><head><title>Example Domain</title>"
    '<link rel="icon" href="/favicon.ico"></head><body>hi</body></html>'
)


class FakeClock:
    def __init__(self, start: datetime = datetime(2025, 6, 20, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        # every read moves a millisecond so inserts never share a timestamp
        self.now += timedelta(milliseconds=1)
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeClipboard(ClipboardHandle):
    """In-memory clipboard with a change counter like the OS one"""

    def __init__(self, text: str | None = None):
        self.count = 0
        self.text = text
        self.image: bytes | None = None
        self.writes: list = []

    def change_count(self) -> int:
        return self.count

    def read_image(self):
        return self.image

    def read_text(self):
        return self.text

    def user_copies_text(self, text: str) -> None:
        self.text, self.image = text, None
        self.count += 1

    def user_copies_image(self, data: bytes, text: str | None = None) -> None:
        self.text, self.image = text, data
        self.count += 1

    def write_text(self, text: str) -> None:
        self.writes.append(text)
        self.user_copies_text(text)

    def write_image(self, data: bytes) -> None:
        self.writes.append(data)
        self.user_copies_image(data)


class InlineExecutor(Executor):
    """Runs every task right away in the calling thread"""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


def make_png(color=(255, 0, 0), size=(64, 48)) -> bytes:
    output = io.BytesIO()
    Image.new("RGB", size, color).save(output, format="PNG")
    return output.getvalue()


def fake_recognizer(image_path: str):
    return ["Hello", "World"]


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def page_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, text=PAGE_HTML)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return Settings(
        sqlite_url=f"sqlite:///{tmp_path / 'history.db'}",
        clipboard_poll_ms=10,
        screenshot_poll_seconds=0.05,
        screenshot_folder_bookmark=None,
        fetch_favicons=True,
        enable_ocr=True,
    )


@pytest.fixture
def store(config, clock):
    return ItemStore(build_engine(config.sqlite_url), clock=clock).open()


@pytest.fixture
def http_client():
    client = httpx.Client(transport=httpx.MockTransport(page_handler))
    yield client
    client.close()


@pytest.fixture
def enrichment(store, config, http_client):
    return EnrichmentPipeline(
        store, config, executor=InlineExecutor(), recognizer=fake_recognizer, http_client=http_client
    )


@pytest.fixture
def pipeline(store, enrichment):
    return CapturePipeline(store, Deduplicator(store), enrichment)


@pytest.fixture
def clipboard():
    return FakeClipboard(text="already here at launch")
