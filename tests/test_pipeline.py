from __future__ import annotations

import threading

from cliptrail.core.errors import StorageError
from cliptrail.db.models import ImageContent, Item, ItemKind, ScreenshotContent, TextContent
from cliptrail.ingest.dedup import Deduplicator
from cliptrail.ingest.pipeline import CapturePipeline, preview
from tests.conftest import make_png, wait_for


def text(content: str) -> Item:
    return Item(payload=TextContent(content=content))


def test_process_stores_and_enriches(store, pipeline, tmp_path):
    path = tmp_path / "Screenshot 1.png"
    path.write_bytes(make_png())

    item = pipeline.process(Item(payload=ScreenshotContent(file_path=str(path), file_name=path.name)))

    assert item is not None
    loaded = store.get(item.id)
    assert loaded.payload.thumbnail_data is not None
    assert loaded.payload.ocr_text == "Hello\nWorld"


def test_duplicates_are_counted_not_stored(store, pipeline):
    assert pipeline.process(text("same")) is not None
    assert pipeline.process(text("same")) is None

    assert store.count(ItemKind.TEXT) == 1
    assert pipeline.total_captured == 2
    assert pipeline.duplicates_skipped == 1


def test_drain_processes_in_submission_order(store, pipeline):
    for content in ("one", "two", "three"):
        pipeline.submit(text(content))

    assert pipeline.drain() == 3
    assert [item.payload.content for item in store.all_items()] == ["three", "two", "one"]


def test_storage_failure_is_not_fatal(store, pipeline, monkeypatch):
    def broken_insert(item):
        raise StorageError("disk full")

    monkeypatch.setattr(store, "insert", broken_insert)
    assert pipeline.process(text("lost")) is None
    assert pipeline.failures == 1

    monkeypatch.undo()
    assert pipeline.process(text("saved")) is not None


def test_unexpected_error_does_not_stop_consumer(store, pipeline, monkeypatch):
    calls = []
    original = pipeline.dedup.is_duplicate

    def flaky(candidate):
        calls.append(candidate)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return original(candidate)

    monkeypatch.setattr(pipeline.dedup, "is_duplicate", flaky)
    pipeline.start()
    try:
        pipeline.submit(text("first"))
        pipeline.submit(text("second"))
        assert wait_for(lambda: store.count() == 1)
    finally:
        pipeline.stop()

    assert pipeline.failures == 1
    assert not pipeline.is_running


def test_concurrent_producers_store_one_copy(store, pipeline):
    data = make_png((9, 9, 9))
    pipeline.start()
    try:
        threads = [
            threading.Thread(target=pipeline.submit, args=(Item(payload=ImageContent(image_data=data)),))
            for _ in range(5)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert wait_for(lambda: pipeline.total_captured == 5)
    finally:
        pipeline.stop()

    assert store.count(ItemKind.IMAGE) == 1
    assert pipeline.duplicates_skipped == 4


def test_stop_finishes_queued_candidates(store):
    pipeline = CapturePipeline(store, Deduplicator(store))
    pipeline.start()
    for i in range(10):
        pipeline.submit(text(f"item {i}"))
    pipeline.stop()
    pipeline.stop()

    assert store.count() == 10


def test_preview():
    assert preview(text("x" * 100), width=10) == repr("x" * 10 + "...")
    assert preview(Item(payload=ImageContent(image_data=b"1234"))) == "<4 bytes>"
