from __future__ import annotations

import threading
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import DateTime, event

from cliptrail.core.errors import NotFoundError, StorageError
from cliptrail.db.models import (
    CodeContent,
    ImageContent,
    Item,
    ItemKind,
    ScreenshotContent,
    TextContent,
    TextItem,
    URLContent,
)
from cliptrail.db.session import build_engine
from cliptrail.db.store import ItemLocks, ItemStore


def text_item(content: str) -> Item:
    return Item(payload=TextContent(content=content))


def test_insert_assigns_identity_and_timestamp(store, clock):
    item = store.insert(text_item("hello"))

    assert isinstance(item.id, uuid.UUID)
    assert item.timestamp == clock.now
    assert item.is_favorite is False
    assert item.tags == []


def test_insert_then_get_roundtrip_every_kind(store):
    items = [
        text_item("hello"),
        Item(payload=URLContent(url="https://example.com")),
        Item(payload=CodeContent(code="print(x)")),
        Item(payload=ScreenshotContent(file_path="/tmp/Screenshot 1.png", file_name="Screenshot 1.png")),
        Item(payload=ImageContent(image_data=b"\x89PNG fake")),
    ]
    for item in items:
        store.insert(item)

    for item in items:
        loaded = store.get(item.id)
        assert loaded.kind == item.kind
        assert loaded.payload == item.payload
        assert loaded.timestamp == item.timestamp


def test_get_unknown_id_returns_none(store):
    assert store.get(uuid.uuid4()) is None


def test_screenshot_file_name_is_unique(store):
    store.insert(Item(payload=ScreenshotContent(file_path="/a/Screenshot.png", file_name="Screenshot.png")))
    with pytest.raises(StorageError):
        store.insert(Item(payload=ScreenshotContent(file_path="/b/Screenshot.png", file_name="Screenshot.png")))
    assert store.count(ItemKind.SCREENSHOT) == 1


def test_update_writes_only_named_fields(store):
    item = store.insert(Item(payload=URLContent(url="https://example.com")))

    stale = store.get(item.id)
    stale.is_favorite = True
    store.update(stale, "is_favorite")

    item.payload.title = "Example"
    store.update(item, "title")

    loaded = store.get(item.id)
    assert loaded.is_favorite is True
    assert loaded.payload.title == "Example"


def test_update_tags(store):
    item = store.insert(text_item("tagged"))
    item.tags.append("work")
    store.update(item, "tags")

    assert store.get(item.id).tags == ["work"]


def test_update_rejects_immutable_fields(store):
    item = store.insert(text_item("hello"))
    item.payload.content = "changed"
    with pytest.raises(ValueError):
        store.update(item, "content")
    with pytest.raises(ValueError):
        store.update(item, "timestamp")


def test_update_after_delete_raises_not_found(store):
    item = store.insert(text_item("bye"))
    assert store.delete(item) is True

    item.is_favorite = True
    with pytest.raises(NotFoundError) as excinfo:
        store.update(item, "is_favorite")
    assert excinfo.value.item_id == item.id
    assert store.get(item.id) is None


def test_delete_twice_is_a_noop(store):
    item = store.insert(text_item("bye"))
    assert store.delete(item) is True
    assert store.delete(item) is False


def test_clear_all_removes_every_kind(store):
    store.insert(text_item("a"))
    store.insert(Item(payload=CodeContent(code="x = 1;")))
    store.insert(Item(payload=ImageContent(image_data=b"img")))

    assert store.clear_all() == 3
    assert store.count() == 0
    assert store.all_items() == []


def test_all_items_newest_first_across_kinds(store):
    first = store.insert(text_item("first"))
    second = store.insert(Item(payload=URLContent(url="https://example.com")))
    third = store.insert(Item(payload=CodeContent(code="a();")))

    assert [item.id for item in store.all_items()] == [third.id, second.id, first.id]


def test_most_recent_is_per_kind(store):
    store.insert(text_item("old"))
    newest = store.insert(text_item("new"))
    store.insert(Item(payload=CodeContent(code="a();")))

    assert [item.id for item in store.most_recent(ItemKind.TEXT)] == [newest.id]
    assert len(store.most_recent(ItemKind.TEXT, limit=5)) == 2


def test_find_by_field_window_is_open_on_since(store, clock):
    old = store.insert(text_item("old"))
    clock.advance(10)
    recent = store.insert(text_item("recent"))

    found = store.find_by_field(ItemKind.TEXT, since=old.timestamp)
    assert [item.id for item in found] == [recent.id]

    found = store.find_by_field(ItemKind.TEXT, until=old.timestamp)
    assert [item.id for item in found] == [old.id]


def test_find_by_field_equality(store):
    store.insert(Item(payload=ScreenshotContent(file_path="/s/one.png", file_name="Screenshot one.png")))
    store.insert(Item(payload=ScreenshotContent(file_path="/s/two.png", file_name="Screenshot two.png")))

    found = store.find_by_field(ItemKind.SCREENSHOT, file_name="Screenshot two.png")
    assert [item.payload.file_path for item in found] == ["/s/two.png"]


def test_find_by_unknown_field(store):
    with pytest.raises(ValueError):
        store.find_by_field(ItemKind.TEXT, nope="x")


def test_items_survive_reopen(config, clock):
    store = ItemStore(build_engine(config.sqlite_url), clock=clock).open()
    item = store.insert(text_item("persisted"))

    reopened = ItemStore(build_engine(config.sqlite_url), clock=clock).open()
    loaded = reopened.get(item.id)
    assert loaded.payload.content == "persisted"
    assert loaded.timestamp == item.timestamp


def test_in_memory_store(clock):
    store = ItemStore(build_engine("sqlite://"), clock=clock).open()
    store.insert(text_item("memory"))
    assert store.count() == 1


def test_concurrent_updates_on_one_item_keep_both_fields(store):
    item = store.insert(Item(payload=ScreenshotContent(file_path="/s/x.png", file_name="Screenshot x.png")))
    barrier = threading.Barrier(2)

    def write_thumbnail():
        barrier.wait()
        item.payload.thumbnail_data = b"thumb"
        store.update(item, "thumbnail_data")

    def write_ocr():
        barrier.wait()
        item.payload.ocr_text = "Hello"
        store.update(item, "ocr_text")

    threads = [threading.Thread(target=write_thumbnail), threading.Thread(target=write_ocr)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    loaded = store.get(item.id)
    assert loaded.payload.thumbnail_data == b"thumb"
    assert loaded.payload.ocr_text == "Hello"


def test_item_locks_are_released():
    locks = ItemLocks()
    a, b = uuid.uuid4(), uuid.uuid4()
    with locks.hold(a):
        with locks.hold(b):
            assert len(locks) == 2
    assert len(locks) == 0


def test_clock_is_used_for_timestamps(config, clock):
    store = ItemStore(build_engine(config.sqlite_url), clock=clock).open()
    clock.advance(3600)
    item = store.insert(text_item("later"))
    assert item.timestamp == clock.now
    assert store.find_by_field(ItemKind.TEXT, since=clock.now - timedelta(seconds=1))[0].id == item.id


def test_naive_local_timestamps_are_stored(store, clock):
    column = TextItem.__table__.c.timestamp
    assert isinstance(column.type, DateTime)
    assert not column.type.timezone

    item = store.insert(text_item("local time"))
    assert item.timestamp.tzinfo is None

    found = store.find_by_field(ItemKind.TEXT, since=item.timestamp - timedelta(seconds=1))
    assert [found_item.id for found_item in found] == [item.id]
    assert found[0].timestamp == item.timestamp
    assert found[0].timestamp.tzinfo is None


def test_update_racing_clear_all_raises_not_found(store, monkeypatch):
    item = store.insert(Item(payload=ScreenshotContent(file_path="/s/r.png", file_name="Screenshot r.png")))
    open_session = store._session
    raced = []

    def racing_session():
        session = open_session()
        if not raced:
            raced.append(session)

            # the row is read, then everything is cleared before the UPDATE is flushed
            @event.listens_for(session, "before_flush")
            def clear_everything(session, flush_context, instances):
                store.clear_all()

        return session

    monkeypatch.setattr(store, "_session", racing_session)

    item.payload.ocr_text = "too late"
    with pytest.raises(NotFoundError) as excinfo:
        store.update(item, "ocr_text")
    assert excinfo.value.item_id == item.id
    assert store.get(item.id) is None
