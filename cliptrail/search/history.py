# Purpose: the query side the UI reads from
# all kinds merged, newest first, filter by kind / favorites / time window / search text
# search is a case-insensitive substring match over every text field of the item + its tags

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

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


def searchable_text(item: Item) -> List[str]:
    match item.payload:
        case TextContent(content=content):
            fields = [content]
        case URLContent(url=url, title=title):
            fields = [url, title]
        case CodeContent(code=code, language=language):
            fields = [code, language]
        case ScreenshotContent(file_name=file_name, ocr_text=ocr_text):
            fields = [file_name, ocr_text]
        case ImageContent():
            fields = []
        case _:
            fields = []
    return [f for f in fields if f] + list(item.tags)


def matches_search(item: Item, search: str) -> bool:
    needle = search.lower()
    return any(needle in value.lower() for value in searchable_text(item))


def query_items(
        store: ItemStore,
        kind: Optional[ItemKind] = None,
        favorites_only: bool = False,
        search: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
) -> List[Item]:
    """Every item matching all the given filters, newest first"""
    if since is not None or until is not None:
        kinds = [kind] if kind is not None else list(ItemKind)
        items = []
        for k in kinds:
            items.extend(store.find_by_field(k, since=since, until=until))
        items.sort(key=lambda item: item.timestamp, reverse=True)
    else:
        items = store.all_items([kind] if kind is not None else None)

    if favorites_only:
        items = [item for item in items if item.is_favorite]

    if search and search.strip():
        items = [item for item in items if matches_search(item, search.strip())]

    if limit is not None:
        items = items[:limit]
    return items


@dataclass
class DaySection:
    day: date
    title: str
    items: List[Item]


def day_title(day: date, today: date) -> str:
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return day.strftime("%B %d, %Y")


def group_by_day(items: Iterable[Item], today: Optional[date] = None) -> List[DaySection]:
    """Split items into per-day sections, newest day first, items keep their order"""
    today = today or date.today()
    sections = {}
    for item in items:
        day = item.timestamp.date()
        if day not in sections:
            sections[day] = DaySection(day=day, title=day_title(day, today), items=[])
        sections[day].items.append(item)
    return [sections[day] for day in sorted(sections, reverse=True)]
