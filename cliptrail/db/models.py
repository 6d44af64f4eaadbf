# Purpose: defines the history tables (one per kind) and the in-memory Item shape
# Item = shared envelope + exactly one payload variant; kind is derived from the payload
# column names of every table match the payload field names 1:1

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type, Union

from sqlalchemy import JSON, DateTime
from sqlmodel import Field, SQLModel


class ItemKind(str, Enum):
    TEXT = "text"
    URL = "url"
    CODE = "code"
    SCREENSHOT = "screenshot"
    IMAGE = "image"


# ===== PAYLOAD VARIANTS =====

@dataclass
class TextContent:
    content: str


@dataclass
class URLContent:
    url: str
    title: Optional[str] = None  # set by enrichment
    favicon_url: Optional[str] = None  # set by enrichment


@dataclass
class CodeContent:
    code: str
    language: Optional[str] = None  # never filled by capture


@dataclass
class ScreenshotContent:
    file_path: str
    file_name: str  # unique in the store
    ocr_text: Optional[str] = None
    thumbnail_data: Optional[bytes] = None


@dataclass
class ImageContent:
    image_data: bytes
    thumbnail_data: Optional[bytes] = None


Payload = Union[TextContent, URLContent, CodeContent, ScreenshotContent, ImageContent]


def kind_of(payload: Payload) -> ItemKind:
    match payload:
        case TextContent():
            return ItemKind.TEXT
        case URLContent():
            return ItemKind.URL
        case CodeContent():
            return ItemKind.CODE
        case ScreenshotContent():
            return ItemKind.SCREENSHOT
        case ImageContent():
            return ItemKind.IMAGE
    raise TypeError(f"Not an item payload: {type(payload).__name__}")


@dataclass
class Item:
    """
    One history entry
    id and timestamp stay None until the store inserts the item (a "candidate")
    """
    payload: Payload
    id: Optional[uuid.UUID] = None
    timestamp: Optional[datetime] = None
    is_favorite: bool = False
    tags: List[str] = field(default_factory=list)

    @property
    def kind(self) -> ItemKind:
        return kind_of(self.payload)

    @property
    def is_persisted(self) -> bool:
        return self.id is not None


# fields that update() may write, per kind (envelope identity is never written)
ENVELOPE_MUTABLE: Tuple[str, ...] = ("is_favorite", "tags")

ENRICHMENT_FIELDS: Dict[ItemKind, Tuple[str, ...]] = {
    ItemKind.TEXT: (),
    ItemKind.URL: ("title", "favicon_url"),
    ItemKind.CODE: ("language",),
    ItemKind.SCREENSHOT: ("ocr_text", "thumbnail_data"),
    ItemKind.IMAGE: ("thumbnail_data",),
}


def mutable_fields(kind: ItemKind) -> Tuple[str, ...]:
    return ENVELOPE_MUTABLE + ENRICHMENT_FIELDS[kind]


# ===== TABLES =====

class ItemEnvelope(SQLModel):
    """Columns shared by every history table"""

    id: uuid.UUID = Field(primary_key=True)
    timestamp: datetime = Field(index=True, sa_type=DateTime)  # naive local time
    is_favorite: bool = Field(default=False, index=True)
    tags: List[str] = Field(default_factory=list, sa_type=JSON)


class TextItem(ItemEnvelope, table=True):
    content: str


class URLItem(ItemEnvelope, table=True):
    url: str
    title: Optional[str] = Field(default=None)
    favicon_url: Optional[str] = Field(default=None)


class CodeItem(ItemEnvelope, table=True):
    code: str
    language: Optional[str] = Field(default=None)


class ScreenshotItem(ItemEnvelope, table=True):
    file_path: str
    file_name: str = Field(index=True, unique=True)  # existence check before insert
    ocr_text: Optional[str] = Field(default=None)
    thumbnail_data: Optional[bytes] = Field(default=None)


class ImageItem(ItemEnvelope, table=True):
    image_data: bytes
    thumbnail_data: Optional[bytes] = Field(default=None)


TABLES: Dict[ItemKind, Type[ItemEnvelope]] = {
    ItemKind.TEXT: TextItem,
    ItemKind.URL: URLItem,
    ItemKind.CODE: CodeItem,
    ItemKind.SCREENSHOT: ScreenshotItem,
    ItemKind.IMAGE: ImageItem,
}

PAYLOADS: Dict[ItemKind, type] = {
    ItemKind.TEXT: TextContent,
    ItemKind.URL: URLContent,
    ItemKind.CODE: CodeContent,
    ItemKind.SCREENSHOT: ScreenshotContent,
    ItemKind.IMAGE: ImageContent,
}


def to_row(item: Item) -> ItemEnvelope:
    """Build the table row for a persisted item"""
    values = {
        "id": item.id,
        "timestamp": item.timestamp,
        "is_favorite": item.is_favorite,
        "tags": list(item.tags),
    }
    for f in fields(item.payload):
        values[f.name] = getattr(item.payload, f.name)
    return TABLES[item.kind](**values)


def from_row(kind: ItemKind, row: ItemEnvelope) -> Item:
    payload_cls = PAYLOADS[kind]
    payload = payload_cls(**{f.name: getattr(row, f.name) for f in fields(payload_cls)})
    return Item(
        payload=payload,
        id=row.id,
        timestamp=row.timestamp,
        is_favorite=row.is_favorite,
        tags=list(row.tags or []),
    )


def get_field(item: Item, name: str):
    """Read an envelope or payload field by column name"""
    if name in ENVELOPE_MUTABLE:
        return getattr(item, name)
    return getattr(item.payload, name)
