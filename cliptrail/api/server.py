# Purpose: FastAPI for ClipTrail
# HTTP endpoints the UI uses to list, filter, favorite, delete, copy and open history items
# plus monitor control and stats

import logging
import os
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel

from cliptrail.core.config import settings
from cliptrail.db.models import (
    CodeContent,
    ImageContent,
    Item,
    ItemKind,
    ScreenshotContent,
    TextContent,
    URLContent,
)
from cliptrail.service import ClipTrail
from cliptrail.utils.time_filter import parse_since

log = logging.getLogger(__name__)

app = FastAPI(
    title="ClipTrail API",
    description="Clipboard and screenshot history",
    version="0.3.0",
)

_service: Optional[ClipTrail] = None


def set_service(service: Optional[ClipTrail]) -> None:
    global _service
    _service = service


def get_service() -> ClipTrail:
    if _service is None:
        raise HTTPException(status_code=503, detail="ClipTrail is not running")
    return _service


# Response Models
class ItemResponse(BaseModel):
    id: uuid.UUID
    kind: ItemKind
    timestamp: datetime
    is_favorite: bool
    tags: List[str]
    preview: str
    content: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None
    favicon_url: Optional[str] = None
    code: Optional[str] = None
    language: Optional[str] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None
    ocr_text: Optional[str] = None
    has_thumbnail: bool = False


class ItemsResponse(BaseModel):
    count: int
    items: List[ItemResponse]


class SectionResponse(BaseModel):
    title: str
    day: str
    items: List[ItemResponse]


class CopyTextRequest(BaseModel):
    text: str


class FolderRequest(BaseModel):
    path: Optional[str] = None


def item_response(item: Item) -> ItemResponse:
    envelope = dict(
        id=item.id,
        kind=item.kind,
        timestamp=item.timestamp,
        is_favorite=item.is_favorite,
        tags=item.tags,
    )
    match item.payload:
        case TextContent(content=content):
            return ItemResponse(**envelope, preview=content[:80], content=content)
        case URLContent(url=url, title=title, favicon_url=favicon_url):
            return ItemResponse(**envelope, preview=title or url, url=url, title=title,
                                favicon_url=favicon_url)
        case CodeContent(code=code, language=language):
            return ItemResponse(**envelope, preview=code[:80], code=code, language=language)
        case ScreenshotContent() as shot:
            return ItemResponse(**envelope, preview=shot.file_name, file_path=shot.file_path,
                                file_name=shot.file_name, ocr_text=shot.ocr_text,
                                has_thumbnail=shot.thumbnail_data is not None)
        case ImageContent(thumbnail_data=thumbnail):
            return ItemResponse(**envelope, preview="Image", has_thumbnail=thumbnail is not None)
    raise TypeError(f"Unknown payload {type(item.payload).__name__}")


def load_item(service: ClipTrail, item_id: uuid.UUID) -> Item:
    item = service.get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found")
    return item


def parse_since_param(since: Optional[str]) -> Optional[datetime]:
    try:
        return parse_since(since)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# === ENDPOINTS ===

@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "service": "ClipTrail API",
        "status": "running",
        "version": app.version,
    }


@app.get("/items", response_model=ItemsResponse)
def list_items(
        kind: Optional[ItemKind] = Query(default=None, description="text, url, code, screenshot or image"),
        favorites: bool = Query(default=False, description="Only favorites"),
        q: Optional[str] = Query(default=None, description="Case-insensitive search text"),
        since: Optional[str] = Query(default=None, description='Eg "2 hours ago", "yesterday"'),
        limit: Optional[int] = Query(default=None, ge=1, le=1000),
        service: ClipTrail = Depends(get_service),
):
    """All items, newest first, with optional filters"""
    items = service.items(
        kind=kind, favorites_only=favorites, search=q, since=parse_since_param(since), limit=limit
    )
    return ItemsResponse(count=len(items), items=[item_response(item) for item in items])


@app.get("/items/recent", response_model=ItemsResponse)
def recent_items(
        limit: int = Query(default=20, ge=1, le=100),
        kind: Optional[ItemKind] = Query(default=None),
        service: ClipTrail = Depends(get_service),
):
    items = service.items(kind=kind, limit=limit)
    return ItemsResponse(count=len(items), items=[item_response(item) for item in items])


@app.get("/items/grouped", response_model=List[SectionResponse])
def grouped_items(
        kind: Optional[ItemKind] = Query(default=None),
        favorites: bool = Query(default=False),
        q: Optional[str] = Query(default=None),
        service: ClipTrail = Depends(get_service),
):
    """Items split into Today / Yesterday / dated sections"""
    sections = service.sections(kind=kind, favorites_only=favorites, search=q)
    return [
        SectionResponse(
            title=section.title,
            day=section.day.isoformat(),
            items=[item_response(item) for item in section.items],
        )
        for section in sections
    ]


@app.get("/item/{item_id}", response_model=ItemResponse)
def get_item(item_id: uuid.UUID, service: ClipTrail = Depends(get_service)):
    return item_response(load_item(service, item_id))


@app.get("/item/{item_id}/thumbnail")
def get_thumbnail(item_id: uuid.UUID, service: ClipTrail = Depends(get_service)):
    item = load_item(service, item_id)
    thumbnail = getattr(item.payload, "thumbnail_data", None)
    if thumbnail is None:
        raise HTTPException(status_code=404, detail=f"Item {item_id} has no thumbnail")
    return Response(content=thumbnail, media_type="image/png")


@app.get("/item/{item_id}/image")
def get_image(item_id: uuid.UUID, service: ClipTrail = Depends(get_service)):
    """Full image: the clipboard bytes, or the screenshot file"""
    item = load_item(service, item_id)
    match item.payload:
        case ImageContent(image_data=data):
            return Response(content=data, media_type="image/png")
        case ScreenshotContent(file_path=file_path):
            if not os.path.exists(file_path):
                raise HTTPException(status_code=404, detail=f"Image file not found: {file_path}")
            return FileResponse(file_path)
    raise HTTPException(status_code=404, detail=f"Item {item_id} is not an image")


@app.post("/item/{item_id}/favorite", response_model=ItemResponse)
def toggle_favorite(item_id: uuid.UUID, service: ClipTrail = Depends(get_service)):
    item = load_item(service, item_id)
    if not service.toggle_favorite(item):
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found")
    return item_response(item)


@app.delete("/item/{item_id}")
def delete_item(item_id: uuid.UUID, service: ClipTrail = Depends(get_service)):
    item = load_item(service, item_id)
    if not service.delete(item):
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found")
    return {"status": "deleted", "id": str(item_id)}


@app.delete("/items")
def clear_items(service: ClipTrail = Depends(get_service)):
    removed = service.clear_all()
    return {"status": "cleared", "removed": removed}


@app.post("/item/{item_id}/copy")
def copy_item(item_id: uuid.UUID, service: ClipTrail = Depends(get_service)):
    item = load_item(service, item_id)
    return {"copied": service.copy_item(item)}


@app.post("/clipboard/text")
def copy_text(request: CopyTextRequest, service: ClipTrail = Depends(get_service)):
    return {"copied": service.copy_to_clipboard(request.text)}


@app.post("/item/{item_id}/open")
def open_item(item_id: uuid.UUID, service: ClipTrail = Depends(get_service)):
    item = load_item(service, item_id)
    match item.payload:
        case URLContent(url=url):
            return {"opened": service.open_url(url)}
        case ScreenshotContent(file_path=file_path):
            return {"opened": service.open_file(file_path)}
    raise HTTPException(status_code=400, detail=f"{item.kind.value} items cannot be opened")


@app.get("/stats")
def get_stats(service: ClipTrail = Depends(get_service)):
    return {"items": service.stats(), "monitors": service.monitor_status()}


@app.post("/monitors/{name}/{action}")
def control_monitor(name: str, action: str, service: ClipTrail = Depends(get_service)):
    """start / stop the clipboard or screenshots monitor"""
    try:
        if action == "start":
            service.start_monitor(name)
        elif action == "stop":
            service.stop_monitor(name)
        else:
            raise HTTPException(status_code=400, detail=f"Unknown action {action!r}")
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return service.monitor_status()


@app.put("/settings/screenshot-folder")
def set_screenshot_folder(request: FolderRequest, service: ClipTrail = Depends(get_service)):
    service.set_screenshot_folder(request.path)
    return {
        "folder": str(service.screenshots.current_folder or service.screenshots.resolve_folder()),
        "monitoring": service.screenshots.is_monitoring,
    }


# Initialize on startup when run standalone (run_cliptrail.py builds the service itself)
@app.on_event("startup")
async def startup_event():
    if _service is None:
        service = ClipTrail().open()
        service.start()
        set_service(service)
    log.info("[API] ClipTrail API server started")


@app.on_event("shutdown")
async def shutdown_event():
    if _service is not None:
        _service.stop()


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: restrict to the UI origin once it has a fixed one
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
