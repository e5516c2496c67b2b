"""REST API routes for layout, calendar events and the task codec."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from vault_timeline.api.handlers import (
    handle_cache_status,
    handle_convert,
    handle_parse,
    handle_set_collapsed,
    handle_set_events,
    handle_timeline,
)


class EventsBody(BaseModel):
    events: List[Dict[str, Any]]


class CollapsedBody(BaseModel):
    task_id: str
    collapsed: bool = True


class ParseBody(BaseModel):
    text: str
    path: str = ""
    field_format: Optional[str] = None


class ConvertBody(BaseModel):
    text: str
    to_format: str
    from_format: Optional[str] = None
    path: str = ""


def register_timeline_routes(app_router: APIRouter, cache) -> None:
    """Attach timeline, event and codec REST routes that use the shared cache."""

    @app_router.get("/timeline")
    def get_timeline(
        day: Optional[str] = Query(None),
        start: Optional[str] = Query(None),
        end: Optional[str] = Query(None),
        now: Optional[str] = Query(None),
        is_now: bool = Query(False),
        past: bool = Query(False),
        show_completed: Optional[bool] = Query(None),
    ):
        try:
            return handle_timeline(
                cache,
                day=day,
                start=start,
                end=end,
                now=now,
                is_now=is_now,
                past=past,
                show_completed=show_completed,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.put("/events")
    def put_events(body: EventsBody):
        try:
            return handle_set_events(cache, events=body.events)
        except (KeyError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.put("/collapsed")
    def put_collapsed(body: CollapsedBody):
        return handle_set_collapsed(cache, task_id=body.task_id, collapsed=body.collapsed)

    @app_router.post("/codec/parse")
    def parse_text(body: ParseBody):
        try:
            return handle_parse(cache, **body.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.post("/codec/convert")
    def convert_text(body: ConvertBody):
        try:
            return handle_convert(cache, **body.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.get("/cache/status")
    def get_cache_status():
        return handle_cache_status(cache)
