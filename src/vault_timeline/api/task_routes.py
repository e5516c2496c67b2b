"""REST API routes for task operations."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from vault_timeline.api.handlers import (
    handle_forest,
    handle_task_add,
    handle_task_delete,
    handle_task_get,
    handle_task_list,
    handle_task_update,
)
from vault_timeline.errors import CyclicGraphError


class TaskAddBody(BaseModel):
    title: str
    file_path: str
    heading: Optional[str] = None
    scheduled: Optional[str] = None
    due: Optional[str] = None
    start: Optional[str] = None
    reminder: Optional[str] = None
    priority: Optional[str] = None
    length: Optional[str] = None
    repeat: Optional[str] = None
    query: Optional[str] = None


class TaskUpdateBody(BaseModel):
    title: Optional[str] = None
    completed: Optional[bool] = None
    scheduled: Optional[str] = None
    due: Optional[str] = None
    start: Optional[str] = None
    reminder: Optional[str] = None
    priority: Optional[str] = None
    length: Optional[str] = None
    repeat: Optional[str] = None
    query: Optional[str] = None


def register_task_routes(app_router: APIRouter, cache) -> None:
    """Attach task REST routes that use the shared cache."""

    @app_router.get("/tasks")
    def list_tasks(
        path: Optional[str] = Query(None),
        completed: Optional[bool] = Query(None),
        tag: Optional[str] = Query(None),
        scheduled_on: Optional[str] = Query(None),
        due_before: Optional[str] = Query(None),
        limit: int = Query(200),
    ):
        return handle_task_list(
            cache,
            path=path,
            completed=completed,
            tag=tag,
            scheduled_on=scheduled_on,
            due_before=due_before,
            limit=limit,
        )

    @app_router.get("/tasks/{task_id:path}")
    def get_task(task_id: str):
        result = handle_task_get(cache, task_id=task_id)
        if "error" in result:
            raise HTTPException(status_code=404, detail=result["error"])
        return result

    @app_router.post("/tasks", status_code=201)
    def add_task(body: TaskAddBody):
        try:
            return handle_task_add(cache, **body.model_dump())
        except Exception as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app_router.patch("/tasks/{task_id:path}")
    def update_task(task_id: str, body: TaskUpdateBody):
        try:
            result = handle_task_update(cache, task_id=task_id, **body.model_dump())
        except Exception as e:
            raise HTTPException(status_code=400, detail=str(e))
        if "error" in result:
            raise HTTPException(status_code=404, detail=result["error"])
        return result

    @app_router.delete("/tasks/{task_id:path}")
    def delete_task(task_id: str):
        try:
            result = handle_task_delete(cache, task_id=task_id)
        except CyclicGraphError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=400, detail=str(e))
        if "error" in result:
            raise HTTPException(status_code=404, detail=result["error"])
        return result

    @app_router.get("/forest")
    def get_forest(path: Optional[str] = Query(None)):
        try:
            return handle_forest(cache, path=path)
        except CyclicGraphError as e:
            raise HTTPException(status_code=422, detail=str(e))
