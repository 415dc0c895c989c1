from __future__ import annotations

import asyncio
import time
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskapi.identity import IdentityProvider
from taskapi.observability import (
    bind_owner,
    configure_uvicorn_logging,
    get_json_logger,
    get_metrics,
    use_request_context,
)
from taskapi.tasks.errors import TaskApiError
from taskapi.tasks.models import TaskCreate, TaskUpdate
from taskapi.tasks.service import TaskService, toggle_message
from taskapi.tasks.store import TaskStore

REQUEST_ID_HEADER = "X-Request-ID"


def _fail(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    """Flatten pydantic errors into one readable line, e.g. `dueDate: Input should be ...`."""
    parts: list[str] = []
    for err in exc.errors():
        if err.get("type") == "json_invalid":
            return "Invalid JSON body"
        # Integer entries are list or byte positions, not field names
        loc = [
            p
            for p in err.get("loc", ())
            if isinstance(p, str) and p not in ("body", "query", "path")
        ]
        field = ".".join(loc) or "body"
        parts.append(f"{field}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts) or "Invalid request"


async def caller(request: Request) -> str:
    """Resolve the caller through the identity provider bound to the app."""
    identity: IdentityProvider = request.app.state.identity
    owner = identity.resolve(request)
    bind_owner(owner)
    return owner


Owner = Annotated[str, Depends(caller)]


def create_app(
    store: TaskStore,
    identity: IdentityProvider,
    *,
    allowed_origin: str = "http://localhost:8000",
) -> FastAPI:
    app = FastAPI(title="taskapi")
    # Configure uvicorn logging at app creation to avoid import-time side effects
    configure_uvicorn_logging()
    logger = get_json_logger("taskapi.gateway")
    metrics = get_metrics()
    service = TaskService(store)
    app.state.identity = identity

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[allowed_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # ----------------------------
    # Request context and error mapping
    # ----------------------------

    @app.middleware("http")
    async def request_context(request: Request, call_next: Any) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        started = time.perf_counter()
        with use_request_context(request_id):
            try:
                response = await call_next(request)
            except Exception:
                logger.error(
                    "unhandled error",
                    exc_info=True,
                    extra={
                        "event": "http_error",
                        "method": request.method,
                        "path": request.url.path,
                    },
                )
                metrics.increment("http_errors", {"method": request.method})
                response = _fail(500, "Server Error")
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "request",
                extra={
                    "event": "http_request",
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                },
            )
            metrics.increment(
                "http_requests", {"method": request.method, "status": str(response.status_code)}
            )
            return response

    @app.exception_handler(TaskApiError)
    async def _task_api_error(request: Request, exc: TaskApiError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        if exc.status_code >= 500:
            metrics.increment("http_errors", {"method": request.method})
        return _fail(exc.status_code, exc.message, headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _fail(400, _validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _fail(404, f"Route {request.url.path} not found")
        return _fail(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    # ----------------------------
    # Service endpoints
    # ----------------------------

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "success": True,
            "message": "Task Manager API is running",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get("/ready")
    async def ready() -> dict[str, Any]:
        # TaskStoreError maps to 503 through the handler above
        await asyncio.to_thread(store.ping)
        return {"success": True, "status": "ok"}

    # ----------------------------
    # Task endpoints
    # ----------------------------

    @app.get("/api/tasks")
    async def list_tasks(
        owner: Owner,
        priority: str | None = None,
        completed: str | None = None,
        sort_by: Annotated[str | None, Query(alias="sortBy")] = None,
        order: str | None = None,
    ) -> dict[str, Any]:
        tasks = await asyncio.to_thread(
            service.list_tasks,
            owner,
            priority=priority,
            completed=completed,
            sort_by=sort_by,
            order=order,
        )
        return {"success": True, "count": len(tasks), "data": [t.to_wire() for t in tasks]}

    @app.get("/api/tasks/{task_id}")
    async def get_task(task_id: str, owner: Owner) -> dict[str, Any]:
        task = await asyncio.to_thread(service.get_task, owner, task_id)
        return {"success": True, "data": task.to_wire()}

    @app.post("/api/tasks", status_code=201)
    async def create_task(data: TaskCreate, owner: Owner) -> dict[str, Any]:
        task = await asyncio.to_thread(service.create_task, owner, data)
        return {"success": True, "message": "Task created successfully", "data": task.to_wire()}

    @app.put("/api/tasks/{task_id}")
    async def update_task(task_id: str, data: TaskUpdate, owner: Owner) -> dict[str, Any]:
        task = await asyncio.to_thread(service.update_task, owner, task_id, data)
        return {"success": True, "message": "Task updated successfully", "data": task.to_wire()}

    @app.delete("/api/tasks/{task_id}")
    async def delete_task(task_id: str, owner: Owner) -> dict[str, Any]:
        await asyncio.to_thread(service.delete_task, owner, task_id)
        return {"success": True, "message": "Task deleted successfully"}

    @app.patch("/api/tasks/{task_id}/toggle")
    async def toggle_task(task_id: str, owner: Owner) -> dict[str, Any]:
        task = await asyncio.to_thread(service.toggle_task, owner, task_id)
        return {"success": True, "message": toggle_message(task), "data": task.to_wire()}

    return app


__all__ = ["create_app"]
