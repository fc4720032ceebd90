"""HTTP boundary: a FastAPI application over the orchestrator and checkpoint store."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from blacksmith import __version__, errors
from blacksmith.config import Settings, load_settings
from blacksmith.services import Services, build_services

__all__ = ["create_app", "router"]

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["blacksmith"])


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class ApproveRequest(BaseModel):
    target: str
    message: str | None = None


class RejectRequest(BaseModel):
    target: str


class SaveFileRequest(BaseModel):
    target: str
    path: str
    content: str


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _services(request: Request) -> Services:
    services: Services = request.app.state.services
    return services


@router.post("/update", status_code=202)
def start_update(request: Request) -> dict[str, Any]:
    handle = _services(request).orchestrator.start_update()
    return handle.to_dict()


@router.get("/progress")
def get_progress(request: Request) -> dict[str, Any]:
    return _services(request).orchestrator.get_progress().to_dict()


@router.post("/approve")
def approve(payload: ApproveRequest, request: Request) -> dict[str, Any]:
    return _services(request).store.approve(payload.target, payload.message).to_dict()


@router.post("/reject")
def reject(payload: RejectRequest, request: Request) -> dict[str, Any]:
    return _services(request).store.reject(payload.target).to_dict()


@router.post("/files")
def save_file(payload: SaveFileRequest, request: Request) -> dict[str, Any]:
    _services(request).store.save_file(payload.target, payload.path, payload.content)
    return {"saved": True}


@router.get("/files")
def read_files(
    request: Request,
    target: str = Query(default=""),
    path: str | None = Query(default=None),
) -> dict[str, Any]:
    store = _services(request).store
    if path is None:
        return {"target": target, "files": store.list_files(target)}
    try:
        content = store.read_file(target, path)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"File not found: {path}") from exc
    except IsADirectoryError as exc:
        raise HTTPException(status_code=400, detail=f"Not a file: {path}") from exc
    return {"target": target, "path": path, "content": content}


@router.get("/status/{target}")
def get_status(target: str, request: Request) -> dict[str, Any]:
    return _services(request).store.get_status(target).to_dict()


@router.get("/targets")
def list_targets(request: Request) -> dict[str, Any]:
    states = _services(request).store.list_targets()
    return {"targets": [state.to_dict() for state in states]}


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    return _error_response(400, exc)


async def _not_found_error(request: Request, exc: Exception) -> JSONResponse:
    return _error_response(404, exc)


async def _server_error(request: Request, exc: Exception) -> JSONResponse:
    log.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error_response(500, exc)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the application.

    ``services`` wins over ``settings``; with neither, settings are loaded from
    the environment and the optional ``blacksmith.yaml``.
    """
    if services is None:
        services = build_services(settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        services.orchestrator.shutdown()

    app = FastAPI(title="Blacksmith API", version=__version__, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = (time.monotonic() - started) * 1000
        log.info(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    app.add_exception_handler(errors.ValidationError, _validation_error)
    app.add_exception_handler(errors.WorkspaceNotFoundError, _not_found_error)
    app.add_exception_handler(errors.CheckpointError, _server_error)
    app.add_exception_handler(OSError, _server_error)

    app.include_router(router)

    @app.get("/", include_in_schema=False)
    def root() -> dict[str, Any]:
        return {
            "message": "Blacksmith API",
            "docs": "/docs",
            "targets": list(services.store.targets),
        }

    return app
