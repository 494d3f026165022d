"""HTTP routes for the wirecheck daemon."""

from __future__ import annotations

import importlib.metadata
import json
import os
import sys
import time
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from wirecheck.core.errors import PipelineError, WirecheckError
from wirecheck.pipeline.models import ChangeEvent, RemapRequest

if TYPE_CHECKING:
    from wirecheck.daemon.lifecycle import ServerController

logger = structlog.get_logger()


def _get_version() -> str:
    """Get package version from installed metadata."""
    try:
        return importlib.metadata.version("wirecheck")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _get_runtime_info() -> dict[str, Any]:
    return {
        "python_version": sys.version.split()[0],
        "pid": os.getpid(),
    }


def _error_response(error: WirecheckError, status_code: int) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=status_code)


async def _read_json(request: Request) -> Any:
    body = await request.body()
    return json.loads(body or b"{}")


def create_routes(controller: ServerController) -> list[Route]:
    """Create HTTP routes bound to the daemon controller."""
    start_time = time.time()
    version = _get_version()

    async def health(request: Request) -> JSONResponse:
        """Liveness check. For diagnostics use /status."""
        _ = request  # unused
        return JSONResponse(
            {
                "status": "healthy",
                "version": version,
                "uptime_seconds": round(time.time() - start_time, 1),
            }
        )

    def _repository_rows() -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for repo in controller.config.repositories:
            snapshot = controller.reader.current_snapshot(repo.name)
            rows.append(
                {
                    "name": repo.name,
                    "default_branch": repo.default_branch,
                    "snapshot_id": snapshot.id if snapshot else None,
                    "commit": snapshot.commit_sha if snapshot else None,
                    "functions": snapshot.function_count if snapshot else 0,
                    "entry_points": snapshot.entry_point_count if snapshot else 0,
                }
            )
        return rows

    async def status(request: Request) -> JSONResponse:
        """Scheduler state, published snapshots and recent verdicts."""
        _ = request  # unused
        sched = controller.scheduler.status
        repositories = await run_in_threadpool(_repository_rows)
        return JSONResponse(
            {
                "version": version,
                "uptime_seconds": round(time.time() - start_time, 1),
                "runtime": _get_runtime_info(),
                "scheduler": {
                    "debounce_sec": controller.scheduler.debounce_seconds,
                    "pending": sched.pending,
                    "completed": sched.completed,
                    "superseded": sched.superseded,
                    "failed": sched.failed,
                    "last_error": sched.last_error,
                },
                "repositories": repositories,
                "recent_verdicts": [v.to_dict() for v in controller.recorder.latest()],
            }
        )

    async def events(request: Request) -> JSONResponse:
        """Accept a change event and schedule it (debounced)."""
        try:
            event = ChangeEvent.model_validate(await _read_json(request))
        except (json.JSONDecodeError, ValidationError) as e:
            return JSONResponse({"error": "invalid_event", "message": str(e)}, status_code=400)

        if controller.config.repository(event.repository) is None:
            return _error_response(PipelineError.unknown_repository(event.repository), 404)

        unit = controller.submit(event)
        logger.info("event_received", unit=unit, action=event.action.value, ref=event.ref)
        return JSONResponse(
            {"accepted": True, "unit": unit, "debounce_sec": controller.scheduler.debounce_seconds},
            status_code=202,
        )

    async def remap(request: Request) -> JSONResponse:
        """Schedule a full re-map of a configured repository."""
        try:
            body = RemapRequest.model_validate(await _read_json(request))
        except (json.JSONDecodeError, ValidationError) as e:
            return JSONResponse({"error": "invalid_request", "message": str(e)}, status_code=400)

        if controller.config.repository(body.repository) is None:
            return _error_response(PipelineError.unknown_repository(body.repository), 404)

        unit = controller.submit(controller.remap_event(body.repository, body.ref))
        return JSONResponse({"accepted": True, "unit": unit}, status_code=202)

    return [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/events", events, methods=["POST"]),
        Route("/remap", remap, methods=["POST"]),
    ]
