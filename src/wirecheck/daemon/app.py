"""Starlette application factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from starlette.applications import Starlette

from wirecheck.daemon.middleware import WirecheckErrorMiddleware
from wirecheck.daemon.routes import create_routes

if TYPE_CHECKING:
    from wirecheck.daemon.lifecycle import ServerController


def create_app(controller: ServerController) -> Starlette:
    """Create the Starlette application bound to ``controller``."""

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        yield
        # Controller stop is handled in run_server's finally block

    app = Starlette(routes=create_routes(controller), lifespan=lifespan)
    app.add_middleware(WirecheckErrorMiddleware)
    return app
