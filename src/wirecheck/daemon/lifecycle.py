"""Daemon lifecycle management."""

from __future__ import annotations

import asyncio
import signal
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from wirecheck.config.models import WirecheckConfig
from wirecheck.daemon.scheduler import UpdateScheduler
from wirecheck.git.checkout import CheckoutProvider, GitCheckoutProvider
from wirecheck.graph.store import GraphReader, GraphStore
from wirecheck.parsing.base import RepositoryParser
from wirecheck.parsing.facts import FactsFileParser
from wirecheck.pipeline.change_analysis import ChangeAnalysisPipeline
from wirecheck.pipeline.models import ChangeAction, ChangeEvent
from wirecheck.pipeline.publishers import CompositePublisher, LoggingPublisher, RecordingPublisher
from wirecheck.pipeline.remap import RemapService

logger = structlog.get_logger()

REMAP_UNIT = "remap"


@dataclass
class ServerController:
    """
    Orchestrates daemon components.

    Components:
    - GraphStore: sole writer, used only by RemapService
    - ChangeAnalysisPipeline: read-only GraphReader, ephemeral per event
    - UpdateScheduler: debounces events per unit before dispatch
    - ThreadPoolExecutor: clone/parse/query work off the event loop
    """

    config: WirecheckConfig
    store: GraphStore
    checkouts: CheckoutProvider | None = None
    parser: RepositoryParser | None = None

    recorder: RecordingPublisher = field(default_factory=RecordingPublisher, init=False)
    reader: GraphReader = field(init=False)
    remapper: RemapService = field(init=False)
    pipeline: ChangeAnalysisPipeline = field(init=False)
    scheduler: UpdateScheduler = field(init=False)
    _executor: ThreadPoolExecutor = field(init=False)
    _shutdown_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)

    def __post_init__(self) -> None:
        workspace = self.config.pipeline.workspace_dir
        checkouts = self.checkouts or GitCheckoutProvider(Path(workspace) if workspace else None)
        parser = self.parser or FactsFileParser(self.config.parser)
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.pipeline.max_workers,
            thread_name_prefix="wirecheck-worker",
        )
        self.reader = self.store.reader()
        self.remapper = RemapService(self.store, checkouts, parser, self.config, self._executor)
        self.pipeline = ChangeAnalysisPipeline(
            self.reader,
            checkouts,
            parser,
            CompositePublisher(LoggingPublisher(), self.recorder),
            self.config,
            self._executor,
        )
        self.scheduler = UpdateScheduler(
            handler=self.dispatch,
            debounce_seconds=self.config.scheduler.debounce_sec,
        )

    def is_default_branch_push(self, event: ChangeEvent) -> bool:
        if event.action is not ChangeAction.PUSHED:
            return False
        repo = self.config.repository(event.repository)
        default = repo.default_branch if repo else "main"
        return event.head_ref in (default, f"refs/heads/{default}")

    def remap_event(self, repository: str, ref: str | None = None) -> ChangeEvent:
        repo = self.config.repository(repository)
        branch = repo.default_branch if repo else "main"
        return ChangeEvent(
            repository=repository,
            unit=REMAP_UNIT,
            action=ChangeAction.PUSHED,
            head_ref=branch,
            revision=ref,
        )

    async def dispatch(self, event: ChangeEvent) -> Any:
        """Route a debounced event to a re-map or a change analysis."""
        if self.is_default_branch_push(event):
            return await self.remapper.remap(event.repository, event.revision or event.head_ref)
        return await self.pipeline.run(event)

    def submit(self, event: ChangeEvent) -> str:
        """Schedule an event. Default-branch pushes share one re-map unit per repository."""
        if self.is_default_branch_push(event) and event.unit != REMAP_UNIT:
            event = event.model_copy(update={"unit": REMAP_UNIT})
        self.scheduler.notify(event)
        return event.unit_key

    async def start(self) -> None:
        logger.info("server starting", repositories=[r.name for r in self.config.repositories])
        base_url = f"http://{self.config.server.host}:{self.config.server.port}"
        logger.info("server started")
        logger.info("endpoint", name="health", url=f"{base_url}/health")
        logger.info("endpoint", name="status", url=f"{base_url}/status")
        logger.info("endpoint", name="events", url=f"{base_url}/events")

    async def stop(self) -> None:
        """Stop all daemon components gracefully."""
        logger.info("server stopping")
        try:
            async with asyncio.timeout(self.config.server.shutdown_timeout_sec):
                await self.scheduler.stop()
        except TimeoutError:
            logger.warning(
                "server_stop_timeout",
                message=f"Shutdown timed out after {self.config.server.shutdown_timeout_sec}s",
            )
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.store.close()
        self._shutdown_event.set()
        logger.info("server stopped")

    def wait_for_shutdown(self) -> asyncio.Event:
        return self._shutdown_event


async def run_server(controller: ServerController) -> None:
    """Run the daemon until a shutdown signal."""
    from wirecheck.daemon.app import create_app

    config = controller.config
    app = create_app(controller)
    uvicorn_config = uvicorn.Config(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="warning",  # Use structlog instead
        ws="none",
    )
    server = uvicorn.Server(uvicorn_config)

    loop = asyncio.get_running_loop()
    shutdown_count = 0

    def signal_handler() -> None:
        nonlocal shutdown_count
        shutdown_count += 1
        logger.info("shutdown_signal_received", count=shutdown_count)
        server.should_exit = True
        if shutdown_count > 1:
            server.force_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await controller.start()
        await server.serve()
    finally:
        await controller.stop()
