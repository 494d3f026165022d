"""Daemon: debounced scheduling behind a small HTTP API."""

from wirecheck.daemon.app import create_app
from wirecheck.daemon.lifecycle import ServerController, run_server
from wirecheck.daemon.scheduler import SchedulerStatus, UnitState, UpdateScheduler

__all__ = [
    "create_app",
    "ServerController",
    "run_server",
    "UpdateScheduler",
    "SchedulerStatus",
    "UnitState",
]
