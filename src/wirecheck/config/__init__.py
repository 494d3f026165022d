"""Config module exports."""

from wirecheck.config.loader import get_db_path, load_config
from wirecheck.config.models import (
    LoggingConfig,
    PipelineConfig,
    ReachabilityConfig,
    RepositoryConfig,
    SchedulerConfig,
    StoreConfig,
    WirecheckConfig,
)

__all__ = [
    "load_config",
    "get_db_path",
    "WirecheckConfig",
    "LoggingConfig",
    "PipelineConfig",
    "ReachabilityConfig",
    "RepositoryConfig",
    "SchedulerConfig",
    "StoreConfig",
]
