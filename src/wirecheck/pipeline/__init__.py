"""Re-map and change-analysis pipelines."""

from wirecheck.pipeline.change_analysis import ChangeAnalysisPipeline, new_exports
from wirecheck.pipeline.models import (
    AnalysisStatus,
    ChangeAction,
    ChangeEvent,
    PipelineStage,
    RemapRequest,
    Verdict,
)
from wirecheck.pipeline.publishers import (
    CompositePublisher,
    ConsolePublisher,
    LoggingPublisher,
    RecordingPublisher,
    VerdictPublisher,
)
from wirecheck.pipeline.remap import RemapService

__all__ = [
    "ChangeAnalysisPipeline",
    "new_exports",
    "RemapService",
    "AnalysisStatus",
    "ChangeAction",
    "ChangeEvent",
    "PipelineStage",
    "RemapRequest",
    "Verdict",
    "VerdictPublisher",
    "LoggingPublisher",
    "ConsolePublisher",
    "RecordingPublisher",
    "CompositePublisher",
]
