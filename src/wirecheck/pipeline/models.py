"""Change events, pipeline stages and verdicts."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from wirecheck.analysis.verdict import FunctionVerdict, Tier


class ChangeAction(str, Enum):
    OPENED = "opened"
    UPDATED = "updated"
    CLOSED = "closed"
    PUSHED = "pushed"  # push to a branch; re-maps when it is the default branch


class ChangeEvent(BaseModel):
    """Notification from the git host.

    ``unit`` identifies the revision stream (e.g. ``pr-42``); the scheduler
    debounces notifications per (repository, unit).
    """

    repository: str
    unit: str
    action: ChangeAction
    head_ref: str
    base_ref: str | None = None
    revision: str | None = None  # head commit sha, when the host sends one

    @property
    def unit_key(self) -> str:
        return f"{self.repository}#{self.unit}"

    @property
    def ref(self) -> str:
        """What to check out: the exact revision when known, else the head ref."""
        return self.revision or self.head_ref


class PipelineStage(str, Enum):
    QUEUED = "queued"
    CLONED = "cloned"
    PARSED = "parsed"
    DIFFED = "diffed"
    CLASSIFIED = "classified"
    PUBLISHED = "published"
    DISCARDED = "discarded"


class AnalysisStatus(str, Enum):
    PASSED = "passed"  # no blocking functions
    FAILED = "failed"  # at least one blocking function
    INCONCLUSIVE = "inconclusive"  # analysis did not complete
    SKIPPED = "skipped"  # nothing to analyse (closed)


@dataclass
class Verdict:
    """Outcome of one analysis run. Blocking only when it completed."""

    repository: str
    unit: str
    status: AnalysisStatus
    ref: str | None = None
    commit_sha: str | None = None
    base_snapshot_id: int | None = None
    entry_point_count: int = 0
    new_export_count: int = 0
    functions: list[FunctionVerdict] = field(default_factory=list)
    error: dict[str, Any] | None = None
    analysis_id: str | None = None
    duration_sec: float = 0.0

    @property
    def tier_counts(self) -> dict[str, int]:
        counts = Counter(fn.tier for fn in self.functions)
        return {tier.value: counts.get(tier, 0) for tier in Tier}

    @property
    def blocking(self) -> list[FunctionVerdict]:
        return [fn for fn in self.functions if fn.tier.blocking]

    @property
    def blocking_count(self) -> int:
        return len(self.blocking)

    @property
    def is_blocking(self) -> bool:
        return self.status is AnalysisStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "unit": self.unit,
            "status": self.status.value,
            "ref": self.ref,
            "commit": self.commit_sha,
            "base_snapshot_id": self.base_snapshot_id,
            "entry_point_count": self.entry_point_count,
            "new_export_count": self.new_export_count,
            "tiers": self.tier_counts,
            "functions": [fn.to_dict() for fn in self.functions],
            "error": self.error,
            "analysis_id": self.analysis_id,
            "duration_sec": round(self.duration_sec, 3),
        }


class RemapRequest(BaseModel):
    """Body of ``POST /remap``."""

    repository: str
    ref: str | None = Field(default=None, description="Defaults to the default branch.")
