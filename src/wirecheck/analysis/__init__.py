"""Reachability analysis: entry points, traversal, corroboration, policy, verdicts."""

from wirecheck.analysis.entrypoints import EntryPointDetector
from wirecheck.analysis.policy import FileClassifier, Policy, load_policy, parse_policy
from wirecheck.analysis.reachability import (
    OrphanFunction,
    OrphanReport,
    ReachabilityEngine,
    ReachabilityResult,
    ReachabilityStatus,
)
from wirecheck.analysis.references import ReferenceCorroborator, ReferenceReport
from wirecheck.analysis.verdict import MERGE_TABLE, FunctionVerdict, Tier, TwoLayerClassifier

__all__ = [
    "EntryPointDetector",
    "FileClassifier",
    "Policy",
    "load_policy",
    "parse_policy",
    "ReachabilityEngine",
    "ReachabilityResult",
    "ReachabilityStatus",
    "OrphanFunction",
    "OrphanReport",
    "ReferenceCorroborator",
    "ReferenceReport",
    "MERGE_TABLE",
    "FunctionVerdict",
    "Tier",
    "TwoLayerClassifier",
]
