"""Configuration constants.

This module contains values that are not user-configurable, plus the
defaults for the tunable heuristics in models.py.
"""

# =============================================================================
# Reachability heuristics (defaults; override via ReachabilityConfig)
# =============================================================================
# Neither value has an inherent meaning. Both were chosen empirically and
# should be re-validated per codebase.

DEFAULT_MAX_HOPS = 10
"""Maximum call/event hops traversed from an entry point."""

DEFAULT_MIN_IDENTIFIER_LENGTH = 4
"""Identifiers shorter than this are never corroborated by text search."""

DEFAULT_SKIP_NAMES: tuple[str, ...] = (
    "handler",
    "config",
    "main",
    "default",
    "setup",
    "bootstrap",
    "register",
    "init",
    "initialize",
)
"""Conventional framework hook names, never reported as orphans."""

# =============================================================================
# Internal Implementation Constants
# =============================================================================

WIRECHECK_DIR = ".wirecheck"
"""Per-repository data directory (config, policy, database)."""

DB_FILENAME = "graph.db"
"""Default SQLite database filename inside WIRECHECK_DIR."""

SQLITE_IN_CHUNK = 500
"""Max bound parameters per IN (...) clause."""

VERDICT_HISTORY_MAX = 50
"""Verdicts kept in memory by the daemon for /status."""

# =============================================================================
# Protocol/Validation Constants
# =============================================================================

PORT_MIN = 0
PORT_MAX = 65535
"""Valid port range."""
