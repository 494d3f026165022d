"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (WIRECHECK__SECTION__KEY)
3. Repo YAML (.wirecheck/config.yaml)
4. Global YAML (~/.config/wirecheck/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    WIRECHECK__<SECTION>__<KEY>=<VALUE>

Examples:
    WIRECHECK__LOGGING__LEVEL=DEBUG
    WIRECHECK__REACHABILITY__MAX_HOPS=12
    WIRECHECK__SCHEDULER__DEBOUNCE_SEC=10
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from wirecheck.config.constants import (
    DEFAULT_MAX_HOPS,
    DEFAULT_MIN_IDENTIFIER_LENGTH,
    DEFAULT_SKIP_NAMES,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        WIRECHECK__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG is verbose and may impact performance.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ServerConfig(BaseModel):
    """Daemon HTTP server configuration.

    Env vars:
        WIRECHECK__SERVER__HOST: Bind address (default: 127.0.0.1)
        WIRECHECK__SERVER__PORT: Port number (default: 7655)
    """

    host: str = Field(
        default="127.0.0.1",
        description="Bind address. Use 0.0.0.0 to accept change events from the network.",
    )
    port: int = Field(default=7655, description="Server port.")
    shutdown_timeout_sec: float = Field(
        default=5.0,
        description="Graceful shutdown timeout before force-exit.",
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (0 <= v <= 65535):
            raise ValueError(f"Port must be 0-65535, got {v}")
        return v


class StoreConfig(BaseModel):
    """Call-graph store configuration.

    Env vars:
        WIRECHECK__STORE__DB_PATH: SQLite database location
        WIRECHECK__STORE__MAX_RETRIES: Max retry attempts for locked DB
        WIRECHECK__STORE__RETAINED_SNAPSHOTS: Published snapshots kept per repository
    """

    db_path: str | None = Field(
        default=None,
        description="SQLite database path. Default: .wirecheck/graph.db under the working root.",
    )
    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms). How long to wait for locks.",
    )
    max_retries: int = Field(
        default=3,
        description="Max retry attempts for locked database errors.",
    )
    retry_base_delay_sec: float = Field(
        default=0.1,
        description="Base delay between retries (exponential backoff).",
    )
    retained_snapshots: int = Field(
        default=2,
        ge=1,
        description="Published snapshots kept per repository. Readers pinned to an "
        "older snapshot keep a consistent view until it is collected.",
    )


class ReachabilityConfig(BaseModel):
    """Reachability heuristics. Tune per codebase.

    Env vars:
        WIRECHECK__REACHABILITY__MAX_HOPS: Traversal depth bound
        WIRECHECK__REACHABILITY__MIN_IDENTIFIER_LENGTH: Shortest name the
            textual corroborator will search for
    """

    max_hops: int = Field(
        default=DEFAULT_MAX_HOPS,
        ge=0,
        description="Maximum call/event hops from an entry point. "
        "TRADEOFF: Higher finds deeper chains but widens traversal.",
    )
    min_identifier_length: int = Field(
        default=DEFAULT_MIN_IDENTIFIER_LENGTH,
        ge=1,
        description="Identifiers shorter than this are never corroborated textually. "
        "RISK: Too low lets common words like 'get' corroborate anything.",
    )
    skip_names: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SKIP_NAMES),
        description="Exported names treated as framework hooks and never reported as orphans.",
    )


class SchedulerConfig(BaseModel):
    """Update scheduler configuration.

    Env vars:
        WIRECHECK__SCHEDULER__DEBOUNCE_SEC: Quiet window before analysis starts
    """

    debounce_sec: float = Field(
        default=30.0,
        ge=0.0,
        description="Quiet window per pull request / branch. A newer event in the "
        "window replaces the pending one.",
    )


class PipelineConfig(BaseModel):
    """Change-analysis pipeline configuration.

    Env vars:
        WIRECHECK__PIPELINE__TIMEOUT_SEC: Overall per-run timeout
        WIRECHECK__PIPELINE__MAX_RETRIES: Retries for transient failures
        WIRECHECK__PIPELINE__WORKSPACE_DIR: Where isolated checkouts are created
    """

    timeout_sec: float = Field(
        default=600.0,
        gt=0.0,
        description="Overall timeout for one analysis. Exceeding it yields an inconclusive verdict.",
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries for transient clone/store failures before reporting inconclusive.",
    )
    retry_base_delay_sec: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay between retries (exponential backoff).",
    )
    workspace_dir: str | None = Field(
        default=None,
        description="Parent directory for isolated checkouts. Default: system temp dir.",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Threads available for clone/parse/store work across all repositories.",
    )


class ParserConfig(BaseModel):
    """Parse capability configuration."""

    facts_filename: str = Field(
        default=".wirecheck/facts.json",
        description="Facts document written by the external extractor, relative to the tree root.",
    )
    max_file_size_kb: int = Field(
        default=1024,
        description="Files larger than this are not read for textual corroboration.",
    )


class PolicyConfig(BaseModel):
    """Policy document location."""

    filename: str = Field(
        default=".wirecheck/policy.yaml",
        description="Policy document relative to the analysed tree root. Absence is valid.",
    )


class RepositoryConfig(BaseModel):
    """A repository the daemon accepts change events for."""

    name: str
    source: str = Field(description="Clone source: local path or remote URL.")
    default_branch: str = "main"


class WirecheckConfig(BaseModel):
    """Root configuration for wirecheck.

    All settings can be configured via:
    1. Environment variables: WIRECHECK__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    reachability: ReachabilityConfig = Field(default_factory=ReachabilityConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    repositories: list[RepositoryConfig] = Field(default_factory=list)

    def repository(self, name: str) -> RepositoryConfig | None:
        """Look up a configured repository by name."""
        for repo in self.repositories:
            if repo.name == name:
                return repo
        return None
