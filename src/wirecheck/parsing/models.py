"""Transient parse-result structures.

These mirror the persistent graph entities but are plain dataclasses held in
memory only. The re-map path converts them to store rows; the change-analysis
path keeps them for the lifetime of one run and then drops them.

Function identity is ``"<path>:<qualified_name>"`` (see ``function_key``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from wirecheck.core.paths import normalize_path


class EntryPointKind(str, Enum):
    """Ways the hosting environment invokes a function directly."""

    ENDPOINT = "endpoint"
    CRON = "cron"
    EVENT = "event"
    DECLARED = "declared"  # policy entry_points section


class EventPattern(str, Enum):
    """Event registration families."""

    EMITTER = "emitter"  # on / once / addListener, fired by emit
    MIDDLEWARE = "middleware"  # use(path?, fn), invoked by the framework


def function_key(path: str, qualified_name: str) -> str:
    """Stable identity of a function within one repository tree."""
    return f"{normalize_path(path)}:{qualified_name}"


def split_function_key(key: str) -> tuple[str, str]:
    """Inverse of function_key. Splits on the first ':' after the path."""
    path, sep, name = key.partition(":")
    if not sep:
        return "", key
    return path, name


def binding_key(event_name: str, pattern: EventPattern) -> str:
    """EventBinding identity: one node per (event name, pattern kind)."""
    return f"{pattern.value}:{event_name}"


@dataclass(frozen=True, slots=True)
class ParsedFile:
    path: str
    language: str
    lines_of_code: int = 0
    text: str | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True, slots=True)
class ParsedFunction:
    path: str
    qualified_name: str
    name: str
    is_exported: bool = False
    is_async: bool = False
    complexity: int = 1
    line: int = 0

    @property
    def key(self) -> str:
        return function_key(self.path, self.qualified_name)


@dataclass(frozen=True, slots=True)
class ParsedCall:
    """Statically observed invocation caller -> callee (function keys)."""

    caller: str
    callee: str


@dataclass(frozen=True, slots=True)
class ParsedImport:
    source: str
    target: str
    symbol: str | None = None
    type_only: bool = False


@dataclass(frozen=True, slots=True)
class EntryPointCandidate:
    """Entry point reported by the parser. The handler may not resolve."""

    kind: EntryPointKind
    handler: str
    method: str | None = None
    route: str | None = None
    schedule: str | None = None
    event_name: str | None = None
    pattern: EventPattern | None = None

    @property
    def label(self) -> str:
        if self.kind is EntryPointKind.ENDPOINT:
            return f"{(self.method or 'ANY').upper()} {self.route or '/'}"
        if self.kind is EntryPointKind.CRON:
            return f"cron {self.schedule or '?'}"
        if self.kind is EntryPointKind.DECLARED:
            return "declared by policy"
        pattern = self.pattern.value if self.pattern else "event"
        return f"{pattern} {self.event_name or '*'}"


@dataclass(frozen=True, slots=True)
class EventRegistration:
    """``bus.on(name, handler)`` or ``app.use(path, handler)``."""

    handler: str
    event_name: str
    pattern: EventPattern


@dataclass(frozen=True, slots=True)
class EventEmission:
    """``bus.emit(name, ...)`` made from inside ``emitter``."""

    emitter: str
    event_name: str


@dataclass
class ParseResult:
    """Everything the parse capability extracted from one tree."""

    files: list[ParsedFile] = field(default_factory=list)
    functions: list[ParsedFunction] = field(default_factory=list)
    calls: list[ParsedCall] = field(default_factory=list)
    imports: list[ParsedImport] = field(default_factory=list)
    entry_points: list[EntryPointCandidate] = field(default_factory=list)
    registrations: list[EventRegistration] = field(default_factory=list)
    emissions: list[EventEmission] = field(default_factory=list)
    commit_sha: str | None = None

    def function_index(self) -> dict[str, ParsedFunction]:
        return {fn.key: fn for fn in self.functions}

    def file_index(self) -> dict[str, ParsedFile]:
        return {f.path: f for f in self.files}

    def clear(self) -> None:
        """Drop all extracted facts (and file text) held by this result."""
        self.files.clear()
        self.functions.clear()
        self.calls.clear()
        self.imports.clear()
        self.entry_points.clear()
        self.registrations.clear()
        self.emissions.clear()
