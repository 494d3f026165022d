"""Parser that reads a facts document written by an external extractor.

The extractor (tree-sitter, a language server, a bundler plugin...) runs
inside the checked-out tree and writes ``.wirecheck/facts.json``::

    {
      "files": [{"path": "src/api.ts", "language": "typescript", "lines_of_code": 40}],
      "functions": [{"path": "src/api.ts", "qualified_name": "createWidget",
                     "is_exported": true, "is_async": true, "complexity": 3}],
      "calls": [{"caller": "src/api.ts:createWidget", "callee": "src/valid.ts:validateWidget"}],
      "imports": [{"source": "src/api.ts", "target": "src/valid.ts", "type_only": false}],
      "entry_points": [{"kind": "endpoint", "handler": "src/api.ts:createWidget",
                        "method": "POST", "route": "/widgets"}],
      "registrations": [{"handler": "src/audit.ts:onCreated", "event_name": "widget.created",
                         "pattern": "emitter"}],
      "emissions": [{"emitter": "src/api.ts:createWidget", "event_name": "widget.created"}]
    }

File text is not part of the document: files are read from the tree (up to
``parser.max_file_size_kb``) so the reference corroborator can search them.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from wirecheck.config.models import ParserConfig
from wirecheck.core.errors import PipelineError
from wirecheck.core.paths import normalize_path
from wirecheck.parsing.models import (
    EntryPointCandidate,
    EntryPointKind,
    EventEmission,
    EventPattern,
    EventRegistration,
    ParsedCall,
    ParsedFile,
    ParsedFunction,
    ParsedImport,
    ParseResult,
)

logger = structlog.get_logger()


class _FileFact(BaseModel):
    path: str
    language: str = "unknown"
    lines_of_code: int = 0


class _FunctionFact(BaseModel):
    path: str
    qualified_name: str
    name: str | None = None
    is_exported: bool = False
    is_async: bool = False
    complexity: int = 1
    line: int = 0


class _CallFact(BaseModel):
    caller: str
    callee: str


class _ImportFact(BaseModel):
    source: str
    target: str
    symbol: str | None = None
    type_only: bool = False


class _EntryPointFact(BaseModel):
    kind: EntryPointKind
    handler: str
    method: str | None = None
    route: str | None = None
    schedule: str | None = None
    event_name: str | None = None
    pattern: EventPattern | None = None


class _RegistrationFact(BaseModel):
    handler: str
    event_name: str = "*"
    pattern: EventPattern = EventPattern.EMITTER


class _EmissionFact(BaseModel):
    emitter: str
    event_name: str


class FactsDocument(BaseModel):
    """Schema of the extractor's facts document."""

    files: list[_FileFact] = Field(default_factory=list)
    functions: list[_FunctionFact] = Field(default_factory=list)
    calls: list[_CallFact] = Field(default_factory=list)
    imports: list[_ImportFact] = Field(default_factory=list)
    entry_points: list[_EntryPointFact] = Field(default_factory=list)
    registrations: list[_RegistrationFact] = Field(default_factory=list)
    emissions: list[_EmissionFact] = Field(default_factory=list)


def _normalize_key(key: str) -> str:
    path, sep, name = key.partition(":")
    return f"{normalize_path(path)}{sep}{name}"


class FactsFileParser:
    """RepositoryParser backed by an extractor-written facts document."""

    def __init__(self, config: ParserConfig | None = None) -> None:
        self._config = config or ParserConfig()

    def parse(self, root: Path) -> ParseResult:
        facts_path = root / self._config.facts_filename
        if not facts_path.is_file():
            raise PipelineError.parse_failed(
                str(root), f"facts document {self._config.facts_filename} not found"
            )
        try:
            raw = json.loads(facts_path.read_text(encoding="utf-8"))
            doc = FactsDocument.model_validate(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PipelineError.parse_failed(str(facts_path), str(e)) from e
        except ValidationError as e:
            err = e.errors()[0]
            loc = ".".join(str(part) for part in err["loc"])
            raise PipelineError.parse_failed(str(facts_path), f"{loc}: {err['msg']}") from e

        result = self._convert(doc)
        self._attach_text(root, result)
        logger.info(
            "facts_parsed",
            root=str(root),
            files=len(result.files),
            functions=len(result.functions),
            calls=len(result.calls),
            entry_points=len(result.entry_points),
        )
        return result

    def _convert(self, doc: FactsDocument) -> ParseResult:
        files = {
            normalize_path(f.path): ParsedFile(
                path=normalize_path(f.path),
                language=f.language,
                lines_of_code=f.lines_of_code,
            )
            for f in doc.files
        }
        functions: list[ParsedFunction] = []
        for fn in doc.functions:
            path = normalize_path(fn.path)
            # Every function belongs to exactly one file
            if path not in files:
                files[path] = ParsedFile(path=path, language="unknown")
            functions.append(
                ParsedFunction(
                    path=path,
                    qualified_name=fn.qualified_name,
                    name=fn.name or fn.qualified_name.rsplit(".", 1)[-1],
                    is_exported=fn.is_exported,
                    is_async=fn.is_async,
                    complexity=fn.complexity,
                    line=fn.line,
                )
            )
        return ParseResult(
            files=list(files.values()),
            functions=functions,
            calls=[ParsedCall(_normalize_key(c.caller), _normalize_key(c.callee)) for c in doc.calls],
            imports=[
                ParsedImport(
                    source=normalize_path(i.source),
                    target=normalize_path(i.target),
                    symbol=i.symbol,
                    type_only=i.type_only,
                )
                for i in doc.imports
            ],
            entry_points=[
                EntryPointCandidate(
                    kind=ep.kind,
                    handler=_normalize_key(ep.handler),
                    method=ep.method,
                    route=ep.route,
                    schedule=ep.schedule,
                    event_name=ep.event_name,
                    pattern=ep.pattern,
                )
                for ep in doc.entry_points
            ],
            registrations=[
                EventRegistration(_normalize_key(r.handler), r.event_name, r.pattern)
                for r in doc.registrations
            ],
            emissions=[EventEmission(_normalize_key(e.emitter), e.event_name) for e in doc.emissions],
        )

    def _attach_text(self, root: Path, result: ParseResult) -> None:
        """Read file text for the reference corroborator."""
        limit = self._config.max_file_size_kb * 1024
        attached: list[ParsedFile] = []
        tree = root.resolve()
        for f in result.files:
            text: str | None = None
            full = (root / f.path).resolve()
            try:
                if not full.is_relative_to(tree):
                    logger.warning("file_outside_tree", path=f.path)
                elif full.is_file() and full.stat().st_size <= limit:
                    text = full.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.debug("file_text_unreadable", path=f.path, error=str(e))
            attached.append(
                ParsedFile(path=f.path, language=f.language, lines_of_code=f.lines_of_code, text=text)
            )
        result.files = attached
