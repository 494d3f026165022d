"""Parse capability: transient structures, protocol, facts-document parser."""

from wirecheck.parsing.base import RepositoryParser
from wirecheck.parsing.facts import FactsFileParser
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
    binding_key,
    function_key,
)

__all__ = [
    "RepositoryParser",
    "FactsFileParser",
    "ParseResult",
    "ParsedFile",
    "ParsedFunction",
    "ParsedCall",
    "ParsedImport",
    "EntryPointCandidate",
    "EntryPointKind",
    "EventRegistration",
    "EventEmission",
    "EventPattern",
    "binding_key",
    "function_key",
]
