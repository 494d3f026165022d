"""Textual reference corroboration.

The call graph misses higher-order wiring: callbacks, computed dispatch,
config objects that name a function. This pass looks for the identifier as
a whole word in the text of every other production file. It can only
downgrade a blocking verdict, never produce one.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache

from wirecheck.analysis.policy import FileClassifier
from wirecheck.config.constants import DEFAULT_MIN_IDENTIFIER_LENGTH


@lru_cache(maxsize=4096)
def _word_pattern(name: str) -> re.Pattern[str]:
    # JS identifiers may contain '$', so it counts as a word character here
    return re.compile(rf"(?<![\w$]){re.escape(name)}(?![\w$])")


@dataclass(frozen=True, slots=True)
class ReferenceReport:
    """Where an identifier was seen.

    ``qualifying`` are other production files; ``non_qualifying`` are
    mentions that do not count (the defining file itself, test files).
    """

    name: str
    qualifying: tuple[str, ...] = ()
    non_qualifying: tuple[str, ...] = ()
    too_short: bool = False

    @property
    def found(self) -> bool:
        return bool(self.qualifying)


class ReferenceCorroborator:
    """Stateless whole-word search over file text."""

    def __init__(
        self,
        min_identifier_length: int = DEFAULT_MIN_IDENTIFIER_LENGTH,
        classifier: FileClassifier | None = None,
    ) -> None:
        self.min_identifier_length = min_identifier_length
        self.classifier = classifier or FileClassifier()

    def corroborate(
        self,
        name: str,
        defining_path: str,
        files: Mapping[str, str],
    ) -> ReferenceReport:
        """Search ``files`` (path -> text) for ``name``."""
        if len(name) < self.min_identifier_length:
            return ReferenceReport(name=name, too_short=True)

        pattern = _word_pattern(name)
        qualifying: list[str] = []
        non_qualifying: list[str] = []
        for path in sorted(files):
            if pattern.search(files[path]) is None:
                continue
            if path != defining_path and self.classifier.is_production(path):
                qualifying.append(path)
            else:
                non_qualifying.append(path)
        return ReferenceReport(
            name=name,
            qualifying=tuple(qualifying),
            non_qualifying=tuple(non_qualifying),
        )

    def is_referenced(self, name: str, defining_path: str, files: Mapping[str, str]) -> bool:
        return self.corroborate(name, defining_path, files).found
