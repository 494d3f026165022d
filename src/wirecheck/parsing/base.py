"""Parse capability protocol."""

from pathlib import Path
from typing import Protocol

from wirecheck.parsing.models import ParseResult


class RepositoryParser(Protocol):
    """Protocol for the parse capability.

    Turns a checked-out repository tree into files, functions, call edges,
    import edges and entry-point candidates. Implementations are black boxes
    to the analysis core; only the ParseResult shape matters.
    """

    def parse(self, root: Path) -> ParseResult:
        """Parse the tree rooted at ``root``.

        Returns:
            ParseResult with paths relative to ``root``.

        Raises:
            PipelineError: If the tree cannot be parsed.
        """
        ...
