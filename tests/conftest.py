"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages,
and provides the shared widget-service graph most tests analyse.
"""

import sys
from collections.abc import Callable, Generator, Sequence
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local wirecheck package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of wirecheck modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("wirecheck"):
        del sys.modules[module_name]

from wirecheck.analysis.entrypoints import EntryPointDetector  # noqa: E402
from wirecheck.graph.store import GraphStore  # noqa: E402
from wirecheck.graph.view import GraphView  # noqa: E402
from wirecheck.parsing.models import (  # noqa: E402
    EntryPointCandidate,
    EntryPointKind,
    EventEmission,
    EventPattern,
    EventRegistration,
    ParsedCall,
    ParsedFile,
    ParsedFunction,
    ParseResult,
)

# path -> source text. Function names appear in the text the way a bundler
# would see them, so the reference corroborator has something to find.
WIDGET_FILES: dict[str, str] = {
    "src/api/widgets.ts": (
        "import { validateWidget } from '../services/validate'\n"
        "export async function createWidget(req) {\n"
        "  validateWidget(req.body)\n"
        "  bus.emit('widget.created', req.body)\n"
        "}\n"
    ),
    "src/services/validate.ts": "export function validateWidget(body) { return !!body }\n",
    "src/services/pricing.ts": (
        "export function computeDiscount(total) { return total * 0.9 }\n"
        "export function applyPricing(total) { return total }\n"
    ),
    "src/config/pricing-config.ts": (
        "import { applyPricing } from '../services/pricing'\n"
        "export default { strategy: applyPricing }\n"
    ),
    "src/services/format.ts": "export function formatPrice(value) { return `$${value}` }\n",
    "src/services/format.test.ts": (
        "import { formatPrice } from './format'\n"
        "test('formats', () => { expect(formatPrice(1)).toBe('$1') })\n"
    ),
    "src/legacy/shim.ts": "export function legacyAdapter() {}\n",
    "src/events/audit.ts": "export function recordAudit(widget) {}\n",
    "src/middleware/auth.ts": "export function authenticate(req, res, next) { next() }\n",
    "src/jobs/nightly.ts": "export function rebuildIndex() {}\n",
}

# (path, qualified name, exported)
WIDGET_FUNCTIONS: list[tuple[str, str, bool]] = [
    ("src/api/widgets.ts", "createWidget", True),
    ("src/services/validate.ts", "validateWidget", True),
    ("src/services/pricing.ts", "computeDiscount", True),
    ("src/services/pricing.ts", "applyPricing", True),
    ("src/services/format.ts", "formatPrice", True),
    ("src/services/format.test.ts", "formatsTest", False),
    ("src/legacy/shim.ts", "legacyAdapter", True),
    ("src/events/audit.ts", "recordAudit", True),
    ("src/middleware/auth.ts", "authenticate", True),
    ("src/jobs/nightly.ts", "rebuildIndex", True),
]


def build_result(
    files: dict[str, str],
    functions: list[tuple[str, str, bool]],
    calls: Sequence[tuple[str, str]] = (),
    entry_points: Sequence[EntryPointCandidate] = (),
    registrations: Sequence[EventRegistration] = (),
    emissions: Sequence[EventEmission] = (),
    commit_sha: str | None = None,
) -> ParseResult:
    """Assemble a ParseResult the way a parser would return it."""
    return ParseResult(
        files=[
            ParsedFile(path=path, language="typescript", lines_of_code=text.count("\n"), text=text)
            for path, text in files.items()
        ],
        functions=[
            ParsedFunction(path=path, qualified_name=name, name=name, is_exported=exported)
            for path, name, exported in functions
        ],
        calls=[ParsedCall(caller, callee) for caller, callee in calls],
        entry_points=list(entry_points),
        registrations=list(registrations),
        emissions=list(emissions),
        commit_sha=commit_sha,
    )


def widget_result(commit_sha: str | None = "a" * 40) -> ParseResult:
    """The widget service.

    - POST /widgets -> createWidget -> validateWidget
    - createWidget emits widget.created, handled by recordAudit
    - authenticate is middleware, rebuildIndex a cron job
    - computeDiscount is exported and never called
    - applyPricing is only referenced from a config object
    - formatPrice is only called from a test
    - legacyAdapter is an allowed orphan under the standard policy
    """
    return build_result(
        files=dict(WIDGET_FILES),
        functions=list(WIDGET_FUNCTIONS),
        calls=[
            ("src/api/widgets.ts:createWidget", "src/services/validate.ts:validateWidget"),
            ("src/services/format.test.ts:formatsTest", "src/services/format.ts:formatPrice"),
        ],
        entry_points=[
            EntryPointCandidate(
                kind=EntryPointKind.ENDPOINT,
                handler="src/api/widgets.ts:createWidget",
                method="POST",
                route="/widgets",
            ),
            EntryPointCandidate(
                kind=EntryPointKind.CRON,
                handler="src/jobs/nightly.ts:rebuildIndex",
                schedule="0 3 * * *",
            ),
        ],
        registrations=[
            EventRegistration("src/events/audit.ts:recordAudit", "widget.created", EventPattern.EMITTER),
            EventRegistration("src/middleware/auth.ts:authenticate", "/api", EventPattern.MIDDLEWARE),
        ],
        emissions=[EventEmission("src/api/widgets.ts:createWidget", "widget.created")],
        commit_sha=commit_sha,
    )


@pytest.fixture
def widgets() -> ParseResult:
    """Freshly built widget-service parse result."""
    return widget_result()


@pytest.fixture
def widget_view(widgets: ParseResult) -> GraphView:
    """Transient view of the widget service with detected entry points."""
    entry_points = EntryPointDetector().detect(widgets)
    return GraphView.from_parse_result(widgets, entry_points)


@pytest.fixture
def result_builder() -> Callable[..., ParseResult]:
    return build_result


@pytest.fixture
def widget_factory() -> Callable[..., ParseResult]:
    return widget_result


@pytest.fixture
def store(tmp_path: Path) -> Generator[GraphStore, None, None]:
    """Empty graph store in a temp directory."""
    graph_store = GraphStore.open(tmp_path / "graph.db")
    yield graph_store
    graph_store.close()


@pytest.fixture
def mapped_store(store: GraphStore, widgets: ParseResult) -> GraphStore:
    """Store with the widget service published as repository ``acme``."""
    entry_points = EntryPointDetector().detect(widgets)
    store.replace_repository_subgraph("acme", widgets, entry_points)
    return store
