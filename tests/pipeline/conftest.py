"""Fakes for the checkout and parse capabilities."""

from __future__ import annotations

import shutil
import tempfile
import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from wirecheck.config.models import PipelineConfig, RepositoryConfig, WirecheckConfig
from wirecheck.git.checkout import Checkout
from wirecheck.parsing.models import ParsedCall, ParsedFile, ParsedFunction, ParseResult
from wirecheck.pipeline.publishers import RecordingPublisher

CANDIDATE_SHA = "b" * 40


class FakeCheckouts:
    """Creates real temp directories so cleanup can be observed on disk."""

    def __init__(self, base: Path) -> None:
        self.base = base
        self.failures: list[Exception] = []
        self.files: dict[str, str] = {}
        self.attempts = 0
        self.created: list[Checkout] = []
        self.cleaned: list[Checkout] = []
        self.cleanup_threads: list[int] = []
        self._lock = threading.Lock()

    def checkout(self, source: str, ref: str) -> Checkout:
        with self._lock:
            self.attempts += 1
            if self.failures:
                raise self.failures.pop(0)
        workspace = Path(tempfile.mkdtemp(prefix="fake-", dir=self.base))
        root = workspace / "tree"
        root.mkdir()
        for rel, text in self.files.items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text)
        checkout = Checkout(workspace=workspace, root=root, ref=ref, commit_sha=CANDIDATE_SHA)
        with self._lock:
            self.created.append(checkout)
        return checkout

    def cleanup(self, checkout: Checkout) -> None:
        with self._lock:
            self.cleaned.append(checkout)
            self.cleanup_threads.append(threading.get_ident())
        shutil.rmtree(checkout.workspace, ignore_errors=True)

    @property
    def leftovers(self) -> list[Path]:
        return [c.workspace for c in self.created if c.workspace.exists()]


class FakeParser:
    """Returns a fresh ParseResult per call, optionally slow or blocking."""

    def __init__(self, factory: Callable[[], ParseResult]) -> None:
        self.factory = factory
        self.delay = 0.0
        self.block = False
        self.entered = threading.Event()
        self.release = threading.Event()
        self.error: Exception | None = None

    def parse(self, root: Path) -> ParseResult:
        self.entered.set()
        if self.block:
            self.release.wait(timeout=10)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.factory()


def add_tax_module(result: ParseResult, wired: bool = False) -> ParseResult:
    """Add an exported computeTax, called from createWidget when ``wired``."""
    result.files.append(
        ParsedFile(
            path="src/services/tax.ts",
            language="typescript",
            text="export function computeTax(total) { return total * 1.2 }\n",
        )
    )
    result.functions.append(
        ParsedFunction(
            path="src/services/tax.ts",
            qualified_name="computeTax",
            name="computeTax",
            is_exported=True,
        )
    )
    if wired:
        result.calls.append(
            ParsedCall("src/api/widgets.ts:createWidget", "src/services/tax.ts:computeTax")
        )
    return result


@pytest.fixture
def checkouts(tmp_path: Path) -> FakeCheckouts:
    base = tmp_path / "checkouts"
    base.mkdir()
    return FakeCheckouts(base)


@pytest.fixture
def unwired_parser(widget_factory: Callable[..., ParseResult]) -> FakeParser:
    """Candidate tree adding an export nothing calls."""
    return FakeParser(lambda: add_tax_module(widget_factory(commit_sha=None)))


@pytest.fixture
def wired_parser(widget_factory: Callable[..., ParseResult]) -> FakeParser:
    """Candidate tree adding an export called from the widget endpoint."""
    return FakeParser(lambda: add_tax_module(widget_factory(commit_sha=None), wired=True))


@pytest.fixture
def recorder() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def pipeline_config() -> WirecheckConfig:
    return WirecheckConfig(
        repositories=[RepositoryConfig(name="acme", source="unused")],
        pipeline=PipelineConfig(timeout_sec=10.0, max_retries=1, retry_base_delay_sec=0.0),
    )
