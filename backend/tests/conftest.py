"""
Shared fixtures for the SentinelHub test suite.

No test here talks to GitHub, AWS or a scanner binary: remote APIs are
replaced with MagicMock sessions, botocore Stubbers or httpx.MockTransport,
and tool adapters with StubAdapter.
"""

import threading
from typing import Callable, List, Optional

import pytest

from sentinelhub.config import ScanConfig
from sentinelhub.discovery.base import BaseDiscoverer, DiscoveryResult, SnippetDiscoverer
from sentinelhub.scanner.base import (
    BaseAdapter,
    Finding,
    Location,
    ScanObserver,
    ScanUnit,
)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class StubAdapter(BaseAdapter):
    """
    Adapter double. `raws` is a list or a callable(unit) -> list; `error`
    is raised instead when set. Every call is recorded in `calls`.
    """

    def __init__(
        self,
        name: str,
        raws=None,
        error: Optional[Exception] = None,
        supports: Optional[Callable] = None,
        before: Optional[Callable] = None,
    ):
        self._name = name
        self._raws = raws if raws is not None else []
        self._error = error
        self._supports = supports
        self._before = before
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def supports(self, unit) -> bool:
        if self._supports is not None:
            return self._supports(unit)
        return super().supports(unit)

    def execute(self, unit, options):
        with self._lock:
            self.calls.append((getattr(unit, "path", unit), options))
        if self._before is not None:
            self._before(unit)
        if self._error is not None:
            raise self._error
        return self._raws(unit) if callable(self._raws) else list(self._raws)

    @property
    def paths(self) -> List[str]:
        return [path for path, _ in self.calls]


class StaticDiscoverer(BaseDiscoverer):
    """Discoverer double returning fixed units, or raising `error`."""

    def __init__(self, kind: str, units=None, warnings=None, error: Optional[Exception] = None):
        self.supported_kinds = (kind,)
        self._units = units or []
        self._warnings = warnings or []
        self._error = error

    def discover(self, target, limits):
        if self._error is not None:
            raise self._error
        return DiscoveryResult(units=list(self._units), warnings=list(self._warnings))


class RecordingObserver(ScanObserver):
    def __init__(self):
        self.events = []

    def phase_started(self, session, phase):
        self.events.append(("started", phase))

    def phase_finished(self, session, phase, result):
        self.events.append(("finished", phase, result.completed))

    def warning(self, session, message):
        self.events.append(("warning", message))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def scan_config():
    """ScanConfig with no delays and small budgets."""
    return ScanConfig(
        directory_delay_seconds=0,
        fetch_delay_seconds=0,
        max_units=30,
        max_depth=3,
        max_analyzed_units=20,
        max_concurrency=4,
        dependency_lookup_enabled=False,
    )


@pytest.fixture
def snippet_discoverers():
    return {"snippet": SnippetDiscoverer()}


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def make_finding():
    """Factory for canonical findings."""

    def _make(
        type="sql-injection",
        severity="high",
        category="code-security",
        message="Potential SQL injection",
        file="app.py",
        line=1,
        source="semgrep",
        verified=None,
    ):
        return Finding(
            type=type,
            severity=severity,
            category=category,
            message=message,
            recommendation="Fix it",
            source=source,
            confidence=0.9,
            location=Location(file=file, line=line) if file else None,
            verified=verified,
        )

    return _make


def text_unit(path: str, text: str, **kwargs) -> ScanUnit:
    """Unit whose content is produced by a loader, like a discovered file."""
    unit = ScanUnit(path=path, size_bytes=len(text), **kwargs)
    unit.loader = lambda: text
    return unit
