# sentinelhub/discovery/base.py
"""
Base class for all resource discoverers.

A discoverer walks one kind of remote tree (GitHub contents, S3 prefixes)
depth-first and returns ScanUnits. Discovery *stops*, it does not fail,
when the unit budget is spent or the depth limit is reached, and a
rate-limited branch is abandoned with a soft warning while sibling
branches continue.

Every recursive call threads (depth, remaining) and asks should_descend()
before doing any remote work.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sentinelhub.config import DiscoveryLimits
from sentinelhub.scanner.base import ScanTarget, ScanUnit

logger = logging.getLogger(__name__)

SNIPPET_EXTENSIONS = {
    "javascript": ".js",
    "typescript": ".ts",
    "python": ".py",
    "java": ".java",
    "go": ".go",
    "ruby": ".rb",
    "php": ".php",
}


def should_descend(depth: int, remaining: int, limits: DiscoveryLimits) -> bool:
    """The one place that decides whether a branch is walked."""
    return depth <= limits.max_depth and remaining > 0


@dataclass
class DiscoveryResult:
    """
    Output of one discover() call.

    Fields:
        units:        Discovered units, in traversal order, len <= max_units.
        warnings:     Soft warnings (rate-limited or unreadable branches).
        truncated:    True when the unit budget cut the listing short.
        rate_limited: True when at least one branch was rate-limited.
        insights:     Optional target metadata (repository info).
    """
    units: List[ScanUnit] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    truncated: bool = False
    rate_limited: bool = False
    insights: Optional[Dict[str, Any]] = None


class RequestThrottle:
    """
    Fixed minimum spacing between remote requests.

    Shared by every caller that fetches through one discoverer, so the
    spacing also holds when unit contents are loaded from worker threads.
    """

    def __init__(
        self,
        delay: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.delay = max(0.0, float(delay))
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._last: Optional[float] = None

    def wait(self) -> None:
        if self.delay <= 0:
            return
        with self._lock:
            now = self._clock()
            if self._last is not None:
                gap = self.delay - (now - self._last)
                if gap > 0:
                    self._sleep(gap)
                    now = self._clock()
            self._last = now


class BaseDiscoverer(ABC):
    """
    Abstract base class for discoverers.

    To add a new remote source:
    1. Create a new file in sentinelhub/discovery/
    2. Subclass BaseDiscoverer
    3. Implement discover() and set `name` / `supported_kinds`
    4. Register it in sentinelhub/discovery/__init__.py ALL_DISCOVERERS
    """

    name: str = "base"
    supported_kinds: tuple = ()

    def supports(self, target: ScanTarget) -> bool:
        return target.kind in self.supported_kinds

    @abstractmethod
    def discover(self, target: ScanTarget, limits: DiscoveryLimits) -> DiscoveryResult:
        """Enumerate scannable units under the target."""
        pass


class SnippetDiscoverer(BaseDiscoverer):
    """Turns pasted source into a single in-memory unit."""

    name = "snippet"
    supported_kinds = ("snippet",)

    def discover(self, target: ScanTarget, limits: DiscoveryLimits) -> DiscoveryResult:
        code = target.code or ""
        if not code.strip():
            raise ValueError("snippet is empty")
        language = target.language or "javascript"
        path = f"snippet{SNIPPET_EXTENSIONS.get(language, '.txt')}"
        unit = ScanUnit.from_text(path, code, language=language)
        if unit.size_bytes > limits.max_unit_size_bytes:
            unit = ScanUnit(path=path, size_bytes=unit.size_bytes, language=language)
            return DiscoveryResult(units=[unit], warnings=[f"snippet exceeds {limits.max_unit_size_bytes} bytes"])
        return DiscoveryResult(units=[unit])
