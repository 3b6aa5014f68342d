# sentinelhub/scanner/base.py
"""
Core types of the scan pipeline.

    ScanTarget ─▶ Discoverer ─▶ [ScanUnit] ─▶ Adapter.run ─▶ [RawFinding]
                                                 │
                                  normalize() ◀──┘ ─▶ [Finding] ─▶ ScanSession

BaseAdapter:  one external capability (semgrep, trufflehog, the advisory
              API, the S3 API). Returns RawFinding variants in the tool's
              own shape. Tool failures come out as AdapterError subclasses.

normalize():  owns every severity, category and confidence decision.
              It reads raw records only and never invokes a tool.

ScanSession is mutable while the orchestrator runs and frozen afterwards.
"""

from __future__ import annotations

import json
import logging
import subprocess
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sentinelhub.exceptions import (
    AdapterError,
    ToolParseError,
    ToolTimeout,
    ToolUnavailable,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers / constants
# ---------------------------------------------------------------------------

def now_utc() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


SEVERITIES = ("critical", "high", "medium", "low", "info")
SEVERITY_RANK = {s: i for i, s in enumerate(SEVERITIES)}

PHASE_DISCOVERY = "Discovery"
PHASE_STATIC = "StaticAnalysis"
PHASE_SECRETS = "SecretDetection"
PHASE_DEPENDENCY = "DependencyAndCompliance"
PHASE_ENRICHMENT = "AIEnrichment"

CORE_PHASES = (PHASE_DISCOVERY, PHASE_STATIC, PHASE_SECRETS, PHASE_DEPENDENCY)


# ---------------------------------------------------------------------------
# Data structures passed through the pipeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Location:
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"file": self.file, "line": self.line, "column": self.column}


@dataclass(frozen=True)
class Finding:
    """
    A single normalized security observation.

    Produced only by the normalizer. Frozen: corrections supersede the
    whole session, they never edit a Finding in place.

    Fields:
        type:           Taxonomy key, e.g. "sql-injection", "aws-access-key".
        severity:       One of: critical, high, medium, low, info.
        category:       Grouping: secrets, access-control, encryption, ...
        message:        What was found.
        recommendation: How to fix it.
        source:         Adapter that produced it ("semgrep", "trufflehog").
        confidence:     0.0 to 1.0, computed by the normalizer.
        location:       File/line/column when the tool reports one.
        verified:       Secrets only. True = credential confirmed live.
        cwe / owasp:    Extracted identifiers, None when the tool gave none.
        rule_id:        The tool's own rule/detector identifier.
        redacted_value: Secrets only. Never the raw value.
    """
    type: str
    severity: str
    category: str
    message: str
    recommendation: str
    source: str
    confidence: float
    location: Optional[Location] = None
    verified: Optional[bool] = None
    cwe: Optional[str] = None
    owasp: Optional[str] = None
    rule_id: Optional[str] = None
    redacted_value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "category": self.category,
            "message": self.message,
            "recommendation": self.recommendation,
            "source": self.source,
            "confidence": self.confidence,
            "location": self.location.to_dict() if self.location else None,
            "verified": self.verified,
            "cwe": self.cwe,
            "owasp": self.owasp,
            "ruleId": self.rule_id,
            "redactedValue": self.redacted_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        loc = data.get("location")
        return cls(
            type=data.get("type") or "unknown",
            severity=data.get("severity") or "medium",
            category=data.get("category") or "security",
            message=data.get("message") or "",
            recommendation=data.get("recommendation") or "",
            source=data.get("source") or "unknown",
            confidence=float(data.get("confidence") or 0.0),
            location=Location(**loc) if loc else None,
            verified=data.get("verified"),
            cwe=data.get("cwe"),
            owasp=data.get("owasp"),
            rule_id=data.get("ruleId"),
            redacted_value=data.get("redactedValue"),
        )


@dataclass
class ScanUnit:
    """
    One file or object eligible for scanning.

    Content is fetched lazily through `loader` and dropped with release()
    once the scan pass is over. Units over the size limit have no loader:
    they are metadata-only and `has_content` is False.
    """
    path: str
    size_bytes: int = 0
    is_critical_by_name: bool = False
    is_dependency_file: bool = False
    language: Optional[str] = None
    loader: Optional[Callable[[], Optional[str]]] = field(default=None, repr=False)
    _content: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_text(cls, path: str, text: str, language: Optional[str] = None, **kwargs) -> "ScanUnit":
        return cls(
            path=path,
            size_bytes=len(text.encode("utf-8")),
            language=language,
            _content=text,
            **kwargs,
        )

    @property
    def has_content(self) -> bool:
        return self._content is not None or self.loader is not None

    @property
    def is_loaded(self) -> bool:
        return self._content is not None

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def load(self) -> Optional[str]:
        """Fetch content (once). Returns None for metadata-only units."""
        if self._content is None and self.loader is not None:
            self._content = self.loader()
            if self._content is None:
                self.loader = None
        return self._content

    @property
    def content(self) -> Optional[str]:
        return self._content

    def release(self) -> None:
        self._content = None
        self.loader = None


@dataclass(frozen=True)
class ScanTarget:
    """
    Discriminated union of scan targets:
        {kind: repository, owner, name} | {kind: bucket, name} | {kind: snippet, language}
    """
    kind: str
    name: Optional[str] = None
    owner: Optional[str] = None
    language: Optional[str] = None
    code: Optional[str] = field(default=None, repr=False, compare=False)

    @classmethod
    def repository(cls, owner: str, name: str) -> "ScanTarget":
        return cls(kind="repository", owner=owner, name=name)

    @classmethod
    def bucket(cls, name: str) -> "ScanTarget":
        return cls(kind="bucket", name=name)

    @classmethod
    def snippet(cls, code: str, language: str = "javascript") -> "ScanTarget":
        return cls(kind="snippet", language=(language or "javascript").lower(), code=code)

    @property
    def label(self) -> str:
        if self.kind == "repository":
            return f"{self.owner}/{self.name}"
        if self.kind == "bucket":
            return f"s3://{self.name}"
        return f"snippet ({self.language})"

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == "repository":
            return {"kind": self.kind, "owner": self.owner, "name": self.name}
        if self.kind == "bucket":
            return {"kind": self.kind, "name": self.name}
        return {"kind": self.kind, "language": self.language}


@dataclass
class PhaseResult:
    completed: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"completed": self.completed, "error": self.error}


@dataclass
class ScanSession:
    """
    The record of one orchestrated scan run.

    Created by the orchestrator with every phase `completed=False`. Each
    phase mutates only its own entry in `phases` and appends to `findings`.
    freeze() is called when the orchestrator returns; after that the
    session is read-only.
    """
    target: ScanTarget
    phase_names: Sequence[str] = CORE_PHASES
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    phases: Dict[str, PhaseResult] = field(default_factory=dict)
    findings: List[Finding] = field(default_factory=list)
    metrics: Dict[str, int] = field(
        default_factory=lambda: {"durationMs": 0, "unitsScanned": 0, "unitsSkipped": 0}
    )
    summary: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    insights: Optional[Dict[str, Any]] = None
    started_at: datetime = field(default_factory=now_utc)
    finished_at: Optional[datetime] = None
    _frozen: bool = field(default=False, repr=False)

    def __post_init__(self):
        if not self.phases:
            self.phases = {name: PhaseResult() for name in self.phase_names}

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_open(self):
        if self._frozen:
            raise RuntimeError(f"Scan session {self.id} is complete and read-only")

    def add_findings(self, findings: Sequence[Finding]) -> None:
        self._check_open()
        self.findings.extend(findings)

    def mark_phase(self, phase: str, completed: bool, error: Optional[str] = None) -> None:
        self._check_open()
        self.phases[phase] = PhaseResult(completed=completed, error=error)

    def warn(self, message: str) -> None:
        self._check_open()
        self.warnings.append(message)

    def freeze(self) -> None:
        self._frozen = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "target": self.target.to_dict(),
            "phases": {name: result.to_dict() for name, result in self.phases.items()},
            "metrics": dict(self.metrics),
            "summary": dict(self.summary),
            "warnings": list(self.warnings),
            "metadata": dict(self.metadata),
            "insights": self.insights,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
        }


class Deadline:
    """Caller-supplied wall-clock budget. `None` seconds means unbounded."""

    def __init__(self, seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + float(seconds)

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at


# ---------------------------------------------------------------------------
# Raw tool output: one variant per adapter, read only by the normalizer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawFinding:
    """Marker base. Each adapter returns its own subclass."""


@dataclass(frozen=True)
class SemgrepRaw(RawFinding):
    check_id: str
    severity: str
    message: str
    path: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class TruffleHogRaw(RawFinding):
    detector_name: str
    raw: str
    verified: bool = False
    verification_error: Optional[str] = None
    file: Optional[str] = None
    line: Optional[int] = None
    decoder_name: Optional[str] = None


@dataclass(frozen=True)
class GitleaksRaw(RawFinding):
    rule_id: str
    secret: str
    description: str = ""
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass(frozen=True)
class PatternRaw(RawFinding):
    kind: str                           # "secret" or "vulnerability"
    rule_id: str
    name: str
    severity: str
    value: str
    line_text: str = ""
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    base_confidence: float = 0.7
    requires_entropy: bool = False
    high_specificity: bool = False
    category: Optional[str] = None
    message: Optional[str] = None
    recommendation: Optional[str] = None
    cwe: Optional[str] = None
    owasp: Optional[str] = None


@dataclass(frozen=True)
class AdvisoryRaw(RawFinding):
    ghsa_id: str
    package: str
    version: str
    ecosystem: str
    severity: str
    summary: str
    cve_id: Optional[str] = None
    cvss_score: Optional[float] = None
    cwe_ids: tuple = ()
    url: Optional[str] = None
    file: Optional[str] = None
    patched_version: Optional[str] = None


@dataclass(frozen=True)
class BucketConfigRaw(RawFinding):
    bucket: str
    check: str                          # "encryption-disabled", "public-read-access", ...
    severity: str
    category: str
    message: str
    recommendation: str
    origin: str = "config"              # config | content | filename
    key: Optional[str] = None
    value: Optional[str] = None


@dataclass(frozen=True)
class ContainerConfigRaw(RawFinding):
    check: str                          # "privileged-container", "host-network", ...
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    service: Optional[str] = None
    image: Optional[str] = None
    privileged: bool = False


# ---------------------------------------------------------------------------
# Adapter base class
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AdapterOptions:
    """
    Per-invocation adapter input.

    ruleset:  "fast" (snippets) | "full" (repositories) | "secrets"
    timeout:  hard bound for this single invocation, seconds
    verify:   secret adapters try to confirm credentials are live
    language: source language hint for static analysis
    """
    ruleset: str = "fast"
    timeout: float = 25.0
    verify: bool = False
    language: Optional[str] = None


class BaseAdapter(ABC):
    """
    Abstract base for tool adapters.

    To create a new adapter:
        1. Subclass BaseAdapter
        2. Set the `name` property (e.g., "semgrep", "trufflehog")
        3. Implement `execute(unit, options) -> List[RawFinding]`
        4. Optionally override `supports(unit)` to restrict which units it takes

    The base class handles automatically:
        - Timing (logged per invocation)
        - Error translation: anything the tool throws becomes
          ToolUnavailable / ToolTimeout / ToolParseError
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique adapter identifier. Also the normalizer's source key."""
        ...

    def supports(self, unit: ScanUnit) -> bool:
        return unit.has_content

    def run(self, unit: Any, options: AdapterOptions) -> List[RawFinding]:
        """
        Execute the adapter with timing and typed error translation.

        DO NOT OVERRIDE THIS METHOD. Override `execute()` instead.
        """
        start = time.monotonic()
        label = getattr(unit, "path", None) or getattr(unit, "label", None) or str(unit)
        try:
            raws = list(self.execute(unit, options))
        except AdapterError:
            raise
        except subprocess.TimeoutExpired:
            raise ToolTimeout(self.name, options.timeout)
        except (FileNotFoundError, PermissionError) as e:
            raise ToolUnavailable(self.name, f"{type(e).__name__}: {e}")
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ToolParseError(self.name, f"unreadable output: {e}")
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
            raise ToolParseError(self.name, f"{type(e).__name__}: {e}")
        except OSError as e:
            raise ToolUnavailable(self.name, f"{type(e).__name__}: {e}")
        finally:
            logger.debug(
                f"Adapter '{self.name}' on {label} took {time.monotonic() - start:.2f}s"
            )
        return raws

    @abstractmethod
    def execute(self, unit: Any, options: AdapterOptions) -> List[RawFinding]:
        """
        Perform the actual tool invocation. Override this in subclasses.

        Return tool-shaped RawFindings. Raise AdapterError subclasses for
        known failure modes; anything else is translated by run().
        """
        ...


# ---------------------------------------------------------------------------
# Observer: injectable hook for phase outcomes
# ---------------------------------------------------------------------------

class ScanObserver:
    """No-op observer. Subclass and pass to the orchestrator to watch a scan."""

    def phase_started(self, session: ScanSession, phase: str) -> None:
        pass

    def phase_finished(self, session: ScanSession, phase: str, result: PhaseResult) -> None:
        pass

    def warning(self, session: ScanSession, message: str) -> None:
        pass


class LoggingObserver(ScanObserver):
    """Default observer: writes phase outcomes to the module logger."""

    def phase_started(self, session: ScanSession, phase: str) -> None:
        logger.info(f"[{session.id}] {phase} started for {session.target.label}")

    def phase_finished(self, session: ScanSession, phase: str, result: PhaseResult) -> None:
        if result.completed:
            logger.info(f"[{session.id}] {phase} completed")
        else:
            logger.warning(f"[{session.id}] {phase} failed: {result.error}")

    def warning(self, session: ScanSession, message: str) -> None:
        logger.warning(f"[{session.id}] {message}")
