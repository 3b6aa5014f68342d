# sentinelhub/scanner/orchestrator.py
"""
Scan Orchestrator: drives discoverers and tool adapters through a fixed
sequence of phases and assembles one ScanSession.

    1. Discovery                 enumerate units, load the analysed slice
    2. StaticAnalysis            static_tools over non-dependency units
    3. SecretDetection           secret_tools over every analysed unit
    4. DependencyAndCompliance   advisories for manifests, container checks,
                                 bucket configuration for bucket targets
    5. AIEnrichment              only when an enricher is configured

Usage:
    from sentinelhub.scanner import ScanOrchestrator

    orchestrator = ScanOrchestrator(config)
    session = orchestrator.scan_repository("octocat", "hello-world", deadline=120)
    report = build_report(session)

Phases run one after another. Inside a phase, units fan out over a
thread pool of at most `max_concurrency` workers and results are merged
back in unit order. A phase that fails is recorded on the session and the
next phase still runs. None of the scan entry points raise on adapter or
discovery failure.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from sentinelhub.config import ScanConfig
from sentinelhub.exceptions import (
    AdapterError,
    DeadlineExceeded,
    DiscoveryError,
    DiscoveryRateLimited,
    SentinelError,
    ToolParseError,
)
from sentinelhub.scanner.base import (
    CORE_PHASES,
    PHASE_DEPENDENCY,
    PHASE_DISCOVERY,
    PHASE_ENRICHMENT,
    PHASE_SECRETS,
    PHASE_STATIC,
    AdapterOptions,
    BaseAdapter,
    Deadline,
    Finding,
    LoggingObserver,
    PhaseResult,
    ScanObserver,
    ScanSession,
    ScanTarget,
    ScanUnit,
    now_utc,
)
from sentinelhub.scanner.normalizer import normalize
from sentinelhub.scanner.report import summarize

logger = logging.getLogger(__name__)

DEPENDENCY_TOOLS = ("github-advisory", "container-config")
BUCKET_TOOL = "s3-config"


@dataclass
class _ScanRun:
    """Mutable working state of one scan, private to the orchestrator."""
    session: ScanSession
    deadline: Deadline
    units: List[ScanUnit] = field(default_factory=list)
    analysed: List[ScanUnit] = field(default_factory=list)

    @property
    def target(self) -> ScanTarget:
        return self.session.target

    @property
    def is_snippet(self) -> bool:
        return self.session.target.kind == "snippet"


def _dedupe(messages: Sequence[str]) -> List[str]:
    seen = []
    for m in messages:
        if m not in seen:
            seen.append(m)
    return seen


class ScanOrchestrator:
    """
    Runs the scan pipeline for one target at a time.

    Args:
        config:      ScanConfig. Defaults are used when omitted.
        adapters:    name → BaseAdapter. Defaults to build_adapters(config).
        discoverers: target kind → BaseDiscoverer. Defaults to build_discoverers(config).
        observer:    ScanObserver notified of phase outcomes.
        enricher:    Optional BaseEnricher. Adds the AIEnrichment phase.
        clock:       Monotonic clock for deadlines and durationMs.
    """

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        adapters: Optional[Dict[str, BaseAdapter]] = None,
        discoverers: Optional[Dict[str, Any]] = None,
        observer: Optional[ScanObserver] = None,
        enricher=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ScanConfig()
        if adapters is None:
            from sentinelhub.scanner.adapters import build_adapters
            adapters = build_adapters(self.config)
        if discoverers is None:
            from sentinelhub.discovery import build_discoverers
            discoverers = build_discoverers(self.config)
        self.adapters = adapters
        self.discoverers = discoverers
        self.observer = observer or LoggingObserver()
        self.enricher = enricher
        self._clock = clock

    # -------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------

    def scan_snippet(self, code: str, language: str = "javascript", deadline=None) -> ScanSession:
        return self.scan(ScanTarget.snippet(code, language), deadline=deadline)

    def scan_repository(self, owner: str, name: str, deadline=None) -> ScanSession:
        return self.scan(ScanTarget.repository(owner, name), deadline=deadline)

    def scan_bucket(self, name: str, deadline=None) -> ScanSession:
        return self.scan(ScanTarget.bucket(name), deadline=deadline)

    def scan(self, target: ScanTarget, deadline: Union[None, float, Deadline] = None) -> ScanSession:
        """
        Run every phase against `target` and return the frozen session.

        `deadline` is seconds from now or a Deadline. When it expires the
        current phase and every phase not yet entered are marked
        "deadline exceeded" and the findings gathered so far are kept.
        """
        if not isinstance(deadline, Deadline):
            deadline = Deadline(deadline, clock=self._clock)

        phases: List[Tuple[str, Callable[[_ScanRun], List[str]]]] = [
            (PHASE_DISCOVERY, self._discovery_phase),
            (PHASE_STATIC, self._static_phase),
            (PHASE_SECRETS, self._secret_phase),
            (PHASE_DEPENDENCY, self._dependency_phase),
        ]
        if self.enricher is not None:
            phases.append((PHASE_ENRICHMENT, self._enrichment_phase))

        session = ScanSession(target=target, phase_names=tuple(name for name, _ in phases))
        run = _ScanRun(session=session, deadline=deadline)
        start = self._clock()
        logger.info(f"[{session.id}] Scan started for {target.label}")

        try:
            for index, (name, phase_fn) in enumerate(phases):
                if deadline.expired:
                    for remaining_name, _ in phases[index:]:
                        self._record(run, remaining_name, PhaseResult(False, DeadlineExceeded().message))
                    break
                self._run_phase(run, name, phase_fn)
        finally:
            for unit in run.units:
                unit.release()
            session.summary = summarize(session.findings)
            session.metrics["durationMs"] = int(round((self._clock() - start) * 1000))
            session.metrics["unitsScanned"] = len(run.analysed)
            session.metrics["unitsSkipped"] = len(run.units) - len(run.analysed)
            session.finished_at = now_utc()
            session.freeze()

        logger.info(
            f"[{session.id}] Scan finished for {target.label}: "
            f"{session.summary.get('total', 0)} findings in {session.metrics['durationMs']}ms"
        )
        return session

    # -------------------------------------------------------------------
    # Phase plumbing
    # -------------------------------------------------------------------

    def _run_phase(self, run: _ScanRun, name: str, phase_fn: Callable[[_ScanRun], List[str]]) -> None:
        self.observer.phase_started(run.session, name)
        try:
            errors = phase_fn(run) or []
        except SentinelError as e:
            result = PhaseResult(False, e.message)
        except Exception as e:
            logger.exception(f"[{run.session.id}] {name} crashed")
            result = PhaseResult(False, f"{type(e).__name__}: {e}")
        else:
            errors = _dedupe(errors)
            result = PhaseResult(not errors, "; ".join(errors) or None)
        self._record(run, name, result)

    def _record(self, run: _ScanRun, name: str, result: PhaseResult) -> None:
        run.session.mark_phase(name, result.completed, result.error)
        self.observer.phase_finished(run.session, name, result)

    def _warn(self, run: _ScanRun, message: str) -> None:
        run.session.warn(message)
        self.observer.warning(run.session, message)

    def _timeout(self, run: _ScanRun, configured: float) -> float:
        timeout = self.config.bounded_timeout(configured)
        remaining = run.deadline.remaining()
        if remaining is not None:
            timeout = max(0.001, min(timeout, remaining))
        return timeout

    def _call(self, run: _ScanRun, fn: Callable, *args):
        """Run one blocking call bounded by the deadline."""
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(fn, *args)
        try:
            return future.result(timeout=run.deadline.remaining())
        except FuturesTimeout:
            raise DeadlineExceeded()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _fan_out(
        self,
        run: _ScanRun,
        items: Sequence[Any],
        task: Callable[[Any], Any],
        merge: Callable[[Any, Any], None],
    ) -> None:
        """
        Run `task` over `items` on the pool and call `merge(item, value)`
        in item order. Raises DeadlineExceeded after merging whatever had
        finished in order when the deadline expires.
        """
        if not items:
            return
        executor = ThreadPoolExecutor(max_workers=max(1, min(self.config.max_concurrency, len(items))))
        futures = [executor.submit(task, item) for item in items]
        try:
            for item, future in zip(items, futures):
                try:
                    value = future.result(timeout=run.deadline.remaining())
                except FuturesTimeout:
                    raise DeadlineExceeded()
                merge(item, value)
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

    def _run_adapters(
        self, unit: Any, tool_names: Sequence[str], options: AdapterOptions,
    ) -> Tuple[List[Finding], List[str]]:
        """All requested adapters over one unit, in order. Adapter failures become error strings."""
        findings: List[Finding] = []
        errors: List[str] = []
        for tool in tool_names:
            adapter = self.adapters.get(tool)
            if adapter is None or not adapter.supports(unit):
                continue
            try:
                raws = adapter.run(unit, options)
            except AdapterError as e:
                errors.append(e.message)
                continue
            except Exception as e:
                # Adapter bug; reported like a tool failure
                logger.exception(f"Adapter '{tool}' crashed on {getattr(unit, 'path', unit)}")
                errors.append(f"{tool}: {type(e).__name__}: {e}")
                continue
            for raw in raws:
                try:
                    findings.append(normalize(raw, adapter.name))
                except ToolParseError as e:
                    errors.append(e.message)
                except Exception as e:
                    logger.exception(f"Normalizing {tool} output crashed")
                    errors.append(f"{tool}: {type(e).__name__}: {e}")
        return findings, errors

    def _adapter_phase(
        self, run: _ScanRun, units: Sequence[ScanUnit], tools: Sequence[str], options_for: Callable[[ScanUnit], AdapterOptions],
    ) -> List[str]:
        errors: List[str] = []

        def task(unit: ScanUnit):
            return self._run_adapters(unit, tools, options_for(unit))

        def merge(unit: ScanUnit, value):
            findings, unit_errors = value
            run.session.add_findings(findings)
            errors.extend(unit_errors)

        self._fan_out(run, units, task, merge)
        return errors

    # -------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------

    def _discovery_phase(self, run: _ScanRun) -> List[str]:
        target = run.target
        discoverer = self.discoverers.get(target.kind)
        if discoverer is None:
            raise DiscoveryError(f"No discoverer for target kind '{target.kind}'")

        result = self._call(run, discoverer.discover, target, self.config.discovery_limits)
        run.units = list(result.units)
        for message in result.warnings:
            self._warn(run, message)
        if result.insights:
            run.session.metadata["repository"] = dict(result.insights)
        run.session.metadata["discovery"] = {
            "unitsDiscovered": len(run.units),
            "truncated": result.truncated,
            "rateLimited": result.rate_limited,
        }

        candidates = [u for u in run.units if u.has_content][: self.config.max_analyzed_units]

        def load(unit: ScanUnit) -> Optional[str]:
            try:
                unit.load()
            except DiscoveryRateLimited as e:
                return e.message
            except DiscoveryError as e:
                return f"Could not load {unit.path}: {e.message}"
            return None

        def merge(unit: ScanUnit, warning: Optional[str]):
            if warning:
                unit.release()
                self._warn(run, warning)
            elif unit.is_loaded:
                run.analysed.append(unit)

        self._fan_out(run, candidates, load, merge)
        logger.info(
            f"[{run.session.id}] Discovered {len(run.units)} units, analysing {len(run.analysed)}"
        )
        return []

    def _static_phase(self, run: _ScanRun) -> List[str]:
        units = [u for u in run.analysed if not u.is_dependency_file]
        configured = (
            self.config.static_snippet_timeout if run.is_snippet
            else self.config.static_repository_timeout
        )
        ruleset = "fast" if run.is_snippet else "full"

        def options_for(unit: ScanUnit) -> AdapterOptions:
            return AdapterOptions(
                ruleset=ruleset,
                timeout=self._timeout(run, configured),
                language=unit.language or run.target.language,
            )

        return self._adapter_phase(run, units, self.config.static_tools, options_for)

    def _secret_phase(self, run: _ScanRun) -> List[str]:
        configured = (
            self.config.secret_snippet_timeout if run.is_snippet
            else self.config.secret_repository_timeout
        )

        def options_for(unit: ScanUnit) -> AdapterOptions:
            return AdapterOptions(
                ruleset="secrets",
                timeout=self._timeout(run, configured),
                verify=self.config.verify_secrets,
                language=unit.language,
            )

        return self._adapter_phase(run, run.analysed, self.config.secret_tools, options_for)

    def _dependency_phase(self, run: _ScanRun) -> List[str]:
        tools = [
            t for t in DEPENDENCY_TOOLS
            if t != "github-advisory" or self.config.dependency_lookup_enabled
        ]

        def options_for(unit: ScanUnit) -> AdapterOptions:
            return AdapterOptions(
                ruleset="full",
                timeout=self._timeout(run, self.config.http_timeout_seconds),
                language=unit.language,
            )

        errors = self._adapter_phase(run, run.analysed, tools, options_for)

        if run.target.kind == "bucket":
            options = AdapterOptions(ruleset="full", timeout=self._timeout(run, self.config.http_timeout_seconds))
            findings, bucket_errors = self._call(run, self._run_adapters, run.target, (BUCKET_TOOL,), options)
            run.session.add_findings(findings)
            errors.extend(bucket_errors)
        return errors

    def _enrichment_phase(self, run: _ScanRun) -> List[str]:
        insights = self._call(run, self.enricher.enrich, run.session)
        run.session.insights = insights
        return []
