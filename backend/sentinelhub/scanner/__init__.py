# sentinelhub/scanner/__init__.py
"""
SentinelHub scan core.

Usage:
    from sentinelhub.scanner import ScanOrchestrator, build_report

    orchestrator = ScanOrchestrator(config)
    session = orchestrator.scan_snippet(code, "python", deadline=60)
    report = build_report(session)

Architecture:
    Orchestrator
    ├── Discoverers (enumerate units)
    │   ├── SnippetDiscoverer   pasted source, one unit
    │   ├── GitHubDiscoverer    repository contents API
    │   └── S3Discoverer        bucket prefixes
    │
    ├── Adapters (run tools, return raw records)
    │   ├── SemgrepAdapter, PatternAdapter        StaticAnalysis
    │   ├── TruffleHogAdapter, GitleaksAdapter    SecretDetection
    │   ├── GitHubAdvisoryAdapter                 DependencyAndCompliance
    │   ├── ContainerConfigAdapter                DependencyAndCompliance
    │   └── S3ConfigAdapter                       DependencyAndCompliance
    │
    ├── normalize()   raw record → Finding
    ├── Enrichers (optional AIEnrichment, see build_enricher)
    │   ├── RemediationDigestEnricher   remediation digest
    │   └── ThreatIntelEnricher         breach, advisory and IP reputation lookups
    │
    └── build_report  risk assessment + compliance report
"""

from sentinelhub.scanner.orchestrator import ScanOrchestrator
from sentinelhub.scanner.report import build_report

__all__ = ["ScanOrchestrator", "build_report"]
