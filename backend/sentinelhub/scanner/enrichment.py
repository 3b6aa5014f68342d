# sentinelhub/scanner/enrichment.py
"""
Optional AIEnrichment phase.

An enricher receives the (not yet frozen) session after the core phases
and returns a JSON-able dict that the orchestrator stores as
`session.insights`. Enrichers must not add or change findings.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from sentinelhub.scanner.base import SEVERITY_RANK, Finding, ScanSession

logger = logging.getLogger(__name__)


class BaseEnricher(ABC):
    name: str = "base"

    @abstractmethod
    def enrich(self, session: ScanSession) -> Dict[str, Any]:
        ...


class RemediationDigestEnricher(BaseEnricher):
    """
    Prioritised remediation digest built from the findings alone.

    Findings are grouped by type; groups are ranked by their worst
    severity, then by size. The top `limit` groups become priorities.
    """

    name = "remediation-digest"

    def __init__(self, limit: int = 5):
        self.limit = limit

    def enrich(self, session: ScanSession) -> Dict[str, Any]:
        groups: "OrderedDict[str, List[Finding]]" = OrderedDict()
        for f in session.findings:
            groups.setdefault(f.type, []).append(f)

        def worst(items: List[Finding]) -> int:
            return min(SEVERITY_RANK.get(f.severity, len(SEVERITY_RANK)) for f in items)

        ranked = sorted(groups.items(), key=lambda kv: (worst(kv[1]), -len(kv[1])))
        priorities = []
        for finding_type, items in ranked[: self.limit]:
            lead = min(items, key=lambda f: SEVERITY_RANK.get(f.severity, len(SEVERITY_RANK)))
            files = sorted({f.location.file for f in items if f.location and f.location.file})
            priorities.append({
                "type": finding_type,
                "severity": lead.severity,
                "count": len(items),
                "files": files[:5],
                "action": lead.recommendation,
            })

        verified = sum(1 for f in session.findings if f.verified)
        if not session.findings:
            headline = "No security findings in this scan"
        elif priorities[0]["severity"] in ("critical", "high"):
            headline = f"Fix {priorities[0]['type']} first ({priorities[0]['count']} occurrences)"
        else:
            headline = "Only lower-severity findings; schedule them into normal maintenance"

        logger.debug(f"[{session.id}] Remediation digest with {len(priorities)} priorities")
        return {
            "enricher": self.name,
            "headline": headline,
            "priorities": priorities,
            "verifiedSecrets": verified,
        }


class ChainEnricher(BaseEnricher):
    """Runs enrichers in order and merges their insights. `enricher` lists every name."""

    name = "chain"

    def __init__(self, enrichers: List[BaseEnricher]):
        self.enrichers = list(enrichers)

    def enrich(self, session: ScanSession) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for enricher in self.enrichers:
            merged.update(enricher.enrich(session))
        merged["enricher"] = ",".join(e.name for e in self.enrichers)
        return merged


def build_enricher(config) -> Optional[BaseEnricher]:
    """Enricher for the AIEnrichment phase, or None when every toggle is off."""
    enrichers: List[BaseEnricher] = []
    if config.enrichment_enabled:
        enrichers.append(RemediationDigestEnricher())
    if config.intelligence_enabled:
        from sentinelhub.scanner.intelligence import ThreatIntelEnricher
        enrichers.append(ThreatIntelEnricher.from_config(config))
    if not enrichers:
        return None
    return enrichers[0] if len(enrichers) == 1 else ChainEnricher(enrichers)
