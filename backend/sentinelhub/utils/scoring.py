# File: sentinelhub/utils/scoring.py
# =============================================================================
# Risk Aggregator
# =============================================================================
# Pure functions over a merged Finding list. No I/O, no mutation.
#
#   assess_risk()   overall level + per-category levels (the report's
#                   riskAssessment block)
#   category_risk() the per-category rule, reusable on any finding subset
#   risk_score()    0-100 exposure score + letter grade for dashboards
#
# Levels:
#   overall:   critical if any critical
#              high     if more than 2 highs
#              medium   if more than 3 findings in total
#              low      otherwise (including no findings)
#   category:  critical if any critical
#              high     if any high
#              medium   if more than 1 finding
#              low      otherwise
# =============================================================================

from __future__ import annotations

import math
from collections import Counter, OrderedDict
from typing import Dict, Iterable, List, Sequence

from sentinelhub.scanner.base import SEVERITIES, Finding

DEFAULT_CATEGORIES = ("access-control", "encryption", "secrets", "logging")


def severity_counts(findings: Iterable[Finding]) -> Dict[str, int]:
    counts = Counter(f.severity for f in findings)
    return {s: counts.get(s, 0) for s in SEVERITIES}


def overall_risk(findings: Sequence[Finding]) -> str:
    counts = severity_counts(findings)
    if counts["critical"] > 0:
        return "critical"
    if counts["high"] > 2:
        return "high"
    if len(findings) > 3:
        return "medium"
    return "low"


def category_risk(findings: Sequence[Finding]) -> str:
    counts = severity_counts(findings)
    if counts["critical"] > 0:
        return "critical"
    if counts["high"] > 0:
        return "high"
    if len(findings) > 1:
        return "medium"
    return "low"


def assess_risk(findings: Sequence[Finding]) -> Dict[str, object]:
    """
    Overall and per-category risk for a finding set.

    Every default category is always present; any other category that
    occurs in the findings is added after them in first-seen order.
    """
    findings = list(findings)
    by_category: "OrderedDict[str, List[Finding]]" = OrderedDict(
        (c, []) for c in DEFAULT_CATEGORIES
    )
    for f in findings:
        by_category.setdefault(f.category, []).append(f)

    return {
        "overall": overall_risk(findings),
        "categories": {name: category_risk(items) for name, items in by_category.items()},
        "counts": severity_counts(findings),
    }


# =============================================================================
# Exposure score
# =============================================================================
# Each severity tier is capped so no single tier dominates:
#   critical  15 per finding,  cap 40
#   high       4 per finding,  cap 30
#   medium    5 × sqrt(n),     cap 20
#   low       2 × sqrt(n),     cap 10
#   info      0
# =============================================================================

def calc_exposure_score(critical: int = 0, high: int = 0, medium: int = 0, low: int = 0) -> float:
    tiers = (
        min(40.0, critical * 15.0),
        min(30.0, high * 4.0),
        min(20.0, math.sqrt(max(medium, 0)) * 5.0),
        min(10.0, math.sqrt(max(low, 0)) * 2.0),
    )
    return round(min(100.0, sum(tiers)), 1)


def exposure_grade(score: float) -> tuple:
    """(grade, description) for an exposure score."""
    if score < 15:
        return "A", "Minimal exposure"
    if score < 30:
        return "B", "Low-severity findings only"
    if score < 50:
        return "C", "Some concerning findings"
    if score < 70:
        return "D", "High-severity findings present"
    return "F", "Immediate remediation required"


def risk_score(findings: Sequence[Finding]) -> Dict[str, object]:
    counts = severity_counts(findings)
    score = calc_exposure_score(
        critical=counts["critical"],
        high=counts["high"],
        medium=counts["medium"],
        low=counts["low"],
    )
    grade, description = exposure_grade(score)
    return {"score": score, "grade": grade, "description": description}
