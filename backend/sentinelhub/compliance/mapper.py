# sentinelhub/compliance/mapper.py
"""
Compliance Mapper: scores a finding set against OWASP Top 10 (2021),
NIST CSF and ISO 27001 Annex A.

Every function here is pure. The findings are read, never modified, and
the same input always gives the same report.

    framework score = clamp(100 − Σ weight(severity of each hit), 0, 100)
    overall         = round(0.4·owasp + 0.3·nist + 0.3·iso27001)

A "hit" is one (finding, control) pair: a finding counts at most once per
control no matter how many of that control's keywords it contains, and
may hit several controls.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Sequence

from sentinelhub.compliance.frameworks import (
    FRAMEWORK_BLEND,
    GRADE_STEPS,
    ISO_27001,
    ISO_DEFAULT_WEIGHT,
    ISO_WEIGHTS,
    NIST_CSF,
    NIST_DEFAULT_WEIGHT,
    NIST_WEIGHTS,
    OWASP_DEFAULT_WEIGHT,
    OWASP_TOP_10,
    OWASP_WEIGHTS,
    Control,
)
from sentinelhub.scanner.base import Finding

MAX_LISTED_VIOLATIONS = 10
COMPLIANT_THRESHOLD = 80
PARTIAL_THRESHOLD = 60


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_score(value: float) -> int:
    return round_half_up(max(0.0, min(100.0, value)))


def _finding_text(finding: Finding) -> str:
    return f"{finding.type or ''} {finding.message or ''}".lower()


def _score_framework(
    findings: Sequence[Finding],
    controls: Mapping[str, Control],
    weights: Mapping[str, float],
    default_weight: float,
) -> Dict[str, Any]:
    coverage = {
        control: {"description": description, "hits": 0}
        for control, (description, _) in controls.items()
    }
    violations: List[Dict[str, Any]] = []
    deductions = 0.0

    for finding in findings:
        text = _finding_text(finding)
        for control, (description, keywords) in controls.items():
            if not any(k in text for k in keywords):
                continue
            coverage[control]["hits"] += 1
            deductions += weights.get(finding.severity, default_weight)
            violations.append({
                "control": control,
                "description": description,
                "finding": finding.message or finding.type,
                "type": finding.type,
                "severity": finding.severity,
                "file": finding.location.file if finding.location else None,
                "line": finding.location.line if finding.location else None,
            })

    return {
        "score": _clamp_score(100.0 - deductions),
        "violations": violations[:MAX_LISTED_VIOLATIONS],
        "coverage": coverage,
        "totalViolations": len(violations),
        "controlsAffected": sum(1 for c in coverage.values() if c["hits"] > 0),
    }


def score_owasp(findings: Sequence[Finding]) -> Dict[str, Any]:
    return _score_framework(findings, OWASP_TOP_10, OWASP_WEIGHTS, OWASP_DEFAULT_WEIGHT)


def score_nist(findings: Sequence[Finding]) -> Dict[str, Any]:
    return _score_framework(findings, NIST_CSF, NIST_WEIGHTS, NIST_DEFAULT_WEIGHT)


def score_iso27001(findings: Sequence[Finding]) -> Dict[str, Any]:
    return _score_framework(findings, ISO_27001, ISO_WEIGHTS, ISO_DEFAULT_WEIGHT)


def compliance_grade(score: float) -> str:
    for threshold, grade in GRADE_STEPS:
        if score >= threshold:
            return grade
    return "F"


def compliance_status(score: float) -> str:
    if score >= COMPLIANT_THRESHOLD:
        return "compliant"
    if score >= PARTIAL_THRESHOLD:
        return "partial"
    return "non-compliant"


# ---------------------------------------------------------------------------
# Report helpers
# ---------------------------------------------------------------------------

_FRAMEWORK_LABELS = {"owasp": "OWASP Top 10", "nist": "NIST CSF", "iso27001": "ISO 27001"}


def _recommendations(results: Mapping[str, Dict[str, Any]]) -> List[Dict[str, str]]:
    recs: List[Dict[str, str]] = []
    owasp, nist, iso = results["owasp"], results["nist"], results["iso27001"]
    if owasp["score"] < COMPLIANT_THRESHOLD:
        recs.append({
            "framework": _FRAMEWORK_LABELS["owasp"],
            "priority": "high",
            "action": (
                f"Address {owasp['totalViolations']} OWASP violations across "
                f"{owasp['controlsAffected']} affected categories"
            ),
        })
    if nist["score"] < COMPLIANT_THRESHOLD:
        recs.append({
            "framework": _FRAMEWORK_LABELS["nist"],
            "priority": "medium",
            "action": f"Close gaps in {nist['controlsAffected']} NIST CSF subcategories",
        })
    if iso["score"] < COMPLIANT_THRESHOLD:
        recs.append({
            "framework": _FRAMEWORK_LABELS["iso27001"],
            "priority": "medium",
            "action": f"Remediate {iso['totalViolations']} ISO 27001 control violations",
        })
    return recs


def _critical_findings(results: Mapping[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    critical: List[Dict[str, Any]] = []
    for key in ("owasp", "nist", "iso27001"):
        for v in results[key]["violations"]:
            if v["severity"] in ("critical", "high"):
                critical.append(dict(v, framework=_FRAMEWORK_LABELS[key]))
    return critical[:MAX_LISTED_VIOLATIONS]


def _next_steps(results: Mapping[str, Dict[str, Any]]) -> List[str]:
    steps: List[str] = []
    if results["owasp"]["score"] < 100:
        steps.append("Review and remediate OWASP Top 10 violations")
    if results["nist"]["score"] < 100:
        steps.append("Implement missing NIST CSF controls")
    if results["iso27001"]["score"] < 100:
        steps.append("Address ISO 27001 non-compliance issues")
    steps.append("Schedule a follow-up scan to validate improvements")
    return steps


def get_compliance_report(findings: Sequence[Finding]) -> Dict[str, Any]:
    """Full compliance report for a finding set. Pure and deterministic."""
    findings = tuple(findings)
    results = {
        "owasp": score_owasp(findings),
        "nist": score_nist(findings),
        "iso27001": score_iso27001(findings),
    }
    overall = round_half_up(sum(results[k]["score"] * w for k, w in FRAMEWORK_BLEND.items()))

    return {
        "overall": {
            "score": overall,
            "grade": compliance_grade(overall),
            "status": compliance_status(overall),
        },
        "frameworks": results,
        "recommendations": _recommendations(results),
        "summary": {
            "totalIssues": sum(r["totalViolations"] for r in results.values()),
            "criticalFindings": _critical_findings(results),
            "nextSteps": _next_steps(results),
        },
    }
