# sentinelhub/scanner/report.py
"""
Session → JSON output document.

    {
        "session":          ScanSession.to_dict(),
        "findings":         [Finding.to_dict(), ...],
        "riskAssessment":   assess_risk() + exposure score,
        "complianceReport": get_compliance_report()
    }

Risk and compliance are derived from the findings every time the report
is built. They are never stored apart from the session they describe.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from sentinelhub.compliance import get_compliance_report
from sentinelhub.scanner.base import SEVERITIES, Finding, ScanSession
from sentinelhub.utils.scoring import assess_risk, risk_score


def summarize(findings: Iterable[Finding]) -> Dict[str, int]:
    """Severity counts plus total, in one pass."""
    summary = {s: 0 for s in SEVERITIES}
    summary["total"] = 0
    for f in findings:
        summary[f.severity] = summary.get(f.severity, 0) + 1
        summary["total"] += 1
    return summary


def risk_and_compliance(findings: List[Finding]) -> Dict[str, Any]:
    risk = assess_risk(findings)
    risk["exposure"] = risk_score(findings)
    return {
        "riskAssessment": risk,
        "complianceReport": get_compliance_report(findings),
    }


def build_report(session: ScanSession) -> Dict[str, Any]:
    findings = list(session.findings)
    report = {
        "session": session.to_dict(),
        "findings": [f.to_dict() for f in findings],
    }
    report.update(risk_and_compliance(findings))
    return report
