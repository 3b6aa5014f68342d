from sentinelhub.compliance.mapper import (
    compliance_grade,
    get_compliance_report,
    score_iso27001,
    score_nist,
    score_owasp,
)

__all__ = [
    "compliance_grade", "get_compliance_report",
    "score_iso27001", "score_nist", "score_owasp",
]
