# sentinelhub/scanner/normalizer.py
"""
Finding normalizer: RawFinding (tool-shaped) → Finding (canonical).

normalize(raw, source) is a pure function: the same raw record and source
always produce an identical Finding. No timestamps, no randomness.

Per source tool:
    semgrep            ERROR/WARNING/INFO → critical/high/medium
    trufflehog         detector + verification status → severity
    gitleaks           rule table
    patterns           pattern's own severity
    github-advisory    GitHub advisory severity ("moderate" → medium)
    s3-config          check's own severity
    container-config   privileged=True → critical, else check table

Unknown raw severities map to "medium" and are never dropped.
"""

from __future__ import annotations

import json
import math
import re
from collections import Counter
from typing import Any, Dict, Optional

from sentinelhub.exceptions import ToolParseError
from sentinelhub.scanner.base import (
    SEVERITIES,
    AdvisoryRaw,
    BucketConfigRaw,
    ContainerConfigRaw,
    Finding,
    GitleaksRaw,
    Location,
    PatternRaw,
    RawFinding,
    SemgrepRaw,
    TruffleHogRaw,
)

DEFAULT_SEVERITY = "medium"

CWE_RE = re.compile(r"CWE[:-]?(\d+)", re.IGNORECASE)
OWASP_RE = re.compile(r"A\d{2}:\d{4}")

REDACTION_MASK = "********"
REDACTION_KEEP = 4
REDACTION_MIN_LENGTH = 8

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def redact_secret(value: Optional[str]) -> str:
    """
    Canonical redaction: first 4 + fixed mask + last 4.
    Values shorter than 8 characters are fully masked.
    """
    value = value or ""
    if len(value) < REDACTION_MIN_LENGTH:
        return REDACTION_MASK
    return f"{value[:REDACTION_KEEP]}{REDACTION_MASK}{value[-REDACTION_KEEP:]}"


def shannon_entropy(value: str) -> float:
    if not value:
        return 0.0
    length = len(value)
    return -sum(
        (count / length) * math.log2(count / length)
        for count in Counter(value).values()
    )


def extract_cwe(*sources: Any) -> Optional[str]:
    text = _flatten(sources)
    m = CWE_RE.search(text)
    return f"CWE-{m.group(1)}" if m else None


def extract_owasp(*sources: Any) -> Optional[str]:
    m = OWASP_RE.search(_flatten(sources))
    return m.group(0) if m else None


def _flatten(sources) -> str:
    parts = []
    for s in sources:
        if s is None:
            continue
        if isinstance(s, str):
            parts.append(s)
        else:
            parts.append(json.dumps(s, sort_keys=True, default=str))
    return " ".join(parts)


def _severity(raw_value: Any, table: Dict[str, str]) -> str:
    key = str(raw_value or "").strip()
    return table.get(key, table.get(key.lower(), table.get(key.upper(), DEFAULT_SEVERITY)))


def _clamp(confidence: float) -> float:
    return round(min(max(confidence, MIN_CONFIDENCE), MAX_CONFIDENCE), 2)


def _location(file: Optional[str], line: Optional[int], column: Optional[int] = None) -> Optional[Location]:
    if not file and line is None:
        return None
    return Location(file=file, line=line, column=column)


# ---------------------------------------------------------------------------
# semgrep
# ---------------------------------------------------------------------------

SEMGREP_SEVERITY = {"ERROR": "critical", "WARNING": "high", "INFO": "medium"}

SEMGREP_BASE_CONFIDENCE = 0.8
SEMGREP_STANDARD_BONUS = 0.15       # owasp / cwe rule families
SEMGREP_LANGUAGE_BONUS = 0.05       # language-specific rule packs
SEMGREP_GENERIC_PENALTY = 0.2

# Ordered: first keyword hit wins.
RULE_CLASSES = (
    (("sqli", "sql-injection", "sql_injection", "sql"), "sql-injection"),
    (("command", "subprocess"), "command-injection"),
    (("injection",), "injection"),
    (("xss", "cross-site"), "xss"),
    (("csrf", "forgery"), "csrf"),
    (("auth", "session"), "authentication"),
    (("crypto", "hash"), "cryptography"),
    (("path", "traversal"), "path-traversal"),
    (("deserial", "pickle"), "deserialization"),
    (("redirect",), "open-redirect"),
    (("secret", "password"), "secrets"),
)

RULE_RECOMMENDATIONS = (
    (("sql", "injection"), "Use parameterized queries or prepared statements"),
    (("xss",), "Sanitize and encode user input before rendering"),
    (("command",), "Avoid system command execution with user input"),
    (("path",), "Validate file paths and use safe path operations"),
    (("crypto",), "Use strong cryptographic algorithms and proper key management"),
    (("auth",), "Implement proper authentication and authorization mechanisms"),
)


def classify_rule(check_id: str) -> str:
    lower = (check_id or "").lower()
    for keywords, label in RULE_CLASSES:
        if any(k in lower for k in keywords):
            return label
    return "security-misconfiguration"


def _rule_category(check_id: str) -> str:
    parts = (check_id or "").split(".")
    return parts[-2] if len(parts) >= 2 and parts[-2] else "security"


def _semgrep_confidence(check_id: str) -> float:
    lower = (check_id or "").lower()
    confidence = SEMGREP_BASE_CONFIDENCE
    if "owasp" in lower or "cwe" in lower:
        confidence += SEMGREP_STANDARD_BONUS
    if any(lang in lower for lang in ("javascript", "python", "java")):
        confidence += SEMGREP_LANGUAGE_BONUS
    if "generic" in lower:
        confidence -= SEMGREP_GENERIC_PENALTY
    return _clamp(confidence)


def _normalize_semgrep(raw: SemgrepRaw) -> Finding:
    lower = raw.check_id.lower()
    recommendation = next(
        (text for keys, text in RULE_RECOMMENDATIONS if any(k in lower for k in keys)),
        raw.message or "Review this security finding",
    )
    return Finding(
        type=classify_rule(raw.check_id),
        severity=_severity(raw.severity, SEMGREP_SEVERITY),
        category=_rule_category(raw.check_id),
        message=raw.message or "Security finding detected",
        recommendation=recommendation,
        source="semgrep",
        confidence=_semgrep_confidence(raw.check_id),
        location=_location(raw.path, raw.line, raw.column),
        cwe=extract_cwe(raw.metadata),
        owasp=extract_owasp(raw.metadata),
        rule_id=raw.check_id,
    )


# ---------------------------------------------------------------------------
# trufflehog
# ---------------------------------------------------------------------------

CLOUD_DETECTORS = ("AWS", "GCP", "Azure")
SCM_DETECTORS = ("GitHub", "GitLab")
KEY_DETECTORS = ("PrivateKey", "SSHKey", "JWT")

SECRET_TYPES = {
    "AWS": "aws-access-key",
    "AWSSessionKey": "aws-session-token",
    "Azure": "azure-key",
    "GCP": "gcp-key",
    "GitHub": "github-token",
    "GitLab": "gitlab-token",
    "Slack": "slack-token",
    "SlackWebhook": "slack-webhook",
    "Discord": "discord-token",
    "DiscordWebhook": "discord-webhook",
    "Docker": "docker-registry-token",
    "NPM": "npm-token",
    "PyPI": "pypi-token",
    "Stripe": "stripe-api-key",
    "Twilio": "twilio-api-key",
    "SendGrid": "sendgrid-api-key",
    "MailChimp": "mailchimp-api-key",
    "MongoDB": "mongodb-connection-string",
    "PostgreSQL": "postgresql-connection-string",
    "MySQL": "mysql-connection-string",
    "Redis": "redis-connection-string",
    "JWT": "jwt-token",
    "PrivateKey": "private-key",
    "SSHKey": "ssh-private-key",
}

SECRET_RECOMMENDATIONS = {
    "AWS": "Revoke AWS credentials immediately and rotate keys. Use IAM roles instead.",
    "GitHub": "Revoke GitHub token immediately. Use environment variables or GitHub Actions secrets.",
    "PrivateKey": "Revoke and regenerate private key. Never commit private keys to version control.",
    "JWT": "Invalidate JWT tokens and implement proper secret management.",
    "Stripe": "Revoke Stripe API key and generate new one. Use environment variables.",
}
DEFAULT_SECRET_RECOMMENDATION = (
    "Revoke this credential immediately and implement proper secret management practices."
)


def secret_type(detector_name: str) -> str:
    if detector_name in SECRET_TYPES:
        return SECRET_TYPES[detector_name]
    slug = re.sub(r"(?<!^)(?=[A-Z])", "-", detector_name or "secret").lower()
    return re.sub(r"[^a-z0-9-]+", "-", slug).strip("-") or "secret"


def _trufflehog_severity(raw: TruffleHogRaw) -> str:
    name = raw.detector_name
    if raw.verified:
        return "critical" if name in CLOUD_DETECTORS + SCM_DETECTORS else "high"
    if name in KEY_DETECTORS:
        return "high"
    if name in CLOUD_DETECTORS:
        return "medium"
    return "low"


def _trufflehog_confidence(raw: TruffleHogRaw) -> float:
    if raw.verified:
        return 0.95
    if raw.detector_name in ("AWS", "GitHub", "PrivateKey", "SSHKey"):
        return 0.85
    if raw.detector_name in ("JWT", "Stripe", "Twilio"):
        return 0.7
    return 0.6


def _normalize_trufflehog(raw: TruffleHogRaw) -> Finding:
    status = "verified live" if raw.verified else "unverified"
    message = f"{raw.detector_name} credential detected ({status})"
    if raw.verification_error:
        message += f"; verification error: {raw.verification_error}"
    return Finding(
        type=secret_type(raw.detector_name),
        severity=_trufflehog_severity(raw),
        category="secrets",
        message=message,
        recommendation=SECRET_RECOMMENDATIONS.get(raw.detector_name, DEFAULT_SECRET_RECOMMENDATION),
        source="trufflehog",
        confidence=_trufflehog_confidence(raw),
        location=_location(raw.file, raw.line),
        verified=bool(raw.verified),
        rule_id=f"trufflehog-{raw.detector_name.lower()}",
        redacted_value=redact_secret(raw.raw),
    )


# ---------------------------------------------------------------------------
# gitleaks
# ---------------------------------------------------------------------------

GITLEAKS_SEVERITY = {
    "aws-access-token": "high",
    "aws-secret-key": "high",
    "github-pat": "high",
    "gitlab-pat": "high",
    "stripe-access-token": "high",
    "rsa-private-key": "high",
    "ssh-private-key": "high",
    "github-oauth": "medium",
    "slack-access-token": "medium",
    "discord-api-token": "medium",
    "twilio-api-key": "medium",
    "sendgrid-api-token": "medium",
    "jwt": "medium",
}
GITLEAKS_HIGH_CONFIDENCE = frozenset(
    ("aws-access-token", "github-pat", "gitlab-pat", "rsa-private-key", "ssh-private-key", "stripe-access-token")
)


def _normalize_gitleaks(raw: GitleaksRaw) -> Finding:
    severity = GITLEAKS_SEVERITY.get(raw.rule_id, "low")
    return Finding(
        type=raw.rule_id or "secret",
        severity=severity,
        category="secrets",
        message=raw.description or f"Secret matched rule {raw.rule_id}",
        recommendation=DEFAULT_SECRET_RECOMMENDATION,
        source="gitleaks",
        confidence=0.95 if raw.rule_id in GITLEAKS_HIGH_CONFIDENCE else 0.8,
        location=_location(raw.file, raw.line, raw.column),
        verified=False,
        rule_id=raw.rule_id,
        redacted_value=redact_secret(raw.secret),
    )


# ---------------------------------------------------------------------------
# built-in patterns
# ---------------------------------------------------------------------------

PATTERN_SEVERITY = {s: s for s in SEVERITIES}
CONTEXT_WORDS = ("api", "key", "token", "secret", "password")
OPTIMAL_SECRET_LENGTH = 20


def _pattern_confidence(raw: PatternRaw) -> float:
    confidence = raw.base_confidence
    if raw.kind == "vulnerability":
        if raw.high_specificity:
            confidence += 0.1
        return _clamp(confidence)
    if raw.requires_entropy:
        confidence += min(shannon_entropy(raw.value) / 6, 0.2)
    if len(raw.value) >= OPTIMAL_SECRET_LENGTH:
        confidence += 0.1
    if any(word in raw.line_text.lower() for word in CONTEXT_WORDS):
        confidence += 0.1
    return _clamp(confidence)


def _normalize_pattern(raw: PatternRaw) -> Finding:
    if raw.kind == "secret":
        return Finding(
            type=raw.rule_id,
            severity=_severity(raw.severity, PATTERN_SEVERITY),
            category="secrets",
            message=raw.message or f"{raw.name} detected",
            recommendation=raw.recommendation or "Remove secret and use environment variables",
            source="patterns",
            confidence=_pattern_confidence(raw),
            location=_location(raw.file, raw.line, raw.column),
            verified=False,
            rule_id=raw.rule_id,
            redacted_value=redact_secret(raw.value),
        )
    return Finding(
        type=raw.category or classify_rule(raw.rule_id),
        severity=_severity(raw.severity, PATTERN_SEVERITY),
        category=raw.category or "code-security",
        message=raw.message or raw.name,
        recommendation=raw.recommendation or "Review this security finding",
        source="patterns",
        confidence=_pattern_confidence(raw),
        location=_location(raw.file, raw.line, raw.column),
        cwe=extract_cwe(raw.cwe),
        owasp=extract_owasp(raw.owasp),
        rule_id=raw.rule_id,
    )


# ---------------------------------------------------------------------------
# GitHub advisories
# ---------------------------------------------------------------------------

ADVISORY_SEVERITY = {
    "critical": "critical",
    "high": "high",
    "moderate": "medium",
    "medium": "medium",
    "low": "low",
}


def _normalize_advisory(raw: AdvisoryRaw) -> Finding:
    ident = raw.cve_id or raw.ghsa_id
    fix = (
        f"Upgrade {raw.package} to {raw.patched_version} or later"
        if raw.patched_version
        else f"Upgrade {raw.package} to a version without {ident}"
    )
    return Finding(
        type="vulnerable-dependency",
        severity=_severity(raw.severity, ADVISORY_SEVERITY),
        category="dependencies",
        message=f"{raw.package}@{raw.version} ({raw.ecosystem}) is affected by {ident}: {raw.summary}",
        recommendation=fix,
        source="github-advisory",
        confidence=0.9 if raw.cve_id else 0.75,
        location=_location(raw.file, None),
        cwe=extract_cwe(list(raw.cwe_ids)),
        rule_id=raw.ghsa_id,
    )


# ---------------------------------------------------------------------------
# S3 bucket auditor
# ---------------------------------------------------------------------------

BUCKET_SEVERITY = {s: s for s in SEVERITIES}
BUCKET_CONFIDENCE = {"config": 0.95, "content": 0.9, "filename": 0.7}


def _normalize_bucket(raw: BucketConfigRaw) -> Finding:
    return Finding(
        type=raw.check,
        severity=_severity(raw.severity, BUCKET_SEVERITY),
        category=raw.category,
        message=raw.message,
        recommendation=raw.recommendation,
        source="s3-config",
        confidence=_clamp(BUCKET_CONFIDENCE.get(raw.origin, 0.8)),
        location=_location(f"s3://{raw.bucket}/{raw.key}" if raw.key else f"s3://{raw.bucket}", None),
        verified=False if raw.value is not None else None,
        rule_id=f"s3-{raw.check}",
        redacted_value=redact_secret(raw.value) if raw.value is not None else None,
    )


# ---------------------------------------------------------------------------
# Container configuration auditor
# ---------------------------------------------------------------------------

CONTAINER_SEVERITY = {
    "docker-socket-mount": "critical",
    "host-network": "high",
    "root-user": "medium",
    "unpinned-image": "low",
}
CONTAINER_RECOMMENDATIONS = {
    "privileged-container": "Drop privileged mode and grant only the capabilities the service needs",
    "docker-socket-mount": "Do not mount /var/run/docker.sock into containers",
    "host-network": "Use bridge networking and publish only required ports",
    "root-user": "Run the container as a non-root USER",
    "unpinned-image": "Pin base images to a specific version or digest",
}


def _normalize_container(raw: ContainerConfigRaw) -> Finding:
    severity = "critical" if raw.privileged else _severity(raw.check, CONTAINER_SEVERITY)
    return Finding(
        type=raw.check,
        severity=severity,
        category="container-security",
        message=raw.message,
        recommendation=CONTAINER_RECOMMENDATIONS.get(raw.check, "Review container configuration"),
        source="container-config",
        confidence=0.9,
        location=_location(raw.file, raw.line),
        rule_id=f"container-{raw.check}",
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_NORMALIZERS: Dict[str, tuple] = {
    "semgrep": (SemgrepRaw, _normalize_semgrep),
    "trufflehog": (TruffleHogRaw, _normalize_trufflehog),
    "gitleaks": (GitleaksRaw, _normalize_gitleaks),
    "patterns": (PatternRaw, _normalize_pattern),
    "github-advisory": (AdvisoryRaw, _normalize_advisory),
    "s3-config": (BucketConfigRaw, _normalize_bucket),
    "container-config": (ContainerConfigRaw, _normalize_container),
}


def supported_sources():
    return tuple(_NORMALIZERS)


def normalize(raw: RawFinding, source: str) -> Finding:
    """Map one adapter's raw record onto the canonical Finding."""
    entry = _NORMALIZERS.get(source)
    if entry is None:
        raise ToolParseError(source, "no normalizer registered for this source")
    expected, fn = entry
    if not isinstance(raw, expected):
        raise ToolParseError(
            source, f"expected {expected.__name__}, got {type(raw).__name__}"
        )
    return fn(raw)
