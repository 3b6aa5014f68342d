# sentinelhub/scanner/adapters/pattern_adapter.py
"""
Built-in pattern matcher.

In-process regex checks that need no external binary, so a scan still
produces secret and vulnerability findings when semgrep / trufflehog are
not installed.

    options.ruleset == "secrets"  → SECRET_PATTERNS (all languages)
    anything else                 → VULN_PATTERNS[language]

False-positive reduction:
    - lines that look like lockfile hashes, bare hashes or minified code
    - lines mentioning test / mock / example / sample data
    - entropy floor for generic high-entropy patterns (aws-secret-key)
    - AWS secret keys additionally need AWS/secret context nearby
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sentinelhub.scanner.base import AdapterOptions, BaseAdapter, PatternRaw, ScanUnit
from sentinelhub.scanner.normalizer import shannon_entropy


@dataclass(frozen=True)
class Pattern:
    id: str
    name: str
    regex: "re.Pattern[str]"
    severity: str
    base_confidence: float
    recommendation: str
    requires_entropy: bool = False
    min_entropy: float = 3.0
    category: Optional[str] = None
    message: Optional[str] = None
    cwe: Optional[str] = None
    owasp: Optional[str] = None
    high_specificity: bool = False


# ---------------------------------------------------------------------------
# Secret patterns
# ---------------------------------------------------------------------------

SECRET_PATTERNS: Tuple[Pattern, ...] = (
    Pattern(
        id="aws-access-key", name="AWS Access Key ID",
        regex=re.compile(r"AKIA[0-9A-Z]{16}"),
        severity="critical", base_confidence=0.95,
        recommendation="Use AWS IAM roles or AWS Secrets Manager",
    ),
    Pattern(
        id="aws-secret-key", name="AWS Secret Access Key",
        regex=re.compile(r"(?<![A-Za-z0-9/+=])[A-Za-z0-9/+=]{40}(?![A-Za-z0-9/+=])"),
        severity="critical", base_confidence=0.8,
        requires_entropy=True, min_entropy=4.5,
        recommendation="Use AWS IAM roles or AWS Secrets Manager",
    ),
    Pattern(
        id="github-token", name="GitHub Token",
        regex=re.compile(r"gh[ps]_[A-Za-z0-9_]{36,255}"),
        severity="high", base_confidence=0.95,
        recommendation="Use GitHub Apps or environment variables",
    ),
    Pattern(
        id="google-api-key", name="Google API Key",
        regex=re.compile(r"AIza[0-9A-Za-z\-_]{35}"),
        severity="high", base_confidence=0.9,
        recommendation="Use Google Cloud Secret Manager",
    ),
    Pattern(
        id="slack-token", name="Slack Token",
        regex=re.compile(r"xox[baprs]-[0-9a-zA-Z-]{10,48}"),
        severity="high", base_confidence=0.9,
        recommendation="Use Slack App configuration or environment variables",
    ),
    Pattern(
        id="jwt-token", name="JWT Token",
        regex=re.compile(r"eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*\.[A-Za-z0-9_-]*"),
        severity="medium", base_confidence=0.7,
        recommendation="Store JWT tokens securely and set appropriate expiration",
    ),
    Pattern(
        id="private-key", name="Private Key",
        regex=re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----"),
        severity="critical", base_confidence=0.95,
        recommendation="Use secure key management systems",
    ),
    Pattern(
        id="password-field", name="Password in Code",
        regex=re.compile(r"""(?:password|pwd|pass)['":=\s]*['"][^'",;\s]{8,}['"]""", re.IGNORECASE),
        severity="high", base_confidence=0.8,
        recommendation="Use environment variables or secure vaults",
    ),
)


# ---------------------------------------------------------------------------
# Vulnerability patterns by language
# ---------------------------------------------------------------------------

_USER_INPUT_JS = r"(?:req\.|request\.|params\.|query\.)"
_USER_INPUT_PY = r"(?:request\.|flask\.request\.|django\.request\.|input\()"

VULN_PATTERNS: Dict[str, Tuple[Pattern, ...]] = {
    "javascript": (
        Pattern(
            id="js-eval-injection", name="eval() with user input",
            regex=re.compile(r"eval\s*\([^)]*" + _USER_INPUT_JS + r"[^)]*\)", re.IGNORECASE),
            severity="critical", base_confidence=0.9, category="code-injection",
            message="Potential code injection via eval() with user input",
            cwe="CWE-94", owasp="A03:2021-Injection",
            recommendation="Never use eval() with user input. Use JSON.parse() for JSON data.",
        ),
        Pattern(
            id="js-sql-injection", name="SQL built from user input",
            regex=re.compile(r"(?:SELECT|INSERT|UPDATE|DELETE).*(?:\+|\$\{).*" + _USER_INPUT_JS, re.IGNORECASE),
            severity="critical", base_confidence=0.85, category="sql-injection",
            message="Potential SQL injection vulnerability",
            cwe="CWE-89", owasp="A03:2021-Injection",
            recommendation="Use parameterized queries or prepared statements",
        ),
        Pattern(
            id="js-xss-innerhtml", name="innerHTML with user input",
            regex=re.compile(r"\.innerHTML\s*=.*" + _USER_INPUT_JS, re.IGNORECASE),
            severity="high", base_confidence=0.8, category="xss",
            message="Potential XSS vulnerability via innerHTML",
            cwe="CWE-79", owasp="A03:2021-Injection",
            recommendation="Use textContent or sanitize HTML input",
        ),
    ),
    "python": (
        Pattern(
            id="py-exec-injection", name="exec() with user input",
            regex=re.compile(r"(?:exec|eval)\s*\([^)]*" + _USER_INPUT_PY + r"[^)]*\)"),
            severity="critical", base_confidence=0.9, category="code-injection",
            message="Potential code injection via exec() with user input",
            cwe="CWE-94", owasp="A03:2021-Injection",
            recommendation="Never use exec() or eval() with user input",
        ),
        Pattern(
            id="py-sql-injection", name="SQL built with string formatting",
            regex=re.compile(
                r"""(?:execute|executemany)\s*\(\s*(?:f['"]|['"][^'"]*(?:SELECT|INSERT|UPDATE|DELETE)[^'"]*['"]\s*(?:%|\+|\.format))""",
                re.IGNORECASE,
            ),
            severity="critical", base_confidence=0.85, category="sql-injection",
            message="Potential SQL injection via string-formatted query",
            cwe="CWE-89", owasp="A03:2021-Injection",
            recommendation="Use parameterized queries or prepared statements",
        ),
        Pattern(
            id="py-shell-injection", name="subprocess with shell=True",
            regex=re.compile(r"subprocess\.\w+\(.*shell\s*=\s*True"),
            severity="high", base_confidence=0.8, category="command-injection",
            message="Potential command injection via subprocess with shell=True",
            cwe="CWE-78", owasp="A03:2021-Injection",
            recommendation="Pass arguments as a list and avoid shell=True",
            high_specificity=True,
        ),
        Pattern(
            id="py-pickle-deserialization", name="pickle.loads on untrusted data",
            regex=re.compile(r"pickle\.loads?\s*\("),
            severity="high", base_confidence=0.7, category="insecure-deserialization",
            message="Insecure deserialization with pickle",
            cwe="CWE-502", owasp="A08:2021-Software and Data Integrity Failures",
            recommendation="Never unpickle untrusted data; use JSON or a signed format",
        ),
    ),
}
VULN_PATTERNS["typescript"] = VULN_PATTERNS["javascript"]


# ---------------------------------------------------------------------------
# False-positive filtering
# ---------------------------------------------------------------------------

_LOCKFILE_KEYS = ('"integrity":', '"shasum":', '"resolved":', '"tarball":')
_HEX_HASH = re.compile(r"^[a-f0-9]{32,}$", re.IGNORECASE)
_B64_BLOB = re.compile(r"^[A-Za-z0-9+/=]{32,}$")
_PLACEHOLDER_WORDS = ("test", "mock", "example", "sample")
_SECRET_CONTEXT = (
    "key", "secret", "token", "password", "credential", "auth",
    "api", "bearer", "access", "jwt", "oauth", "session",
)
_PACKAGE_CONTEXT = ("package-lock.json", "node_modules", "integrity", "dependencies")


def is_likely_false_positive(line: str) -> bool:
    if any(k in line for k in _LOCKFILE_KEYS):
        return True
    stripped = line.strip()
    if _HEX_HASH.match(stripped) or _B64_BLOB.match(stripped):
        return True
    if len(line) > 500 and len(line.split(" ")) < 3:
        return True
    lower = line.lower()
    return any(word in lower for word in _PLACEHOLDER_WORDS)


def _context(lines: List[str], index: int, radius: int) -> str:
    return "\n".join(lines[max(0, index - radius): index + radius + 1]).lower()


def _secret_in_context(value: str, pattern: Pattern, lines: List[str], index: int) -> bool:
    if pattern.requires_entropy and shannon_entropy(value) < pattern.min_entropy:
        return False
    context = _context(lines, index, 3)
    if any(k in context for k in _PACKAGE_CONTEXT):
        return False
    if pattern.id == "aws-secret-key":
        has_context = any(k in context for k in _SECRET_CONTEXT) or "aws" in context
        if not has_context:
            return False
        if re.fullmatch(r"[a-f0-9]+", value, re.IGNORECASE):
            return False
        if any(k in context for k in ("hash", "checksum", "digest")):
            return False
    return True


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class PatternAdapter(BaseAdapter):
    """Regex secret / vulnerability matcher over unit content."""

    @property
    def name(self) -> str:
        return "patterns"

    def execute(self, unit: ScanUnit, options: AdapterOptions) -> List[PatternRaw]:
        content = unit.load()
        if content is None:
            return []
        if options.ruleset == "secrets":
            return self.detect_secrets(content, unit.path)
        if unit.is_dependency_file:
            return []
        language = (options.language or unit.language or "").lower()
        return self.detect_vulnerabilities(content, language, unit.path)

    def detect_secrets(self, content: str, path: Optional[str] = None) -> List[PatternRaw]:
        lines = content.splitlines()
        found: List[PatternRaw] = []
        seen = set()

        for idx, line in enumerate(lines):
            if is_likely_false_positive(line):
                continue
            for pattern in SECRET_PATTERNS:
                for m in pattern.regex.finditer(line):
                    value = m.group(0)
                    if not _secret_in_context(value, pattern, lines, idx):
                        continue
                    key = (pattern.id, idx, m.start())
                    if key in seen:
                        continue
                    seen.add(key)
                    found.append(PatternRaw(
                        kind="secret",
                        rule_id=pattern.id,
                        name=pattern.name,
                        severity=pattern.severity,
                        value=value,
                        line_text=line,
                        file=path,
                        line=idx + 1,
                        column=m.start() + 1,
                        base_confidence=pattern.base_confidence,
                        requires_entropy=pattern.requires_entropy,
                        recommendation=pattern.recommendation,
                        message=f"{pattern.name} detected",
                    ))
        return found

    def detect_vulnerabilities(self, content: str, language: str, path: Optional[str] = None) -> List[PatternRaw]:
        patterns = VULN_PATTERNS.get(language, ())
        found: List[PatternRaw] = []
        for idx, line in enumerate(content.splitlines()):
            for pattern in patterns:
                m = pattern.regex.search(line)
                if not m:
                    continue
                found.append(PatternRaw(
                    kind="vulnerability",
                    rule_id=pattern.id,
                    name=pattern.name,
                    severity=pattern.severity,
                    value=m.group(0),
                    line_text=line,
                    file=path,
                    line=idx + 1,
                    column=m.start() + 1,
                    base_confidence=pattern.base_confidence,
                    high_specificity=pattern.high_specificity,
                    category=pattern.category,
                    message=pattern.message,
                    recommendation=pattern.recommendation,
                    cwe=pattern.cwe,
                    owasp=pattern.owasp,
                ))
        return found
