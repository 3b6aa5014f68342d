# sentinelhub/scanner/adapters/semgrep_adapter.py
"""
Semgrep static-analysis adapter.

Runs the semgrep CLI over one unit (staged to a temp file) with an
explicit ruleset selector:

    fast   p/owasp-top-ten + one language pack       (snippets, ~25s bound)
    full   owasp + cwe-top-25 + security-audit + language packs
                                                      (repositories, minutes)

Output data structure (semgrep --json):
    {
        "results": [
            {
                "check_id": "javascript.express.security.audit.xss...",
                "path": "/tmp/sentinel_x.js",
                "start": {"line": 12, "col": 5},
                "extra": {"severity": "ERROR", "message": "...", "metadata": {...}}
            }
        ],
        "errors": [...]
    }
"""

from __future__ import annotations

import json
import logging
from typing import Dict, List, Mapping, Optional, Tuple

from sentinelhub.exceptions import ToolParseError
from sentinelhub.scanner.adapters.tooling import require_binary, run_tool, staged_file, suffix_for
from sentinelhub.scanner.base import AdapterOptions, BaseAdapter, ScanUnit, SemgrepRaw

logger = logging.getLogger(__name__)

FAST_LANGUAGE_RULES: Dict[str, Tuple[str, ...]] = {
    "javascript": ("p/javascript",),
    "typescript": ("p/javascript",),
    "python": ("p/python",),
    "java": ("p/java",),
}
FAST_DEFAULT_RULES = ("p/security-audit",)

FULL_LANGUAGE_RULES: Dict[str, Tuple[str, ...]] = {
    "javascript": ("p/javascript", "p/react"),
    "typescript": ("p/javascript", "p/react"),
    "python": ("p/python", "p/bandit"),
    "java": ("p/java",),
}
FULL_BASE_RULES = ("p/owasp-top-ten", "p/cwe-top-25", "p/security-audit")

PER_RULE_TIMEOUT = 15
MAX_MEMORY_MB = 1024


def rulesets_for(ruleset: str, language: Optional[str]) -> Tuple[str, ...]:
    lang = (language or "").lower()
    if ruleset == "full":
        return FULL_BASE_RULES + FULL_LANGUAGE_RULES.get(lang, ())
    return ("p/owasp-top-ten",) + FAST_LANGUAGE_RULES.get(lang, FAST_DEFAULT_RULES)


def parse_semgrep_output(stdout: str, display_path: str) -> List[SemgrepRaw]:
    if not (stdout or "").strip():
        return []
    try:
        payload = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise ToolParseError("semgrep", f"invalid JSON output: {e}")
    if not isinstance(payload, dict):
        raise ToolParseError("semgrep", "expected a JSON object")

    raws: List[SemgrepRaw] = []
    for result in payload.get("results") or []:
        extra = result.get("extra") or {}
        start = result.get("start") or {}
        raws.append(SemgrepRaw(
            check_id=result.get("check_id") or "semgrep.unknown",
            severity=extra.get("severity") or "",
            message=(extra.get("message") or "").strip(),
            path=display_path,
            line=start.get("line") or 1,
            column=start.get("col") or 1,
            metadata=extra.get("metadata") or {},
        ))
    for err in payload.get("errors") or []:
        logger.debug(f"semgrep reported: {str(err)[:200]}")
    return raws


class SemgrepAdapter(BaseAdapter):
    """Semgrep CLI over a single staged file."""

    def __init__(self, tool_paths: Optional[Mapping[str, str]] = None):
        self._tool_paths = tool_paths or {}

    @property
    def name(self) -> str:
        return "semgrep"

    def supports(self, unit: ScanUnit) -> bool:
        return unit.has_content and not unit.is_dependency_file

    def build_command(self, binary: str, path: str, options: AdapterOptions) -> List[str]:
        configs = ",".join(rulesets_for(options.ruleset, options.language))
        return [
            binary,
            f"--config={configs}",
            "--json",
            "--no-git-ignore",
            f"--timeout={PER_RULE_TIMEOUT}",
            f"--max-memory={MAX_MEMORY_MB}",
            "--quiet",
            path,
        ]

    def execute(self, unit: ScanUnit, options: AdapterOptions) -> List[SemgrepRaw]:
        binary = require_binary(self.name, self._tool_paths)
        content = unit.load()
        if content is None:
            return []
        with staged_file(content, suffix=suffix_for(unit.path, options.language or unit.language)) as path:
            cmd = self.build_command(binary, path, options)
            proc = run_tool(self.name, cmd, options.timeout)
        return parse_semgrep_output(proc.stdout, unit.path)
