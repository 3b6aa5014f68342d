# sentinelhub/scanner/adapters/gitleaks_adapter.py
"""
Gitleaks secret-detection adapter.

    gitleaks detect --no-git --source <file> --report-format json --report-path <tmp>

Gitleaks exits 1 when leaks are found. The JSON report is a list of
{"RuleID", "Description", "Secret", "StartLine", "StartColumn", "File"}.
Gitleaks has no verification mode, so every result is verified=False.
"""

from __future__ import annotations

import json
import os
import tempfile
from typing import List, Mapping, Optional

from sentinelhub.exceptions import ToolParseError
from sentinelhub.scanner.adapters.tooling import require_binary, run_tool, staged_file, suffix_for
from sentinelhub.scanner.base import AdapterOptions, BaseAdapter, GitleaksRaw, ScanUnit


def parse_gitleaks_report(text: str, display_path: str) -> List[GitleaksRaw]:
    if not (text or "").strip():
        return []
    try:
        report = json.loads(text)
    except json.JSONDecodeError as e:
        raise ToolParseError("gitleaks", f"invalid JSON report: {e}")
    if not isinstance(report, list):
        raise ToolParseError("gitleaks", "expected a JSON list")
    return [
        GitleaksRaw(
            rule_id=item.get("RuleID") or "generic-secret",
            secret=item.get("Secret") or item.get("Match") or "",
            description=item.get("Description") or "",
            file=display_path,
            line=item.get("StartLine") or None,
            column=item.get("StartColumn") or None,
        )
        for item in report
    ]


class GitleaksAdapter(BaseAdapter):

    def __init__(self, tool_paths: Optional[Mapping[str, str]] = None):
        self._tool_paths = tool_paths or {}

    @property
    def name(self) -> str:
        return "gitleaks"

    def execute(self, unit: ScanUnit, options: AdapterOptions) -> List[GitleaksRaw]:
        binary = require_binary(self.name, self._tool_paths)
        content = unit.load()
        if content is None:
            return []

        fd, report_path = tempfile.mkstemp(suffix=".json", prefix="gitleaks_")
        os.close(fd)
        try:
            with staged_file(content, suffix=suffix_for(unit.path, unit.language)) as path:
                cmd = [
                    binary, "detect",
                    "--no-git",
                    "--source", path,
                    "--report-format", "json",
                    "--report-path", report_path,
                    "--no-banner",
                ]
                run_tool(self.name, cmd, options.timeout)
            with open(report_path, encoding="utf-8") as fh:
                return parse_gitleaks_report(fh.read(), unit.path)
        finally:
            if os.path.exists(report_path):
                os.unlink(report_path)
