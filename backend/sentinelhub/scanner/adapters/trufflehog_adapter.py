# sentinelhub/scanner/adapters/trufflehog_adapter.py
"""
TruffleHog secret-detection adapter.

    trufflehog filesystem <file> --json --no-update --concurrency=10 [--no-verification]

Verification mode (options.verify) lets trufflehog call the issuing
service to confirm a credential is live. A secret that could not be
verified is still reported. It comes back with Verified=false and is
normalized with verified=False.

Each stdout line is one JSON object:
    {"DetectorName": "AWS", "Raw": "AKIA...", "Verified": false,
     "VerificationError": "...",
     "SourceMetadata": {"Data": {"Filesystem": {"file": "...", "line": 3}}}}
"""

from __future__ import annotations

import json
import logging
from typing import List, Mapping, Optional

from sentinelhub.scanner.adapters.tooling import require_binary, run_tool, staged_file, suffix_for
from sentinelhub.scanner.base import AdapterOptions, BaseAdapter, ScanUnit, TruffleHogRaw

logger = logging.getLogger(__name__)

CONCURRENCY = 10


def find_line_number(content: Optional[str], secret: str) -> Optional[int]:
    if not content or not secret:
        return None
    for idx, line in enumerate(content.splitlines(), start=1):
        if secret in line:
            return idx
    return None


def parse_trufflehog_output(stdout: str, display_path: str, content: Optional[str] = None) -> List[TruffleHogRaw]:
    raws: List[TruffleHogRaw] = []
    for line in (stdout or "").splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            result = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f"Skipping unparseable trufflehog line: {line[:120]}")
            continue
        if not result.get("DetectorName") or not result.get("Raw"):
            continue

        fs_meta = ((result.get("SourceMetadata") or {}).get("Data") or {}).get("Filesystem") or {}
        secret = str(result["Raw"])
        raws.append(TruffleHogRaw(
            detector_name=str(result["DetectorName"]),
            raw=secret,
            verified=bool(result.get("Verified")),
            verification_error=result.get("VerificationError") or None,
            file=display_path,
            line=fs_meta.get("line") or find_line_number(content, secret),
            decoder_name=result.get("DecoderName"),
        ))
    return raws


class TruffleHogAdapter(BaseAdapter):
    """trufflehog filesystem scan over a single staged file."""

    def __init__(self, tool_paths: Optional[Mapping[str, str]] = None):
        self._tool_paths = tool_paths or {}

    @property
    def name(self) -> str:
        return "trufflehog"

    def build_command(self, binary: str, path: str, options: AdapterOptions) -> List[str]:
        cmd = [
            binary, "filesystem", path,
            "--json",
            "--no-update",
            f"--concurrency={CONCURRENCY}",
        ]
        if not options.verify:
            cmd.append("--no-verification")
        return cmd

    def execute(self, unit: ScanUnit, options: AdapterOptions) -> List[TruffleHogRaw]:
        binary = require_binary(self.name, self._tool_paths)
        content = unit.load()
        if content is None:
            return []
        with staged_file(content, suffix=suffix_for(unit.path, unit.language)) as path:
            cmd = self.build_command(binary, path, options)
            # trufflehog exits 183 when --fail is set; plain runs exit 0
            proc = run_tool(self.name, cmd, options.timeout, ok_codes=(0, 1, 183))
        return parse_trufflehog_output(proc.stdout, unit.path, content)
