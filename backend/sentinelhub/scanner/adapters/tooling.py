# sentinelhub/scanner/adapters/tooling.py
"""
Helpers shared by the subprocess-backed adapters (semgrep, trufflehog,
gitleaks): binary lookup, temp-file staging of unit content, and a
subprocess runner that converts timeouts into ToolTimeout.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import subprocess
import tempfile
from typing import Iterator, List, Mapping, Optional

from sentinelhub.exceptions import ToolTimeout, ToolUnavailable

logger = logging.getLogger(__name__)

# Extensions the tools use for language detection.
LANGUAGE_SUFFIXES = {
    "javascript": ".js",
    "typescript": ".ts",
    "python": ".py",
    "java": ".java",
    "go": ".go",
    "php": ".php",
    "ruby": ".rb",
    "csharp": ".cs",
}


def find_binary(name: str, overrides: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Find a tool binary: explicit override, then PATH, then common locations."""
    override = (overrides or {}).get(name)
    if override:
        return override if os.path.isfile(override) and os.access(override, os.X_OK) else None

    binary = shutil.which(name)
    if binary:
        return binary

    common_paths = [
        f"/usr/local/bin/{name}",
        f"/usr/bin/{name}",
        os.path.expanduser(f"~/go/bin/{name}"),
        os.path.expanduser(f"~/.local/bin/{name}"),
    ]
    for path in common_paths:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path

    return None


def require_binary(tool: str, overrides: Optional[Mapping[str, str]] = None) -> str:
    binary = find_binary(tool, overrides)
    if not binary:
        raise ToolUnavailable(tool, f"{tool} binary not found on PATH")
    return binary


def suffix_for(path: str, language: Optional[str] = None) -> str:
    _, ext = os.path.splitext(path or "")
    if ext:
        return ext
    return LANGUAGE_SUFFIXES.get((language or "").lower(), ".txt")


@contextlib.contextmanager
def staged_file(content: str, suffix: str = ".txt", prefix: str = "sentinel_") -> Iterator[str]:
    """Write content to a temp file for the duration of the block."""
    fd, path = tempfile.mkstemp(suffix=suffix, prefix=prefix)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        yield path
    finally:
        try:
            os.unlink(path)
        except OSError:
            logger.debug(f"Could not remove temp file {path}")


def run_tool(
    tool: str,
    cmd: List[str],
    timeout: float,
    ok_codes: tuple = (0, 1),
) -> subprocess.CompletedProcess:
    """
    Run a scanner binary. Exit codes in `ok_codes` are success (most
    scanners exit 1 when they find something).
    """
    logger.info(f"Running {tool}: {' '.join(cmd[:4])}...")
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=tempfile.gettempdir(),
        )
    except subprocess.TimeoutExpired:
        raise ToolTimeout(tool, timeout)

    if proc.returncode not in ok_codes:
        stderr = (proc.stderr or "").strip()[:500]
        raise ToolUnavailable(tool, f"exited with code {proc.returncode}: {stderr}")
    return proc
