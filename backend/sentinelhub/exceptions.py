# sentinelhub/exceptions.py
"""
Error taxonomy for the scan core.

    SentinelError
    ├── AdapterError            one tool adapter failed for one target
    │   ├── ToolUnavailable     binary not installed / service unreachable
    │   ├── ToolTimeout         tool exceeded its timeout
    │   └── ToolParseError      tool produced output we could not read
    ├── DiscoveryError
    │   ├── DiscoveryRateLimited remote API refused us (HTTP 403 / throttled)
    │   └── TargetNotFound       repository or bucket does not exist
    ├── DeadlineExceeded        caller-supplied deadline expired
    └── StorageError            persistence layer failed

Adapter and discovery errors are caught at the orchestrator phase boundary
and recorded on the session. They never escape the scan entry points.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SentinelError(Exception):
    """Base exception for the scan core."""

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Tool adapters
# ---------------------------------------------------------------------------

class AdapterError(SentinelError):
    """Base for all adapter failures. `tool` names the adapter."""

    def __init__(
        self,
        tool: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.tool = tool
        super().__init__(f"{tool}: {message}", details=details)


class ToolUnavailable(AdapterError):
    status_code = 503


class ToolTimeout(AdapterError):
    status_code = 504

    def __init__(self, tool: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(tool, f"timed out after {timeout:g}s", {"timeout": timeout})


class ToolParseError(AdapterError):
    status_code = 502


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

class DiscoveryError(SentinelError):
    status_code = 502


class DiscoveryRateLimited(DiscoveryError):
    status_code = 429

    def __init__(self, location: str, message: str = "rate limited") -> None:
        self.location = location
        super().__init__(f"{message} at {location or '/'}", {"location": location})


class TargetNotFound(DiscoveryError):
    status_code = 404


# ---------------------------------------------------------------------------
# Orchestration / persistence
# ---------------------------------------------------------------------------

class DeadlineExceeded(SentinelError):
    status_code = 504

    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)


class StorageError(SentinelError):
    status_code = 503
