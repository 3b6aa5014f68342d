# sentinelhub/config.py
"""
Scan configuration.

Every tunable constant of the scan core lives on ScanConfig. The app factory
builds one instance at startup via ScanConfig.from_env() and hands it to the
orchestrator, which passes it on to discoverers and adapters. Nothing below
this module reads os.environ.

Usage:
    config = ScanConfig.from_env()
    fast = config.replace(max_units=10, verify_secrets=True)

Environment variables (all optional):
    GITHUB_TOKEN                   token for the contents / advisory APIs
    AWS_REGION                     region for the S3 client
    SENTINEL_MAX_UNITS             files/objects listed per discovery (30)
    SENTINEL_MAX_DEPTH             directory depth (3)
    SENTINEL_MAX_UNIT_BYTES        larger units become metadata-only (1 MB)
    SENTINEL_MAX_ANALYZED_UNITS    units sent to expensive adapters (20)
    SENTINEL_MAX_CONCURRENCY       intra-phase fan-out (10)
    SENTINEL_VERIFY_SECRETS        "true" to verify secrets with trufflehog
    SENTINEL_STATIC_TOOLS          comma list of static adapters (semgrep,patterns)
    SENTINEL_SECRET_TOOLS          comma list of secret adapters (trufflehog,patterns)
    SENTINEL_ENRICHMENT            "true" for the remediation digest
    SENTINEL_INTELLIGENCE          "true" for breach / CVE / IP reputation lookups
    HIBP_API_KEY                   Have I Been Pwned key (breach checks)
    ALIENVAULT_API_KEY             AlienVault OTX key (IP reputation)
    IPQS_API_KEY                   IPQualityScore key (IP fraud score)
    SENTINEL_SESSION_TTL           seconds a stored session lives (86400)
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = (env.get(key) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_list(env: Mapping[str, str], key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    items = tuple(t.strip().lower() for t in (env.get(key) or "").split(",") if t.strip())
    return items or default


@dataclass(frozen=True)
class DiscoveryLimits:
    max_units: int = 30
    max_depth: int = 3
    max_unit_size_bytes: int = 1_000_000


@dataclass(frozen=True)
class ScanConfig:
    # ── Credentials / endpoints ──────────────────────────────────────
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    aws_region: Optional[str] = None

    # ── Discovery ────────────────────────────────────────────────────
    max_units: int = 30
    max_depth: int = 3
    max_unit_size_bytes: int = 1_000_000
    directory_delay_seconds: float = 0.1      # before each nested listing
    fetch_delay_seconds: float = 0.05         # between content fetches
    http_timeout_seconds: float = 10.0

    # ── Orchestration ────────────────────────────────────────────────
    max_analyzed_units: int = 20
    max_concurrency: int = 10
    static_tools: Tuple[str, ...] = ("semgrep", "patterns")
    secret_tools: Tuple[str, ...] = ("trufflehog", "patterns")

    # ── Tool timeouts (seconds) ──────────────────────────────────────
    static_snippet_timeout: float = 25.0
    static_repository_timeout: float = 300.0
    secret_snippet_timeout: float = 60.0
    secret_repository_timeout: float = 180.0
    tool_timeout_ceiling: float = 600.0

    # ── Secrets ──────────────────────────────────────────────────────
    verify_secrets: bool = False

    # ── Dependency / cloud checks ────────────────────────────────────
    dependency_lookup_enabled: bool = True
    advisory_limit: int = 15
    bucket_object_limit: int = 100
    bucket_content_scan_limit: int = 10

    # ── Binaries (None = look up on PATH) ────────────────────────────
    tool_paths: Mapping[str, str] = field(default_factory=dict)

    # ── Enrichment ───────────────────────────────────────────────────
    enrichment_enabled: bool = False
    intelligence_enabled: bool = False
    hibp_api_key: Optional[str] = None
    otx_api_key: Optional[str] = None
    ipqs_api_key: Optional[str] = None

    # ── Persistence ──────────────────────────────────────────────────
    session_ttl_seconds: int = 86400
    recent_limit: int = 10
    memory_store_capacity: int = 500

    @property
    def discovery_limits(self) -> DiscoveryLimits:
        return DiscoveryLimits(
            max_units=self.max_units,
            max_depth=self.max_depth,
            max_unit_size_bytes=self.max_unit_size_bytes,
        )

    def bounded_timeout(self, timeout: float) -> float:
        """Clamp a tool timeout to the hard ceiling."""
        return min(float(timeout), self.tool_timeout_ceiling)

    def replace(self, **overrides) -> "ScanConfig":
        return dataclasses.replace(self, **overrides)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ScanConfig":
        env = os.environ if env is None else env
        defaults = cls()
        tool_paths = {
            tool: env[key]
            for tool, key in (
                ("semgrep", "SEMGREP_BIN"),
                ("trufflehog", "TRUFFLEHOG_BIN"),
                ("gitleaks", "GITLEAKS_BIN"),
            )
            if env.get(key)
        }
        return cls(
            github_token=env.get("GITHUB_TOKEN") or None,
            github_api_url=env.get("GITHUB_API_URL") or defaults.github_api_url,
            aws_region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or None,
            max_units=_env_int(env, "SENTINEL_MAX_UNITS", defaults.max_units),
            max_depth=_env_int(env, "SENTINEL_MAX_DEPTH", defaults.max_depth),
            max_unit_size_bytes=_env_int(env, "SENTINEL_MAX_UNIT_BYTES", defaults.max_unit_size_bytes),
            max_analyzed_units=_env_int(env, "SENTINEL_MAX_ANALYZED_UNITS", defaults.max_analyzed_units),
            max_concurrency=_env_int(env, "SENTINEL_MAX_CONCURRENCY", defaults.max_concurrency),
            verify_secrets=_env_bool(env, "SENTINEL_VERIFY_SECRETS", defaults.verify_secrets),
            static_tools=_env_list(env, "SENTINEL_STATIC_TOOLS", defaults.static_tools),
            secret_tools=_env_list(env, "SENTINEL_SECRET_TOOLS", defaults.secret_tools),
            dependency_lookup_enabled=_env_bool(
                env, "SENTINEL_DEPENDENCY_LOOKUP", defaults.dependency_lookup_enabled
            ),
            session_ttl_seconds=_env_int(env, "SENTINEL_SESSION_TTL", defaults.session_ttl_seconds),
            enrichment_enabled=_env_bool(env, "SENTINEL_ENRICHMENT", defaults.enrichment_enabled),
            intelligence_enabled=_env_bool(env, "SENTINEL_INTELLIGENCE", defaults.intelligence_enabled),
            hibp_api_key=env.get("HIBP_API_KEY") or None,
            otx_api_key=env.get("ALIENVAULT_API_KEY") or None,
            ipqs_api_key=env.get("IPQS_API_KEY") or None,
            tool_paths=tool_paths,
        )
