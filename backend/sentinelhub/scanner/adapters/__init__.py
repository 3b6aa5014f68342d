# sentinelhub/scanner/adapters/__init__.py
"""
Tool adapters.
Each adapter wraps one external scanning capability.
Adapters do NOT classify findings; they only return raw tool records.
"""
from sentinelhub.scanner.adapters.semgrep_adapter import SemgrepAdapter
from sentinelhub.scanner.adapters.trufflehog_adapter import TruffleHogAdapter
from sentinelhub.scanner.adapters.gitleaks_adapter import GitleaksAdapter
from sentinelhub.scanner.adapters.pattern_adapter import PatternAdapter
from sentinelhub.scanner.adapters.advisory_adapter import GitHubAdvisoryAdapter
from sentinelhub.scanner.adapters.s3_config_adapter import S3ConfigAdapter
from sentinelhub.scanner.adapters.container_adapter import ContainerConfigAdapter

# Registry of all available adapters.
# The orchestrator uses this to know what's available.
ALL_ADAPTERS = {
    "semgrep": SemgrepAdapter,
    "trufflehog": TruffleHogAdapter,
    "gitleaks": GitleaksAdapter,
    "patterns": PatternAdapter,
    "github-advisory": GitHubAdvisoryAdapter,
    "s3-config": S3ConfigAdapter,
    "container-config": ContainerConfigAdapter,
}


def build_adapters(config) -> dict:
    """Instantiate every registered adapter from a ScanConfig."""
    return {
        "semgrep": SemgrepAdapter(tool_paths=config.tool_paths),
        "trufflehog": TruffleHogAdapter(tool_paths=config.tool_paths),
        "gitleaks": GitleaksAdapter(tool_paths=config.tool_paths),
        "patterns": PatternAdapter(),
        "github-advisory": GitHubAdvisoryAdapter(
            api_url=config.github_api_url,
            token=config.github_token,
            max_concurrency=config.max_concurrency,
            advisory_limit=config.advisory_limit,
        ),
        "s3-config": S3ConfigAdapter(
            region=config.aws_region,
            object_limit=config.bucket_object_limit,
            content_scan_limit=config.bucket_content_scan_limit,
            max_object_bytes=config.max_unit_size_bytes,
        ),
        "container-config": ContainerConfigAdapter(),
    }


__all__ = [
    "SemgrepAdapter", "TruffleHogAdapter", "GitleaksAdapter", "PatternAdapter",
    "GitHubAdvisoryAdapter", "S3ConfigAdapter", "ContainerConfigAdapter",
    "ALL_ADAPTERS", "build_adapters",
]
