# sentinelhub/discovery/__init__.py
"""
Resource discoverers.
Each discoverer enumerates scannable units under one kind of target.
"""
from sentinelhub.discovery.base import (
    BaseDiscoverer,
    DiscoveryResult,
    RequestThrottle,
    SnippetDiscoverer,
    should_descend,
)
from sentinelhub.discovery.github import GitHubDiscoverer
from sentinelhub.discovery.s3 import S3Discoverer

# Registry keyed by ScanTarget.kind.
ALL_DISCOVERERS = {
    "snippet": SnippetDiscoverer,
    "repository": GitHubDiscoverer,
    "bucket": S3Discoverer,
}


def build_discoverers(config) -> dict:
    return {
        "snippet": SnippetDiscoverer(),
        "repository": GitHubDiscoverer(config),
        "bucket": S3Discoverer(config),
    }


__all__ = [
    "BaseDiscoverer", "DiscoveryResult", "RequestThrottle", "SnippetDiscoverer",
    "GitHubDiscoverer", "S3Discoverer", "should_descend",
    "ALL_DISCOVERERS", "build_discoverers",
]
