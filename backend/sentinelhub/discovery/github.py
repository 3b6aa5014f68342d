# sentinelhub/discovery/github.py
"""
GitHub repository discoverer: walks the contents API depth-first.

    GET /repos/{owner}/{repo}                 repository insights
    GET /repos/{owner}/{repo}/contents/{path} directory listing

Rate limit: 60 req/h anonymous, 5000 req/h with a token.
A 403 (or 429) on any listing abandons that branch with a warning.
A 404 on the root listing means the repository does not exist.
File contents are fetched lazily from `download_url` through a shared
throttle, and never retried. Each thread talks to GitHub through its own
requests.Session.
"""

from __future__ import annotations

import base64
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from sentinelhub.config import DiscoveryLimits, ScanConfig
from sentinelhub.discovery.base import BaseDiscoverer, DiscoveryResult, RequestThrottle, should_descend
from sentinelhub.discovery.filters import (
    detect_language,
    is_critical_by_name,
    is_dependency_file,
    is_scannable,
    should_skip_dir,
)
from sentinelhub.exceptions import DiscoveryError, DiscoveryRateLimited, TargetNotFound
from sentinelhub.scanner.base import ScanTarget, ScanUnit

logger = logging.getLogger(__name__)

HEADERS = {
    "Accept": "application/vnd.github+json",
    "User-Agent": "sentinelhub-discovery/1.0",
}
RATE_LIMIT_STATUSES = (403, 429)


class GitHubDiscoverer(BaseDiscoverer):
    name = "github"
    supported_kinds = ("repository",)

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        config = config or ScanConfig()
        self.api_url = config.github_api_url.rstrip("/")
        self.timeout = config.http_timeout_seconds
        self.directory_delay = config.directory_delay_seconds
        self._sleep = sleep
        self.throttle = RequestThrottle(config.fetch_delay_seconds, sleep=sleep)

        self._headers = dict(HEADERS)
        if config.github_token:
            self._headers["Authorization"] = f"Bearer {config.github_token}"
        # Content loaders run on pool threads; requests.Session is not thread-safe
        self._local = threading.local()
        self._injected = session
        if session is not None:
            session.headers.update(self._headers)

    @property
    def session(self) -> requests.Session:
        """The injected session, otherwise one requests.Session per thread."""
        if self._injected is not None:
            return self._injected
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(self._headers)
            self._local.session = session
        return session

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _get(self, url: str, location: str) -> requests.Response:
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise DiscoveryError(f"GitHub request failed at {location or '/'}: {e}")
        if resp.status_code in RATE_LIMIT_STATUSES:
            raise DiscoveryRateLimited(location, "GitHub API rate limit hit")
        return resp

    def repository_insights(self, owner: str, repo: str) -> Dict[str, Any]:
        resp = self._get(f"{self.api_url}/repos/{owner}/{repo}", "")
        if resp.status_code == 404:
            raise TargetNotFound(f"Repository {owner}/{repo} not found")
        if resp.status_code != 200:
            raise DiscoveryError(f"GitHub returned {resp.status_code} for {owner}/{repo}")
        data = resp.json()
        return {
            "defaultBranch": data.get("default_branch"),
            "language": data.get("language"),
            "stars": data.get("stargazers_count", 0),
            "private": bool(data.get("private")),
            "sizeKb": data.get("size", 0),
        }

    def list_directory(self, owner: str, repo: str, path: str) -> List[Dict[str, Any]]:
        url = f"{self.api_url}/repos/{owner}/{repo}/contents/{path}".rstrip("/")
        resp = self._get(url, path)
        if resp.status_code == 404 and not path:
            raise TargetNotFound(f"Repository {owner}/{repo} not found")
        if resp.status_code != 200:
            raise DiscoveryError(f"GitHub returned {resp.status_code} for {path or '/'}")
        data = resp.json()
        return data if isinstance(data, list) else [data]

    def fetch_content(self, owner: str, repo: str, item: Dict[str, Any]) -> Optional[str]:
        """Loader body for one file. Raises DiscoveryRateLimited on 403."""
        path = item.get("path") or ""
        self.throttle.wait()
        download_url = item.get("download_url")
        if download_url:
            resp = self._get(download_url, path)
            if resp.status_code != 200:
                logger.warning(f"Could not fetch {path}: HTTP {resp.status_code}")
                return None
            return resp.text

        resp = self._get(f"{self.api_url}/repos/{owner}/{repo}/contents/{path}", path)
        if resp.status_code != 200:
            logger.warning(f"Could not fetch {path}: HTTP {resp.status_code}")
            return None
        encoded = (resp.json() or {}).get("content") or ""
        return base64.b64decode(encoded).decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def discover(self, target: ScanTarget, limits: DiscoveryLimits) -> DiscoveryResult:
        owner, repo = target.owner, target.name
        if not owner or not repo:
            raise ValueError("repository target needs owner and name")

        result = DiscoveryResult()
        try:
            result.insights = self.repository_insights(owner, repo)
        except TargetNotFound:
            raise
        except DiscoveryError as e:
            result.warnings.append(f"Repository insights unavailable: {e.message}")

        self._walk(owner, repo, "", 0, limits.max_units, limits, result)
        logger.info(
            f"GitHub discovery for {owner}/{repo}: {len(result.units)} units, "
            f"{len(result.warnings)} warnings"
        )
        return result

    def _walk(
        self,
        owner: str,
        repo: str,
        path: str,
        depth: int,
        remaining: int,
        limits: DiscoveryLimits,
        result: DiscoveryResult,
    ) -> int:
        """Walk one directory. Returns the number of units it added."""
        if not should_descend(depth, remaining, limits):
            if depth > limits.max_depth:
                logger.debug(f"Max depth {limits.max_depth} reached at {path}")
            return 0

        if depth > 0:
            self._sleep(self.directory_delay)

        try:
            items = self.list_directory(owner, repo, path)
        except DiscoveryRateLimited as e:
            result.rate_limited = True
            result.warnings.append(e.message)
            return 0
        except TargetNotFound:
            raise
        except DiscoveryError as e:
            if depth == 0:
                raise
            result.warnings.append(e.message)
            return 0

        added = 0
        for item in items:
            if added >= remaining:
                result.truncated = True
                break
            item_path = item.get("path") or ""
            kind = item.get("type")

            if kind == "file" and is_scannable(item_path):
                result.units.append(self._make_unit(owner, repo, item, limits))
                added += 1
            elif kind == "dir" and not should_skip_dir(item_path):
                added += self._walk(owner, repo, item_path, depth + 1, remaining - added, limits, result)
        return added

    def _make_unit(self, owner: str, repo: str, item: Dict[str, Any], limits: DiscoveryLimits) -> ScanUnit:
        path = item.get("path") or item.get("name") or ""
        size = int(item.get("size") or 0)
        unit = ScanUnit(
            path=path,
            size_bytes=size,
            is_critical_by_name=is_critical_by_name(path),
            is_dependency_file=is_dependency_file(path),
            language=detect_language(path),
        )
        if size <= limits.max_unit_size_bytes:
            unit.loader = lambda: self.fetch_content(owner, repo, item)
        return unit
