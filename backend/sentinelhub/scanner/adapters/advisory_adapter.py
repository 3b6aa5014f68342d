# sentinelhub/scanner/adapters/advisory_adapter.py
"""
Dependency / CVE lookup via the GitHub Security Advisory API.

Parses a dependency manifest unit into (ecosystem, name, version) triples
and asks GitHub which reviewed advisories affect each pinned version:

    GET /advisories?ecosystem=npm&affects=lodash@4.17.15&type=reviewed&per_page=15

Lookups run concurrently on one httpx.AsyncClient, bounded by an
asyncio.Semaphore. A failed lookup for one package only loses that
package's advisories. Only when every lookup fails is the adapter
reported as unavailable.

Manifests understood:
    package.json       npm
    requirements.txt   pip    (pinned == versions only)
    go.mod             go
    Cargo.toml         rust
    pom.xml            maven
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from sentinelhub.exceptions import ToolUnavailable
from sentinelhub.scanner.base import AdapterOptions, AdvisoryRaw, BaseAdapter, ScanUnit

logger = logging.getLogger(__name__)

HEADERS = {
    "Accept": "application/vnd.github+json",
    "User-Agent": "sentinelhub-scanner/1.0",
}

MANIFEST_ECOSYSTEMS = {
    "package.json": "npm",
    "requirements.txt": "pip",
    "go.mod": "go",
    "Cargo.toml": "rust",
    "pom.xml": "maven",
}

MAX_DEPENDENCIES = 50
_VERSION_RE = re.compile(r"\d+(?:\.\d+)*(?:[-+.][0-9A-Za-z.-]+)?")


@dataclass(frozen=True)
class Dependency:
    ecosystem: str
    name: str
    version: str


# ---------------------------------------------------------------------------
# Manifest parsing
# ---------------------------------------------------------------------------

def _clean_version(spec: str) -> Optional[str]:
    spec = (spec or "").strip()
    if not spec or any(spec.startswith(p) for p in ("file:", "git", "http", "link:", "workspace:")):
        return None
    m = _VERSION_RE.search(spec)
    return m.group(0) if m else None


def _parse_package_json(content: str) -> List[Dependency]:
    data = json.loads(content)
    deps: List[Dependency] = []
    for section in ("dependencies", "devDependencies"):
        for name, spec in (data.get(section) or {}).items():
            version = _clean_version(str(spec))
            if version:
                deps.append(Dependency("npm", name, version))
    return deps


def _parse_requirements(content: str) -> List[Dependency]:
    deps: List[Dependency] = []
    for line in content.splitlines():
        line = line.split("#", 1)[0].strip()
        if not line or line.startswith("-") or "==" not in line:
            continue
        name, _, version = line.partition("==")
        name = re.split(r"[\[;<>=! ]", name.strip(), 1)[0]
        version = version.split(";", 1)[0].strip()
        if name and version:
            deps.append(Dependency("pip", name, version))
    return deps


def _parse_go_mod(content: str) -> List[Dependency]:
    deps: List[Dependency] = []
    in_block = False
    for raw in content.splitlines():
        line = raw.split("//", 1)[0].strip()
        if line.startswith("require ("):
            in_block = True
            continue
        if in_block and line == ")":
            in_block = False
            continue
        if line.startswith("require "):
            line = line[len("require "):].strip()
        elif not in_block:
            continue
        parts = line.split()
        if len(parts) >= 2 and parts[1].startswith("v"):
            deps.append(Dependency("go", parts[0], parts[1].lstrip("v")))
    return deps


def _parse_cargo_toml(content: str) -> List[Dependency]:
    deps: List[Dependency] = []
    in_deps = False
    for raw in content.splitlines():
        line = raw.split("#", 1)[0].strip()
        if line.startswith("["):
            in_deps = line in ("[dependencies]", "[dev-dependencies]")
            continue
        if not in_deps or "=" not in line:
            continue
        name, _, spec = line.partition("=")
        spec = spec.strip()
        if spec.startswith("{"):
            m = re.search(r'version\s*=\s*"([^"]+)"', spec)
            spec = m.group(1) if m else ""
        version = _clean_version(spec.strip('"'))
        if version:
            deps.append(Dependency("rust", name.strip(), version))
    return deps


def _parse_pom(content: str) -> List[Dependency]:
    root = ET.fromstring(content)
    ns = {"m": root.tag[1:].split("}")[0]} if root.tag.startswith("{") else {}
    prefix = "m:" if ns else ""
    deps: List[Dependency] = []
    for dep in root.iter(f"{{{ns['m']}}}dependency" if ns else "dependency"):
        group = dep.findtext(f"{prefix}groupId", namespaces=ns)
        artifact = dep.findtext(f"{prefix}artifactId", namespaces=ns)
        version = _clean_version(dep.findtext(f"{prefix}version", namespaces=ns) or "")
        if group and artifact and version and "${" not in version:
            deps.append(Dependency("maven", f"{group}:{artifact}", version))
    return deps


_PARSERS = {
    "package.json": _parse_package_json,
    "requirements.txt": _parse_requirements,
    "go.mod": _parse_go_mod,
    "Cargo.toml": _parse_cargo_toml,
    "pom.xml": _parse_pom,
}


def is_manifest(path: str) -> bool:
    return path.rsplit("/", 1)[-1] in _PARSERS


def parse_manifest(path: str, content: str) -> List[Dependency]:
    """Extract pinned dependencies from a manifest. Unknown files → []."""
    parser = _PARSERS.get(path.rsplit("/", 1)[-1])
    if parser is None:
        return []
    return parser(content)[:MAX_DEPENDENCIES]


# ---------------------------------------------------------------------------
# Advisory formatting
# ---------------------------------------------------------------------------

def _patched_version(advisory: Dict[str, Any], package: str) -> Optional[str]:
    for vuln in advisory.get("vulnerabilities") or []:
        pkg = (vuln.get("package") or {}).get("name")
        if pkg and pkg.lower() != package.lower():
            continue
        patched = vuln.get("first_patched_version")
        if isinstance(patched, dict):
            patched = patched.get("identifier")
        if patched:
            return str(patched)
    return None


def format_advisory(advisory: Dict[str, Any], dep: Dependency, file: Optional[str]) -> AdvisoryRaw:
    cvss = advisory.get("cvss") or {}
    cwes = tuple(c.get("cwe_id") for c in advisory.get("cwes") or [] if c.get("cwe_id"))
    return AdvisoryRaw(
        ghsa_id=advisory.get("ghsa_id") or "GHSA-unknown",
        package=dep.name,
        version=dep.version,
        ecosystem=dep.ecosystem,
        severity=advisory.get("severity") or "unknown",
        summary=(advisory.get("summary") or "").strip(),
        cve_id=advisory.get("cve_id") or None,
        cvss_score=cvss.get("score"),
        cwe_ids=cwes,
        url=advisory.get("html_url"),
        file=file,
        patched_version=_patched_version(advisory, dep.name),
    )


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class GitHubAdvisoryAdapter(BaseAdapter):
    """Reviewed GitHub advisories for every pinned dependency in a manifest."""

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: Optional[str] = None,
        max_concurrency: int = 10,
        advisory_limit: int = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.max_concurrency = max(1, max_concurrency)
        self.advisory_limit = advisory_limit
        self._transport = transport

    @property
    def name(self) -> str:
        return "github-advisory"

    def supports(self, unit: ScanUnit) -> bool:
        return unit.has_content and is_manifest(unit.path)

    def execute(self, unit: ScanUnit, options: AdapterOptions) -> List[AdvisoryRaw]:
        content = unit.load()
        if content is None:
            return []
        deps = parse_manifest(unit.path, content)
        if not deps:
            return []
        logger.info(f"Advisory lookup for {len(deps)} dependencies in {unit.path}")
        return asyncio.run(self._lookup_all(deps, unit.path, options.timeout))

    async def _lookup_all(self, deps: List[Dependency], file: str, timeout: float) -> List[AdvisoryRaw]:
        headers = dict(HEADERS)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async with httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        ) as client:
            results = await asyncio.gather(
                *(self._lookup(client, semaphore, dep) for dep in deps),
                return_exceptions=True,
            )

        raws: List[AdvisoryRaw] = []
        failures = 0
        for dep, result in zip(deps, results):
            if isinstance(result, Exception):
                failures += 1
                logger.debug(f"Advisory lookup failed for {dep.name}@{dep.version}: {result}")
                continue
            for advisory in result:
                if len(raws) >= self.advisory_limit:
                    break
                raws.append(format_advisory(advisory, dep, file))

        if failures and failures == len(deps):
            raise ToolUnavailable(self.name, f"all {failures} advisory lookups failed")
        return raws

    async def _lookup(
        self, client: httpx.AsyncClient, sem: asyncio.Semaphore, dep: Dependency,
    ) -> List[Dict[str, Any]]:
        async with sem:
            resp = await client.get(
                "/advisories",
                params={
                    "ecosystem": dep.ecosystem,
                    "affects": f"{dep.name}@{dep.version}",
                    "type": "reviewed",
                    "per_page": self.advisory_limit,
                },
            )
            resp.raise_for_status()
            payload = resp.json()
        if not isinstance(payload, list):
            return []
        return [a for a in payload if not a.get("withdrawn_at")]
