# sentinelhub/scanner/intelligence.py
"""
Threat intelligence enricher.

Looks up indicators mentioned in a session's findings against public
intelligence sources and returns them as `session.insights["intelligence"]`:

    breachData        emails checked against Have I Been Pwned
    cveMatches        technologies named in vulnerability findings, matched
                      against the GitHub Security Advisory database
    threatIndicators  public IPv4 addresses, each checked against ipapi.co,
                      AlienVault OTX and IPQualityScore

All lookups share one httpx.AsyncClient and run concurrently under an
asyncio.Semaphore. Every lookup is isolated: a failing request only costs
that source's answer for that indicator, and each source's outcome is
reported under `sources` (ok / partial / failed / idle / skipped). Sources
that need an API key are skipped when none is configured.

Findings are never added or changed.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote

import httpx

from sentinelhub.scanner.base import Finding, ScanSession
from sentinelhub.scanner.enrichment import BaseEnricher

logger = logging.getLogger(__name__)

SOURCE_HIBP = "haveibeenpwned"
SOURCE_ADVISORIES = "github-advisories"
SOURCE_IPAPI = "ipapi"
SOURCE_OTX = "alienvault-otx"
SOURCE_IPQS = "ipqualityscore"
SOURCES = (SOURCE_HIBP, SOURCE_ADVISORIES, SOURCE_IPAPI, SOURCE_OTX, SOURCE_IPQS)

HIBP_URL = "https://haveibeenpwned.com/api/v3"
IPAPI_URL = "https://ipapi.co"
OTX_URL = "https://otx.alienvault.com/api/v1"
IPQS_URL = "https://ipqualityscore.com/api/json/ip"

HEADERS = {"User-Agent": "sentinelhub-scanner/1.0"}

# Lookups per scan
MAX_EMAILS = 5
MAX_TECHNOLOGIES = 3
MAX_IPS = 2
ADVISORIES_PER_TECHNOLOGY = 5
OTX_PULSES = 3

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
IPV4_RE = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")
TECH_PATTERNS = (
    ("node.js", re.compile(r"\bnode[.\s]?js\b", re.IGNORECASE)),
    ("react", re.compile(r"\breact\b", re.IGNORECASE)),
    ("express", re.compile(r"\bexpress\b", re.IGNORECASE)),
    ("mongodb", re.compile(r"\bmongo(?:db)?\b", re.IGNORECASE)),
    ("mysql", re.compile(r"\bmysql\b", re.IGNORECASE)),
    ("postgres", re.compile(r"\bpostgres(?:ql)?\b", re.IGNORECASE)),
    ("redis", re.compile(r"\bredis\b", re.IGNORECASE)),
    ("nginx", re.compile(r"\bnginx\b", re.IGNORECASE)),
    ("spring", re.compile(r"\bspring\b", re.IGNORECASE)),
    ("django", re.compile(r"\bdjango\b", re.IGNORECASE)),
    ("flask", re.compile(r"\bflask\b", re.IGNORECASE)),
    ("laravel", re.compile(r"\blaravel\b", re.IGNORECASE)),
)
IGNORED_EMAIL_DOMAINS = ("example.com", "example.org", "test.com", "localhost")


# ---------------------------------------------------------------------------
# Indicator extraction
# ---------------------------------------------------------------------------

def _ordered_unique(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen


def extract_emails(findings: Sequence[Finding]) -> List[str]:
    found = []
    for f in findings:
        for email in EMAIL_RE.findall(f.message):
            email = email.lower()
            if email.rsplit("@", 1)[1] not in IGNORED_EMAIL_DOMAINS:
                found.append(email)
    return _ordered_unique(found)[:MAX_EMAILS]


def extract_public_ips(findings: Sequence[Finding]) -> List[str]:
    found = []
    for f in findings:
        for candidate in IPV4_RE.findall(f.message):
            try:
                if ipaddress.ip_address(candidate).is_global:
                    found.append(candidate)
            except ValueError:
                continue
    return _ordered_unique(found)[:MAX_IPS]


def extract_technologies(findings: Sequence[Finding]) -> List[str]:
    found = []
    for f in findings:
        if f.category == "secrets":
            continue
        text = f"{f.type} {f.message}"
        found.extend(name for name, pattern in TECH_PATTERNS if pattern.search(text))
    return _ordered_unique(found)[:MAX_TECHNOLOGIES]


# ---------------------------------------------------------------------------
# Per-source bookkeeping
# ---------------------------------------------------------------------------

@dataclass
class SourceStatus:
    configured: bool = True
    lookups: int = 0
    failures: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.configured:
            return "skipped"
        if self.lookups == 0:
            return "idle"
        if self.failures == 0:
            return "ok"
        return "failed" if self.failures == self.lookups else "partial"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "lookups": self.lookups,
            "failures": self.failures,
            "error": self.errors[0] if self.errors else None,
        }


@dataclass
class _IntelRun:
    """Working state of one gather() call."""
    client: httpx.AsyncClient
    statuses: Dict[str, SourceStatus]
    semaphore: asyncio.Semaphore
    hibp_semaphore: asyncio.Semaphore


def _describe(e: Exception) -> str:
    # Never echo request URLs: IPQualityScore carries its key in the path
    if isinstance(e, httpx.HTTPStatusError):
        return f"HTTP {e.response.status_code}"
    if isinstance(e, httpx.HTTPError):
        return type(e).__name__
    return f"{type(e).__name__}: {e}"


# ---------------------------------------------------------------------------
# Scoring of aggregated indicators
# ---------------------------------------------------------------------------

def ip_severity(otx: Optional[dict], ipqs: Optional[dict], info: Optional[dict]) -> str:
    if otx and otx["isMalicious"]:
        return "critical" if otx["pulseCount"] > 5 else "high"
    fraud = (ipqs or {}).get("fraudScore") or 0
    if fraud >= 75:
        return "high"
    if fraud >= 50:
        return "medium"
    if (ipqs and (ipqs["isProxy"] or ipqs["isTor"])) or (info and info["isTor"]):
        return "medium"
    return "info"


def ip_recommendation(ip: str, severity: str) -> str:
    if severity in ("critical", "high"):
        return f"Block {ip} and review every reference to it in the codebase"
    if severity == "medium":
        return f"Review why the code talks to {ip}; it is a proxy, Tor exit or has a poor fraud score"
    return f"No reputation issues reported for {ip}"


def intelligence_recommendations(
    breaches: List[dict], cves: List[dict], threats: List[dict],
) -> List[Dict[str, Any]]:
    recs: List[Dict[str, Any]] = []
    if breaches:
        recs.append({
            "priority": "critical",
            "category": "Data Breaches",
            "action": f"{len(breaches)} email(s) found in data breaches - rotate all credentials immediately",
            "details": [f"{b['email']}: {b['breachCount']} breach(es)" for b in breaches],
        })
    serious = [c for c in cves if c["severity"] in ("critical", "high")]
    if serious:
        recs.append({
            "priority": "high",
            "category": "Known Vulnerabilities",
            "action": f"{len(serious)} critical/high advisories affect your technology stack",
            "details": [f"{c['technology']}: {c['cveId'] or c['advisoryId']}" for c in serious],
        })
    risky = [t for t in threats if t["severity"] in ("critical", "high")]
    if risky:
        recs.append({
            "priority": "high",
            "category": "Threat Indicators",
            "action": f"{len(risky)} high-risk indicator(s) detected",
            "details": [f"{t['type']}: {t['value']}" for t in risky],
        })
    return recs


def intelligence_summary(breaches: List[dict], cves: List[dict], threats: List[dict]) -> Dict[str, Any]:
    if breaches:
        status = "critical"
    elif cves:
        status = "warning"
    else:
        status = "good"
    return {
        "totalThreats": len(breaches) + len(threats),
        "criticalIssues": len(breaches),
        "cveMatches": len(cves),
        "status": status,
    }


# ---------------------------------------------------------------------------
# Enricher
# ---------------------------------------------------------------------------

class ThreatIntelEnricher(BaseEnricher):
    """Breach, advisory and IP reputation lookups for indicators in findings."""

    name = "threat-intelligence"

    def __init__(
        self,
        hibp_api_key: Optional[str] = None,
        otx_api_key: Optional[str] = None,
        ipqs_api_key: Optional[str] = None,
        github_api_url: str = "https://api.github.com",
        github_token: Optional[str] = None,
        timeout: float = 10.0,
        max_concurrency: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.hibp_api_key = hibp_api_key
        self.otx_api_key = otx_api_key
        self.ipqs_api_key = ipqs_api_key
        self.github_api_url = github_api_url.rstrip("/")
        self.github_token = github_token
        self.timeout = timeout
        self.max_concurrency = max(1, max_concurrency)
        self._transport = transport

    @classmethod
    def from_config(cls, config, transport: Optional[httpx.AsyncBaseTransport] = None) -> "ThreatIntelEnricher":
        return cls(
            hibp_api_key=config.hibp_api_key,
            otx_api_key=config.otx_api_key,
            ipqs_api_key=config.ipqs_api_key,
            github_api_url=config.github_api_url,
            github_token=config.github_token,
            timeout=config.http_timeout_seconds,
            max_concurrency=config.max_concurrency,
            transport=transport,
        )

    def enrich(self, session: ScanSession) -> Dict[str, Any]:
        intelligence = asyncio.run(self.gather(list(session.findings)))
        summary = intelligence["summary"]
        logger.info(
            f"[{session.id}] Intelligence gathered: {len(intelligence['breachData'])} breaches, "
            f"{summary['cveMatches']} advisories, {len(intelligence['threatIndicators'])} indicators"
        )
        return {"enricher": self.name, "intelligence": intelligence}

    async def gather(self, findings: Sequence[Finding]) -> Dict[str, Any]:
        statuses = {
            SOURCE_HIBP: SourceStatus(configured=bool(self.hibp_api_key)),
            SOURCE_ADVISORIES: SourceStatus(),
            SOURCE_IPAPI: SourceStatus(),
            SOURCE_OTX: SourceStatus(configured=bool(self.otx_api_key)),
            SOURCE_IPQS: SourceStatus(configured=bool(self.ipqs_api_key)),
        }
        async with httpx.AsyncClient(
            headers=HEADERS,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        ) as client:
            # HIBP: one request at a time per key
            run = _IntelRun(client, statuses, asyncio.Semaphore(self.max_concurrency), asyncio.Semaphore(1))
            breaches, cves, threats = await asyncio.gather(
                self._breaches(run, extract_emails(findings)),
                self._cve_matches(run, extract_technologies(findings)),
                self._threat_indicators(run, extract_public_ips(findings)),
            )

        return {
            "breachData": breaches,
            "cveMatches": cves,
            "threatIndicators": threats,
            "recommendations": intelligence_recommendations(breaches, cves, threats),
            "summary": intelligence_summary(breaches, cves, threats),
            "sources": {name: statuses[name].to_dict() for name in SOURCES},
        }

    async def _lookup(self, run: _IntelRun, source: str, call: Awaitable, semaphore: Optional[asyncio.Semaphore] = None):
        """Run one request against one source. Failures are recorded, never raised."""
        status = run.statuses[source]
        status.lookups += 1
        try:
            async with semaphore or run.semaphore:
                return await call
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            status.failures += 1
            status.errors.append(_describe(e))
            logger.debug(f"{source} lookup failed: {_describe(e)}")
            return None

    # ------------------------------------------------------------------
    # Breaches
    # ------------------------------------------------------------------

    async def _breaches(self, run: _IntelRun, emails: List[str]) -> List[dict]:
        if not run.statuses[SOURCE_HIBP].configured or not emails:
            return []
        results = await asyncio.gather(*(
            self._lookup(run, SOURCE_HIBP, self._hibp(run.client, email), run.hibp_semaphore)
            for email in emails
        ))
        breaches = []
        for email, found in zip(emails, results):
            if not found:
                continue
            breaches.append({
                "email": email,
                "breachCount": len(found),
                "breaches": found,
                "severity": "critical",
                "recommendation": (
                    f"Email {email} found in {len(found)} data breach(es). Rotate credentials immediately."
                ),
            })
        return breaches

    async def _hibp(self, client: httpx.AsyncClient, email: str) -> List[dict]:
        resp = await client.get(
            f"{HIBP_URL}/breachedaccount/{quote(email, safe='')}",
            params={"truncateResponse": "false"},
            headers={"hibp-api-key": self.hibp_api_key},
        )
        if resp.status_code == 404:
            return []
        resp.raise_for_status()
        return [
            {"name": b["Name"], "date": b.get("BreachDate"), "dataClasses": b.get("DataClasses") or []}
            for b in resp.json()
        ]

    # ------------------------------------------------------------------
    # Advisories by technology
    # ------------------------------------------------------------------

    async def _cve_matches(self, run: _IntelRun, technologies: List[str]) -> List[dict]:
        results = await asyncio.gather(*(
            self._lookup(run, SOURCE_ADVISORIES, self._advisories(run.client, tech)) for tech in technologies
        ))
        matches = []
        for tech, advisories in zip(technologies, results):
            for advisory in (advisories or [])[:ADVISORIES_PER_TECHNOLOGY]:
                matches.append({
                    "technology": tech,
                    "advisoryId": advisory.get("ghsa_id"),
                    "cveId": advisory.get("cve_id"),
                    "summary": advisory.get("summary"),
                    "severity": advisory.get("severity") or "medium",
                    "cvss": (advisory.get("cvss") or {}).get("score"),
                    "published": advisory.get("published_at"),
                    "affectedPackages": [
                        (v.get("package") or {}).get("name") for v in advisory.get("vulnerabilities") or []
                    ],
                    "recommendation": f"Update {tech} packages to patched versions",
                })
        return matches

    async def _advisories(self, client: httpx.AsyncClient, technology: str) -> List[dict]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"
        resp = await client.get(
            f"{self.github_api_url}/advisories",
            params={"affects": technology, "per_page": 20},
            headers=headers,
        )
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, list):
            raise ValueError("advisory search did not return a list")
        return [a for a in payload if not a.get("withdrawn_at")]

    # ------------------------------------------------------------------
    # IP reputation
    # ------------------------------------------------------------------

    async def _threat_indicators(self, run: _IntelRun, ips: List[str]) -> List[dict]:
        return [t for t in await asyncio.gather(*(self._check_ip(run, ip) for ip in ips)) if t]

    async def _check_ip(self, run: _IntelRun, ip: str) -> Optional[dict]:
        calls = [self._lookup(run, SOURCE_IPAPI, self._ipapi(run.client, ip))]
        calls.append(self._lookup(run, SOURCE_OTX, self._otx(run.client, ip)) if self.otx_api_key else _none())
        calls.append(self._lookup(run, SOURCE_IPQS, self._ipqs(run.client, ip)) if self.ipqs_api_key else _none())
        info, otx, ipqs = await asyncio.gather(*calls)

        if info is None and otx is None and ipqs is None:
            return None
        severity = ip_severity(otx, ipqs, info)
        return {
            "type": "ip-address",
            "value": ip,
            "location": f"{info['city']}, {info['country']}" if info else "Unknown",
            "org": info["org"] if info else None,
            "asn": info["asn"] if info else None,
            "isVpn": bool((info and info["isVpn"]) or (ipqs and ipqs["isVpn"])),
            "isTor": bool((info and info["isTor"]) or (ipqs and ipqs["isTor"])),
            "alienVault": otx,
            "ipQuality": ipqs,
            "severity": severity,
            "recommendation": ip_recommendation(ip, severity),
        }

    async def _ipapi(self, client: httpx.AsyncClient, ip: str) -> dict:
        resp = await client.get(f"{IPAPI_URL}/{ip}/json/")
        resp.raise_for_status()
        data = resp.json()
        if data.get("error"):
            raise ValueError(data.get("reason") or "ipapi lookup refused")
        org = (data.get("org") or "").upper()
        return {
            "city": data.get("city"),
            "country": data.get("country_name"),
            "org": data.get("org"),
            "asn": data.get("asn"),
            "isVpn": "VPN" in org,
            "isTor": "TOR" in org.split(),
        }

    async def _otx(self, client: httpx.AsyncClient, ip: str) -> dict:
        resp = await client.get(
            f"{OTX_URL}/indicators/IPv4/{ip}/general",
            headers={"X-OTX-API-KEY": self.otx_api_key},
        )
        if resp.status_code == 404:
            return {"reputation": 0, "pulseCount": 0, "pulses": [], "isMalicious": False}
        resp.raise_for_status()
        data = resp.json()
        pulse_info = data.get("pulse_info") or {}
        count = pulse_info.get("count") or 0
        reputation = data.get("reputation") or 0
        return {
            "reputation": reputation,
            "pulseCount": count,
            "pulses": [p.get("name") for p in (pulse_info.get("pulses") or [])[:OTX_PULSES]],
            "isMalicious": count > 0 or reputation < 0,
        }

    async def _ipqs(self, client: httpx.AsyncClient, ip: str) -> dict:
        resp = await client.get(
            f"{IPQS_URL}/{self.ipqs_api_key}/{ip}",
            params={"strictness": 0, "allow_public_access_points": "true", "lighter_penalties": "true"},
        )
        resp.raise_for_status()
        data = resp.json()
        if data.get("success") is False:
            raise ValueError(data.get("message") or "IPQualityScore lookup refused")
        score = int(data.get("fraud_score") or 0)
        return {
            "fraudScore": score,
            "isProxy": bool(data.get("proxy")),
            "isVpn": bool(data.get("vpn")),
            "isTor": bool(data.get("tor")),
            "isBot": bool(data.get("bot_status")),
            "isRecentAbuse": bool(data.get("recent_abuse")),
            "threatLevel": "high" if score >= 75 else "medium" if score >= 50 else "low",
        }


async def _none() -> None:
    return None
