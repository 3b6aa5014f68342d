from __future__ import annotations

import logging
import re
from typing import Any, Optional, Tuple

from flask import Blueprint, current_app, jsonify, request

from sentinelhub.compliance import get_compliance_report
from sentinelhub.discovery.base import SNIPPET_EXTENSIONS
from sentinelhub.scanner.base import Finding, ScanTarget
from sentinelhub.scanner.report import build_report

logger = logging.getLogger(__name__)

scans_bp = Blueprint("scans", __name__, url_prefix="/scans")

NAME_RE = re.compile(r"^[A-Za-z0-9_.-]{1,100}$")
BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")
GITHUB_URL_RE = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(?:\.git)?/?$"
)
LANGUAGES = set(SNIPPET_EXTENSIONS)


def _services():
    return current_app.extensions["sentinelhub"]


def parse_deadline(value: Any, ceiling: float) -> Tuple[Optional[float], Optional[str]]:
    if value is None:
        return None, None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None, "deadlineSeconds must be a number"
    if value <= 0:
        return None, "deadlineSeconds must be positive"
    return min(float(value), ceiling), None


def parse_repository(body: dict) -> Tuple[Optional[Tuple[str, str]], Optional[str]]:
    url = (body.get("url") or "").strip()
    if url:
        m = GITHUB_URL_RE.match(url)
        if not m:
            return None, "url must be a github.com repository URL"
        return (m.group(1), m.group(2)), None

    owner = (body.get("owner") or "").strip()
    repo = (body.get("repo") or "").strip()
    if not owner or not repo:
        return None, "owner and repo are required (or url)"
    if not NAME_RE.match(owner) or not NAME_RE.match(repo):
        return None, "invalid owner or repo name"
    return (owner, repo), None


def _run(target: ScanTarget, deadline: Optional[float]):
    services = _services()
    session = services["orchestrator"].scan(target, deadline=deadline)
    report = build_report(session)
    result = services["store"].save(report)
    if not result.stored or result.error:
        logger.warning(f"[{session.id}] Report not persisted to primary store: {result.error}")
    return jsonify(dict(report, storage=result.to_dict())), 200


# ---------------------------------------------------------------------------
# Scans
# ---------------------------------------------------------------------------

@scans_bp.post("/snippet")
def scan_snippet():
    body = request.get_json(silent=True) or {}
    code = body.get("code")
    language = (body.get("language") or "javascript").strip().lower()

    if not isinstance(code, str) or not code.strip():
        return jsonify(error="code is required"), 400
    if language not in LANGUAGES:
        return jsonify(error=f"language must be one of: {', '.join(sorted(LANGUAGES))}"), 400

    deadline, err = parse_deadline(body.get("deadlineSeconds"), _services()["config"].tool_timeout_ceiling)
    if err:
        return jsonify(error=err), 400

    return _run(ScanTarget.snippet(code, language), deadline)


@scans_bp.post("/repository")
def scan_repository():
    body = request.get_json(silent=True) or {}
    parsed, err = parse_repository(body)
    if err:
        return jsonify(error=err), 400

    deadline, err = parse_deadline(body.get("deadlineSeconds"), _services()["config"].tool_timeout_ceiling)
    if err:
        return jsonify(error=err), 400

    owner, repo = parsed
    return _run(ScanTarget.repository(owner, repo), deadline)


@scans_bp.post("/bucket")
def scan_bucket():
    body = request.get_json(silent=True) or {}
    bucket = (body.get("bucket") or "").strip().lower()
    if bucket.startswith("s3://"):
        bucket = bucket[5:].rstrip("/")

    if not bucket:
        return jsonify(error="bucket is required"), 400
    if not BUCKET_RE.match(bucket) or ".." in bucket:
        return jsonify(error="invalid bucket name"), 400

    deadline, err = parse_deadline(body.get("deadlineSeconds"), _services()["config"].tool_timeout_ceiling)
    if err:
        return jsonify(error=err), 400

    return _run(ScanTarget.bucket(bucket), deadline)


# ---------------------------------------------------------------------------
# Stored sessions
# ---------------------------------------------------------------------------

@scans_bp.get("/recent")
def recent_scans():
    limit = request.args.get("limit", type=int)
    return jsonify(scans=_services()["store"].recent(limit)), 200


@scans_bp.get("/<session_id>")
def get_scan(session_id: str):
    report = _services()["store"].get(session_id)
    if report is None:
        return jsonify(error="scan not found or expired"), 404
    return jsonify(report), 200


@scans_bp.get("/<session_id>/compliance")
def get_scan_compliance(session_id: str):
    report = _services()["store"].get(session_id)
    if report is None:
        return jsonify(error="scan not found or expired"), 404
    findings = [Finding.from_dict(f) for f in report.get("findings") or []]
    return jsonify(sessionId=session_id, complianceReport=get_compliance_report(findings)), 200
