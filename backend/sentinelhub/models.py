from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ScanRecord(db.Model):
    """One persisted scan report. The report document is stored whole."""

    __tablename__ = "scan_record"

    id = db.Column(db.String(36), primary_key=True)
    target_kind = db.Column(db.String(20), nullable=False, index=True)
    target_label = db.Column(db.String(255), nullable=False)

    overall_risk = db.Column(db.String(20), nullable=True)
    total_findings = db.Column(db.Integer, nullable=False, default=0)

    report_json = db.Column(db.JSON, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=now_utc, index=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
