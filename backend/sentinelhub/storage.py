# sentinelhub/storage.py
"""
Scan session persistence.

Reports are written once, after the orchestrator returns, and read back
by id or as a "recent" list. Every record expires after a TTL.

    SqlSessionStore       Flask-SQLAlchemy, table scan_record
    MemorySessionStore    bounded in-process dict, same TTL semantics
    FallbackSessionStore  primary first; on StorageError writes to the
                          fallback and reports the failure in StoreResult

Callers always keep their in-memory report regardless of the outcome.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from sentinelhub.exceptions import StorageError
from sentinelhub.extensions import db
from sentinelhub.models import ScanRecord, now_utc

logger = logging.getLogger(__name__)


@dataclass
class StoreResult:
    stored: bool
    backend: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"stored": self.stored, "backend": self.backend, "error": self.error}


def report_summary(report: Dict[str, Any]) -> Dict[str, Any]:
    """Compact listing entry for a stored report."""
    session = report.get("session") or {}
    return {
        "id": session.get("id"),
        "target": session.get("target"),
        "overallRisk": (report.get("riskAssessment") or {}).get("overall"),
        "summary": session.get("summary") or {},
        "startedAt": session.get("startedAt"),
        "finishedAt": session.get("finishedAt"),
    }


def _target_label(report: Dict[str, Any]) -> Tuple[str, str]:
    target = (report.get("session") or {}).get("target") or {}
    kind = target.get("kind") or "unknown"
    if kind == "repository":
        return kind, f"{target.get('owner')}/{target.get('name')}"
    if kind == "bucket":
        return kind, f"s3://{target.get('name')}"
    return kind, f"snippet ({target.get('language')})"


class SessionStore(ABC):
    backend = "base"

    def __init__(self, ttl_seconds: int = 86400, recent_limit: int = 10):
        self.ttl_seconds = ttl_seconds
        self.recent_limit = recent_limit

    @abstractmethod
    def save(self, report: Dict[str, Any], ttl_seconds: Optional[int] = None) -> StoreResult:
        ...

    @abstractmethod
    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def purge_expired(self) -> int:
        ...

    def _limit(self, limit: Optional[int]) -> int:
        if not limit or limit < 1:
            return self.recent_limit
        return min(limit, self.recent_limit)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class MemorySessionStore(SessionStore):
    backend = "memory"

    def __init__(
        self,
        ttl_seconds: int = 86400,
        recent_limit: int = 10,
        capacity: int = 500,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl_seconds, recent_limit)
        self.capacity = capacity
        self._clock = clock
        self._items: "OrderedDict[str, Tuple[float, Dict[str, Any]]]" = OrderedDict()
        self._lock = threading.Lock()

    def save(self, report: Dict[str, Any], ttl_seconds: Optional[int] = None) -> StoreResult:
        session_id = (report.get("session") or {}).get("id")
        if not session_id:
            return StoreResult(False, self.backend, "report has no session id")
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._items.pop(session_id, None)
            self._items[session_id] = (self._clock() + ttl, report)
            while len(self._items) > self.capacity:
                self._items.popitem(last=False)
        return StoreResult(True, self.backend)

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._items.get(session_id)
            if entry is None:
                return None
            expires_at, report = entry
            if expires_at <= self._clock():
                del self._items[session_id]
                return None
            return report

    def recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        self.purge_expired()
        with self._lock:
            reports = [report for _, report in reversed(self._items.values())]
        return [report_summary(r) for r in reports[: self._limit(limit)]]

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (expires_at, _) in self._items.items() if expires_at <= now]
            for k in expired:
                del self._items[k]
        return len(expired)


# ---------------------------------------------------------------------------
# SQL (Flask-SQLAlchemy)
# ---------------------------------------------------------------------------

class SqlSessionStore(SessionStore):
    """
    Needs an active Flask app context. Database failures are rolled back
    and raised as StorageError.
    """

    backend = "sql"

    @contextlib.contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            try:
                db.session.rollback()
            except SQLAlchemyError as rb_err:
                logger.warning(f"Rollback after failed {action} also failed: {rb_err}")
            first_line = (str(e).splitlines() or [""])[0]
            raise StorageError(f"{type(e).__name__}: {first_line}", {"action": action}) from e

    def save(self, report: Dict[str, Any], ttl_seconds: Optional[int] = None) -> StoreResult:
        session = report.get("session") or {}
        session_id = session.get("id")
        if not session_id:
            return StoreResult(False, self.backend, "report has no session id")
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        kind, label = _target_label(report)
        created = now_utc()

        with self._guard("save"):
            record = db.session.get(ScanRecord, session_id) or ScanRecord(id=session_id)
            record.target_kind = kind
            record.target_label = label[:255]
            record.overall_risk = (report.get("riskAssessment") or {}).get("overall")
            record.total_findings = int((session.get("summary") or {}).get("total") or 0)
            record.report_json = report
            record.created_at = created
            record.expires_at = created + timedelta(seconds=ttl)
            db.session.add(record)
            db.session.commit()
        return StoreResult(True, self.backend)

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self._guard("get"):
            record = db.session.get(ScanRecord, session_id)
            if record is None:
                return None
            if record.expires_at <= now_utc():
                db.session.delete(record)
                db.session.commit()
                return None
            return record.report_json

    def recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._guard("recent"):
            records = (
                ScanRecord.query
                .filter(ScanRecord.expires_at > now_utc())
                .order_by(ScanRecord.created_at.desc())
                .limit(self._limit(limit))
                .all()
            )
        return [report_summary(r.report_json) for r in records]

    def purge_expired(self) -> int:
        with self._guard("purge"):
            count = ScanRecord.query.filter(ScanRecord.expires_at <= now_utc()).delete()
            db.session.commit()
        return count


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------

class FallbackSessionStore(SessionStore):
    """Primary store with an in-memory safety net."""

    def __init__(self, primary: SessionStore, fallback: Optional[SessionStore] = None):
        super().__init__(primary.ttl_seconds, primary.recent_limit)
        self.primary = primary
        self.fallback = fallback or MemorySessionStore(primary.ttl_seconds, primary.recent_limit)

    @property
    def backend(self) -> str:
        return self.primary.backend

    def _recover(self, action: str, e: StorageError) -> str:
        logger.warning(f"Primary session store failed during {action}: {e.message}")
        return e.message

    def save(self, report: Dict[str, Any], ttl_seconds: Optional[int] = None) -> StoreResult:
        try:
            return self.primary.save(report, ttl_seconds)
        except StorageError as e:
            error = self._recover("save", e)
        result = self.fallback.save(report, ttl_seconds)
        return StoreResult(result.stored, result.backend, error)

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            report = self.primary.get(session_id)
        except StorageError as e:
            self._recover("get", e)
            report = None
        return report if report is not None else self.fallback.get(session_id)

    def recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        try:
            items = self.primary.recent(limit)
        except StorageError as e:
            self._recover("recent", e)
            items = []
        items = items + self.fallback.recent(limit)
        items.sort(key=lambda s: s.get("finishedAt") or s.get("startedAt") or "", reverse=True)
        return items[: self._limit(limit)]

    def purge_expired(self) -> int:
        count = self.fallback.purge_expired()
        try:
            count += self.primary.purge_expired()
        except StorageError as e:
            self._recover("purge", e)
        return count
