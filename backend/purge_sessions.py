#!/usr/bin/env python3
"""
purge_sessions.py

Deletes stored scan reports whose TTL has passed. Reads the same
SQLALCHEMY_DATABASE_URI as the API.

Usage:
    # Dry run (lists what would be deleted, no changes):
    python purge_sessions.py

    # Actually delete:
    python purge_sessions.py --commit
"""

import sys

from sentinelhub import create_app
from sentinelhub.extensions import db
from sentinelhub.models import ScanRecord, now_utc
from sentinelhub.storage import SqlSessionStore


def purge(commit=False):
    app = create_app()

    with app.app_context():
        expired = (
            ScanRecord.query
            .filter(ScanRecord.expires_at <= now_utc())
            .order_by(ScanRecord.expires_at)
            .all()
        )

        if not expired:
            print("No expired scan sessions. Nothing to purge.")
            return 0

        for record in expired:
            print(
                f"  {record.id}  {record.target_kind:<10} {record.target_label[:50]:<50} "
                f"expired {record.expires_at:%Y-%m-%d %H:%M}"
            )

        print(f"\n{'=' * 60}")
        print(f"Total: {len(expired)} expired sessions")

        if not commit:
            db.session.rollback()
            print("\nDRY RUN: no changes made. Run with --commit to apply.")
            return 0

        deleted = SqlSessionStore().purge_expired()
        print(f"\nDONE: {deleted} expired sessions deleted.")
        return deleted


if __name__ == "__main__":
    purge(commit="--commit" in sys.argv)
