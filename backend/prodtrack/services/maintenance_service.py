# Overview: Service-layer operations for maintenance; pruning of the change journal.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import ChangeEvent
from prodtrack.time_utils import utcnow


def cleanup_change_events(*, retention_hours: int = 24) -> int:
    """
    Delete change journal rows older than retention_hours.

    An instance that has not polled for longer than the window misses those
    changes; its next TTL expiry or reset picks the data up again.
    """
    cutoff = utcnow() - timedelta(hours=retention_hours)
    deleted = db.session.query(ChangeEvent).filter(
        ChangeEvent.occurred_at < cutoff
    ).delete()
    db.session.commit()
    return deleted
