from __future__ import annotations

from ..extensions import db
from prodtrack.time_utils import to_utc_z, utcnow


CHANGE_KIND_STORAGE = "STORAGE"
CHANGE_KIND_SIGNAL = "SIGNAL"


class StoredRecord(db.Model):
    """
    One key of the shared record store.

    The value is the full JSON document for the key, kept as raw text so a
    malformed document can still be loaded (and recovered) by readers.

    WHY version: every write is a full-document replace. The version column
    turns a lost read-modify-write race between two processes into a
    StaleDataError that the writer retries against the fresh document.
    """
    __tablename__ = "stored_records"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False, unique=True, index=True)
    value = db.Column(db.Text, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)

    updated_by_instance = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "version": self.version,
            "updated_by_instance": self.updated_by_instance,
            "updated_at": to_utc_z(self.updated_at),
        }


class ChangeEvent(db.Model):
    """
    Append-only change journal shared by every instance.

    STORAGE rows are written alongside each record write (payload-less,
    keyed by store key). SIGNAL rows carry a named domain event and its
    payload. Instances poll rows newer than their cursor and skip their own.

    IMMUTABLE: never updated; old rows are pruned by maintenance.
    """
    __tablename__ = "change_events"
    __table_args__ = (
        db.Index("ix_change_events_origin", "origin"),
        db.Index("ix_change_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False)  # STORAGE, SIGNAL
    key = db.Column(db.String(128), nullable=True)
    signal_name = db.Column(db.String(64), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    origin = db.Column(db.String(64), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "key": self.key,
            "signal_name": self.signal_name,
            "payload": self.payload,
            "origin": self.origin,
            "occurred_at": to_utc_z(self.occurred_at),
        }
