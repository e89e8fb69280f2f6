# Overview: Service-layer access to the shared record store; key -> JSON document plus the change journal.

"""
Persisted Record Store

Every open instance of the application shares one record store. A key holds
one whole JSON document (a list of clients, the entries of one factory, the
activity log, ...). Writes replace the whole document; there are no field
level patches.

Each write also appends a STORAGE row to the change journal so other
instances learn that the key changed. publish() appends SIGNAL rows for named
domain events. The journal is the only channel between instances.

Two backends share the contract:
- SqlRecordStore: Flask-SQLAlchemy tables, usable across processes
- MemoryRecordStore: in-process dicts, for tests and embedding
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import StoredRecord, ChangeEvent, CHANGE_KIND_STORAGE, CHANGE_KIND_SIGNAL
from .concurrency import PartitionLocks, RETRYABLE_ERRORS, lock_for_update, run_with_retry


logger = logging.getLogger(__name__)


# Store keys
CLIENTS_KEY = "clients"
PROJECTS_KEY = "projects"
INVOICES_KEY = "invoices"
ACTIVITY_LOG_KEY = "activity_log"
CURRENT_USER_KEY = "current_user"
USERS_KEY = "users"
ENTRIES_PREFIX = "entries_"

DEFAULT_JOURNAL_CAPACITY = 10_000


def entries_key(factory: str) -> str:
    return f"{ENTRIES_PREFIX}{factory}"


def factory_from_key(key: str) -> str | None:
    if key.startswith(ENTRIES_PREFIX):
        return key[len(ENTRIES_PREFIX):] or None
    return None


@dataclass(frozen=True)
class Change:
    """One row of the change journal as seen by a reader."""
    seq: int
    kind: str
    origin: str
    key: str | None = None
    signal_name: str | None = None
    payload: dict | None = None


def encode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


class RecordStore:
    """Shared contract; subclasses provide the raw primitives."""

    def __init__(self):
        self._locks = PartitionLocks()

    # -- primitives -------------------------------------------------------

    def read_raw(self, key: str) -> str | None:
        raise NotImplementedError

    def write_raw(self, key: str, text: str, *, origin: str) -> None:
        raise NotImplementedError

    def delete(self, key: str, *, origin: str) -> bool:
        raise NotImplementedError

    def keys(self, prefix: str = "") -> list[str]:
        raise NotImplementedError

    def publish(self, signal_name: str, payload: dict | None, *, origin: str) -> Change:
        raise NotImplementedError

    def changes_since(self, seq: int, *, exclude_origin: str | None = None, limit: int = 500) -> list[Change]:
        raise NotImplementedError

    def latest_seq(self) -> int:
        raise NotImplementedError

    def _replace(self, key: str, mutate: Callable[[Any], Any], *, origin: str, default_factory: Callable[[], Any]):
        raise NotImplementedError

    # -- documents --------------------------------------------------------

    def _decode(self, key: str, raw: str | None, default: Any) -> Any:
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Unparseable document under key %r; treating it as empty", key)
            return default

    def _coerce_doc(self, key: str, raw: str | None, default_factory: Callable[[], Any]) -> Any:
        empty = default_factory()
        doc = self._decode(key, raw, None)
        if doc is None:
            return empty
        if not isinstance(doc, type(empty)):
            logger.warning(
                "Document under key %r is a %s, expected %s; treating it as empty",
                key, type(doc).__name__, type(empty).__name__,
            )
            return empty
        return doc

    def read(self, key: str, default: Any = None) -> Any:
        """Parsed document, or default when missing or malformed."""
        return self._decode(key, self.read_raw(key), default)

    def read_list(self, key: str) -> list:
        """Parsed list document; anything else yields an empty list."""
        return self._coerce_doc(key, self.read_raw(key), list)

    def write(self, key: str, value: Any, *, origin: str) -> None:
        with self._locks.hold(key):
            self.write_raw(key, encode(value), origin=origin)

    def update(self, key: str, mutate: Callable[[Any], Any], *, origin: str, default_factory: Callable[[], Any] = list):
        """
        Read-modify-write one key as a unit.

        mutate receives a freshly parsed copy of the document (or
        default_factory() when missing or malformed) and returns the new
        document, which is written back and returned. mutate may run more
        than once when another process wins a race, so it must not have side
        effects outside the document. Exceptions raised by mutate abort the
        write and propagate.
        """
        with self._locks.hold(key):
            return self._replace(key, mutate, origin=origin, default_factory=default_factory)


class MemoryRecordStore(RecordStore):
    """
    In-process store. Instances sharing one object behave like tabs sharing storage.

    The journal keeps at most journal_capacity rows; older rows are dropped
    as new ones arrive. Seqs keep counting up after a prune.
    """

    def __init__(self, journal_capacity: int = DEFAULT_JOURNAL_CAPACITY):
        super().__init__()
        self.journal_capacity = max(int(journal_capacity), 1)
        self._data: dict[str, str] = {}
        self._journal: list[Change] = []
        self._last_seq = 0
        self._journal_lock = threading.RLock()

    def _append(self, kind: str, origin: str, **fields) -> Change:
        with self._journal_lock:
            self._last_seq += 1
            change = Change(seq=self._last_seq, kind=kind, origin=origin, **fields)
            self._journal.append(change)
            if len(self._journal) > self.journal_capacity:
                del self._journal[:-self.journal_capacity]
            return change

    def prune_changes(self, *, keep_last: int = 0) -> int:
        """Drop all but the newest keep_last journal rows; returns how many were dropped."""
        with self._journal_lock:
            dropped = max(len(self._journal) - max(keep_last, 0), 0)
            del self._journal[:dropped]
            return dropped

    def read_raw(self, key: str) -> str | None:
        return self._data.get(key)

    def write_raw(self, key: str, text: str, *, origin: str) -> None:
        with self._journal_lock:
            self._data[key] = text
            self._append(CHANGE_KIND_STORAGE, origin, key=key)

    def delete(self, key: str, *, origin: str) -> bool:
        with self._journal_lock:
            if self._data.pop(key, None) is None:
                return False
            self._append(CHANGE_KIND_STORAGE, origin, key=key)
            return True

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    def publish(self, signal_name: str, payload: dict | None, *, origin: str) -> Change:
        return self._append(
            CHANGE_KIND_SIGNAL, origin,
            signal_name=signal_name, payload=copy.deepcopy(payload) if payload else None,
        )

    def changes_since(self, seq: int, *, exclude_origin: str | None = None, limit: int = 500) -> list[Change]:
        with self._journal_lock:
            found = [c for c in self._journal if c.seq > seq and c.origin != exclude_origin]
        return found[:limit]

    def latest_seq(self) -> int:
        return self._last_seq

    def _replace(self, key, mutate, *, origin, default_factory):
        doc = self._coerce_doc(key, self.read_raw(key), default_factory)
        new_doc = mutate(doc)
        self.write_raw(key, encode(new_doc), origin=origin)
        return new_doc


class SqlRecordStore(RecordStore):
    """
    Record store on the application database.

    Must be used inside an application context. Reads always refresh the
    row from the database so writes from other processes are visible.
    """

    # A concurrent first write of the same key loses on the unique constraint
    RETRY_ON = RETRYABLE_ERRORS + (IntegrityError,)

    def _query(self, key: str):
        return db.session.query(StoredRecord).filter_by(key=key).populate_existing()

    def _put_row(self, row: StoredRecord | None, key: str, text: str, origin: str) -> None:
        if row is None:
            row = StoredRecord(key=key, value=text, updated_by_instance=origin)
            db.session.add(row)
        else:
            row.value = text
            row.updated_by_instance = origin
        db.session.add(ChangeEvent(kind=CHANGE_KIND_STORAGE, key=key, origin=origin))

    def read_raw(self, key: str) -> str | None:
        row = self._query(key).first()
        return row.value if row else None

    def write_raw(self, key: str, text: str, *, origin: str) -> None:
        def _op():
            row = lock_for_update(self._query(key)).first()
            self._put_row(row, key, text, origin)
            db.session.commit()
        run_with_retry(_op, retry_on=self.RETRY_ON)

    def delete(self, key: str, *, origin: str) -> bool:
        def _op():
            row = lock_for_update(self._query(key)).first()
            if row is None:
                return False
            db.session.delete(row)
            db.session.add(ChangeEvent(kind=CHANGE_KIND_STORAGE, key=key, origin=origin))
            db.session.commit()
            return True
        with self._locks.hold(key):
            return run_with_retry(_op, retry_on=self.RETRY_ON)

    def keys(self, prefix: str = "") -> list[str]:
        q = db.session.query(StoredRecord.key)
        if prefix:
            q = q.filter(StoredRecord.key.startswith(prefix, autoescape=True))
        return [k for (k,) in q.order_by(StoredRecord.key.asc()).all()]

    def publish(self, signal_name: str, payload: dict | None, *, origin: str) -> Change:
        event = ChangeEvent(
            kind=CHANGE_KIND_SIGNAL,
            signal_name=signal_name,
            payload=payload or None,
            origin=origin,
        )

        def _op():
            db.session.add(event)
            db.session.commit()
            return event.id
        seq = run_with_retry(_op)
        return Change(seq=seq, kind=CHANGE_KIND_SIGNAL, origin=origin, signal_name=signal_name, payload=payload or None)

    def changes_since(self, seq: int, *, exclude_origin: str | None = None, limit: int = 500) -> list[Change]:
        # Ids can commit out of order under concurrent writers; ChangeNotifier
        # re-reads a window behind its cursor to pick up late rows.
        q = db.session.query(ChangeEvent).filter(ChangeEvent.id > seq)
        if exclude_origin is not None:
            q = q.filter(ChangeEvent.origin != exclude_origin)
        rows = q.order_by(ChangeEvent.id.asc()).limit(limit).all()
        return [
            Change(
                seq=row.id,
                kind=row.kind,
                origin=row.origin,
                key=row.key,
                signal_name=row.signal_name,
                payload=row.payload,
            )
            for row in rows
        ]

    def latest_seq(self) -> int:
        return db.session.query(func.max(ChangeEvent.id)).scalar() or 0

    def _replace(self, key, mutate, *, origin, default_factory):
        def _op():
            row = lock_for_update(self._query(key)).first()
            doc = self._coerce_doc(key, row.value if row else None, default_factory)
            new_doc = mutate(doc)
            self._put_row(row, key, encode(new_doc), origin)
            db.session.commit()
            return new_doc
        return run_with_retry(_op, retry_on=self.RETRY_ON)
