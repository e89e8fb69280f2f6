# Overview: Change notifier; storage notifications and named domain signals between instances.

"""
Change Notifier

Two channels, both carried by the record store's change journal:

1. Storage notifications: fired when ANOTHER instance wrote a key. Handlers
   are registered per key pattern (fnmatch) and receive the key only; they
   re-read whatever they need.
2. Domain signals: named events with a small payload, e.g.
   productionEntryAdded {factory, projectId, entryId}. emit() delivers to
   local receivers immediately and journals the signal for other instances.

Delivery to this instance is pull-based: poll() drains journal rows newer
than the instance's cursor, skipping rows the instance wrote itself.

Journal ids are handed out before commit, so on a database with concurrent
writers (PostgreSQL) a row can become visible after a higher id was already
delivered. poll() therefore re-reads a window of `lookback` ids behind the
cursor and skips the seqs it has already delivered.

Each notifier owns a blinker Namespace so two instances living in one
process (tests, embedded use) never see each other's local sends.
"""

from __future__ import annotations

import logging
import uuid
from fnmatch import fnmatchcase
from typing import Callable

from blinker import Namespace

from ..models import CHANGE_KIND_SIGNAL, CHANGE_KIND_STORAGE


logger = logging.getLogger(__name__)


PRODUCTION_ENTRY_ADDED = "productionEntryAdded"
PRODUCTION_ENTRY_UPDATED = "productionEntryUpdated"
PRODUCTION_ENTRY_DELETED = "productionEntryDeleted"

PRODUCTION_ENTRY_SIGNALS = (
    PRODUCTION_ENTRY_ADDED,
    PRODUCTION_ENTRY_UPDATED,
    PRODUCTION_ENTRY_DELETED,
)

DEFAULT_LOOKBACK = 100


def new_instance_id() -> str:
    return f"inst-{uuid.uuid4().hex[:12]}"


class ChangeNotifier:

    def __init__(self, store, *, instance_id: str | None = None, lookback: int = DEFAULT_LOOKBACK):
        self.store = store
        self.instance_id = instance_id or new_instance_id()
        self._signals = Namespace()
        self._storage_handlers: list[tuple[str, Callable[[str], None]]] = []
        self.lookback = max(int(lookback), 0)
        # Only changes made after this instance opened are delivered
        self._cursor = store.latest_seq()
        self._floor = self._cursor
        self._delivered: set[int] = set()

    @property
    def cursor(self) -> int:
        return self._cursor

    def signal(self, name: str):
        return self._signals.signal(name)

    def on_external_write(self, key_pattern: str, handler: Callable[[str], None]) -> None:
        """handler(key) runs when another instance writes a key matching key_pattern."""
        self._storage_handlers.append((key_pattern, handler))

    def on_signal(self, signal_name: str, handler) -> None:
        """handler(sender, **payload); sender is the emitting instance id."""
        self.signal(signal_name).connect(handler, weak=False)

    def emit(self, signal_name: str, payload: dict | None = None) -> None:
        payload = dict(payload or {})
        self.store.publish(signal_name, payload, origin=self.instance_id)
        self.signal(signal_name).send(self.instance_id, **payload)

    def _dispatch_storage(self, key: str) -> None:
        for pattern, handler in list(self._storage_handlers):
            if fnmatchcase(key, pattern):
                handler(key)

    def poll(self, limit: int = 500) -> int:
        """
        Deliver journal changes written by other instances since the last poll.

        Returns the number of changes delivered. The cursor advances past each
        change before its handlers run, so a failing handler is not re-run
        for the same change on the next poll.
        """
        delivered = 0
        start = max(self._cursor - self.lookback, self._floor)
        while True:
            changes = self.store.changes_since(start, exclude_origin=self.instance_id, limit=limit)
            if not changes:
                break
            for change in changes:
                start = change.seq
                if change.seq in self._delivered:
                    continue
                self._delivered.add(change.seq)
                self._cursor = max(self._cursor, change.seq)
                delivered += 1
                if change.kind == CHANGE_KIND_STORAGE and change.key:
                    logger.debug("Storage change %s from %s", change.key, change.origin)
                    self._dispatch_storage(change.key)
                elif change.kind == CHANGE_KIND_SIGNAL and change.signal_name:
                    logger.debug("Signal %s from %s", change.signal_name, change.origin)
                    self.signal(change.signal_name).send(change.origin, **(change.payload or {}))
            if len(changes) < limit:
                break
        window = self._cursor - self.lookback
        self._delivered = {seq for seq in self._delivered if seq > window}
        return delivered
