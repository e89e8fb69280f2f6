# Overview: Synchronization layer; turns change notifications into cache invalidation and view refreshes.

"""
Cross-Instance Synchronization

WHY: Instances share nothing but the record store. When another instance
writes, this one must drop the cached reads that write made stale and
re-derive whatever views are on screen, without a server round-trip.

STATE MACHINE (per instance):

    idle --notification--> notified --drain--> refreshing --done--> idle
                                                    |
                            notification during refresh: queued, and the
                            same drain runs one more pass before going idle

Triggers:
- a write this instance made through DataService (key_written)
- storage notification for a watched key (entries_*, projects, clients,
  invoices) written by another instance, delivered by ChangeNotifier.poll()
- a production-entry domain signal carrying {factory, projectId} from
  another instance; local emits are already covered by key_written

Everything one poll() delivers is refreshed in a single drain, so a batch
of N journal rows re-runs each affected loader once.

Invalidation always goes through DataService.store_key_changed(), so the
synchronizer and local writers share one dependency table.

A refresh in flight is never cancelled. Loader failures are logged and kept
on the view; they never stop the other views from refreshing.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Callable

from blinker import Namespace

from ..extensions import db
from .notifier import PRODUCTION_ENTRY_SIGNALS
from .record_store import ENTRIES_PREFIX, entries_key
from prodtrack.time_utils import utcnow


logger = logging.getLogger(__name__)


SYNC_IDLE = "idle"
SYNC_NOTIFIED = "notified"
SYNC_REFRESHING = "refreshing"

WATCHED_KEYS = (f"{ENTRIES_PREFIX}*", "projects", "clients", "invoices")


@dataclass
class View:
    """A registered derived view and the last state its loader produced."""
    name: str
    loader: Callable[[], Any]
    keys: tuple[str, ...]
    data: Any = None
    refreshed_at: Any = None
    error: Exception | None = None
    refresh_count: int = 0

    def depends_on(self, store_key: str) -> bool:
        return any(fnmatchcase(store_key, pattern) for pattern in self.keys)


class Synchronizer:

    def __init__(self, service, *, watched_keys=WATCHED_KEYS, clock=utcnow):
        self.service = service
        self.notifier = service.notifier
        self.watched_keys = tuple(watched_keys)
        self.state = SYNC_IDLE
        self.errors: list[tuple[str, Exception]] = []
        self.passes = 0
        self._clock = clock
        self._views: dict[str, View] = {}
        self._pending: set[str] = set()
        self._batching = 0
        self._lock = threading.RLock()
        self._signals = Namespace()
        # send(synchronizer, view=name, data=...)
        self.view_refreshed = self._signals.signal("view-refreshed")
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        for pattern in self.watched_keys:
            self.notifier.on_external_write(pattern, self._on_storage_change)
        for signal_name in PRODUCTION_ENTRY_SIGNALS:
            self.notifier.on_signal(signal_name, self._on_entry_signal)
        service.key_written.connect(self._on_local_write, weak=False)

    # -- views ------------------------------------------------------------

    def watch(self, name: str, loader: Callable[[], Any], keys=None) -> View:
        """
        Register a view. loader() is re-run whenever a store key matching
        one of keys (fnmatch; default: every watched key) changes.
        """
        view = View(name=name, loader=loader, keys=tuple(keys or self.watched_keys))
        with self._lock:
            self._views[name] = view
        return view

    def unwatch(self, name: str) -> None:
        with self._lock:
            self._views.pop(name, None)
            self._pending.discard(name)

    def view(self, name: str) -> View | None:
        return self._views.get(name)

    @property
    def views(self) -> list[View]:
        with self._lock:
            return list(self._views.values())

    # -- notification handlers ---------------------------------------------

    def _on_local_write(self, sender, key: str) -> None:
        # DataService has already invalidated the cache for key
        self.notify([key])

    def _on_storage_change(self, key: str) -> None:
        logger.debug("Storage notification for %s", key)
        self.service.store_key_changed(key)
        self.notify([key])

    def _on_entry_signal(self, sender, **payload) -> None:
        if sender == self.service.instance_id:
            return
        factories = [f for f in (payload.get("factory"), payload.get("previousFactory")) if f]
        if not factories:
            factories = self.service.entry_factories()
        keys = [entries_key(f) for f in dict.fromkeys(factories)]
        logger.debug("Production entry signal from %s touching %s", sender, keys)
        for key in keys:
            self.service.store_key_changed(key)
        self.notify(keys)

    # -- state machine ----------------------------------------------------

    def notify(self, store_keys) -> None:
        """Queue a refresh of every view depending on store_keys, then drain."""
        with self._lock:
            affected = {v.name for v in self._views.values() if any(v.depends_on(k) for k in store_keys)}
            if not affected:
                return
            self._pending.update(affected)
            if self.state == SYNC_REFRESHING:
                logger.debug("Refresh in flight; queued %s", sorted(affected))
                return
            self.state = SYNC_NOTIFIED
            if self._batching:
                return
        self._drain()

    def refresh(self, names=None) -> None:
        """Force a refresh of the named views (default: all)."""
        with self._lock:
            self._pending.update(names if names is not None else self._views)
            if self.state == SYNC_REFRESHING:
                return
            self.state = SYNC_NOTIFIED
        self._drain()

    def _drain(self) -> None:
        with self._lock:
            if self.state != SYNC_NOTIFIED:
                return
            self.state = SYNC_REFRESHING
        try:
            while True:
                with self._lock:
                    names = sorted(self._pending)
                    self._pending.clear()
                    if not names:
                        self.state = SYNC_IDLE
                        return
                    views = [self._views[n] for n in names if n in self._views]
                self.passes += 1
                logger.debug("Refreshing views %s", names)
                for view in views:
                    self._load(view)
        finally:
            with self._lock:
                if self.state == SYNC_REFRESHING:
                    self.state = SYNC_IDLE

    def _load(self, view: View) -> None:
        try:
            data = view.loader()
        except Exception as exc:
            logger.exception("Refreshing view %s failed", view.name)
            view.error = exc
            self.errors.append((view.name, exc))
            return
        view.data = data
        view.error = None
        view.refreshed_at = self._clock()
        view.refresh_count += 1
        self.view_refreshed.send(self, view=view.name, data=data)

    # -- delivery ---------------------------------------------------------

    def poll(self) -> int:
        """
        Pull pending changes from other instances; returns how many were delivered.

        Notifications raised while the batch is dispatched only queue views;
        one drain after the batch refreshes them.
        """
        with self._lock:
            self._batching += 1
        try:
            return self.notifier.poll()
        finally:
            with self._lock:
                self._batching -= 1
                batching = self._batching
            if not batching:
                self._drain()

    def start(self, app, interval: float | None = None) -> threading.Thread:
        """Run poll() every interval seconds on a daemon thread inside an app context."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        if interval is None:
            interval = app.config.get("SYNC_POLL_INTERVAL_SECONDS", 2.0)
        self._stop.clear()

        def _run():
            with app.app_context():
                while not self._stop.wait(interval):
                    try:
                        self.poll()
                    except Exception:
                        logger.exception("Background sync poll failed")
                    finally:
                        db.session.remove()

        self._thread = threading.Thread(target=_run, name="prodtrack-sync", daemon=True)
        self._thread.start()
        logger.info("Background sync started (every %.1fs)", interval)
        return self._thread

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
