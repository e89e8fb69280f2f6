# Overview: Service-layer read and write APIs over clients, projects, production entries and invoices.

"""
DataService

================================================================================
PURPOSE: The one object UI code talks to. Reads are cached and reconciled;
writes validate, read-modify-write the affected store key, invalidate the
dependent cache keys, append an activity record and (for production entries)
emit the matching domain signal.
================================================================================

WRITE PATH (every mutation):
    1. permission + factory scope check
    2. payload validation (store untouched on failure)
    3. store.update(key, mutate)      serialized per key
    4. cache invalidation              via the dependency table
    5. activity log append             best effort
    6. domain signal                   production entries only

Reads take no actor; screen gating happens in the UI layer.

Cross-key operations (relocating an entry between factories, deleting a
project with its entries and invoices) are a sequence of single-key writes,
not a transaction.
"""

from __future__ import annotations

import copy
import logging

from blinker import Namespace

from ..validation import (
    ConflictError,
    Field,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_id,
    enforce_rules_production_entry,
    enforce_rules_project,
    validate_payload,
)
from .activity_service import ACTION_CREATE, ACTION_DELETE, ACTION_UPDATE, ActivityLog, DEFAULT_CAPACITY
from .cache import (
    CLIENTS_CACHE_KEY,
    DASHBOARD_CACHE_KEY,
    DEFAULT_TTL_SECONDS,
    CacheInvalidator,
    QueryCache,
    entries_cache_key,
    entry_cache_key,
    invoices_cache_key,
    projects_cache_key,
)
from .notifier import (
    PRODUCTION_ENTRY_ADDED,
    PRODUCTION_ENTRY_DELETED,
    PRODUCTION_ENTRY_UPDATED,
    ChangeNotifier,
)
from .permission_service import (
    require_factory_scope,
    require_permission,
    user_has_permission,
)
from .reconciliation import (
    OVERRIDE_FIELD,
    VALID_STATUSES,
    STATUS_COMPLETED,
    STATUS_ONGOING,
    STATUS_PENDING,
    apply_reconciliation,
    coerce_quantity,
    normalize_status,
    reconcile,
    reconcile_all,
)
from .record_store import (
    CLIENTS_KEY,
    ENTRIES_PREFIX,
    INVOICES_KEY,
    PROJECTS_KEY,
    entries_key,
    factory_from_key,
)
from prodtrack.time_utils import epoch_millis, today_iso


logger = logging.getLogger(__name__)


DEFAULT_FACTORIES = ("Mahape", "Taloja")

CLIENT_ACTIVE = "Active"
CLIENT_INACTIVE = "Inactive"
CLIENT_STATUSES = frozenset({CLIENT_ACTIVE, CLIENT_INACTIVE})

_UNSET = object()


CLIENT_SCHEMA = {
    "name": Field("str", nullable=False, max_length=200),
    "company": Field("str", max_length=200),
    "contactPerson": Field("str", max_length=200),
    "phone": Field("str", max_length=50),
    "email": Field("str", max_length=254),
    "address": Field("str", max_length=500),
    "taxId": Field("str", max_length=50),
    "status": Field("enum", nullable=False, choices=CLIENT_STATUSES),
}
CLIENT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(CLIENT_SCHEMA),
    required_on_create=frozenset({"name"}),
)
CLIENT_DEFAULTS = {
    "company": "",
    "contactPerson": "",
    "phone": "",
    "email": "",
    "address": "",
    "taxId": "",
    "status": CLIENT_ACTIVE,
}

PROJECT_SCHEMA = {
    "name": Field("str", nullable=False, max_length=200),
    "client": Field("str", nullable=False, max_length=200),
    "clientId": Field("id"),
    "subject": Field("str", max_length=200),
    "language": Field("str", max_length=100),
    "totalQuantity": Field("int", nullable=False, min_value=0),
    "startDate": Field("day"),
    "endDate": Field("day"),
    "factory": Field("str", nullable=False, max_length=100),
    # "status" on input is the manual override; the stored status is derived
    "status": Field("enum", choices=frozenset(VALID_STATUSES)),
    "statusOverride": Field("enum", choices=frozenset(VALID_STATUSES)),
}
PROJECT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(PROJECT_SCHEMA),
    required_on_create=frozenset({"name", "totalQuantity", "factory"}),
)
PROJECT_DEFAULTS = {
    "client": "",
    "subject": "",
    "language": "",
    "totalQuantity": 0,
    "startDate": None,
    "endDate": None,
}

ENTRY_SCHEMA = {
    "projectId": Field("id", nullable=False),
    "projectName": Field("str", max_length=200),
    "date": Field("day", nullable=False),
    "quantity": Field("int", nullable=False),
    "notes": Field("str", max_length=2000),
    "supervisorName": Field("str", max_length=200),
    "photos": Field("list"),
}
ENTRY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(ENTRY_SCHEMA),
    required_on_create=frozenset({"projectId", "date", "quantity"}),
)

INVOICE_SCHEMA = {
    "projectId": Field("id", nullable=False),
    "fileName": Field("str", nullable=False, max_length=255),
    "uploadDate": Field("day"),
}
INVOICE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(INVOICE_SCHEMA),
    required_on_create=frozenset({"projectId", "fileName"}),
)


def next_id(records: list) -> int:
    """max(existing integer ids) + 1, starting at 1."""
    ids = [coerce_id(r.get("id")) for r in records if isinstance(r, dict)]
    ints = [i for i in ids if isinstance(i, int) and not isinstance(i, bool)]
    return max(ints) + 1 if ints else 1


def _index_of(records: list, record_id) -> int:
    target = coerce_id(record_id)
    for idx, record in enumerate(records):
        if isinstance(record, dict) and coerce_id(record.get("id")) == target:
            return idx
    return -1


def _without(records: list, record_id) -> list:
    target = coerce_id(record_id)
    return [r for r in records if not (isinstance(r, dict) and coerce_id(r.get("id")) == target)]


class DataService:

    def __init__(
        self,
        store,
        *,
        factories=DEFAULT_FACTORIES,
        cache: QueryCache | None = None,
        notifier: ChangeNotifier | None = None,
        activity: ActivityLog | None = None,
        instance_id: str | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        activity_capacity: int = DEFAULT_CAPACITY,
    ):
        self.store = store
        self.factories = tuple(factories)
        self.notifier = notifier or ChangeNotifier(store, instance_id=instance_id)
        self.instance_id = self.notifier.instance_id
        self.cache = cache or QueryCache(ttl_seconds)
        self.invalidator = CacheInvalidator(self.cache)
        self.activity = activity or ActivityLog(store, origin=self.instance_id, capacity=activity_capacity)
        self._signals = Namespace()
        # send(instance_id, key=store_key) after every write this instance makes
        self.key_written = self._signals.signal("key-written")

    @classmethod
    def from_config(cls, config, store=None) -> "DataService":
        from .record_store import SqlRecordStore

        return cls(
            store if store is not None else SqlRecordStore(),
            factories=config.get("FACTORIES") or DEFAULT_FACTORIES,
            instance_id=config.get("INSTANCE_ID"),
            ttl_seconds=config.get("CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS),
            activity_capacity=config.get("ACTIVITY_LOG_CAPACITY", DEFAULT_CAPACITY),
        )

    # -- plumbing ---------------------------------------------------------

    def store_key_changed(self, key: str) -> int:
        """Drop every cache entry a write to key can make stale."""
        return self.invalidator.store_key_changed(key)

    def _write(self, key: str, mutate, default_factory=list):
        new_doc = self.store.update(key, mutate, origin=self.instance_id, default_factory=default_factory)
        self.store_key_changed(key)
        self.key_written.send(self.instance_id, key=key)
        return new_doc

    def _cached(self, key: str, producer, use_cache: bool):
        # Callers get their own copy; the cached value must not be edited in place
        return copy.deepcopy(self.cache.fetch(key, producer, use_cache))

    def _known_factory(self, factory) -> str:
        factory = (factory or "").strip() if isinstance(factory, str) else factory
        if factory not in self.factories:
            raise ValidationError(f"Unknown factory: {factory}")
        return factory

    def _require_entry_scope(self, actor, factory: str) -> None:
        if user_has_permission(actor, "RECORD_PRODUCTION_ANY_FACTORY"):
            return
        require_factory_scope(actor, factory, what="production entries")

    def entry_factories(self) -> list[str]:
        """Configured factories first, then any other partition found in the store."""
        found = [factory_from_key(k) for k in self.store.keys(ENTRIES_PREFIX)]
        extra = sorted(f for f in found if f and f not in self.factories)
        return list(self.factories) + extra

    def _all_entries(self) -> list[dict]:
        entries: list[dict] = []
        for factory in self.entry_factories():
            entries.extend(e for e in self.store.read_list(entries_key(factory)) if isinstance(e, dict))
        return entries

    def _find_project(self, project_id) -> dict:
        projects = self.store.read_list(PROJECTS_KEY)
        idx = _index_of(projects, project_id)
        if idx < 0:
            raise NotFoundError("Selected project does not exist")
        return projects[idx]

    def reset(self) -> None:
        """Forget every cached read (logout / full data reset)."""
        self.cache.invalidate_all()

    # -- clients ----------------------------------------------------------

    def get_clients(self, use_cache: bool = True) -> list[dict]:
        return self._cached(CLIENTS_CACHE_KEY, lambda: self.store.read_list(CLIENTS_KEY), use_cache)

    def get_client(self, client_id) -> dict | None:
        clients = self.get_clients()
        idx = _index_of(clients, client_id)
        return clients[idx] if idx >= 0 else None

    @staticmethod
    def _check_client_name(clients: list, name: str, exclude_id=None) -> None:
        wanted = name.strip().lower()
        for client in clients:
            if not isinstance(client, dict):
                continue
            if exclude_id is not None and coerce_id(client.get("id")) == coerce_id(exclude_id):
                continue
            if str(client.get("name", "")).strip().lower() == wanted:
                raise ConflictError(f"A client named '{name}' already exists")

    def create_client(self, actor, data: dict) -> dict:
        actor = require_permission(actor, "MANAGE_CLIENTS")
        patch = validate_payload(schema=CLIENT_SCHEMA, payload=data, policy=CLIENT_POLICY, partial=False)
        created: dict = {}

        def _add(clients: list) -> list:
            self._check_client_name(clients, patch["name"])
            record = {"id": next_id(clients), **CLIENT_DEFAULTS, **patch}
            created.clear()
            created.update(record)
            return clients + [record]

        self._write(CLIENTS_KEY, _add)
        self.activity.append(actor, ACTION_CREATE, "client", created["name"], {
            "clientId": created["id"],
            "company": created.get("company"),
        })
        return dict(created)

    def update_client(self, actor, client_id, data: dict) -> dict:
        """Edit a client. Renaming does not touch projects that reference the old name."""
        actor = require_permission(actor, "MANAGE_CLIENTS")
        patch = validate_payload(schema=CLIENT_SCHEMA, payload=data, policy=CLIENT_POLICY, partial=True)
        updated: dict = {}

        def _edit(clients: list) -> list:
            idx = _index_of(clients, client_id)
            if idx < 0:
                raise NotFoundError("Client not found")
            if "name" in patch:
                self._check_client_name(clients, patch["name"], exclude_id=client_id)
            merged = {**clients[idx], **patch}
            updated.clear()
            updated.update(merged)
            return clients[:idx] + [merged] + clients[idx + 1:]

        self._write(CLIENTS_KEY, _edit)
        self.activity.append(actor, ACTION_UPDATE, "client", updated.get("name"), {
            "clientId": updated.get("id"),
            "fields": sorted(patch),
        })
        return dict(updated)

    def delete_client(self, actor, client_id) -> dict:
        """Remove the client record only; its projects, entries and invoices stay."""
        actor = require_permission(actor, "MANAGE_CLIENTS")
        removed: dict = {}

        def _remove(clients: list) -> list:
            idx = _index_of(clients, client_id)
            if idx < 0:
                raise NotFoundError("Client not found")
            removed.clear()
            removed.update(clients[idx])
            return clients[:idx] + clients[idx + 1:]

        self._write(CLIENTS_KEY, _remove)
        self.activity.append(actor, ACTION_DELETE, "client", removed.get("name"), {
            "clientId": removed.get("id"),
        })
        return dict(removed)

    # -- projects ---------------------------------------------------------

    def get_projects(self, factory: str | None = None, use_cache: bool = True) -> list[dict]:
        """Projects with produced/status recomputed from every production entry."""
        def _load():
            reconciled = reconcile_all(self.store.read_list(PROJECTS_KEY), self._all_entries())
            if factory:
                reconciled = [p for p in reconciled if p.get("factory") == factory]
            return reconciled

        return self._cached(projects_cache_key(factory), _load, use_cache)

    def get_project(self, project_id) -> dict | None:
        projects = self.get_projects()
        idx = _index_of(projects, project_id)
        return projects[idx] if idx >= 0 else None

    def _resolve_client(self, patch: dict) -> None:
        client_id = patch.pop("clientId", None)
        if client_id is not None:
            clients = self.store.read_list(CLIENTS_KEY)
            idx = _index_of(clients, client_id)
            if idx < 0:
                raise NotFoundError("Selected client does not exist")
            patch["client"] = clients[idx].get("name", "")

    @staticmethod
    def _take_override(patch: dict):
        """Pop the manual status from an input patch; _UNSET when absent."""
        if "statusOverride" in patch:
            patch.pop("status", None)
            return patch.pop("statusOverride")
        if "status" in patch:
            return patch.pop("status")
        return _UNSET

    def create_project(self, actor, data: dict) -> dict:
        actor = require_permission(actor, "MANAGE_PROJECTS")
        patch = validate_payload(schema=PROJECT_SCHEMA, payload=data, policy=PROJECT_POLICY, partial=False)
        self._resolve_client(patch)
        if not patch.get("client"):
            raise ValidationError("Please select a client")
        patch["factory"] = self._known_factory(patch["factory"])
        enforce_rules_project(patch)
        override = self._take_override(patch)
        entries = self._all_entries()
        created: dict = {}

        def _add(projects: list) -> list:
            record = {
                "id": next_id(projects),
                **PROJECT_DEFAULTS,
                **patch,
                OVERRIDE_FIELD: None if override is _UNSET else override,
            }
            record = apply_reconciliation(record, reconcile(record, entries))
            created.clear()
            created.update(record)
            return projects + [record]

        self._write(PROJECTS_KEY, _add)
        self.activity.append(actor, ACTION_CREATE, "project", created["name"], {
            "projectId": created["id"],
            "client": created.get("client"),
            "factory": created.get("factory"),
        })
        return dict(created)

    def update_project(self, actor, project_id, data: dict) -> dict:
        actor = require_permission(actor, "MANAGE_PROJECTS")
        patch = validate_payload(schema=PROJECT_SCHEMA, payload=data, policy=PROJECT_POLICY, partial=True)
        self._resolve_client(patch)
        if "factory" in patch:
            patch["factory"] = self._known_factory(patch["factory"])
        override = self._take_override(patch)
        entries = self._all_entries()
        updated: dict = {}

        def _edit(projects: list) -> list:
            idx = _index_of(projects, project_id)
            if idx < 0:
                raise NotFoundError("Project not found")
            merged = {**projects[idx], **patch}
            if override is not _UNSET:
                merged[OVERRIDE_FIELD] = override
            enforce_rules_project(merged)
            merged = apply_reconciliation(merged, reconcile(merged, entries))
            updated.clear()
            updated.update(merged)
            return projects[:idx] + [merged] + projects[idx + 1:]

        self._write(PROJECTS_KEY, _edit)
        details = {"projectId": updated.get("id"), "fields": sorted(patch)}
        if override is not _UNSET:
            details["statusOverride"] = override
        self.activity.append(actor, ACTION_UPDATE, "project", updated.get("name"), details)
        return dict(updated)

    def set_project_status(self, actor, project_id, status: str | None) -> dict:
        """
        Set (or clear, with None) the manual status of a project.

        Supervisors may do this for projects of their own factory. A project
        whose production has reached its total stays completed regardless.
        """
        actor = require_permission(actor, "SET_PROJECT_STATUS")
        override = None
        if status is not None:
            override = normalize_status(status)
            if override is None:
                raise ValidationError(f"status must be one of: {', '.join(sorted(VALID_STATUSES))}")
        require_factory_scope(actor, self._find_project(project_id).get("factory"), what="projects")
        entries = self._all_entries()
        updated: dict = {}

        def _edit(projects: list) -> list:
            idx = _index_of(projects, project_id)
            if idx < 0:
                raise NotFoundError("Project not found")
            merged = {**projects[idx], OVERRIDE_FIELD: override}
            merged = apply_reconciliation(merged, reconcile(merged, entries))
            updated.clear()
            updated.update(merged)
            return projects[:idx] + [merged] + projects[idx + 1:]

        self._write(PROJECTS_KEY, _edit)
        self.activity.append(actor, ACTION_UPDATE, "project", updated.get("name"), {
            "projectId": updated.get("id"),
            "statusOverride": override,
            "status": updated.get("status"),
        })
        return dict(updated)

    def delete_project(self, actor, project_id) -> dict:
        """Delete a project together with its production entries and invoices."""
        actor = require_permission(actor, "MANAGE_PROJECTS")
        removed: dict = {}
        target = coerce_id(project_id)

        def _remove(projects: list) -> list:
            idx = _index_of(projects, project_id)
            if idx < 0:
                raise NotFoundError("Project not found")
            removed.clear()
            removed.update(projects[idx])
            return projects[:idx] + projects[idx + 1:]

        self._write(PROJECTS_KEY, _remove)

        def _belongs(record) -> bool:
            return isinstance(record, dict) and coerce_id(record.get("projectId")) == target

        removed_entries = 0
        for factory in self.entry_factories():
            key = entries_key(factory)
            count = sum(1 for e in self.store.read_list(key) if _belongs(e))
            if count:
                self._write(key, lambda entries: [e for e in entries if not _belongs(e)])
                removed_entries += count

        removed_invoices = sum(1 for i in self.store.read_list(INVOICES_KEY) if _belongs(i))
        if removed_invoices:
            self._write(INVOICES_KEY, lambda invoices: [i for i in invoices if not _belongs(i)])

        self.activity.append(actor, ACTION_DELETE, "project", removed.get("name"), {
            "projectId": removed.get("id"),
            "removedEntries": removed_entries,
            "removedInvoices": removed_invoices,
        })
        return dict(removed)

    def refresh_project_snapshots(self) -> int:
        """
        Persist freshly reconciled produced/status onto the stored projects.

        The stored values are only a snapshot for readers that skip
        reconciliation; they are never trusted over a recomputation.
        Returns the number of projects whose snapshot changed.
        """
        entries = self._all_entries()

        def _stale(projects: list) -> list:
            stale = []
            for project in reconcile_all(projects, entries):
                original = projects[_index_of(projects, project.get("id"))]
                if (
                    original.get("produced") != project["produced"]
                    or original.get("status") != project["status"]
                    or OVERRIDE_FIELD not in original
                ):
                    stale.append(project.get("id"))
            return stale

        if not _stale(self.store.read_list(PROJECTS_KEY)):
            return 0

        changed: list = []

        def _snapshot(projects: list) -> list:
            changed[:] = _stale(projects)
            return [
                apply_reconciliation(p, reconcile(p, entries)) if isinstance(p, dict) else p
                for p in projects
            ]

        self._write(PROJECTS_KEY, _snapshot)
        logger.info("Refreshed %d project snapshots", len(changed))
        return len(changed)

    # -- production entries -----------------------------------------------

    def get_production_entries(self, factory: str | None = None, use_cache: bool = True) -> list[dict]:
        def _load():
            if factory:
                return [e for e in self.store.read_list(entries_key(factory)) if isinstance(e, dict)]
            return self._all_entries()

        return self._cached(entries_cache_key(factory), _load, use_cache)

    def get_production_entry(self, entry_id, factory: str, use_cache: bool = True) -> dict | None:
        """
        One entry by id. The cache slot is keyed by id alone, so the named
        factory is searched first and the other partitions after it.
        """
        def _load():
            others = [f for f in self.entry_factories() if f != factory]
            for partition in [factory, *others]:
                entries = self.store.read_list(entries_key(partition))
                idx = _index_of(entries, entry_id)
                if idx >= 0:
                    return entries[idx]
            return None

        return self._cached(entry_cache_key(entry_id), _load, use_cache)

    def _next_entry_id(self, partition: list, factory: str) -> int:
        """Millisecond timestamp, bumped past every id already in the store."""
        existing = list(partition)
        for other in self.entry_factories():
            if other != factory:
                existing.extend(self.store.read_list(entries_key(other)))
        return max(epoch_millis(), next_id(existing))

    def _entry_project(self, actor, project_id) -> dict:
        project = self._find_project(project_id)
        if actor.is_supervisor:
            require_factory_scope(actor, project.get("factory"), what="projects")
        return project

    @staticmethod
    def _split_factory(data: dict, factory: str) -> tuple[dict, str | None]:
        data = dict(data or {})
        data.pop("id", None)
        return data, data.pop("factory", None)

    def create_production_entry(self, actor, entry: dict, factory: str) -> dict:
        actor = require_permission(actor, "RECORD_PRODUCTION")
        factory = self._known_factory(factory)
        self._require_entry_scope(actor, factory)
        data, entry_factory = self._split_factory(entry, factory)
        if entry_factory and entry_factory != factory:
            raise ValidationError("Entry factory does not match the selected factory")
        patch = validate_payload(schema=ENTRY_SCHEMA, payload=data, policy=ENTRY_POLICY, partial=False)
        enforce_rules_production_entry(patch)
        project = self._entry_project(actor, patch["projectId"])

        record = {
            "notes": "",
            "supervisorName": actor.name if actor.is_supervisor else "",
            "photos": [],
            **patch,
            "projectId": project.get("id"),
            "projectName": patch.get("projectName") or project.get("name", ""),
            "factory": factory,
        }

        def _append(entries: list) -> list:
            record["id"] = self._next_entry_id(entries, factory)
            return entries + [record]

        self._write(entries_key(factory), _append)
        self.activity.append(
            actor, ACTION_CREATE, "production entry",
            f"{record['projectName']} - {record['quantity']} units",
            {
                "entryId": record["id"],
                "projectId": record["projectId"],
                "factory": factory,
                "quantity": record["quantity"],
                "date": record["date"],
            },
        )
        self.notifier.emit(PRODUCTION_ENTRY_ADDED, {
            "factory": factory,
            "projectId": record["projectId"],
            "entryId": record["id"],
        })
        return dict(record)

    def update_production_entry(self, actor, entry_id, patch: dict, factory: str) -> dict:
        """
        Edit an entry in place, or move it when the patch names another factory.

        A move writes the entry into the new partition before removing it
        from the old one, so a failure in between leaves a duplicate rather
        than losing production.
        """
        actor = require_permission(actor, "RECORD_PRODUCTION")
        factory = self._known_factory(factory)
        self._require_entry_scope(actor, factory)
        data, target_factory = self._split_factory(patch, factory)
        target_factory = self._known_factory(target_factory) if target_factory else factory
        self._require_entry_scope(actor, target_factory)

        changes = validate_payload(schema=ENTRY_SCHEMA, payload=data, policy=ENTRY_POLICY, partial=True)
        enforce_rules_production_entry(changes)
        if "projectId" in changes:
            project = self._entry_project(actor, changes["projectId"])
            changes["projectId"] = project.get("id")
            changes.setdefault("projectName", project.get("name", ""))

        target = coerce_id(entry_id)
        updated: dict = {}

        if target_factory == factory:
            def _edit(entries: list) -> list:
                idx = _index_of(entries, target)
                if idx < 0:
                    raise NotFoundError("Production entry not found")
                merged = {**entries[idx], **changes, "id": entries[idx].get("id"), "factory": factory}
                updated.clear()
                updated.update(merged)
                return entries[:idx] + [merged] + entries[idx + 1:]

            self._write(entries_key(factory), _edit)
        else:
            current = self.store.read_list(entries_key(factory))
            idx = _index_of(current, target)
            if idx < 0:
                raise NotFoundError("Production entry not found")
            updated.update({**current[idx], **changes, "id": current[idx].get("id"), "factory": target_factory})

            self._write(
                entries_key(target_factory),
                lambda entries: _without(entries, target) + [dict(updated)],
            )
            self._write(
                entries_key(factory),
                lambda entries: _without(entries, target),
            )

        self.activity.append(
            actor, ACTION_UPDATE, "production entry",
            f"{updated.get('projectName', '')} - {coerce_quantity(updated.get('quantity'))} units",
            {
                "entryId": updated.get("id"),
                "projectId": updated.get("projectId"),
                "factory": target_factory,
                "previousFactory": factory,
                "fields": sorted(changes),
            },
        )
        self.notifier.emit(PRODUCTION_ENTRY_UPDATED, {
            "factory": target_factory,
            "previousFactory": factory,
            "projectId": updated.get("projectId"),
            "entryId": updated.get("id"),
        })
        return dict(updated)

    def delete_production_entry(self, actor, entry_id, factory: str) -> dict:
        actor = require_permission(actor, "RECORD_PRODUCTION")
        factory = self._known_factory(factory)
        self._require_entry_scope(actor, factory)
        removed: dict = {}

        def _remove(entries: list) -> list:
            idx = _index_of(entries, entry_id)
            if idx < 0:
                raise NotFoundError("Production entry not found")
            removed.clear()
            removed.update(entries[idx])
            return entries[:idx] + entries[idx + 1:]

        self._write(entries_key(factory), _remove)
        self.activity.append(
            actor, ACTION_DELETE, "production entry",
            f"{removed.get('projectName', '')} - {coerce_quantity(removed.get('quantity'))} units",
            {
                "entryId": removed.get("id"),
                "projectId": removed.get("projectId"),
                "factory": factory,
                "quantity": removed.get("quantity"),
            },
        )
        self.notifier.emit(PRODUCTION_ENTRY_DELETED, {
            "factory": factory,
            "projectId": removed.get("projectId"),
            "entryId": removed.get("id"),
        })
        return dict(removed)

    # -- invoices ---------------------------------------------------------

    def get_invoices(self, project_id=None, use_cache: bool = True) -> list[dict]:
        def _load():
            invoices = [i for i in self.store.read_list(INVOICES_KEY) if isinstance(i, dict)]
            if project_id is None:
                return invoices
            target = coerce_id(project_id)
            return [i for i in invoices if coerce_id(i.get("projectId")) == target]

        return self._cached(invoices_cache_key(project_id), _load, use_cache)

    def create_invoice(self, actor, data: dict) -> dict:
        """Record invoice metadata; the uploaded file itself lives elsewhere."""
        actor = require_permission(actor, "MANAGE_INVOICES")
        patch = validate_payload(schema=INVOICE_SCHEMA, payload=data, policy=INVOICE_POLICY, partial=False)
        project = self._find_project(patch["projectId"])
        created: dict = {}

        def _add(invoices: list) -> list:
            record = {
                "id": next_id(invoices),
                "projectId": project.get("id"),
                "fileName": patch["fileName"],
                "uploadDate": patch.get("uploadDate") or today_iso(),
                "uploadedBy": actor.name,
            }
            created.clear()
            created.update(record)
            return invoices + [record]

        self._write(INVOICES_KEY, _add)
        self.activity.append(actor, ACTION_CREATE, "invoice", created["fileName"], {
            "invoiceId": created["id"],
            "projectId": created["projectId"],
            "projectName": project.get("name"),
        })
        return dict(created)

    def delete_invoice(self, actor, invoice_id) -> dict:
        actor = require_permission(actor, "MANAGE_INVOICES")
        removed: dict = {}

        def _remove(invoices: list) -> list:
            idx = _index_of(invoices, invoice_id)
            if idx < 0:
                raise NotFoundError("Invoice not found")
            removed.clear()
            removed.update(invoices[idx])
            return invoices[:idx] + invoices[idx + 1:]

        self._write(INVOICES_KEY, _remove)
        self.activity.append(actor, ACTION_DELETE, "invoice", removed.get("fileName"), {
            "invoiceId": removed.get("id"),
            "projectId": removed.get("projectId"),
        })
        return dict(removed)

    # -- dashboard --------------------------------------------------------

    def get_dashboard_summary(self, use_cache: bool = True) -> dict:
        def _load():
            clients = [c for c in self.store.read_list(CLIENTS_KEY) if isinstance(c, dict)]
            production_by_factory = {}
            entries: list[dict] = []
            for factory in self.entry_factories():
                partition = [e for e in self.store.read_list(entries_key(factory)) if isinstance(e, dict)]
                production_by_factory[factory] = sum(coerce_quantity(e.get("quantity")) for e in partition)
                entries.extend(partition)
            projects = reconcile_all(self.store.read_list(PROJECTS_KEY), entries)
            active = sum(1 for c in clients if c.get("status") == CLIENT_ACTIVE)
            return {
                "totalClients": len(clients),
                "activeClients": active,
                "inactiveClients": len(clients) - active,
                "totalProjects": len(projects),
                "completedProjects": sum(1 for p in projects if p["status"] == STATUS_COMPLETED),
                "ongoingProjects": sum(1 for p in projects if p["status"] == STATUS_ONGOING),
                "pendingProjects": sum(1 for p in projects if p["status"] == STATUS_PENDING),
                "productionByFactory": production_by_factory,
                "totalProduction": sum(production_by_factory.values()),
            }

        return self._cached(DASHBOARD_CACHE_KEY, _load, use_cache)
