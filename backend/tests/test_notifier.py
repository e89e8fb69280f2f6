"""
Change notifier tests.

Verifies:
- storage notifications reach other instances only, matched by key pattern
- domain signals reach local receivers at once and other instances on poll
- a new instance only sees changes made after it opened
- rows that become visible behind the cursor are still delivered once
"""

import pytest

from prodtrack.models import CHANGE_KIND_STORAGE
from prodtrack.services.notifier import PRODUCTION_ENTRY_ADDED, ChangeNotifier
from prodtrack.services.record_store import Change


@pytest.fixture(params=["memory", "sql"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


class LateCommitJournal:
    """Journal whose rows can become visible out of id order."""

    def __init__(self):
        self.rows = []

    def commit(self, seq, key, origin="tab-a"):
        self.rows.append(Change(seq=seq, kind=CHANGE_KIND_STORAGE, origin=origin, key=key))

    def latest_seq(self):
        return max((c.seq for c in self.rows), default=0)

    def changes_since(self, seq, *, exclude_origin=None, limit=500):
        found = sorted(
            (c for c in self.rows if c.seq > seq and c.origin != exclude_origin),
            key=lambda c: c.seq,
        )
        return found[:limit]


class TestStorageNotifications:

    def test_other_instance_write_is_delivered(self, store):
        a = ChangeNotifier(store, instance_id="tab-a")
        b = ChangeNotifier(store, instance_id="tab-b")
        seen = []
        b.on_external_write("entries_*", seen.append)

        store.write("entries_Mahape", [], origin=a.instance_id)
        store.write("clients", [], origin=a.instance_id)

        assert b.poll() == 2
        assert seen == ["entries_Mahape"]

    def test_own_writes_are_not_delivered(self, store):
        a = ChangeNotifier(store, instance_id="tab-a")
        seen = []
        a.on_external_write("*", seen.append)
        store.write("projects", [], origin=a.instance_id)
        assert a.poll() == 0
        assert seen == []

    def test_changes_before_open_are_skipped(self, store):
        store.write("projects", [], origin="tab-x")
        late = ChangeNotifier(store, instance_id="tab-late")
        seen = []
        late.on_external_write("*", seen.append)
        assert late.poll() == 0
        store.write("clients", [], origin="tab-x")
        late.poll()
        assert seen == ["clients"]

    def test_poll_drains_in_batches(self, store):
        b = ChangeNotifier(store, instance_id="tab-b")
        seen = []
        b.on_external_write("k*", seen.append)
        for i in range(7):
            store.write(f"k{i}", [], origin="tab-a")
        assert b.poll(limit=3) == 7
        assert seen == [f"k{i}" for i in range(7)]
        assert b.poll() == 0


class TestSignals:

    def test_emit_delivers_locally_and_remotely(self, store):
        a = ChangeNotifier(store, instance_id="tab-a")
        b = ChangeNotifier(store, instance_id="tab-b")
        local, remote = [], []
        a.on_signal(PRODUCTION_ENTRY_ADDED, lambda sender, **payload: local.append((sender, payload)))
        b.on_signal(PRODUCTION_ENTRY_ADDED, lambda sender, **payload: remote.append((sender, payload)))

        payload = {"factory": "Mahape", "projectId": 1, "entryId": 42}
        a.emit(PRODUCTION_ENTRY_ADDED, payload)

        assert local == [("tab-a", payload)]
        assert remote == []
        b.poll()
        assert remote == [("tab-a", payload)]
        # a does not hear its own journaled signal a second time
        a.poll()
        assert len(local) == 1

    def test_instances_do_not_share_local_receivers(self, memory_store):
        a = ChangeNotifier(memory_store, instance_id="tab-a")
        b = ChangeNotifier(memory_store, instance_id="tab-b")
        heard = []
        b.on_signal("productionEntryDeleted", lambda sender, **payload: heard.append(payload))
        a.emit("productionEntryDeleted", {"factory": "Taloja"})
        assert heard == []

    def test_failing_handler_does_not_redeliver(self, memory_store):
        b = ChangeNotifier(memory_store, instance_id="tab-b")
        calls = []

        def flaky(key):
            calls.append(key)
            raise RuntimeError("view crashed")

        b.on_external_write("projects", flaky)
        memory_store.write("projects", [], origin="tab-a")
        with pytest.raises(RuntimeError):
            b.poll()
        assert b.poll() == 0
        assert calls == ["projects"]


class TestLateRows:

    def test_row_committed_behind_cursor_is_delivered_once(self):
        journal = LateCommitJournal()
        b = ChangeNotifier(journal, instance_id="tab-b", lookback=10)
        seen = []
        b.on_external_write("*", seen.append)

        journal.commit(1, "clients")
        journal.commit(3, "projects")
        assert b.poll() == 2

        # id 2 was allocated first but committed after 3 was delivered
        journal.commit(2, "invoices")
        assert b.poll() == 1
        assert b.poll() == 0
        assert seen == ["clients", "projects", "invoices"]
        assert b.cursor == 3

    def test_window_does_not_reach_before_open(self):
        journal = LateCommitJournal()
        journal.commit(1, "clients")
        b = ChangeNotifier(journal, instance_id="tab-b", lookback=10)
        journal.commit(2, "projects")
        seen = []
        b.on_external_write("*", seen.append)

        assert b.poll() == 1
        assert seen == ["projects"]
