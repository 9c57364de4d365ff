from __future__ import annotations

from types import SimpleNamespace

import pytest

from src.studio.domain.errors import ConcurrentUpdateError, NotFoundError
from src.studio.domain.session_models import ComponentVersion, Message, Session
from src.studio.infrastructure import session_store as ss
from src.studio.infrastructure.session_store_mongo import MongoSessionStore


USER = "owner@example.com"


def test_in_memory_get_scopes_by_owner_and_status():
    store = ss.InMemorySessionStore()
    sess = store.create(Session(user_id=USER, title="Mine"))
    assert store.get(sess.session_id, USER, ("active",)).title == "Mine"
    assert store.get(sess.session_id, "other@example.com", ("active",)) is None
    assert store.get(sess.session_id, USER, ("archived",)) is None
    assert store.get("missing", USER, ("active",)) is None


def test_in_memory_returns_copies():
    store = ss.InMemorySessionStore()
    sess = store.create(Session(user_id=USER))
    loaded = store.get(sess.session_id, USER, ("active",))
    loaded.title = "changed locally"
    assert store.get(sess.session_id, USER, ("active",)).title == "New Component Session"


def test_in_memory_list_filters_searches_and_paginates():
    store = ss.InMemorySessionStore()
    for i in range(5):
        store.create(Session(user_id=USER, title=f"Form {i}", tags=["forms"]))
    store.create(Session(user_id=USER, title="Navbar", description="top navigation", tags=["layout"]))
    store.create(Session(user_id="other@example.com", title="Form elsewhere"))

    page, total = store.list(USER, page=1, limit=4)
    assert total == 6
    assert len(page) == 4
    page2, _ = store.list(USER, page=2, limit=4)
    assert len(page2) == 2

    found, total = store.list(USER, search="NAVIGATION")
    assert total == 1 and found[0].title == "Navbar"
    found, total = store.list(USER, search="forms")
    assert total == 5
    assert store.list(USER, status="archived") == ([], 0)


def test_in_memory_list_orders_by_last_activity():
    store = ss.InMemorySessionStore()
    older = store.create(Session(user_id=USER, title="older"))
    store.create(Session(user_id=USER, title="newer"))
    store.update(older.session_id, USER, {"description": "touched"})
    sessions, _ = store.list(USER)
    assert sessions[0].title == "older"


def test_in_memory_save_rejects_stale_revision():
    store = ss.InMemorySessionStore()
    sess = store.create(Session(user_id=USER))
    a = store.get(sess.session_id, USER, ("active",))
    b = store.get(sess.session_id, USER, ("active",))
    a.components.append(ComponentVersion(version=1, jsx="const A = 1;"))
    store.save(a)
    assert a.revision == b.revision + 1
    b.components.append(ComponentVersion(version=1, jsx="const B = 1;"))
    with pytest.raises(ConcurrentUpdateError):
        store.save(b)
    with pytest.raises(NotFoundError):
        store.save(Session(user_id=USER))


def test_in_memory_stale_copy_cannot_drop_messages():
    store = ss.InMemorySessionStore()
    sess = store.create(Session(user_id=USER))
    chat = store.get(sess.session_id, USER, ("active",))
    gen = store.get(sess.session_id, USER, ("active",))
    chat.messages.append(Message(role="user", content="hi"))
    store.save(chat)
    gen.components.append(ComponentVersion(version=1, jsx="const A = 1;"))
    with pytest.raises(ConcurrentUpdateError):
        store.save(gen)
    stored = store.get(sess.session_id, USER, ("active",))
    assert [m.content for m in stored.messages] == ["hi"]
    assert stored.components == []


def test_in_memory_rename_invalidates_earlier_reads():
    store = ss.InMemorySessionStore()
    sess = store.create(Session(user_id=USER))
    stale = store.get(sess.session_id, USER, ("active",))
    store.update(sess.session_id, USER, {"title": "Renamed"})
    stale.components.append(ComponentVersion(version=1, jsx="const A = 1;"))
    with pytest.raises(ConcurrentUpdateError):
        store.save(stale)
    assert store.get(sess.session_id, USER, ("active",)).title == "Renamed"


def test_in_memory_update_merges_settings_and_soft_delete():
    store = ss.InMemorySessionStore()
    sess = store.create(Session(user_id=USER))
    updated = store.update(sess.session_id, USER, {"title": "Renamed", "settings": {"max_tokens": 2048}})
    assert updated.title == "Renamed"
    assert updated.settings.max_tokens == 2048
    assert updated.settings.auto_save is True

    assert store.soft_delete(sess.session_id, USER) is True
    assert store.soft_delete(sess.session_id, USER) is False
    assert store.get(sess.session_id, USER, ("active", "archived")) is None
    assert store.update(sess.session_id, USER, {"title": "x"}) is None
    deleted, total = store.list(USER, status="deleted")
    assert total == 1 and deleted[0].status == "deleted"


def test_statistics_recomputed_on_write():
    store = ss.InMemorySessionStore()
    sess = Session(user_id=USER)
    sess.statistics.total_messages = 99
    store.create(sess)
    assert store.get(sess.session_id, USER, ("active",)).statistics.total_messages == 0


def test_factory_defaults_to_memory(monkeypatch):
    monkeypatch.setattr(ss, "_store", None)
    monkeypatch.delenv("STUDIO_SESSION_STORE_IMPL", raising=False)
    store = ss.get_session_store()
    assert isinstance(store, ss.InMemorySessionStore)
    assert ss.get_session_store() is store


class _FakeCollection:
    """Just enough of a pymongo collection for equality and $in filters
    plus $set (dotted paths) and $inc updates."""

    def __init__(self):
        self.docs = {}
        self.queries = []

    @staticmethod
    def _matches(doc, query):
        for key, cond in query.items():
            if key == "$or":
                continue
            if isinstance(cond, dict) and "$in" in cond:
                if doc.get(key) not in cond["$in"]:
                    return False
            elif doc.get(key) != cond:
                return False
        return True

    def insert_one(self, doc):
        self.docs[doc["_id"]] = dict(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def find_one(self, query):
        for doc in self.docs.values():
            if self._matches(doc, query):
                return dict(doc)
        return None

    def replace_one(self, query, doc):
        current = self.docs.get(query["_id"])
        if current is None or not self._matches(current, query):
            return SimpleNamespace(matched_count=0)
        self.docs[query["_id"]] = dict(doc)
        return SimpleNamespace(matched_count=1)

    @staticmethod
    def _apply(doc, update):
        for path, value in update.get("$set", {}).items():
            *parents, leaf = path.split(".")
            target = doc
            for part in parents:
                target = target[part]
            target[leaf] = value
        for key, step in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + step

    def update_one(self, query, update):
        for doc in self.docs.values():
            if self._matches(doc, query):
                self._apply(doc, update)
                return SimpleNamespace(matched_count=1)
        return SimpleNamespace(matched_count=0)

    def find_one_and_update(self, query, update, return_document=None):
        for doc in self.docs.values():
            if self._matches(doc, query):
                self._apply(doc, update)
                return dict(doc)
        return None

    def find(self, query):
        self.queries.append(query)
        docs = [dict(d) for d in self.docs.values() if self._matches(d, query)]

        class _Cursor(list):
            def sort(self, *a, **k):
                return self

            def skip(self, n):
                return _Cursor(self[n:])

            def limit(self, n):
                return _Cursor(self[:n])

        return _Cursor(docs)

    def count_documents(self, query):
        return len([d for d in self.docs.values() if self._matches(d, query)])


def test_mongo_store_round_trip_and_conflict():
    coll = _FakeCollection()
    store = MongoSessionStore(collection=coll)
    sess = store.create(Session(user_id=USER, title="Mongo"))
    assert coll.docs[sess.session_id]["revision"] == 1

    a = store.get(sess.session_id, USER, ("active",))
    b = store.get(sess.session_id, USER, ("active",))
    assert a.title == "Mongo"

    a.components.append(ComponentVersion(version=1, jsx="const A = 1;"))
    store.save(a)
    assert coll.docs[sess.session_id]["revision"] == 2

    b.components.append(ComponentVersion(version=1, jsx="const B = 1;"))
    with pytest.raises(ConcurrentUpdateError):
        store.save(b)
    assert b.revision == 1
    assert coll.docs[sess.session_id]["components"][0]["jsx"] == "const A = 1;"
    with pytest.raises(NotFoundError):
        store.save(Session(user_id=USER))


def test_mongo_rename_keeps_versions_committed_after_read():
    coll = _FakeCollection()
    store = MongoSessionStore(collection=coll)
    sess = store.create(Session(user_id=USER))
    writer = store.get(sess.session_id, USER, ("active",))
    writer.components.append(ComponentVersion(version=1, jsx="const A = 1;"))
    writer.current_version = 1
    store.save(writer)

    renamed = store.update(sess.session_id, USER, {"title": "Renamed", "settings": {"max_tokens": 2048}})
    assert renamed.title == "Renamed"
    stored = store.get(sess.session_id, USER, ("active",))
    assert len(stored.components) == 1
    assert stored.current_version == 1
    assert stored.settings.max_tokens == 2048
    assert stored.settings.auto_save is True


def test_mongo_stale_copy_rejected_after_rename():
    coll = _FakeCollection()
    store = MongoSessionStore(collection=coll)
    sess = store.create(Session(user_id=USER))
    stale = store.get(sess.session_id, USER, ("active",))
    store.update(sess.session_id, USER, {"title": "Renamed"})
    stale.messages.append(Message(role="user", content="hi"))
    with pytest.raises(ConcurrentUpdateError):
        store.save(stale)
    assert coll.docs[sess.session_id]["title"] == "Renamed"


def test_mongo_store_list_search_builds_regex_query():
    coll = _FakeCollection()
    store = MongoSessionStore(collection=coll)
    store.create(Session(user_id=USER, title="One"))
    store.create(Session(user_id=USER, title="Two"))
    sessions, total = store.list(USER, search="a.b", page=1, limit=1)
    assert total == 2
    assert len(sessions) == 1
    query = coll.queries[-1]
    assert query["$or"][0] == {"title": {"$regex": r"a\.b", "$options": "i"}}


def test_mongo_store_soft_delete_and_update():
    coll = _FakeCollection()
    store = MongoSessionStore(collection=coll)
    sess = store.create(Session(user_id=USER))
    assert store.update(sess.session_id, USER, {"tags": ["x"]}).tags == ["x"]
    assert store.soft_delete(sess.session_id, USER) is True
    assert coll.docs[sess.session_id]["status"] == "deleted"
    assert store.soft_delete(sess.session_id, USER) is False


def test_mongo_store_falls_back_when_unreachable(monkeypatch):
    from pymongo.errors import ServerSelectionTimeoutError
    from src.studio.infrastructure import session_store_mongo as sm

    class _DownClient:
        def __init__(self, *a, **k):
            pass

        def server_info(self):
            raise ServerSelectionTimeoutError("down")

    monkeypatch.setattr(sm, "MongoClient", _DownClient)
    monkeypatch.delenv("STUDIO_SESSION_STORE_REQUIRE_MONGO", raising=False)
    store = sm.MongoSessionStore()
    sess = store.create(Session(user_id=USER))
    assert store.get(sess.session_id, USER, ("active",)) is not None

    monkeypatch.setenv("STUDIO_SESSION_STORE_REQUIRE_MONGO", "1")
    with pytest.raises(RuntimeError):
        sm.MongoSessionStore()
