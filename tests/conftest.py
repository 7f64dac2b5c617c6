"""
Test configuration.

Provides a synchronous in-memory stand-in for the Firestore client (only the
calls the dashboard makes), a fake identity provider and a logged-in Flask
test client.
"""
import copy
import itertools
from datetime import datetime, timezone

import pytest
from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

import database
from errors import AuthError, DuplicateError

_ids = itertools.count(1)


def _resolve(data):
    now = datetime.now(timezone.utc)
    return {k: (now if v is firestore.SERVER_TIMESTAMP else v) for k, v in data.items()}


class FakeDocSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data
        self.exists = data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocRef:
    def __init__(self, col, doc_id):
        self._col = col
        self.id = doc_id

    def get(self):
        return FakeDocSnapshot(self.id, self._col.docs.get(self.id))

    def set(self, data, merge=False):
        data = _resolve(data)
        if merge and self.id in self._col.docs:
            self._col.docs[self.id].update(data)
        else:
            self._col.docs[self.id] = dict(data)
        self._col.notify()

    def update(self, data):
        if self.id not in self._col.docs:
            raise google_exceptions.NotFound(f"No document to update: {self.id}")
        self._col.docs[self.id].update(_resolve(data))
        self._col.notify()

    def delete(self):
        self._col.docs.pop(self.id, None)
        self._col.notify()


class FakeQuery:
    def __init__(self, col, filters=(), max_results=None):
        self._col = col
        self._filters = filters
        self._limit = max_results

    def where(self, field, op, value):
        assert op == "==", "only equality filters are supported"
        return FakeQuery(self._col, self._filters + ((field, value),), self._limit)

    def limit(self, count):
        return FakeQuery(self._col, self._filters, count)

    def stream(self):
        results = [FakeDocSnapshot(doc_id, data) for doc_id, data in self._col.docs.items()
                   if all(data.get(f) == v for f, v in self._filters)]
        if self._limit is not None:
            results = results[:self._limit]
        return iter(results)


class FakeWatch:
    def __init__(self, col, callback):
        self._col = col
        self.callback = callback

    def unsubscribe(self):
        if self in self._col.listeners:
            self._col.listeners.remove(self)


class FakeCollection(FakeQuery):
    def __init__(self, name):
        super().__init__(self)
        self.name = name
        self.docs = {}
        self.listeners = []

    def document(self, doc_id=None):
        return FakeDocRef(self, doc_id or f"doc{next(_ids)}")

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return datetime.now(timezone.utc), ref

    def snapshots(self):
        return [FakeDocSnapshot(doc_id, data) for doc_id, data in self.docs.items()]

    def on_snapshot(self, callback):
        watch = FakeWatch(self, callback)
        self.listeners.append(watch)
        callback(self.snapshots(), [], datetime.now(timezone.utc))
        return watch

    def notify(self):
        for watch in list(self.listeners):
            watch.callback(self.snapshots(), [], datetime.now(timezone.utc))


class FakeBatch:
    def __init__(self):
        self._ops = []

    def set(self, ref, data, merge=False):
        self._ops.append(lambda: ref.set(data, merge=merge))

    def update(self, ref, data):
        self._ops.append(lambda: ref.update(data))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        for op in self._ops:
            op()
        self._ops = []


class FakeFirestore:
    def __init__(self):
        self.collections = {}

    def collection(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def batch(self):
        return FakeBatch()

    def docs(self, name):
        return self.collection(name).docs


class FakeIdentity:
    def __init__(self):
        self.users = {}

    def create_user(self, email, password):
        if email in self.users:
            raise DuplicateError("An account with this email address already exists.")
        uid = f"uid-{len(self.users) + 1}"
        self.users[email] = (password, uid)
        return uid

    def sign_in(self, email, password):
        known = self.users.get(email)
        if known is None or known[0] != password:
            raise AuthError("Invalid email or password.")
        return known[1]


@pytest.fixture
def fake_db():
    db = FakeFirestore()
    database.set_db(db)
    yield db
    database.set_db(None)


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def flask_app(fake_db, identity, monkeypatch):
    import app as app_module

    monkeypatch.setattr(app_module, "identity", identity)
    monkeypatch.setattr(app_module, "_store", None)
    app_module.app.config["TESTING"] = True
    yield app_module.app
    if app_module._store is not None:
        app_module._store.stop()


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


def add_agent(db, uid, name, role="Agent", status="Active", agent_type="Regular"):
    db.collection("agents").document(uid).set({
        "uid": uid,
        "name": name,
        "email": f"{uid}@example.com",
        "agentType": agent_type,
        "role": role,
        "status": status,
        "dateHired": datetime(2024, 1, 15, tzinfo=timezone.utc),
    })


def login_as(client, uid):
    with client.session_transaction() as sess:
        sess["uid"] = uid


@pytest.fixture
def admin_client(client, fake_db):
    add_agent(fake_db, "boss", "Boss", role="Superadmin")
    add_agent(fake_db, "adm", "Alice Admin", role="Admin")
    add_agent(fake_db, "a1", "Ana", role="Agent")
    add_agent(fake_db, "a2", "Ben", role="Agent")
    login_as(client, "adm")
    return client


@pytest.fixture
def agent_client(client, fake_db):
    add_agent(fake_db, "adm", "Alice Admin", role="Admin")
    add_agent(fake_db, "a1", "Ana", role="Agent")
    add_agent(fake_db, "a2", "Ben", role="Agent")
    login_as(client, "a1")
    return client
