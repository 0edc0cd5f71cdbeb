import copy
import itertools
from datetime import datetime, timedelta

import pytest
import requests

from portal.auth.session import SessionContext
from portal.models.profile import UserProfile
from portal.services.firebase_service import FirebaseService
from portal.services.notification_service import NotificationService
from portal.services.submission_service import SubmissionService


# --- In-memory Firestore double ---

class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeWatch:
    def __init__(self, query, callback):
        self.query = query
        self.callback = callback
        self.active = True

    def unsubscribe(self):
        self.active = False
        self.query.db.watches.remove(self)


OPS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "in": lambda a, b: a in b,
    "array_contains": lambda a, b: b in (a or []),
}


class FakeQuery:
    def __init__(self, db, name, filters=()):
        self.db = db
        self.name = name
        self.filters = tuple(filters)

    def where(self, filter=None):
        return FakeQuery(self.db, self.name, self.filters + ((filter.field_path, filter.op_string, filter.value),))

    def _matches(self, data):
        for field, op, value in self.filters:
            if field not in data or not OPS[op](data[field], value):
                return False
        return True

    def stream(self):
        docs = self.db.data.get(self.name, {})
        return [FakeSnapshot(doc_id, data) for doc_id, data in docs.items() if self._matches(data)]

    def on_snapshot(self, callback):
        watch = FakeWatch(self, callback)
        self.db.watches.append(watch)
        callback(self.stream(), [], None)
        return watch


class FakeDocRef:
    def __init__(self, db, collection, doc_id):
        self.db = db
        self.collection = collection
        self.id = doc_id

    def get(self):
        return FakeSnapshot(self.id, self.db.data.get(self.collection, {}).get(self.id))

    def set(self, data, merge=False):
        docs = self.db.data.setdefault(self.collection, {})
        if merge and self.id in docs:
            docs[self.id].update(copy.deepcopy(data))
        else:
            docs[self.id] = copy.deepcopy(data)
        self.db.notify(self.collection)

    def update(self, data):
        docs = self.db.data.get(self.collection, {})
        if self.id not in docs:
            raise KeyError(f"No document to update: {self.collection}/{self.id}")
        for path, value in data.items():
            target = docs[self.id]
            *parents, leaf = path.split(".")
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = copy.deepcopy(value)
        self.db.notify(self.collection)


class FakeCollection(FakeQuery):
    def document(self, doc_id=None):
        return FakeDocRef(self.db, self.name, doc_id or f"doc{next(self.db.ids)}")


class FakeFirestore:
    def __init__(self):
        self.data = {}
        self.watches = []
        self.ids = itertools.count(1)

    def collection(self, name):
        return FakeCollection(self, name)

    def notify(self, collection):
        for watch in list(self.watches):
            if watch.active and watch.query.name == collection:
                # Delivered synchronously, unlike the real client
                watch.callback(watch.query.stream(), [], None)

    def docs(self, collection):
        return self.data.get(collection, {})


# --- Fake HTTP ---

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeHttp:
    """Records calls and answers them from a queue of responses (or exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _answer(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._answer("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._answer("POST", url, kwargs)


class StepClock:
    """Returns a new instant, one minute later, on every call."""

    def __init__(self, start=datetime(2024, 5, 1, 10, 0)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now += timedelta(minutes=1)
        return current


# --- Fixtures ---

@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def firebase(fake_db):
    return FirebaseService(client=fake_db)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def notifications(firebase, clock):
    return NotificationService(firebase, clock=clock)


@pytest.fixture
def submissions(firebase, notifications, clock):
    return SubmissionService(firebase, notifications, clock=clock)


def make_ctx(uid, email, **profile):
    return SessionContext(uid=uid, email=email, profile=UserProfile(uid=uid, email=email, **profile))


@pytest.fixture
def citizen(fake_db):
    fake_db.collection("users").document("u1").set({
        "name": "Maria Silva",
        "email": "maria@example.com",
        "phone": "85 99999-0000",
        "cpf": "123.456.789-00",
        "city": "Pacatuba",
        "tipo": "Cidadão",
    })
    return make_ctx("u1", "maria@example.com", name="Maria Silva", tipo="Cidadão")


@pytest.fixture
def admin(fake_db):
    fake_db.collection("users").document("admin1").set({"name": "Ana Admin", "email": "admin@example.com",
                                                         "tipo": "Admin"})
    return make_ctx("admin1", "admin@example.com", name="Ana Admin", tipo="Admin")
