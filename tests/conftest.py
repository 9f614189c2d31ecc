import copy
import itertools
from datetime import datetime, timezone

import pytest

import core.firebase as firebase


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, store, doc_id):
        self._store = store
        self.id = doc_id

    def get(self):
        return FakeSnapshot(self.id, self._store.get(self.id))

    def set(self, data):
        self._store[self.id] = copy.deepcopy(data)

    def update(self, data):
        if self.id not in self._store:
            raise KeyError(f"No document to update: {self.id}")
        self._store[self.id].update(copy.deepcopy(data))

    def delete(self):
        self._store.pop(self.id, None)


class FakeQuery:
    def __init__(self, store, filters=()):
        self._store = store
        self._filters = list(filters)

    def where(self, field=None, op=None, value=None, *, filter=None):
        if filter is not None:
            field, op, value = filter.field_path, filter.op_string, filter.value
        assert op == "==", "only equality filters are supported"
        return FakeQuery(self._store, self._filters + [(field, value)])

    def stream(self):
        for doc_id, data in list(self._store.items()):
            if all(data.get(field) == value for field, value in self._filters):
                yield FakeSnapshot(doc_id, data)


class FakeCollection(FakeQuery):
    _ids = itertools.count(1)

    def document(self, doc_id):
        return FakeDocument(self._store, doc_id)

    def add(self, data):
        doc = FakeDocument(self._store, f"auto-{next(self._ids)}")
        doc.set(data)
        return datetime.now(timezone.utc), doc


class FakeFirestore:
    """Мінімальний in-memory двійник клієнта Firestore."""

    def __init__(self):
        self.collections = {}

    def collection(self, name):
        return FakeCollection(self.collections.setdefault(name, {}))


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeFirestore()
    monkeypatch.setattr(firebase, "db", db)
    monkeypatch.setattr(firebase, "auth_client", object())
    return db


@pytest.fixture
def milestone(fake_db):
    fake_db.collection("projects").document("proj-1").set({"title": "Landing page", "budget": 30000})
    fake_db.collection("milestones").document("ms-1").set({
        "title": "Initial design",
        "amount": 10000,
        "workspace_id": "ws-1",
        "project_id": "proj-1",
        "client_uid": "client-1",
        "freelancer_uid": "freelancer-1",
        "status": "pending",
    })
    return "ms-1"


@pytest.fixture
def fake_monobank(monkeypatch):
    from services import monobank

    state = {"status": "success", "invoices": []}

    async def create_invoice(amount, destination, reference):
        state["invoices"].append({"amount": amount, "destination": destination, "reference": reference})
        # Кожен наступний інвойс для того ж етапу має власний ID
        count = sum(1 for invoice in state["invoices"] if invoice["reference"] == reference)
        invoice_id = f"inv-{reference}" if count == 1 else f"inv-{reference}-{count}"
        return monobank.MonoInvoice(invoice_id=invoice_id, page_url=f"https://pay.mbnk.biz/{invoice_id}")

    async def get_invoice_status(invoice_id):
        return state["status"]

    monkeypatch.setattr(monobank, "create_invoice", create_invoice)
    monkeypatch.setattr(monobank, "get_invoice_status", get_invoice_status)
    return state
