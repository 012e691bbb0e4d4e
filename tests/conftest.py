from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.core.errors import StoreError
from app.core.security import create_access_token
from app.db.dynamo import get_entry_store
from app.main import app
from app.models.entry import EntryInDB
from app.utils.dates import utcnow

OWNER = "user-1"
OTHER_OWNER = "user-2"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class InMemoryEntryStore:
    """Entry store double that evaluates predicates in memory."""

    def __init__(self, entries=()):
        self.entries = {entry.entry_id: entry for entry in entries}
        self.calls = []

    def find(self, predicate, newest_first=False):
        self.calls.append(("find", predicate))
        selected = [entry for entry in self.entries.values() if predicate.matches(entry)]
        selected.sort(key=lambda entry: entry.created_at, reverse=newest_first)
        return selected

    def find_by_id(self, entry_id):
        self.calls.append(("find_by_id", entry_id))
        return self.entries.get(entry_id)

    def create(self, entry):
        self.calls.append(("create", entry))
        self.entries[entry.entry_id] = entry
        return entry

    def update_by_id(self, entry_id, updates):
        self.calls.append(("update_by_id", entry_id))
        if entry_id not in self.entries:
            return None
        updated = self.entries[entry_id].model_copy(update={**updates, "updated_at": utcnow()})
        self.entries[entry_id] = updated
        return updated

    def delete_by_id(self, entry_id):
        self.calls.append(("delete_by_id", entry_id))
        return self.entries.pop(entry_id, None) is not None

    def ping(self):
        return None


class BrokenEntryStore:
    """Every call fails the way an unreachable table would."""

    def _fail(self, *args, **kwargs):
        raise StoreError("table unavailable: arn:aws:dynamodb:secret")

    find = find_by_id = create = update_by_id = delete_by_id = ping = _fail


@pytest.fixture
def sample_entries():
    return [
        EntryInDB(entry_id="salary-jan", owner=OWNER, title="Monthly salary", amount=100,
                  type="income", category="salary", created_at=utc(2025, 1, 10)),
        EntryInDB(entry_id="groceries-jan", owner=OWNER, title="Groceries", amount=40,
                  type="expense", category="food", created_at=utc(2025, 1, 20)),
        EntryInDB(entry_id="freelance-feb", owner=OWNER, title="Freelance gig", amount=50,
                  type="income", category="others", created_at=utc(2025, 2, 5)),
        EntryInDB(entry_id="foreign-entry", owner=OTHER_OWNER, title="Food truck", amount=30,
                  type="expense", category="food", created_at=utc(2025, 1, 15)),
    ]


@pytest.fixture
def own_entries(sample_entries):
    return [entry for entry in sample_entries if entry.owner == OWNER]


@pytest.fixture
def store(sample_entries):
    return InMemoryEntryStore(sample_entries)


@pytest.fixture
def client(store):
    app.dependency_overrides[get_entry_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def broken_client():
    app.dependency_overrides[get_entry_store] = lambda: BrokenEntryStore()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    token = create_access_token({"sub": OWNER})
    return {"Authorization": f"Bearer {token}"}
