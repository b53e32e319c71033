import pytest
from fastapi.testclient import TestClient

from owo.db.store import Store
from owo.deps import get_ledger
from owo.ledger.orchestrator import Ledger


@pytest.fixture
def store(tmp_path):
    store = Store(str(tmp_path / "ledger.json"), lock_timeout=2.0)
    yield store
    store.close()


@pytest.fixture
def ledger(store) -> Ledger:
    return Ledger(store, default_opening_balance=10000, history_limit=20)


@pytest.fixture
def trio(ledger):
    """alice, bob, carol and dave with ₦10,000 each, and a 3-member group founded by alice."""
    for name in ("alice", "bob", "carol", "dave"):
        ledger.open_account(name)
    group = ledger.create_group("Trio", 1000, "weekly", 3, "alice")
    return group


@pytest.fixture
def full_trio(ledger, trio):
    ledger.join_group(trio.id, "bob")
    ledger.join_group(trio.id, "carol")
    return trio


@pytest.fixture
def client(ledger):
    from main import app

    app.dependency_overrides[get_ledger] = lambda: ledger
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
