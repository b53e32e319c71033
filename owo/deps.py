from functools import lru_cache

from owo.config import get_settings
from owo.db.store import Store
from owo.ledger.orchestrator import Ledger


@lru_cache
def get_ledger() -> Ledger:
    settings = get_settings()
    store = Store(settings.db_path, lock_timeout=settings.lock_timeout)
    return Ledger(
        store,
        default_opening_balance=settings.default_opening_balance,
        history_limit=settings.history_limit,
    )
