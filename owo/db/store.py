import threading
from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from tinydb import TinyDB
from tinydb.table import Table

from owo.errors import LedgerError, StorageError


def account_key(account_id: str) -> str:
    return f"account:{account_id}"


def group_key(group_id: int) -> str:
    return f"group:{group_id}"


GROUP_NAMES_KEY = "group-names"


class KeyedLocks:
    """One re-entrant lock per key, so work on unrelated accounts or groups never contends."""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            return self._locks.setdefault(key, threading.RLock())

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Acquire every key in sorted order, releasing in reverse on exit."""
        acquired = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                if not lock.acquire(timeout=self.timeout):
                    raise StorageError(f"Timed out waiting for {key}")
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


class Store:
    """TinyDB handle shared by the repositories, plus the lock registry."""

    def __init__(self, db_path: str = "owo_ledger.json", lock_timeout: float = 5.0):
        self.db = TinyDB(db_path)
        self.locks = KeyedLocks(timeout=lock_timeout)
        # TinyDB is not thread-safe; every read and write goes through this
        self._io_lock = threading.RLock()

    def table(self, name: str) -> Table:
        return self.db.table(name)

    @contextmanager
    def io(self) -> Iterator[None]:
        """Serialize access to TinyDB and surface unexpected failures as StorageError."""
        with self._io_lock:
            try:
                yield
            except LedgerError:
                raise
            except Exception as e:
                logger.opt(exception=e).error("Storage failure: {}", e)
                raise StorageError(f"Storage failure: {e}") from e

    def close(self) -> None:
        with self._io_lock:
            self.db.close()
