from typing import get_args

from tinydb import Query

from owo.db.accounts import require_positive_amount
from owo.db.store import Store
from owo.errors import InvalidRange
from owo.models.schemas import CREDIT_KINDS, DEBIT_KINDS, TransactionKind, TransactionRecord

KNOWN_KINDS = frozenset(get_args(TransactionKind))


class TransactionLog:
    """Append-only record of money movements.

    Records get their id from the table's insertion counter, so ids only
    grow. Nothing in this class updates or removes a record.
    """

    def __init__(self, store: Store, default_limit: int = 20):
        self.store = store
        self.table = store.table("transactions")
        self.default_limit = default_limit

    @staticmethod
    def _build(account_id: str, kind: str, amount: int, counterparty: str | None) -> TransactionRecord:
        require_positive_amount(amount)
        if kind not in KNOWN_KINDS:
            raise InvalidRange(f"Unknown transaction kind '{kind}'")
        return TransactionRecord(
            account_id=account_id, kind=kind, amount=amount, counterparty=counterparty
        )

    @staticmethod
    def _serialize(record: TransactionRecord) -> dict:
        data = record.model_dump(mode="json")
        data.pop("id", None)
        return data

    def append(
        self, account_id: str, kind: str, amount: int, counterparty: str | None = None
    ) -> TransactionRecord:
        record = self._build(account_id, kind, amount, counterparty)
        with self.store.io():
            record.id = self.table.insert(self._serialize(record))
        return record

    def append_many(self, entries: list[tuple[str, str, int, str | None]]) -> list[TransactionRecord]:
        """Validate every entry, then write them all in one storage write."""
        records = [self._build(*entry) for entry in entries]
        with self.store.io():
            ids = self.table.insert_multiple(self._serialize(r) for r in records)
        for record, doc_id in zip(records, ids):
            record.id = doc_id
        return records

    def _all_for_account(self, account_id: str) -> list[TransactionRecord]:
        Txn = Query()
        with self.store.io():
            docs = self.table.search(Txn.account_id == account_id)
        return [TransactionRecord(id=doc.doc_id, **doc) for doc in docs]

    def list_for_account(self, account_id: str, limit: int | None = None) -> list[TransactionRecord]:
        if limit is None:
            limit = self.default_limit
        if limit < 1:
            raise InvalidRange(f"Limit must be at least 1, got {limit}")
        records = self._all_for_account(account_id)
        records.sort(key=lambda r: (r.timestamp, r.id), reverse=True)
        return records[:limit]

    def totals(self, account_id: str) -> tuple[int, int]:
        """Return (debited, credited) summed over every record of the account."""
        debited = credited = 0
        for record in self._all_for_account(account_id):
            if record.kind in DEBIT_KINDS:
                debited += record.amount
            elif record.kind in CREDIT_KINDS:
                credited += record.amount
        return debited, credited
