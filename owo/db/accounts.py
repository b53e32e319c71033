from tinydb import Query

from owo.db.store import Store, account_key
from owo.errors import AccountExists, InsufficientFunds, InvalidAmount, InvalidRange, NotFound
from owo.models.schemas import Account


def _is_whole_amount(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def require_positive_amount(amount) -> None:
    if not _is_whole_amount(amount) or amount <= 0:
        raise InvalidAmount(f"Amount must be a positive whole number, got {amount!r}")


class AccountStore:
    """Balances keyed by account id. Balances never go below zero."""

    def __init__(self, store: Store, default_opening_balance: int = 10000):
        self.store = store
        self.table = store.table("accounts")
        self.default_opening_balance = default_opening_balance

    def _doc(self, account_id: str):
        Acc = Query()
        with self.store.io():
            doc = self.table.get(Acc.id == account_id)
        if doc is None:
            raise NotFound(f"Account '{account_id}' not found")
        return doc

    def open_account(self, account_id: str, opening_balance: int | None = None) -> Account:
        if not account_id or not account_id.strip():
            raise InvalidRange("Account id must not be blank")
        if opening_balance is None:
            opening_balance = self.default_opening_balance
        if not _is_whole_amount(opening_balance) or opening_balance < 0:
            raise InvalidAmount(f"Opening balance must be a whole number >= 0, got {opening_balance!r}")

        with self.store.locks.hold(account_key(account_id)):
            if self.exists(account_id):
                raise AccountExists(f"Account '{account_id}' already exists")
            account = Account(id=account_id, balance=opening_balance)
            with self.store.io():
                self.table.insert(account.model_dump(mode="json"))
        return account

    def exists(self, account_id: str) -> bool:
        Acc = Query()
        with self.store.io():
            return self.table.contains(Acc.id == account_id)

    def get(self, account_id: str) -> Account:
        return Account(**self._doc(account_id))

    def get_balance(self, account_id: str) -> int:
        return self._doc(account_id)["balance"]

    def debit(self, account_id: str, amount: int) -> int:
        require_positive_amount(amount)
        with self.store.locks.hold(account_key(account_id)):
            doc = self._doc(account_id)
            if doc["balance"] < amount:
                raise InsufficientFunds(
                    f"Account '{account_id}' has {doc['balance']}, needs {amount}"
                )
            balance = doc["balance"] - amount
            with self.store.io():
                self.table.update({"balance": balance}, doc_ids=[doc.doc_id])
        return balance

    def credit(self, account_id: str, amount: int) -> int:
        require_positive_amount(amount)
        with self.store.locks.hold(account_key(account_id)):
            doc = self._doc(account_id)
            balance = doc["balance"] + amount
            with self.store.io():
                self.table.update({"balance": balance}, doc_ids=[doc.doc_id])
        return balance
