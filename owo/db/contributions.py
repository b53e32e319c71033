from tinydb import Query

from owo.db.store import Store
from owo.models.schemas import Contribution


class ContributionTable:
    def __init__(self, store: Store):
        self.store = store
        self.table = store.table("contributions")

    def add(self, contribution: Contribution) -> int:
        with self.store.io():
            return self.table.insert(contribution.model_dump(mode="json"))

    def discard(self, doc_id: int) -> None:
        """Remove a row written by an operation that is being rolled back."""
        with self.store.io():
            self.table.remove(doc_ids=[doc_id])

    def exists(self, group_id: int, account_id: str, cycle_number: int) -> bool:
        C = Query()
        with self.store.io():
            return self.table.contains(
                (C.group_id == group_id)
                & (C.account_id == account_id)
                & (C.cycle_number == cycle_number)
            )

    def for_cycle(self, group_id: int, cycle_number: int) -> list[Contribution]:
        C = Query()
        with self.store.io():
            docs = self.table.search((C.group_id == group_id) & (C.cycle_number == cycle_number))
        return [Contribution(**doc) for doc in docs]
