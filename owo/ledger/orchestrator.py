"""The Ledger: every operation that touches more than one table.

Each write sequence runs under the locks of the accounts and groups it reads
from, inside a UnitOfWork that reverses completed steps if a later one fails.
An account is never left debited without the contribution and transaction
record that explain the debit.
"""

from loguru import logger

from owo.db.accounts import AccountStore, require_positive_amount
from owo.db.contributions import ContributionTable
from owo.db.groups import GroupRegistry
from owo.db.store import Store, account_key, group_key
from owo.db.transactions import TransactionLog
from owo.errors import InvalidRange, NotEligible, NotFound
from owo.ledger.cycles import CycleEngine
from owo.ledger.unit_of_work import UnitOfWork
from owo.models.schemas import (
    Account,
    Contribution,
    CycleStatus,
    Group,
    GroupStatus,
    Membership,
    Payout,
    Statement,
    TransactionRecord,
)


EXTERNAL = "external"


def group_counterparty(group_id: int) -> str:
    return f"group:{group_id}"


class Ledger:
    def __init__(self, store: Store, default_opening_balance: int = 10000, history_limit: int = 20):
        self.store = store
        self.accounts = AccountStore(store, default_opening_balance=default_opening_balance)
        self.log = TransactionLog(store, default_limit=history_limit)
        self.groups = GroupRegistry(store, self.accounts)
        self.contributions = ContributionTable(store)
        self.cycles = CycleEngine(self.accounts, self.groups, self.contributions)

    # ── Accounts ───────────────────────────────────────────────────

    def open_account(self, account_id: str, opening_balance: int | None = None) -> Account:
        account = self.accounts.open_account(account_id, opening_balance)
        logger.info("Opened account '{}' with balance {}", account.id, account.balance)
        return account

    def get_account(self, account_id: str) -> Account:
        return self.accounts.get(account_id)

    def get_balance(self, account_id: str) -> int:
        return self.accounts.get_balance(account_id)

    def debit(self, account_id: str, amount: int) -> int:
        """Withdraw to an outside party, logged as a Transfer."""
        return self._spend(account_id, "Transfer", amount, EXTERNAL)

    def credit(self, account_id: str, amount: int) -> int:
        """Deposit from an outside party, logged as Received."""
        require_positive_amount(amount)
        with self.store.locks.hold(account_key(account_id)):
            with UnitOfWork(f"deposit for '{account_id}'") as uow:
                balance = self.accounts.credit(account_id, amount)
                uow.on_rollback("reverse deposit", lambda: self.accounts.debit(account_id, amount))
                self.log.append(account_id, "Received", amount, counterparty=EXTERNAL)
        logger.info("Deposit of {} to '{}' → balance {}", amount, account_id, balance)
        return balance

    def history(self, account_id: str, limit: int | None = None) -> list[TransactionRecord]:
        self.accounts.get(account_id)
        return self.log.list_for_account(account_id, limit)

    def statement(self, account_id: str) -> Statement:
        balance = self.accounts.get_balance(account_id)
        debited, credited = self.log.totals(account_id)
        return Statement(account_id=account_id, balance=balance, debited=debited, credited=credited)

    def _spend(self, account_id: str, kind: str, amount: int, counterparty: str) -> int:
        """Debit an account and record why, as one unit."""
        require_positive_amount(amount)
        with self.store.locks.hold(account_key(account_id)):
            with UnitOfWork(f"{kind} for '{account_id}'") as uow:
                balance = self.accounts.debit(account_id, amount)
                uow.on_rollback("refund", lambda: self.accounts.credit(account_id, amount))
                self.log.append(account_id, kind, amount, counterparty=counterparty)
        logger.info("{} of {} by '{}' → balance {}", kind, amount, account_id, balance)
        return balance

    def buy_airtime(self, account_id: str, amount: int, phone: str | None = None) -> int:
        return self._spend(account_id, "Airtime", amount, phone or "self")

    def pay_bill(self, account_id: str, amount: int, biller: str) -> int:
        if not biller or not biller.strip():
            raise InvalidRange("Biller must not be blank")
        return self._spend(account_id, "BillPayment", amount, biller)

    def transfer(self, sender_id: str, recipient_id: str, amount: int) -> int:
        require_positive_amount(amount)
        if sender_id == recipient_id:
            raise InvalidRange("Cannot transfer to the same account")

        with self.store.locks.hold(account_key(sender_id), account_key(recipient_id)):
            if not self.accounts.exists(recipient_id):
                raise NotFound(f"Recipient '{recipient_id}' not found")
            with UnitOfWork(f"transfer '{sender_id}' → '{recipient_id}'") as uow:
                balance = self.accounts.debit(sender_id, amount)
                uow.on_rollback("refund sender", lambda: self.accounts.credit(sender_id, amount))
                self.accounts.credit(recipient_id, amount)
                uow.on_rollback("reclaim from recipient", lambda: self.accounts.debit(recipient_id, amount))
                self.log.append_many(
                    [
                        (sender_id, "Transfer", amount, recipient_id),
                        (recipient_id, "Received", amount, sender_id),
                    ]
                )
        logger.info("Transferred {} from '{}' to '{}'", amount, sender_id, recipient_id)
        return balance

    # ── Groups ─────────────────────────────────────────────────────

    def create_group(
        self,
        name: str,
        amount_per_person: int,
        frequency: str,
        total_members: int,
        founder_id: str,
    ) -> Group:
        return self.groups.create_group(name, amount_per_person, frequency, total_members, founder_id)

    def get_group(self, group_id: int) -> Group:
        return self.groups.get(group_id)

    def join_group(self, group_id: int, account_id: str) -> Membership:
        return self.groups.join_group(group_id, account_id)

    def list_members(self, group_id: int) -> list[Membership]:
        self.groups.get(group_id)
        return self.groups.list_members(group_id)

    def list_groups_for_account(self, account_id: str) -> list[Group]:
        self.accounts.get(account_id)
        return self.groups.list_groups_for_account(account_id)

    def close_group(self, group_id: int, account_id: str) -> Group:
        with self.store.locks.hold(group_key(group_id)):
            group = self.groups.get(group_id)
            if group.created_by != account_id:
                raise NotEligible(f"Only '{group.created_by}' can close group #{group_id}")
            return self.groups.close(group_id)

    def contribute(self, group_id: int, account_id: str, cycle_number: int) -> int:
        """Pay one member's share into a cycle. Returns the member's new balance."""
        with self.store.locks.hold(group_key(group_id), account_key(account_id)):
            group = self.cycles.check_contribution(group_id, account_id, cycle_number)
            amount = group.amount_per_person

            with UnitOfWork(f"contribution to group #{group_id}") as uow:
                balance = self.accounts.debit(account_id, amount)
                uow.on_rollback("refund", lambda: self.accounts.credit(account_id, amount))
                doc_id = self.contributions.add(
                    Contribution(
                        group_id=group_id,
                        account_id=account_id,
                        amount=amount,
                        cycle_number=cycle_number,
                    )
                )
                uow.on_rollback("discard contribution", lambda: self.contributions.discard(doc_id))
                self.log.append(
                    account_id, "EsusuContribution", amount, counterparty=group_counterparty(group_id)
                )

        logger.info(
            "'{}' contributed {} to group #{} cycle {}", account_id, amount, group_id, cycle_number
        )
        return balance

    def cycle_status(self, group_id: int, cycle_number: int) -> CycleStatus:
        return self.cycles.cycle_status(group_id, cycle_number)

    def mark_collected(self, group_id: int, account_id: str, cycle_number: int) -> Payout:
        """Pay the full pot to the member whose turn it is."""
        with self.store.locks.hold(group_key(group_id), account_key(account_id)):
            group = self.cycles.check_collection(group_id, account_id, cycle_number)
            pot = group.amount_per_person * group.total_members

            with UnitOfWork(f"payout from group #{group_id}") as uow:
                self.groups.set_collected(group_id, account_id, True)
                uow.on_rollback(
                    "clear collected flag",
                    lambda: self.groups.set_collected(group_id, account_id, False),
                )
                balance = self.accounts.credit(account_id, pot)
                uow.on_rollback("reverse payout", lambda: self.accounts.debit(account_id, pot))
                self.log.append(account_id, "Received", pot, counterparty=group_counterparty(group_id))

        logger.info("'{}' collected {} from group #{} cycle {}", account_id, pot, group_id, cycle_number)
        return Payout(
            group_id=group_id,
            account_id=account_id,
            cycle_number=cycle_number,
            amount=pot,
            balance=balance,
        )

    def group_status(self, group_id: int, cycle_number: int | None = None) -> GroupStatus:
        group = self.groups.get(group_id)
        current = self.cycles.current_cycle(group_id)
        if cycle_number is None:
            cycle_number = current or group.total_members
        status = self.cycles.cycle_status(group_id, cycle_number)
        collector = self.cycles.next_collector(group_id)
        members = self.groups.list_members(group_id)
        return GroupStatus(
            group_id=group_id,
            cycle_number=cycle_number,
            phase=self.cycles.phase(group_id),
            full=len(members) >= group.total_members,
            members=members,
            contributed=status.contributed,
            pending=status.pending,
            next_collector=collector.account_id if collector else None,
        )
