"""Contribution and collection rules for esusu groups.

A group with N members runs N cycles. In every cycle each member pays
``amount_per_person`` once, and once nobody is pending the member at the
lowest position who has not yet collected may take the pot. Collecting moves
the group on to the next cycle.

The engine only reads state and raises when a rule is broken; the writes are
made by the Ledger while it holds the group and account locks.
"""

from owo.db.accounts import AccountStore
from owo.db.contributions import ContributionTable
from owo.db.groups import GroupRegistry
from owo.errors import (
    AlreadyCollected,
    DuplicateContribution,
    GroupClosed,
    InsufficientFunds,
    InvalidRange,
    NotEligible,
)
from owo.models.schemas import CycleStatus, Group, GroupPhase, Membership


class CycleEngine:
    def __init__(
        self,
        accounts: AccountStore,
        groups: GroupRegistry,
        contributions: ContributionTable,
    ):
        self.accounts = accounts
        self.groups = groups
        self.contributions = contributions

    @staticmethod
    def _check_cycle_number(group: Group, cycle_number: int) -> None:
        if not isinstance(cycle_number, int) or not (1 <= cycle_number <= group.total_members):
            raise InvalidRange(
                f"Cycle must be between 1 and {group.total_members}, got {cycle_number}"
            )

    def _active_group(self, group_id: int) -> Group:
        group = self.groups.get(group_id)
        if group.status == "closed":
            raise GroupClosed(f"Group #{group_id} is closed")
        return group

    def check_contribution(self, group_id: int, account_id: str, cycle_number: int) -> Group:
        group = self._active_group(group_id)
        self._check_cycle_number(group, cycle_number)
        self.groups.get_membership(group_id, account_id)
        if self.contributions.exists(group_id, account_id, cycle_number):
            raise DuplicateContribution(
                f"'{account_id}' already contributed to cycle {cycle_number} of group #{group_id}"
            )
        balance = self.accounts.get_balance(account_id)
        if balance < group.amount_per_person:
            raise InsufficientFunds(
                f"'{account_id}' has {balance}, contribution is {group.amount_per_person}"
            )
        return group

    def cycle_status(self, group_id: int, cycle_number: int) -> CycleStatus:
        group = self.groups.get(group_id)
        if not isinstance(cycle_number, int) or cycle_number < 1:
            raise InvalidRange(f"Cycle must be a positive number, got {cycle_number}")
        members = self.groups.list_members(group.id)
        paid = {c.account_id for c in self.contributions.for_cycle(group.id, cycle_number)}
        return CycleStatus(
            group_id=group.id,
            cycle_number=cycle_number,
            contributed=[m.account_id for m in members if m.account_id in paid],
            pending=[m.account_id for m in members if m.account_id not in paid],
        )

    @staticmethod
    def _next_collector(members: list[Membership]) -> Membership | None:
        for member in members:
            if not member.has_collected:
                return member
        return None

    def next_collector(self, group_id: int) -> Membership | None:
        return self._next_collector(self.groups.list_members(group_id))

    def current_cycle(self, group_id: int) -> int | None:
        """The cycle being collected for, or None once everyone has collected."""
        group = self.groups.get(group_id)
        collected = sum(1 for m in self.groups.list_members(group_id) if m.has_collected)
        if collected >= group.total_members:
            return None
        return collected + 1

    def check_collection(self, group_id: int, account_id: str, cycle_number: int) -> Group:
        group = self._active_group(group_id)
        membership = self.groups.get_membership(group_id, account_id)
        if membership.has_collected:
            raise AlreadyCollected(f"'{account_id}' has already collected from group #{group_id}")

        members = self.groups.list_members(group_id)
        if len(members) < group.total_members:
            raise NotEligible(
                f"Group #{group_id} has {len(members)} of {group.total_members} members"
            )
        current = self.current_cycle(group_id)
        if cycle_number != current:
            raise NotEligible(f"Group #{group_id} is collecting for cycle {current}, not {cycle_number}")
        status = self.cycle_status(group_id, cycle_number)
        if status.pending:
            raise NotEligible(
                f"Cycle {cycle_number} is still waiting on {', '.join(status.pending)}"
            )
        turn = self._next_collector(members)
        if turn is None or turn.account_id != account_id:
            raise NotEligible(f"It is not {account_id}'s turn to collect")
        return group

    def phase(self, group_id: int) -> GroupPhase:
        group = self.groups.get(group_id)
        if group.status == "closed":
            return "closed"
        members = self.groups.list_members(group_id)
        if len(members) < group.total_members:
            return "forming"
        current = self.current_cycle(group_id)
        if current is None:
            return "completed"
        if self.cycle_status(group_id, current).pending:
            return "collecting"
        return "ready_to_pay"
