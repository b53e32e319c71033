from typing import get_args

from loguru import logger
from tinydb import Query

from owo.db.accounts import AccountStore, require_positive_amount
from owo.db.store import GROUP_NAMES_KEY, Store, group_key
from owo.errors import (
    AlreadyMember,
    DuplicateName,
    GroupClosed,
    GroupFull,
    InvalidRange,
    NotFound,
    NotMember,
)
from owo.models.schemas import (
    MAX_GROUP_MEMBERS,
    MIN_GROUP_MEMBERS,
    Frequency,
    Group,
    Membership,
)

FREQUENCIES = frozenset(get_args(Frequency))


class GroupRegistry:
    """Esusu groups and their memberships.

    Positions are handed out in join order starting from the founder at 1.
    Members never leave, so positions are never reused.
    """

    def __init__(self, store: Store, accounts: AccountStore):
        self.store = store
        self.accounts = accounts
        self.groups = store.table("groups")
        self.memberships = store.table("memberships")

    def create_group(
        self,
        name: str,
        amount_per_person: int,
        frequency: str,
        total_members: int,
        founder_id: str,
    ) -> Group:
        if not isinstance(total_members, int) or not (
            MIN_GROUP_MEMBERS <= total_members <= MAX_GROUP_MEMBERS
        ):
            raise InvalidRange(
                f"A group needs {MIN_GROUP_MEMBERS} to {MAX_GROUP_MEMBERS} members, got {total_members}"
            )
        if not name or not name.strip():
            raise InvalidRange("Group name must not be blank")
        if frequency not in FREQUENCIES:
            raise InvalidRange(f"Unknown frequency '{frequency}'")
        require_positive_amount(amount_per_person)
        if not self.accounts.exists(founder_id):
            raise NotFound(f"Account '{founder_id}' not found")

        with self.store.locks.hold(GROUP_NAMES_KEY):
            G = Query()
            with self.store.io():
                taken = self.groups.contains(G.name == name)
            if taken:
                raise DuplicateName(f"A group named '{name}' already exists")

            group = Group(
                name=name,
                amount_per_person=amount_per_person,
                frequency=frequency,
                total_members=total_members,
                created_by=founder_id,
            )
            data = group.model_dump(mode="json")
            data.pop("id", None)
            founder = Membership(group_id=0, account_id=founder_id, position=1)
            with self.store.io():
                group.id = self.groups.insert(data)
                founder.group_id = group.id
                try:
                    self.memberships.insert(founder.model_dump(mode="json"))
                except Exception:
                    self.groups.remove(doc_ids=[group.id])
                    raise

        logger.info("Created group #{} '{}' for {} members", group.id, name, total_members)
        return group

    def get(self, group_id: int) -> Group:
        with self.store.io():
            doc = self.groups.get(doc_id=group_id)
        if doc is None:
            raise NotFound(f"Group #{group_id} not found")
        return Group(id=doc.doc_id, **doc)

    def join_group(self, group_id: int, account_id: str) -> Membership:
        with self.store.locks.hold(group_key(group_id)):
            group = self.get(group_id)
            if group.status == "closed":
                raise GroupClosed(f"Group #{group_id} is closed")
            if not self.accounts.exists(account_id):
                raise NotFound(f"Account '{account_id}' not found")

            members = self.list_members(group_id)
            if any(m.account_id == account_id for m in members):
                raise AlreadyMember(f"'{account_id}' is already in group #{group_id}")
            if len(members) >= group.total_members:
                raise GroupFull(f"Group #{group_id} already has {group.total_members} members")

            membership = Membership(
                group_id=group_id, account_id=account_id, position=len(members) + 1
            )
            with self.store.io():
                self.memberships.insert(membership.model_dump(mode="json"))

        logger.info("'{}' joined group #{} at position {}", account_id, group_id, membership.position)
        return membership

    def list_members(self, group_id: int) -> list[Membership]:
        M = Query()
        with self.store.io():
            docs = self.memberships.search(M.group_id == group_id)
        members = [Membership(**doc) for doc in docs]
        return sorted(members, key=lambda m: m.position)

    def get_membership(self, group_id: int, account_id: str) -> Membership:
        M = Query()
        with self.store.io():
            doc = self.memberships.get((M.group_id == group_id) & (M.account_id == account_id))
        if doc is None:
            raise NotMember(f"'{account_id}' is not a member of group #{group_id}")
        return Membership(**doc)

    def list_groups_for_account(self, account_id: str) -> list[Group]:
        M = Query()
        with self.store.io():
            docs = self.memberships.search(M.account_id == account_id)
        return [self.get(doc["group_id"]) for doc in sorted(docs, key=lambda d: d["group_id"])]

    def set_collected(self, group_id: int, account_id: str, collected: bool) -> None:
        M = Query()
        with self.store.io():
            updated = self.memberships.update(
                {"has_collected": collected},
                (M.group_id == group_id) & (M.account_id == account_id),
            )
        if not updated:
            raise NotMember(f"'{account_id}' is not a member of group #{group_id}")

    def close(self, group_id: int) -> Group:
        group = self.get(group_id)
        if group.status == "closed":
            raise GroupClosed(f"Group #{group_id} is already closed")
        with self.store.io():
            self.groups.update({"status": "closed"}, doc_ids=[group_id])
        group.status = "closed"
        logger.info("Closed group #{}", group_id)
        return group
