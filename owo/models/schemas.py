from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

TransactionKind = Literal["Airtime", "Transfer", "Received", "EsusuContribution", "BillPayment"]
Frequency = Literal["daily", "weekly", "monthly"]
GroupPhase = Literal["forming", "collecting", "ready_to_pay", "completed", "closed"]

# Kinds that take money out of the account they are recorded against
DEBIT_KINDS = frozenset({"Airtime", "Transfer", "EsusuContribution", "BillPayment"})
CREDIT_KINDS = frozenset({"Received"})

MIN_GROUP_MEMBERS = 3
MAX_GROUP_MEMBERS = 12


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Serializes as camelCase on the wire, accepts either casing on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Account(CamelModel):
    id: str
    balance: int
    created_at: datetime = Field(default_factory=utcnow)


class TransactionRecord(CamelModel):
    id: int | None = None
    account_id: str
    kind: TransactionKind
    amount: int
    counterparty: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class Group(CamelModel):
    id: int | None = None
    name: str
    amount_per_person: int
    frequency: Frequency
    total_members: int
    created_by: str
    status: Literal["active", "closed"] = "active"
    created_at: datetime = Field(default_factory=utcnow)


class Membership(CamelModel):
    group_id: int
    account_id: str
    position: int
    has_collected: bool = False
    joined_at: datetime = Field(default_factory=utcnow)


class Contribution(CamelModel):
    group_id: int
    account_id: str
    amount: int
    cycle_number: int
    contributed_at: datetime = Field(default_factory=utcnow)


class CycleStatus(CamelModel):
    group_id: int
    cycle_number: int
    contributed: list[str]
    pending: list[str]


class GroupStatus(CamelModel):
    group_id: int
    cycle_number: int
    phase: GroupPhase
    full: bool
    members: list[Membership]
    contributed: list[str]
    pending: list[str]
    next_collector: str | None = None


class Payout(CamelModel):
    group_id: int
    account_id: str
    cycle_number: int
    amount: int
    balance: int


class Statement(CamelModel):
    account_id: str
    balance: int
    debited: int
    credited: int


# ── Intents ────────────────────────────────────────────────────────


class CheckBalance(BaseModel):
    intent: Literal["check_balance"] = "check_balance"


class Transfer(BaseModel):
    intent: Literal["transfer"] = "transfer"
    amount: int | None = None
    recipient: str | None = None


class BuyAirtime(BaseModel):
    intent: Literal["buy_airtime"] = "buy_airtime"
    amount: int | None = None


class ShowHistory(BaseModel):
    intent: Literal["show_history"] = "show_history"


class Unknown(BaseModel):
    intent: Literal["unknown"] = "unknown"


Intent = Annotated[
    Union[CheckBalance, Transfer, BuyAirtime, ShowHistory, Unknown],
    Field(discriminator="intent"),
]


# ── Requests / responses ───────────────────────────────────────────


class OpenAccountRequest(CamelModel):
    account_id: str = Field(min_length=1)
    opening_balance: StrictInt | None = None


class AmountRequest(CamelModel):
    amount: StrictInt


class BalanceResponse(CamelModel):
    account_id: str
    balance: int


class TransferRequest(CamelModel):
    recipient: str
    amount: StrictInt


class AirtimeRequest(CamelModel):
    amount: StrictInt
    phone: str | None = None


class BillRequest(CamelModel):
    amount: StrictInt
    biller: str


class CreateGroupRequest(CamelModel):
    name: str
    amount_per_person: StrictInt
    frequency: str
    total_members: StrictInt
    founder_id: str


class CreateGroupResponse(CamelModel):
    group_id: int


class MemberRequest(CamelModel):
    account_id: str


class JoinResponse(CamelModel):
    group_id: int
    account_id: str
    position: int


class CycleRequest(CamelModel):
    account_id: str
    cycle_number: StrictInt


class ParseRequest(BaseModel):
    message: str


class ChatRequest(CamelModel):
    account_id: str
    message: str


class ChatResponse(BaseModel):
    intent: Intent
    reply: str
