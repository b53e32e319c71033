from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from owo.chat import reply_to
from owo.deps import get_ledger
from owo.errors import (
    AlreadyCollected,
    GroupClosed,
    LedgerError,
    NotEligible,
    NotFound,
    StorageError,
)
from owo.intent.parser import parse_intent
from owo.ledger.orchestrator import Ledger
from owo.models.schemas import (
    Account,
    AirtimeRequest,
    AmountRequest,
    BalanceResponse,
    BillRequest,
    ChatRequest,
    ChatResponse,
    CreateGroupRequest,
    CreateGroupResponse,
    CycleRequest,
    Group,
    GroupStatus,
    JoinResponse,
    MemberRequest,
    Membership,
    OpenAccountRequest,
    ParseRequest,
    Payout,
    Statement,
    TransactionRecord,
    TransferRequest,
)

router = APIRouter()

STATUS_CODES: dict[type[LedgerError], int] = {
    NotFound: 404,
    NotEligible: 409,
    AlreadyCollected: 409,
    GroupClosed: 409,
    StorageError: 500,
}


def status_for(error: LedgerError) -> int:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 400


@contextmanager
def ledger_errors() -> Iterator[None]:
    """Turn ledger failures into HTTP errors carrying the failure name."""
    try:
        yield
    except LedgerError as e:
        status_code = status_for(e)
        if status_code >= 500:
            logger.error("Request failed: {}", e)
        raise HTTPException(
            status_code=status_code, detail={"error": e.name, "message": e.message}
        ) from e


# ── Accounts ───────────────────────────────────────────────────────


@router.post("/accounts", response_model=Account, status_code=201)
def open_account(request: OpenAccountRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.open_account(request.account_id, request.opening_balance)


@router.get("/accounts/{account_id}", response_model=Account)
def get_account(account_id: str, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.get_account(account_id)


@router.get("/accounts/{account_id}/balance", response_model=BalanceResponse)
def get_balance(account_id: str, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return BalanceResponse(account_id=account_id, balance=ledger.get_balance(account_id))


@router.post("/accounts/{account_id}/debit", response_model=BalanceResponse)
def debit(account_id: str, request: AmountRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        balance = ledger.debit(account_id, request.amount)
    return BalanceResponse(account_id=account_id, balance=balance)


@router.post("/accounts/{account_id}/credit", response_model=BalanceResponse)
def credit(account_id: str, request: AmountRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        balance = ledger.credit(account_id, request.amount)
    return BalanceResponse(account_id=account_id, balance=balance)


@router.post("/accounts/{account_id}/transfer", response_model=BalanceResponse)
def transfer(account_id: str, request: TransferRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        balance = ledger.transfer(account_id, request.recipient, request.amount)
    return BalanceResponse(account_id=account_id, balance=balance)


@router.post("/accounts/{account_id}/airtime", response_model=BalanceResponse)
def buy_airtime(account_id: str, request: AirtimeRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        balance = ledger.buy_airtime(account_id, request.amount, request.phone)
    return BalanceResponse(account_id=account_id, balance=balance)


@router.post("/accounts/{account_id}/bills", response_model=BalanceResponse)
def pay_bill(account_id: str, request: BillRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        balance = ledger.pay_bill(account_id, request.amount, request.biller)
    return BalanceResponse(account_id=account_id, balance=balance)


@router.get("/accounts/{account_id}/transactions", response_model=list[TransactionRecord])
def list_transactions(account_id: str, limit: int | None = None, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.history(account_id, limit)


@router.get("/accounts/{account_id}/statement", response_model=Statement)
def get_statement(account_id: str, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.statement(account_id)


@router.get("/accounts/{account_id}/groups", response_model=list[Group])
def list_account_groups(account_id: str, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.list_groups_for_account(account_id)


# ── Groups ─────────────────────────────────────────────────────────


@router.post("/groups", response_model=CreateGroupResponse, status_code=201)
def create_group(request: CreateGroupRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        group = ledger.create_group(
            request.name,
            request.amount_per_person,
            request.frequency,
            request.total_members,
            request.founder_id,
        )
    return CreateGroupResponse(group_id=group.id)


@router.get("/groups/{group_id}", response_model=Group)
def get_group(group_id: int, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.get_group(group_id)


@router.get("/groups/{group_id}/members", response_model=list[Membership])
def list_members(group_id: int, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.list_members(group_id)


@router.post("/groups/{group_id}/join", response_model=JoinResponse)
def join_group(group_id: int, request: MemberRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        membership = ledger.join_group(group_id, request.account_id)
    return JoinResponse(
        group_id=group_id, account_id=membership.account_id, position=membership.position
    )


@router.post("/groups/{group_id}/contribute", response_model=BalanceResponse)
def contribute(group_id: int, request: CycleRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        balance = ledger.contribute(group_id, request.account_id, request.cycle_number)
    return BalanceResponse(account_id=request.account_id, balance=balance)


@router.get("/groups/{group_id}/status", response_model=GroupStatus)
def group_status(group_id: int, cycle: int | None = None, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.group_status(group_id, cycle)


@router.post("/groups/{group_id}/collect", response_model=Payout)
def collect(group_id: int, request: CycleRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.mark_collected(group_id, request.account_id, request.cycle_number)


@router.post("/groups/{group_id}/close", response_model=Group)
def close_group(group_id: int, request: MemberRequest, ledger: Ledger = Depends(get_ledger)):
    with ledger_errors():
        return ledger.close_group(group_id, request.account_id)


# ── Chat ───────────────────────────────────────────────────────────


@router.post("/parse")
def parse_message(request: ParseRequest):
    logger.info("Parsing message: {}", request.message)
    return parse_intent(request.message)


@router.post("/chat", response_model=ChatResponse)
def chat(request: ChatRequest, ledger: Ledger = Depends(get_ledger)):
    intent = parse_intent(request.message)
    logger.info("Chat from '{}' → {}", request.account_id, intent.intent)
    return ChatResponse(intent=intent, reply=reply_to(ledger, request.account_id, intent))
