"""Settlements: who owes whom in a group, settlement requests, marking payments settled."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from settleup.database import get_db
from settleup.exceptions import Conflict, NotFound
from settleup.money import format_money
from settleup.schemas import (
    InstructionItem,
    PairBalanceItem,
    SettleRequest,
    SettlementRecordResponse,
    SettlementRequestCreate,
    SettlementSummary,
)
from settleup.services.settle import compute_group_settlements, mark_settled, request_settlement
from settleup.services.store import SqlAlchemyStore

router = APIRouter(prefix="/settlements", tags=["settlements"])


def get_store(db: Session = Depends(get_db)) -> SqlAlchemyStore:
    return SqlAlchemyStore(db)


def _members_or_404(store: SqlAlchemyStore, group_id: str):
    try:
        return store.get_members(group_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Group not found")


def _require_member(members, member_id: str, label: str):
    if not any(m.id == member_id for m in members):
        raise HTTPException(status_code=400, detail=f"{label} must be a group member")


@router.get("/group/{group_id}", response_model=SettlementSummary)
def get_settlements(
    group_id: str,
    locale: str = Query("en_US"),
    store: SqlAlchemyStore = Depends(get_store),
):
    _members_or_404(store, group_id)
    balance_map, instructions = compute_group_settlements(store, group_id)
    return SettlementSummary(
        group_id=group_id,
        members=balance_map.members,
        balances=[
            PairBalanceItem(
                from_id=p.from_id,
                to_id=p.to_id,
                gross_owed=p.gross_owed,
                settled=p.settled,
                outstanding=p.outstanding,
            )
            for p in balance_map.pairs.values()
        ],
        settlements=[
            InstructionItem(
                id=i.id,
                from_member=i.from_member,
                to_member=i.to_member,
                amount=i.amount,
                amount_display=format_money(i.amount, locale=locale),
                status=i.status,
                synthetic=i.synthetic,
                record_id=i.record_id,
            )
            for i in instructions
        ],
        member_balances=[balance_map.net_for(m.id) for m in balance_map.members],
        diagnostics=balance_map.diagnostics,
    )


@router.post("/request", response_model=SettlementRecordResponse)
def create_settlement_request(data: SettlementRequestCreate, store: SqlAlchemyStore = Depends(get_store)):
    members = _members_or_404(store, data.group_id)
    _require_member(members, data.from_id, "Payer")
    _require_member(members, data.to_id, "Recipient")
    if data.from_id == data.to_id:
        raise HTTPException(status_code=400, detail="Cannot settle with yourself")
    try:
        record = request_settlement(store, data.group_id, data.from_id, data.to_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Nothing is owed between these members")
    except Conflict:
        raise HTTPException(status_code=409, detail="Couldn't save the request, try again")
    return SettlementRecordResponse.model_validate(record.model_dump())


@router.post("/settle", response_model=SettlementRecordResponse)
def settle(data: SettleRequest, store: SqlAlchemyStore = Depends(get_store)):
    members = _members_or_404(store, data.group_id)
    admin = next((m for m in members if m.id == data.settled_by), None)
    if admin is None or not admin.is_admin:
        raise HTTPException(status_code=403, detail="Only the group admin can mark settlements as completed")
    try:
        record = mark_settled(store, data.group_id, data.from_id, data.to_id, settled_by=data.settled_by)
    except NotFound:
        raise HTTPException(status_code=404, detail="No pending settlement between these members")
    except Conflict:
        raise HTTPException(status_code=409, detail="This was already settled")
    return SettlementRecordResponse.model_validate(record.model_dump())


@router.get("/records/{group_id}", response_model=list[SettlementRecordResponse])
def list_settlement_records(group_id: str, store: SqlAlchemyStore = Depends(get_store)):
    _members_or_404(store, group_id)
    records = store.get_settlement_records(group_id)
    return [SettlementRecordResponse.model_validate(r.model_dump()) for r in reversed(records)]
