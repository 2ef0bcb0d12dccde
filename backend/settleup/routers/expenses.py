"""Expenses: create, list, get, update, delete."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from settleup.database import get_db
from settleup.models import Group, Expense, ExpenseSplit
from settleup.money import Money, ZERO
from settleup.schemas import ExpenseCreate, ExpenseResponse, ExpenseUpdate, EXPENSE_CATEGORIES
from settleup.services.store import change_feed

router = APIRouter(prefix="/expenses", tags=["expenses"])


def _get_group(db: Session, group_id: str) -> Group:
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


def _build_splits(data: ExpenseCreate, member_ids: set[str]) -> dict:
    split_type = data.split_type or "equal"
    if split_type == "custom":
        if not data.shares:
            raise HTTPException(status_code=400, detail="Custom split requires shares")
        unknown = set(data.shares) - member_ids
        if unknown:
            raise HTTPException(status_code=400, detail="All participants must be group members")
        if any(not share.exceeds_tolerance() for share in data.shares.values()):
            raise HTTPException(status_code=400, detail="Each share must be positive")
        total_shares = sum(data.shares.values(), ZERO)
        if not total_shares.effectively_equals(data.amount):
            raise HTTPException(
                status_code=400,
                detail=f"Shares total ({total_shares}) must equal expense amount ({data.amount})",
            )
        return dict(data.shares)
    if split_type != "equal":
        raise HTTPException(status_code=400, detail="split_type must be 'equal' or 'custom'")
    if not data.participant_ids:
        raise HTTPException(status_code=400, detail="At least one participant required")
    if len(set(data.participant_ids)) != len(data.participant_ids):
        raise HTTPException(status_code=400, detail="Participants must be unique")
    if set(data.participant_ids) - member_ids:
        raise HTTPException(status_code=400, detail="All participants must be group members")
    return dict(zip(data.participant_ids, data.amount.allocate(len(data.participant_ids))))


def _validated_splits(data: ExpenseCreate, group: Group) -> dict:
    member_ids = {m.id for m in group.members}
    if data.paid_by not in member_ids:
        raise HTTPException(status_code=400, detail="Payer must be a group member")
    if data.amount <= ZERO:
        raise HTTPException(status_code=400, detail="Amount must be positive")
    if data.category and data.category not in EXPENSE_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Invalid category. Must be one of: {', '.join(EXPENSE_CATEGORIES)}")
    return _build_splits(data, member_ids)


@router.post("", response_model=ExpenseResponse)
def create_expense(data: ExpenseCreate, db: Session = Depends(get_db)):
    group = _get_group(db, data.group_id)
    shares = _validated_splits(data, group)
    expense = Expense(
        group_id=data.group_id,
        paid_by=data.paid_by,
        amount=data.amount.to_decimal(),
        description=data.description,
        category=data.category,
        split_type=data.split_type or "equal",
    )
    expense.splits = [ExpenseSplit(member_id=mid, amount=amt.to_decimal()) for mid, amt in shares.items()]
    db.add(expense)
    db.commit()
    db.refresh(expense)
    change_feed.publish(expense.group_id)
    return ExpenseResponse.model_validate(expense)


@router.get("", response_model=list[ExpenseResponse])
def list_expenses(
    group_id: str,
    category: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    _get_group(db, group_id)
    q = db.query(Expense).filter(Expense.group_id == group_id)
    if category:
        q = q.filter(Expense.category == category)
    expenses = q.order_by(Expense.created_at.desc()).offset(offset).limit(limit).all()
    return [ExpenseResponse.model_validate(e) for e in expenses]


@router.get("/{expense_id}", response_model=ExpenseResponse)
def get_expense(expense_id: str, db: Session = Depends(get_db)):
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return ExpenseResponse.model_validate(expense)


@router.delete("/{expense_id}", status_code=204)
def delete_expense(expense_id: str, db: Session = Depends(get_db)):
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    group_id = expense.group_id
    db.delete(expense)
    db.commit()
    change_feed.publish(group_id)


@router.patch("/{expense_id}", response_model=ExpenseResponse)
def update_expense(expense_id: str, data: ExpenseUpdate, db: Session = Depends(get_db)):
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    group = _get_group(db, expense.group_id)

    split_type = data.split_type or expense.split_type
    shares = data.shares
    if shares is None and split_type == "custom" and expense.split_type == "custom":
        shares = {s.member_id: Money.of(s.amount) for s in expense.splits}
    merged = ExpenseCreate(
        group_id=expense.group_id,
        paid_by=data.paid_by or expense.paid_by,
        amount=data.amount if data.amount is not None else Money.of(expense.amount),
        description=data.description if data.description is not None else expense.description,
        category=data.category if data.category is not None else expense.category,
        split_type=split_type,
        participant_ids=(
            data.participant_ids if data.participant_ids is not None
            else [s.member_id for s in expense.splits]
        ),
        shares=shares,
    )
    new_shares = _validated_splits(merged, group)

    expense.paid_by = merged.paid_by
    expense.amount = merged.amount.to_decimal()
    expense.description = merged.description
    expense.category = merged.category or None
    expense.split_type = split_type
    expense.splits = [ExpenseSplit(member_id=mid, amount=amt.to_decimal()) for mid, amt in new_shares.items()]
    db.commit()
    db.refresh(expense)
    change_feed.publish(expense.group_id)
    return ExpenseResponse.model_validate(expense)
