"""Pydantic schemas: engine types and request/response shapes."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from settleup.money import Money, ZERO

UNKNOWN_MEMBER_NAME = "Unknown member"


# ----- Engine types -----
class SettlementStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"


class Member(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    is_admin: bool = False


class Split(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    member_id: str
    amount: Money


class Expense(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    amount: Money
    paid_by: str
    splits: list[Split] = []
    description: Optional[str] = None
    category: Optional[str] = None
    created_at: Optional[datetime] = None


class SettlementRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    from_id: str
    to_id: str
    amount: Money
    status: SettlementStatus
    created_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    settled_by: Optional[str] = None
    guard_key: Optional[str] = None
    version: int = 1


class PairwiseBalance(BaseModel):
    from_id: str
    to_id: str
    gross_owed: Money = ZERO
    settled: Money = ZERO
    outstanding: Money = ZERO


class MemberBalance(BaseModel):
    """What others still owe a member, what the member still owes, and the net of the two."""
    member_id: str
    owed: Money = ZERO
    owes: Money = ZERO
    net: Money = ZERO

    @property
    def owes_you(self) -> Money:
        return self.net if self.net > ZERO else ZERO

    @property
    def you_owe(self) -> Money:
        return -self.net if self.net < ZERO else ZERO


class BalanceMap(BaseModel):
    group_id: Optional[str] = None
    members: list[Member] = []
    pairs: dict[tuple[str, str], PairwiseBalance] = {}
    diagnostics: list[str] = []

    def outstanding(self, from_id: str, to_id: str) -> Money:
        pair = self.pairs.get((from_id, to_id))
        return pair.outstanding if pair else ZERO

    def total_outstanding(self) -> Money:
        return sum((p.outstanding for p in self.pairs.values()), ZERO)

    def net_for(self, member_id: str) -> MemberBalance:
        owed = sum((p.outstanding for p in self.pairs.values() if p.to_id == member_id), ZERO)
        owes = sum((p.outstanding for p in self.pairs.values() if p.from_id == member_id), ZERO)
        return MemberBalance(member_id=member_id, owed=owed, owes=owes, net=owed - owes)


class SettlementInstruction(BaseModel):
    id: str
    group_id: Optional[str] = None
    from_member: Member
    to_member: Member
    amount: Money
    status: SettlementStatus
    synthetic: bool = True
    record_id: Optional[str] = None


# ----- Group -----
class MemberCreate(BaseModel):
    id: Optional[str] = None
    name: str
    is_admin: bool = False


class GroupCreate(BaseModel):
    name: str
    description: Optional[str] = None
    members: list[MemberCreate] = []


class GroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    members: list[Member] = []


# ----- Expense -----
EXPENSE_CATEGORIES = [
    "food",
    "transport",
    "housing",
    "entertainment",
    "utilities",
    "shopping",
    "health",
    "travel",
    "education",
    "other",
]


class ExpenseCreate(BaseModel):
    group_id: str
    paid_by: str
    amount: Money
    description: Optional[str] = None
    category: Optional[str] = None
    split_type: str = "equal"
    participant_ids: list[str] = []
    shares: Optional[dict[str, Money]] = None


class ExpenseUpdate(BaseModel):
    paid_by: Optional[str] = None
    amount: Optional[Money] = None
    description: Optional[str] = None
    category: Optional[str] = None
    split_type: Optional[str] = None
    participant_ids: Optional[list[str]] = None
    shares: Optional[dict[str, Money]] = None


class ExpenseResponse(Expense):
    split_type: str = "equal"


# ----- Settlement -----
class SettleRequest(BaseModel):
    group_id: str
    from_id: str
    to_id: str
    settled_by: str


class SettlementRequestCreate(BaseModel):
    group_id: str
    from_id: str
    to_id: str


class SettlementRecordResponse(SettlementRecord):
    pass


class PairBalanceItem(BaseModel):
    from_id: str
    to_id: str
    gross_owed: Money
    settled: Money
    outstanding: Money


class InstructionItem(BaseModel):
    id: str
    from_member: Member
    to_member: Member
    amount: Money
    amount_display: str
    status: SettlementStatus
    synthetic: bool
    record_id: Optional[str] = None


class SettlementSummary(BaseModel):
    group_id: str
    members: list[Member] = []
    balances: list[PairBalanceItem] = []
    member_balances: list[MemberBalance] = []
    settlements: list[InstructionItem] = []
    diagnostics: list[str] = Field(default_factory=list)
