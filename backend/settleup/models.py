"""SQLAlchemy models."""
import uuid

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Boolean, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from settleup.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class Group(Base):
    __tablename__ = "groups"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    description = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship(
        "Member", back_populates="group", cascade="all, delete-orphan", order_by="Member.position"
    )
    expenses = relationship("Expense", back_populates="group", cascade="all, delete-orphan")
    settlement_records = relationship(
        "SettlementRecord", back_populates="group", cascade="all, delete-orphan"
    )


class Member(Base):
    __tablename__ = "group_members"

    group_id = Column(String(64), ForeignKey("groups.id"), primary_key=True)
    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("Group", back_populates="members")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String(64), primary_key=True, default=_new_id)
    group_id = Column(String(64), ForeignKey("groups.id"), nullable=False, index=True)
    # Not a foreign key: expenses outlive members who leave the group.
    paid_by = Column(String(64), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(512), nullable=True)
    category = Column(String(100), nullable=True)
    split_type = Column(String(20), nullable=False, default="equal")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("Group", back_populates="expenses")
    splits = relationship(
        "ExpenseSplit", back_populates="expense", cascade="all, delete-orphan", order_by="ExpenseSplit.id"
    )


class ExpenseSplit(Base):
    __tablename__ = "expense_splits"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(String(64), ForeignKey("expenses.id"), nullable=False)
    member_id = Column(String(64), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    expense = relationship("Expense", back_populates="splits")


class SettlementRecord(Base):
    __tablename__ = "settlement_records"
    __table_args__ = (
        CheckConstraint("from_id <> to_id", name="ck_settlement_records_distinct_pair"),
        CheckConstraint("status IN ('pending', 'settled')", name="ck_settlement_records_status"),
    )

    id = Column(String(64), primary_key=True, default=_new_id)
    group_id = Column(String(64), ForeignKey("groups.id"), nullable=False, index=True)
    from_id = Column(String(64), nullable=False)
    to_id = Column(String(64), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    settled_at = Column(DateTime(timezone=True), nullable=True)
    settled_by = Column(String(64), nullable=True)
    # Encodes the pair state a writer saw; concurrent writers with the same view collide here.
    guard_key = Column(String(255), unique=True, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    group = relationship("Group", back_populates="settlement_records")
