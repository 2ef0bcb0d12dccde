"""Errors raised by the settlement engine and the store layer."""
from typing import Optional


class SettlementError(Exception):
    """Base exception for settlement engine errors."""
    pass


class InvalidAmount(SettlementError, ValueError):
    """Raised when a monetary value is NaN, infinite or not a number."""
    pass


class InvalidInput(SettlementError):
    """Raised when a required aggregation input is missing."""
    pass


class UnknownMember(SettlementError):
    """A split, payer or settlement record names a member absent from the roster.

    Collected as a diagnostic by the aggregator instead of being raised, so one
    stale record never blanks the whole settlements view.
    """

    def __init__(self, member_id: str, expense_id: Optional[str] = None, record_id: Optional[str] = None):
        self.member_id = member_id
        self.expense_id = expense_id
        self.record_id = record_id
        if expense_id is not None:
            where = f"expense {expense_id}"
        elif record_id is not None:
            where = f"settlement record {record_id}"
        else:
            where = "group data"
        super().__init__(f"Unknown member {member_id!r} referenced by {where}")


class Conflict(SettlementError):
    """Raised when a conditional settlement write loses a race."""
    pass


class NotFound(SettlementError):
    """Raised when there is nothing to settle for the requested pair or group."""
    pass
