"""Enumerations for the reconciliation session."""

from enum import Enum


class Direction(str, Enum):
    """
    Direction of a ledger entry.

    RECEIVE: Receivable, funds coming into the account
    PAY: Payable, funds leaving the account
    """
    RECEIVE = "RECEIVE"
    PAY = "PAY"


class MatchStatus(str, Enum):
    """
    Lifecycle status of a match candidate.

    PENDING: Proposed pairing awaiting operator review
    APPROVED: Confirmed by the operator, committed on save
    REJECTED: Dismissed by the operator
    MANUAL: No ledger entry bound, requires manual assignment
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    MANUAL = "manual"
