"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from finance_tracker.models.base import Base
from finance_tracker.models.enums import (
    AccountCategory,
    AccountType,
    TransactionType,
    TransactionStatus,
    CategoryType,
    Frequency,
    IntervalUnit,
    SplitType,
)
from finance_tracker.models.user import User
from finance_tracker.models.account import Account
from finance_tracker.models.category import CustomCategory
from finance_tracker.models.recurring_transaction import (
    RecurringTransaction,
    RecurringSplit,
    RecurringSkipDate,
    LoanDetails,
)
from finance_tracker.models.transaction import Transaction

__all__ = [
    "Base",
    "AccountCategory",
    "AccountType",
    "TransactionType",
    "TransactionStatus",
    "CategoryType",
    "Frequency",
    "IntervalUnit",
    "SplitType",
    "User",
    "Account",
    "CustomCategory",
    "RecurringTransaction",
    "RecurringSplit",
    "RecurringSkipDate",
    "LoanDetails",
    "Transaction",
]
