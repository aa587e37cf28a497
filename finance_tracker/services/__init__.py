"""Business logic services."""

from finance_tracker.services.balance_service import BalanceService
from finance_tracker.services.category_service import CategoryService
from finance_tracker.services.ledger_service import LedgerService
from finance_tracker.services.account_service import AccountService
from finance_tracker.services.recurring_service import RecurringService

__all__ = [
    "BalanceService",
    "CategoryService",
    "LedgerService",
    "AccountService",
    "RecurringService",
]
