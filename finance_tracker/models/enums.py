"""
Shared enumerations for database models.

Python enums mapped to database enums ensure only valid values
are stored.
"""

import enum


class AccountCategory(str, enum.Enum):
    BANK = "bank"
    CREDIT_LOANS = "credit_loans"
    INVESTMENTS = "investments"
    ASSETS = "assets"


class AccountType(str, enum.Enum):
    # Bank accounts
    CHECKING = "checking"
    SAVINGS = "savings"
    CASH = "cash"
    # Credit & loans
    CREDIT_CARD = "credit_card"
    PERSONAL_LOAN = "personal_loan"
    MORTGAGE = "mortgage"
    CAR_LOAN = "car_loan"
    STUDENT_LOAN = "student_loan"
    # Investments
    STOCKS = "stocks"
    RETIREMENT = "retirement"
    CRYPTO = "crypto"
    MUTUAL_FUNDS = "mutual_funds"
    # Assets
    REAL_ESTATE = "real_estate"
    VEHICLE = "vehicle"
    VALUABLES = "valuables"
    OTHER_ASSETS = "other_assets"


class TransactionType(str, enum.Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


class TransactionStatus(str, enum.Enum):
    """Only COMPLETED transactions take part in the balance chain."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CategoryType(str, enum.Enum):
    EXPENSE = "expense"
    INCOME = "income"


class Frequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUALLY = "semiannually"
    YEARLY = "yearly"
    CUSTOM = "custom"


class IntervalUnit(str, enum.Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class SplitType(str, enum.Enum):
    EXPENSE = "expense"
    TRANSFER = "transfer"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values ("expense") rather than member names ("EXPENSE")."""
    return [member.value for member in enum_cls]
