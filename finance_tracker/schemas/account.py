"""
Pydantic schemas for users, accounts and categories.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from finance_tracker.models.enums import (
    AccountCategory,
    AccountType,
    CategoryType,
)


# --- User Schemas ---

class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=5, max_length=255)


class UserResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    name: str
    email: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# --- Account Schemas ---

class AccountCreate(BaseModel):
    """
    Request to open a new account.

    A non-zero opening balance is booked as a transaction, so the
    account's balance is always backed by its ledger.
    """
    name: str = Field(min_length=1, max_length=50)
    account_type: AccountType
    currency: str = Field(default="USD", min_length=3, max_length=3)
    opening_balance: float = 0.0
    institution: str | None = Field(default=None, max_length=100)


class AccountUpdate(BaseModel):
    """Display fields only. The balance is owned by the ledger."""
    name: str | None = Field(default=None, min_length=1, max_length=50)
    account_type: AccountType | None = None
    institution: str | None = Field(default=None, max_length=100)


class AccountResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    user_id: int
    name: str
    account_type: AccountType
    account_category: AccountCategory
    currency: str
    balance: float
    institution: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AccountListResponse(BaseModel):
    accounts: list[AccountResponse]
    total_balance: float


class ChainMismatch(BaseModel):
    """A transaction whose stored running balance disagrees with the replay."""
    transaction_id: int
    stored_running_balance: float | None
    expected_running_balance: float


class BalanceVerification(BaseModel):
    account_id: int
    stored_balance: float
    replayed_balance: float
    transaction_count: int
    mismatches: list[ChainMismatch]
    is_consistent: bool


# --- Category Schemas ---

class CustomCategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: CategoryType


class CustomCategoryResponse(BaseModel):
    id: int
    name: str
    type: CategoryType
    created_at: datetime

    model_config = {"from_attributes": True}


class CategoryListResponse(BaseModel):
    expense: list[str]
    income: list[str]
