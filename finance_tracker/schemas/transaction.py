"""
Pydantic schemas for transaction operations.

Shape checks only. Rules that need the database (ownership,
categories, transfer accounts) are enforced by the LedgerService.
"""

import uuid
import datetime as dt

from pydantic import BaseModel, Field

from finance_tracker.models.enums import TransactionType, TransactionStatus


class CurrencyConversion(BaseModel):
    """How much the destination side of a cross-currency transfer receives."""
    from_currency: str = Field(min_length=3, max_length=3)
    to_currency: str = Field(min_length=3, max_length=3)
    from_amount: float = Field(gt=0)
    to_amount: float = Field(gt=0)
    exchange_rate: float = Field(gt=0)
    conversion_date: dt.date | None = None


class TransactionCreate(BaseModel):
    transaction_type: TransactionType
    amount: float = Field(gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    account_id: int
    to_account_id: int | None = None
    category: str = Field(min_length=1, max_length=100)
    subcategory: str | None = Field(default=None, max_length=100)
    description: str = Field(min_length=1, max_length=255)
    notes: str | None = None
    date: dt.date
    status: TransactionStatus = TransactionStatus.COMPLETED
    currency_conversion: CurrencyConversion | None = None


class TransactionUpdate(BaseModel):
    """Partial update. Only fields that are sent are applied."""
    transaction_type: TransactionType | None = None
    amount: float | None = Field(default=None, gt=0)
    account_id: int | None = None
    to_account_id: int | None = None
    category: str | None = Field(default=None, min_length=1, max_length=100)
    subcategory: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=255)
    notes: str | None = None
    date: dt.date | None = None
    status: TransactionStatus | None = None


class TransactionFilters(BaseModel):
    account_id: int | None = None
    transaction_type: TransactionType | None = None
    category: str | None = None
    status: TransactionStatus | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None


class TransactionResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    transaction_type: TransactionType
    status: TransactionStatus
    amount: float
    signed_amount: float
    currency: str
    account_id: int
    to_account_id: int | None
    linked_transaction_id: int | None
    transfer_direction: str | None
    category: str
    subcategory: str | None
    description: str
    notes: str | None
    date: dt.date
    running_balance: float | None
    conversion_from_currency: str | None
    conversion_to_currency: str | None
    conversion_from_amount: float | None
    conversion_to_amount: float | None
    conversion_rate: float | None
    recurring_id: int | None
    recurring_due_date: dt.date | None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int
    page: int
    total_pages: int
