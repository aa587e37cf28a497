"""
Pydantic schemas for recurring templates and loan projections.

Split parts are a tagged union on ``split_type``: an expense part
stays on the template's account, a transfer part names the account
it moves money to.
"""

import uuid
import datetime as dt
from typing import Annotated, Literal, Union

from pydantic import (
    BaseModel, Field, computed_field, field_validator, model_validator,
)

from finance_tracker.calculators import recurrence
from finance_tracker.categories import TRANSFER_CATEGORY
from finance_tracker.models.enums import (
    Frequency,
    IntervalUnit,
    SplitType,
    TransactionType,
)
from finance_tracker.schemas.transaction import TransactionResponse


# --- Split parts ---

class ExpenseSplit(BaseModel):
    split_type: Literal["expense"] = "expense"
    amount: float = Field(gt=0)
    category: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=255)


class TransferSplit(BaseModel):
    split_type: Literal["transfer"] = "transfer"
    amount: float = Field(gt=0)
    to_account_id: int
    category: str = Field(default=TRANSFER_CATEGORY, max_length=100)
    description: str | None = Field(default=None, max_length=255)


SplitPart = Annotated[
    Union[ExpenseSplit, TransferSplit],
    Field(discriminator="split_type"),
]


class LoanDetailsCreate(BaseModel):
    original_amount: float = Field(gt=0)
    interest_rate: float = Field(ge=0, le=100)
    term_months: int = Field(gt=0, le=600)
    start_date: dt.date
    current_balance: float | None = Field(default=None, ge=0)


# --- Templates ---

class RecurringCreate(BaseModel):
    """
    Request to create a recurring template.

    With loan_details the template is a loan payment: it must name the
    loan account in to_account_id, and its category is used for the
    interest part. Explicit splits are not allowed on loan templates.
    """
    transaction_type: TransactionType
    amount: float = Field(gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    account_id: int
    to_account_id: int | None = None
    category: str = Field(min_length=1, max_length=100)
    subcategory: str | None = Field(default=None, max_length=100)
    description: str = Field(min_length=1, max_length=255)
    notes: str | None = None
    frequency: Frequency
    interval: int | None = Field(default=None, ge=1)
    interval_unit: IntervalUnit | None = None
    start_date: dt.date
    end_date: dt.date | None = None
    splits: list[SplitPart] | None = None
    loan_details: LoanDetailsCreate | None = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurringUpdate(BaseModel):
    """
    Partial update of a template.

    Changing frequency, interval or interval_unit moves next_due_date
    one new period past the current one, unless next_due_date is
    sent explicitly.
    """
    transaction_type: TransactionType | None = None
    amount: float | None = Field(default=None, gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    account_id: int | None = None
    to_account_id: int | None = None
    category: str | None = Field(default=None, min_length=1, max_length=100)
    subcategory: str | None = Field(default=None, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=255)
    notes: str | None = None
    frequency: Frequency | None = None
    interval: int | None = Field(default=None, ge=1)
    interval_unit: IntervalUnit | None = None
    end_date: dt.date | None = None
    next_due_date: dt.date | None = None
    splits: list[SplitPart] | None = None


class RecurringSplitResponse(BaseModel):
    position: int
    split_type: SplitType
    amount: float
    category: str
    description: str | None
    to_account_id: int | None

    model_config = {"from_attributes": True}


class LoanDetailsResponse(BaseModel):
    original_amount: float
    interest_rate: float
    term_months: int
    start_date: dt.date
    current_balance: float | None

    model_config = {"from_attributes": True}


class RecurringResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    transaction_type: TransactionType
    amount: float
    currency: str
    account_id: int
    to_account_id: int | None
    category: str
    subcategory: str | None
    description: str
    notes: str | None
    frequency: Frequency
    interval: int | None
    interval_unit: IntervalUnit | None
    start_date: dt.date
    next_due_date: dt.date
    end_date: dt.date | None
    last_executed_at: dt.datetime | None
    is_active: bool
    is_split: bool
    splits: list[RecurringSplitResponse]
    skipped_dates: list[dt.date]
    loan_details: LoanDetailsResponse | None
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}

    @field_validator("skipped_dates", mode="before")
    @classmethod
    def sort_dates(cls, v):
        return sorted(v)

    @computed_field
    @property
    def frequency_label(self) -> str:
        return recurrence.frequency_label(
            self.frequency, self.interval, self.interval_unit
        )


# --- Execution ---

class ExecuteRequest(BaseModel):
    """
    Options for executing one occurrence of a template.

    due_date names the occurrence being satisfied (defaults to the
    template's next_due_date). transaction_date is the ledger date of
    the created records (defaults to today). principal_amount and
    interest_amount override the computed split of a loan payment.
    """
    due_date: dt.date | None = None
    transaction_date: dt.date | None = None
    amount: float | None = Field(default=None, gt=0)
    description: str | None = Field(default=None, min_length=1, max_length=255)
    notes: str | None = None
    principal_amount: float | None = Field(default=None, ge=0)
    interest_amount: float | None = Field(default=None, ge=0)


class ExecuteResponse(BaseModel):
    transactions: list[TransactionResponse]
    recurring_transaction: RecurringResponse


class SkipDateRequest(BaseModel):
    date: dt.date


class OccurrenceResponse(BaseModel):
    recurring_id: int
    due_date: dt.date
    can_execute: bool
    is_overdue: bool
    label: str


# --- Loan projections ---

class PaymentBreakdownResponse(BaseModel):
    payment_number: int
    principal: float
    interest: float
    total_payment: float
    remaining_balance: float
    payment_date: dt.date | None = None

    model_config = {"from_attributes": True}


class LoanPreviewResponse(BaseModel):
    breakdown: PaymentBreakdownResponse
    payments_made: int
    total_payments: int
    percent_complete: float


class ProjectionSummary(BaseModel):
    total_principal: float
    total_interest: float
    total_payments: float
    average_monthly_payment: float


class LoanStatus(BaseModel):
    original_amount: float
    current_balance: float
    total_paid: float
    percent_complete: float
    payments_made: int
    remaining_payments: int
    total_payments: int


class LoanProjectionResponse(BaseModel):
    projections: list[PaymentBreakdownResponse]
    summary: ProjectionSummary
    loan_status: LoanStatus
