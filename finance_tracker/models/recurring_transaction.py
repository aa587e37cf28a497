"""
Recurring transaction templates.

A template describes a transaction that repeats on a schedule.
next_due_date is the template's own forward cursor; executing the
template materializes ledger transactions and moves the cursor.

A template can be split into parts (e.g. a loan payment that is a
principal transfer plus an interest expense). Loan templates carry
LoanDetails and derive their parts from the amortization schedule
at execution time instead of storing them.

Templates are never hard-deleted: is_active=False hides them while
keeping the transactions that reference them queryable.
"""

import uuid
import datetime as dt

from sqlalchemy import (
    String, Boolean, Date, DateTime, Float, ForeignKey, Integer, Text,
    UniqueConstraint, Enum as SAEnum, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from finance_tracker.models.base import Base
from finance_tracker.models.enums import (
    Frequency,
    IntervalUnit,
    SplitType,
    TransactionType,
    enum_values,
)


class RecurringTransaction(Base):
    __tablename__ = "recurring_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(
            TransactionType,
            name="transaction_type_enum",
            values_callable=enum_values,
            create_constraint=True,
        ),
        nullable=False,
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False, index=True
    )
    to_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    frequency: Mapped[Frequency] = mapped_column(
        SAEnum(
            Frequency,
            name="frequency_enum",
            values_callable=enum_values,
            create_constraint=True,
        ),
        nullable=False,
    )
    interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    interval_unit: Mapped[IntervalUnit | None] = mapped_column(
        SAEnum(
            IntervalUnit,
            name="interval_unit_enum",
            values_callable=enum_values,
            create_constraint=True,
        ),
        nullable=True,
    )
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    next_due_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    last_executed_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime, nullable=True
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    is_split: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow
    )

    splits: Mapped[list["RecurringSplit"]] = relationship(
        back_populates="recurring",
        cascade="all, delete-orphan",
        order_by="RecurringSplit.position",
    )
    skip_dates: Mapped[list["RecurringSkipDate"]] = relationship(
        back_populates="recurring",
        cascade="all, delete-orphan",
        order_by="RecurringSkipDate.skip_date",
    )
    loan_details: Mapped["LoanDetails | None"] = relationship(
        back_populates="recurring",
        cascade="all, delete-orphan",
        uselist=False,
    )

    @property
    def skipped_dates(self) -> set[dt.date]:
        return {s.skip_date for s in self.skip_dates}

    def __repr__(self) -> str:
        return (
            f"<RecurringTransaction {self.transaction_type.value} "
            f"{self.amount} {self.currency} {self.frequency.value} "
            f"next={self.next_due_date}>"
        )


class RecurringSplit(Base):
    """One ledger effect of a split template."""

    __tablename__ = "recurring_splits"

    id: Mapped[int] = mapped_column(primary_key=True)
    recurring_id: Mapped[int] = mapped_column(
        ForeignKey("recurring_transactions.id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    split_type: Mapped[SplitType] = mapped_column(
        SAEnum(
            SplitType,
            name="split_type_enum",
            values_callable=enum_values,
            create_constraint=True,
        ),
        nullable=False,
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    to_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True
    )

    recurring: Mapped["RecurringTransaction"] = relationship(
        back_populates="splits"
    )


class RecurringSkipDate(Base):
    """An occurrence removed from the schedule without being executed."""

    __tablename__ = "recurring_skip_dates"
    __table_args__ = (
        UniqueConstraint("recurring_id", "skip_date", name="uq_recurring_skip_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    recurring_id: Mapped[int] = mapped_column(
        ForeignKey("recurring_transactions.id"), nullable=False, index=True
    )
    skip_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.utcnow
    )

    recurring: Mapped["RecurringTransaction"] = relationship(
        back_populates="skip_dates"
    )


class LoanDetails(Base):
    """
    Amortization parameters for a loan-payment template.

    current_balance is a cache of the outstanding principal. It is
    reduced by the principal part of every executed payment.
    """

    __tablename__ = "loan_details"

    id: Mapped[int] = mapped_column(primary_key=True)
    recurring_id: Mapped[int] = mapped_column(
        ForeignKey("recurring_transactions.id"), nullable=False, unique=True
    )
    original_amount: Mapped[float] = mapped_column(Float, nullable=False)
    interest_rate: Mapped[float] = mapped_column(Float, nullable=False)
    term_months: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    current_balance: Mapped[float | None] = mapped_column(Float, nullable=True)

    recurring: Mapped["RecurringTransaction"] = relationship(
        back_populates="loan_details"
    )
