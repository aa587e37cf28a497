"""
Transaction model.

A transaction is one entry in an account's running-balance chain.
The chain order is (date, created_at, id) ascending; running_balance
is the account balance right after this entry and is only set for
COMPLETED transactions.

A transfer is stored as two rows, one per account, pointing at each
other through linked_transaction_id. signed_amount is the only value
the ledger uses for balance math; transfer_direction is derived from
its sign for display.
"""

import uuid
import datetime as dt

from sqlalchemy import (
    String, Date, DateTime, Float, ForeignKey, Index, Text,
    Enum as SAEnum, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from finance_tracker.models.base import Base
from finance_tracker.models.enums import (
    TransactionType,
    TransactionStatus,
    enum_values,
)


# Valid status transitions. COMPLETED is terminal for balance purposes.
VALID_STATUS_TRANSITIONS: dict[TransactionStatus, set[TransactionStatus]] = {
    TransactionStatus.PENDING: {
        TransactionStatus.COMPLETED,
        TransactionStatus.CANCELLED,
    },
    TransactionStatus.COMPLETED: set(),
    TransactionStatus.CANCELLED: set(),
}


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index(
            "ix_transactions_chain",
            "account_id", "status", "date", "created_at", "id",
        ),
    )

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
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(
            TransactionStatus,
            name="transaction_status_enum",
            values_callable=enum_values,
            create_constraint=True,
        ),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    signed_amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False, index=True
    )
    to_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True, index=True
    )
    linked_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    running_balance: Mapped[float | None] = mapped_column(
        Float, nullable=True
    )

    # Currency conversion, set on both halves of a cross-currency transfer
    conversion_from_currency: Mapped[str | None] = mapped_column(
        String(3), nullable=True
    )
    conversion_to_currency: Mapped[str | None] = mapped_column(
        String(3), nullable=True
    )
    conversion_from_amount: Mapped[float | None] = mapped_column(
        Float, nullable=True
    )
    conversion_to_amount: Mapped[float | None] = mapped_column(
        Float, nullable=True
    )
    conversion_rate: Mapped[float | None] = mapped_column(
        Float, nullable=True
    )
    conversion_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    # Machine-generated transactions point at their template and the
    # occurrence they satisfy.
    recurring_id: Mapped[int | None] = mapped_column(
        ForeignKey("recurring_transactions.id"), nullable=True, index=True
    )
    recurring_due_date: Mapped[dt.date | None] = mapped_column(
        Date, nullable=True
    )

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.utcnow
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, nullable=False, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow
    )

    @property
    def transfer_direction(self) -> str | None:
        if self.transaction_type != TransactionType.TRANSFER:
            return None
        return "in" if self.signed_amount > 0 else "out"

    def can_transition_to(self, new_status: TransactionStatus) -> bool:
        """Check if a status transition is valid."""
        return new_status in VALID_STATUS_TRANSITIONS.get(self.status, set())

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.transaction_type.value} "
            f"{self.signed_amount} {self.currency} {self.date} "
            f"({self.status.value})>"
        )
