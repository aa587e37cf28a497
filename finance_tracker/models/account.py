"""
Account model.

An account carries a stored balance, but that balance is a cache:
it always equals the running balance of the last completed
transaction in the account's chain, or 0 when there is none.
Only the ledger engine writes it.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    String, Boolean, DateTime, Float, ForeignKey,
    Enum as SAEnum, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from finance_tracker.models.base import Base
from finance_tracker.models.enums import (
    AccountCategory,
    AccountType,
    enum_values,
)


ACCOUNT_TYPE_TO_CATEGORY: dict[AccountType, AccountCategory] = {
    AccountType.CHECKING: AccountCategory.BANK,
    AccountType.SAVINGS: AccountCategory.BANK,
    AccountType.CASH: AccountCategory.BANK,
    AccountType.CREDIT_CARD: AccountCategory.CREDIT_LOANS,
    AccountType.PERSONAL_LOAN: AccountCategory.CREDIT_LOANS,
    AccountType.MORTGAGE: AccountCategory.CREDIT_LOANS,
    AccountType.CAR_LOAN: AccountCategory.CREDIT_LOANS,
    AccountType.STUDENT_LOAN: AccountCategory.CREDIT_LOANS,
    AccountType.STOCKS: AccountCategory.INVESTMENTS,
    AccountType.RETIREMENT: AccountCategory.INVESTMENTS,
    AccountType.CRYPTO: AccountCategory.INVESTMENTS,
    AccountType.MUTUAL_FUNDS: AccountCategory.INVESTMENTS,
    AccountType.REAL_ESTATE: AccountCategory.ASSETS,
    AccountType.VEHICLE: AccountCategory.ASSETS,
    AccountType.VALUABLES: AccountCategory.ASSETS,
    AccountType.OTHER_ASSETS: AccountCategory.ASSETS,
}


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(
            AccountType,
            name="account_type_enum",
            values_callable=enum_values,
            create_constraint=True,
        ),
        nullable=False,
    )
    account_category: Mapped[AccountCategory] = mapped_column(
        SAEnum(
            AccountCategory,
            name="account_category_enum",
            values_callable=enum_values,
            create_constraint=True,
        ),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="USD"
    )
    balance: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    institution: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user: Mapped["User"] = relationship(back_populates="accounts")

    def __repr__(self) -> str:
        return (
            f"<Account {self.name} "
            f"{self.account_type.value} {self.balance} {self.currency}>"
        )
