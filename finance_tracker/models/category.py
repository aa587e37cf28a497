"""
Custom category model.

Users can add categories on top of the built-in lists in
finance_tracker.categories. The ledger only reads them to validate
a transaction's category.
"""

from datetime import datetime

from sqlalchemy import (
    String, DateTime, ForeignKey, UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from finance_tracker.models.base import Base
from finance_tracker.models.enums import CategoryType, enum_values


class CustomCategory(Base):
    __tablename__ = "custom_categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name", "type", name="uq_custom_category"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(
        SAEnum(
            CategoryType,
            name="category_type_enum",
            values_callable=enum_values,
            create_constraint=True,
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<CustomCategory {self.name} ({self.type.value})>"
