"""
Category lookup for transaction validation.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from finance_tracker.categories import builtin_categories, is_builtin_category
from finance_tracker.exceptions import InvalidInputError
from finance_tracker.models.category import CustomCategory
from finance_tracker.models.enums import CategoryType
from finance_tracker.schemas.account import CustomCategoryCreate

logger = logging.getLogger(__name__)


class CategoryService:

    def __init__(self, db: Session):
        self.db = db

    def is_valid(
        self, user_id: int, name: str, category_type: CategoryType
    ) -> bool:
        """True if ``name`` is a built-in or one of the user's custom categories."""
        if is_builtin_category(name, category_type):
            return True

        custom = self.db.execute(
            select(CustomCategory.id).where(
                CustomCategory.user_id == user_id,
                CustomCategory.name == name,
                CustomCategory.type == category_type,
            )
        ).scalar_one_or_none()
        return custom is not None

    def create_custom_category(
        self, user_id: int, request: CustomCategoryCreate
    ) -> CustomCategory:
        name = request.name.strip()
        if self.is_valid(user_id, name, request.type):
            raise InvalidInputError(
                f"Category '{name}' already exists for {request.type.value}"
            )

        category = CustomCategory(
            user_id=user_id,
            name=name,
            type=request.type,
        )
        self.db.add(category)
        self.db.flush()

        logger.info("Created custom %s category %r for user %s",
                    request.type.value, name, user_id)
        return category

    def list_categories(self, user_id: int) -> dict[str, list[str]]:
        """Built-in names followed by the user's custom ones, per type."""
        custom = self.db.execute(
            select(CustomCategory)
            .where(CustomCategory.user_id == user_id)
            .order_by(CustomCategory.name)
        ).scalars().all()

        result: dict[str, list[str]] = {}
        for category_type in (CategoryType.EXPENSE, CategoryType.INCOME):
            names = list(builtin_categories(category_type))
            names.extend(c.name for c in custom if c.type == category_type)
            result[category_type.value] = names
        return result
