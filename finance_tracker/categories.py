"""
Built-in transaction categories.

Expense and income transactions must use one of these names or a
custom category the user saved. Transfers are not validated.
"""

from finance_tracker.models.enums import CategoryType


EXPENSE_CATEGORIES: dict[str, list[str]] = {
    "Food & Dining": ["Groceries", "Restaurants", "Coffee", "Fast Food"],
    "Transportation": ["Fuel", "Public Transit", "Parking", "Maintenance"],
    "Housing": ["Rent", "Mortgage", "Utilities", "Maintenance", "Insurance"],
    "Shopping": ["Clothing", "Electronics", "Home Goods", "Personal Care"],
    "Healthcare": ["Doctor", "Pharmacy", "Insurance", "Dental"],
    "Entertainment": ["Movies", "Streaming", "Hobbies", "Events"],
    "Travel": ["Flights", "Hotels", "Activities"],
    "Education": ["Tuition", "Books", "Courses"],
    "Bills & Fees": ["Phone", "Internet", "Subscriptions", "Bank Fees"],
    "Gifts & Donations": [],
    "Family & Personal": [],
    "Other Expenses": [],
}

INCOME_CATEGORIES: dict[str, list[str]] = {
    "Salary & Wages": [],
    "Business Income": [],
    "Investment Returns": [],
    "Gifts Received": [],
    "Refunds & Reimbursements": [],
    "Bonuses & Awards": [],
    "Other Income": [],
}

TRANSFER_CATEGORY = "Account Transfer"
LOAN_PRINCIPAL_CATEGORY = "Loan Principal"

# Written by the system, accepted for both expense and income.
OPENING_BALANCE_CATEGORY = "Opening Balance"
SYSTEM_CATEGORIES = {OPENING_BALANCE_CATEGORY}


def builtin_categories(category_type: CategoryType) -> dict[str, list[str]]:
    if category_type == CategoryType.EXPENSE:
        return EXPENSE_CATEGORIES
    return INCOME_CATEGORIES


def is_builtin_category(name: str, category_type: CategoryType) -> bool:
    return name in SYSTEM_CATEGORIES or name in builtin_categories(category_type)
