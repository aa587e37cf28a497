"""
Fixed-payment loan amortization.

All amounts are plain floats and nothing is rounded along the way;
only display code rounds. current_balance() walks payment by payment
instead of using a closed form so it agrees exactly with the
schedule generator.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from dateutil.relativedelta import relativedelta


@dataclass(frozen=True)
class PaymentBreakdown:
    payment_number: int
    principal: float
    interest: float
    total_payment: float
    remaining_balance: float
    payment_date: date | None = None


class LoanTerms(Protocol):
    original_amount: float
    interest_rate: float
    term_months: int
    start_date: date
    current_balance: float | None


def monthly_rate(annual_rate_percent: float) -> float:
    return annual_rate_percent / 12 / 100


def monthly_payment(
    principal: float, annual_rate_percent: float, term_months: int
) -> float:
    """
    Fixed monthly payment: P * r(1+r)^n / ((1+r)^n - 1).

    A 0% loan is repaid in equal slices of principal.
    """
    if principal <= 0 or term_months <= 0:
        return 0.0

    if annual_rate_percent == 0:
        return principal / term_months

    r = monthly_rate(annual_rate_percent)
    growth = (1 + r) ** term_months
    return principal * (r * growth) / (growth - 1)


def _apply_payment(
    balance: float, payment: float, rate: float
) -> tuple[float, float, float]:
    """Return (principal, interest, remaining) for one payment."""
    interest = balance * rate
    # Capping at the balance keeps the last payment from overshooting
    principal = min(payment - interest, balance)
    remaining = max(0.0, balance - principal)
    return principal, interest, remaining


def current_balance(
    original_amount: float,
    annual_rate_percent: float,
    term_months: int,
    payments_made: int,
) -> float:
    """Outstanding principal after ``payments_made`` payments."""
    if payments_made <= 0:
        return original_amount

    if payments_made >= term_months:
        return 0.0

    payment = monthly_payment(original_amount, annual_rate_percent, term_months)
    rate = monthly_rate(annual_rate_percent)

    balance = original_amount
    for _ in range(payments_made):
        _, _, balance = _apply_payment(balance, payment, rate)
    return balance


def payment_breakdown(
    original_amount: float,
    annual_rate_percent: float,
    term_months: int,
    payment_number: int,
    outstanding: float | None = None,
) -> PaymentBreakdown:
    """
    Split payment ``payment_number`` (1-indexed) into principal and interest.

    When the outstanding balance is known it is used as-is; otherwise it
    is replayed from the original amount.
    """
    payment = monthly_payment(original_amount, annual_rate_percent, term_months)
    rate = monthly_rate(annual_rate_percent)

    if outstanding is None:
        balance = current_balance(
            original_amount, annual_rate_percent, term_months, payment_number - 1
        )
    else:
        balance = outstanding

    principal, interest, remaining = _apply_payment(balance, payment, rate)
    return PaymentBreakdown(
        payment_number=payment_number,
        principal=principal,
        interest=interest,
        total_payment=principal + interest,
        remaining_balance=remaining,
    )


def amortization_schedule(
    original_amount: float,
    annual_rate_percent: float,
    term_months: int,
    start_date: date,
) -> list[PaymentBreakdown]:
    """
    One row per month, dated start_date + i months.

    Stops early once the balance reaches exactly zero. The row for the
    last scheduled payment always reports a remaining balance of 0.
    """
    payment = monthly_payment(original_amount, annual_rate_percent, term_months)
    rate = monthly_rate(annual_rate_percent)

    schedule: list[PaymentBreakdown] = []
    balance = original_amount
    for i in range(1, term_months + 1):
        principal, interest, balance = _apply_payment(balance, payment, rate)
        if i == term_months:
            balance = 0.0

        schedule.append(PaymentBreakdown(
            payment_number=i,
            principal=principal,
            interest=interest,
            total_payment=principal + interest,
            remaining_balance=balance,
            payment_date=start_date + relativedelta(months=i),
        ))

        if balance == 0:
            break

    return schedule


def payments_elapsed(
    loan_start_date: date,
    as_of: date | None = None,
    frequency: str = "monthly",
) -> int:
    """Number of whole payment periods between the loan start and ``as_of``."""
    start = _as_date(loan_start_date)
    current = _as_date(as_of) if as_of is not None else date.today()

    if current <= start:
        return 0

    if frequency == "monthly":
        months = (current.year - start.year) * 12 + (current.month - start.month)
        return max(0, months)
    if frequency == "biweekly":
        return (current - start).days // 14
    if frequency == "weekly":
        return (current - start).days // 7
    return 0


def next_payment_breakdown(
    loan: LoanTerms,
    last_executed_at: date | datetime | None = None,
) -> PaymentBreakdown:
    """Breakdown of the payment following the last executed one."""
    made = payments_elapsed(loan.start_date, last_executed_at) if last_executed_at else 0

    return payment_breakdown(
        loan.original_amount,
        loan.interest_rate,
        loan.term_months,
        made + 1,
        loan.current_balance,
    )


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
