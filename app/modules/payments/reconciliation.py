"""
Payment reconciliation for gold loans.

Everything here is a pure derivation from a loan's figures and its payment
ledger: no database access and no side effects. Missing values count as
zero so a loan without an EMI or without payments never raises.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence
import math

ZERO = Decimal("0")
CENTS = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def total_paid(payments: Optional[Iterable]) -> Decimal:
    """Sum of payment amounts"""
    return sum((to_decimal(p.amount) for p in payments or ()), ZERO)


@dataclass(frozen=True)
class PaymentPosition:
    """Where a loan stands against a single EMI"""
    monthly_emi: Decimal
    total_paid: Decimal
    is_paid: bool
    remaining_amount: Decimal
    last_payment: Optional[object] = None


def reconcile(monthly_emi, payments: Optional[Sequence]) -> PaymentPosition:
    """
    Compare the cumulative amount paid with one EMI.

    A loan counts as paid once everything received covers a single
    installment, whatever the number of months recorded.
    """
    emi = to_decimal(monthly_emi)
    paid = total_paid(payments)
    return PaymentPosition(
        monthly_emi=emi,
        total_paid=paid,
        is_paid=paid >= emi,
        remaining_amount=max(ZERO, emi - paid),
        last_payment=max(payments, key=lambda p: p.payment_date) if payments else None,
    )


def collection_rate(paid, total_emi) -> int:
    """Percentage of the EMI book collected, rounded half-up"""
    total_emi = to_decimal(total_emi)
    if total_emi <= 0:
        return 0
    rate = to_decimal(paid) / total_emi * 100
    return int(rate.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_emi(principal, annual_rate, term_months: int):
    """
    Standard reducing-balance EMI.

    Returns (monthly_emi, total_interest, total_amount), each rounded to
    two decimals.
    """
    principal = to_decimal(principal)
    if not term_months or term_months <= 0:
        return ZERO, ZERO, round_money(principal)

    monthly_rate = to_decimal(annual_rate) / Decimal(100) / Decimal(12)
    if monthly_rate > 0:
        factor = (1 + monthly_rate) ** term_months
        emi = principal * monthly_rate * factor / (factor - 1)
    else:
        emi = principal / term_months

    emi = round_money(emi)
    interest = round_money(emi * term_months - principal)
    return emi, interest, round_money(principal + interest)


def outstanding_balance(total_amount, payments: Optional[Iterable]) -> Decimal:
    """What is left of the full repayable amount"""
    return max(ZERO, to_decimal(total_amount) - total_paid(payments))


def next_payment_due(payments: Optional[Sequence]) -> int:
    if not payments:
        return 1
    return max(p.month for p in payments) + 1


def payment_status(monthly_emi, payments: Optional[Sequence]) -> str:
    """up_to_date, partial, overdue or no_payments"""
    if not payments:
        return "no_payments"
    paid = total_paid(payments)
    if paid >= to_decimal(monthly_emi) * len(payments):
        return "up_to_date"
    if paid > 0:
        return "partial"
    return "overdue"


def remaining_months(due_date: Optional[datetime], loan_term: int, now: Optional[datetime] = None) -> int:
    if due_date is None:
        return loan_term
    now = now or datetime.utcnow()
    days = (due_date - now).total_seconds() / 86400
    return max(0, math.ceil(days / 30))


def collateral_total_value(items: Optional[Iterable]) -> Decimal:
    return sum((to_decimal(i.estimated_value) for i in items or ()), ZERO)


def collateral_weights(items: Optional[Iterable]):
    """(total net weight, total gross weight) rounded to two decimals"""
    items = list(items or ())
    net = sum((to_decimal(i.net_weight) for i in items), ZERO)
    gross = sum((to_decimal(i.gross_weight) for i in items), ZERO)
    return round_money(net), round_money(gross)
