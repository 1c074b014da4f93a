"""
Unit tests for payment reconciliation
"""
import pytest
from decimal import Decimal
from datetime import datetime, timedelta
from types import SimpleNamespace

from app.modules.payments import reconciliation


def payments(*amounts):
    start = datetime(2026, 1, 5)
    return [
        SimpleNamespace(month=i + 1, amount=Decimal(str(a)), payment_date=start + timedelta(days=30 * i))
        for i, a in enumerate(amounts)
    ]


class TestReconcile:
    """Cumulative payments against a single EMI"""

    @pytest.mark.unit
    def test_fully_paid(self):
        position = reconciliation.reconcile(Decimal("5000"), payments(2000, 3000))

        assert position.total_paid == Decimal("5000")
        assert position.is_paid is True
        assert position.remaining_amount == Decimal("0")
        assert position.last_payment.month == 2

    @pytest.mark.unit
    def test_last_payment_is_most_recently_recorded(self):
        ledger = payments(2000, 3000)
        # Month 1 was entered after month 2
        ledger[0].payment_date = ledger[1].payment_date + timedelta(days=1)

        position = reconciliation.reconcile(Decimal("5000"), ledger)

        assert position.last_payment.month == 1

    @pytest.mark.unit
    def test_partially_paid(self):
        position = reconciliation.reconcile(Decimal("5000"), payments(3000))

        assert position.is_paid is False
        assert position.remaining_amount == Decimal("2000")

    @pytest.mark.unit
    def test_overpayment_never_goes_negative(self):
        position = reconciliation.reconcile(Decimal("5000"), payments(4000, 4000))

        assert position.is_paid is True
        assert position.remaining_amount == Decimal("0")

    @pytest.mark.unit
    def test_missing_emi_and_ledger_count_as_zero(self):
        position = reconciliation.reconcile(None, None)

        assert position.total_paid == Decimal("0")
        assert position.is_paid is True
        assert position.remaining_amount == Decimal("0")
        assert position.last_payment is None


class TestCollectionRate:

    @pytest.mark.unit
    def test_zero_emi_book(self):
        assert reconciliation.collection_rate(Decimal("1000"), Decimal("0")) == 0

    @pytest.mark.unit
    def test_rounds_half_up(self):
        assert reconciliation.collection_rate(Decimal("1"), Decimal("8")) == 13
        assert reconciliation.collection_rate(Decimal("125"), Decimal("1000")) == 13
        assert reconciliation.collection_rate(Decimal("3000"), Decimal("5000")) == 60


class TestEMI:

    @pytest.mark.unit
    def test_reducing_balance_emi(self):
        emi, interest, total = reconciliation.calculate_emi(Decimal("50000"), Decimal("12"), 12)

        assert emi == Decimal("4442.44")
        assert interest == Decimal("3309.28")
        assert total == Decimal("53309.28")

    @pytest.mark.unit
    def test_zero_interest_splits_principal(self):
        emi, interest, total = reconciliation.calculate_emi(Decimal("12000"), Decimal("0"), 12)

        assert emi == Decimal("1000.00")
        assert interest == Decimal("0.00")
        assert total == Decimal("12000.00")


class TestLoanAnalytics:

    @pytest.mark.unit
    def test_outstanding_balance(self):
        assert reconciliation.outstanding_balance(Decimal("53309.28"), payments(4442.44)) == Decimal("48866.84")
        assert reconciliation.outstanding_balance(Decimal("100"), payments(500)) == Decimal("0")

    @pytest.mark.unit
    def test_next_payment_due(self):
        assert reconciliation.next_payment_due([]) == 1
        assert reconciliation.next_payment_due(payments(10, 10, 10)) == 4

    @pytest.mark.unit
    def test_payment_status(self):
        assert reconciliation.payment_status(Decimal("5000"), []) == "no_payments"
        assert reconciliation.payment_status(Decimal("5000"), payments(5000, 5000)) == "up_to_date"
        assert reconciliation.payment_status(Decimal("5000"), payments(5000, 1000)) == "partial"
        assert reconciliation.payment_status(Decimal("5000"), payments(0)) == "overdue"

    @pytest.mark.unit
    def test_remaining_months(self):
        now = datetime(2026, 1, 1)

        assert reconciliation.remaining_months(None, 12, now=now) == 12
        assert reconciliation.remaining_months(now + timedelta(days=61), 12, now=now) == 3
        assert reconciliation.remaining_months(now - timedelta(days=5), 12, now=now) == 0

    @pytest.mark.unit
    def test_collateral_totals(self):
        items = [
            SimpleNamespace(net_weight=Decimal("15.5"), gross_weight=Decimal("16"), estimated_value=Decimal("60000")),
            SimpleNamespace(net_weight=Decimal("5"), gross_weight=Decimal("6"), estimated_value=Decimal("20000")),
        ]

        assert reconciliation.collateral_total_value(items) == Decimal("80000")
        assert reconciliation.collateral_weights(items) == (Decimal("20.50"), Decimal("22.00"))
