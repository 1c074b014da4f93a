"""
API tests for the loan payment ledger and the payments overview
"""
import pytest
from decimal import Decimal
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.modules.loans.models import LoanPayment, PaymentMethod
from app.modules.loans.schemas import PaymentCreate
from app.modules.loans.services import LoanService, DuplicatePaymentError


async def pay(client, loan_id, headers, month, amount, **extra):
    return await client.post(
        f"/api/v1/loans/{loan_id}/payments",
        json={"month": month, "amount": amount, **extra},
        headers=headers
    )


class TestPaymentLedger:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_add_payment(self, client, employee_loan, employee_headers, employee_user):
        response = await pay(client, employee_loan.id, employee_headers, 1, 4442.44, payment_method="online")

        assert response.status_code == 201
        payment = response.json()["payment"]
        assert payment["month"] == 1
        assert payment["amount"] == 4442.44
        assert payment["payment_method"] == "online"
        assert payment["received_by_id"] == employee_user.id

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_duplicate_month_rejected(self, client, employee_loan, employee_headers):
        await pay(client, employee_loan.id, employee_headers, 1, 1000)

        response = await pay(client, employee_loan.id, employee_headers, 1, 2000)

        assert response.status_code == 400
        assert response.json()["detail"] == "Payment for this month already recorded"

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize("month", [0, 13])
    async def test_month_out_of_range(self, client, employee_loan, employee_headers, month):
        response = await pay(client, employee_loan.id, employee_headers, month, 1000)

        assert response.status_code == 400
        assert response.json()["detail"] == "Month must be between 1 and 12"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payment_on_missing_loan(self, client, admin_headers):
        response = await pay(client, 9999, admin_headers, 1, 1000)

        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_sorted_by_month(self, client, employee_loan, employee_headers):
        for month in (3, 1, 2):
            await pay(client, employee_loan.id, employee_headers, month, 100)

        response = await client.get(f"/api/v1/loans/{employee_loan.id}/payments", headers=employee_headers)

        data = response.json()
        assert [p["month"] for p in data["payments"]] == [1, 2, 3]
        assert data["loan_term"] == 12
        assert data["monthly_emi"] == 4442.44

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_payment(self, client, employee_loan, employee_headers):
        created = await pay(client, employee_loan.id, employee_headers, 1, 1000)
        payment_id = created.json()["payment"]["id"]

        response = await client.put(
            f"/api/v1/loans/{employee_loan.id}/payments/{payment_id}",
            json={"amount": 1500, "payment_method": "cheque", "notes": "Corrected"},
            headers=employee_headers
        )

        assert response.status_code == 200
        payment = response.json()["payment"]
        assert payment["amount"] == 1500.0
        assert payment["payment_method"] == "cheque"
        assert payment["notes"] == "Corrected"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_delete_payment(self, client, employee_loan, employee_headers):
        created = await pay(client, employee_loan.id, employee_headers, 1, 1000)
        payment_id = created.json()["payment"]["id"]

        response = await client.delete(
            f"/api/v1/loans/{employee_loan.id}/payments/{payment_id}", headers=employee_headers
        )
        assert response.status_code == 200

        listing = await client.get(f"/api/v1/loans/{employee_loan.id}/payments", headers=employee_headers)
        assert listing.json()["payments"] == []

        # The month is free again
        again = await pay(client, employee_loan.id, employee_headers, 1, 1000)
        assert again.status_code == 201

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_delete_unknown_payment(self, client, employee_loan, employee_headers):
        response = await client.delete(
            f"/api/v1/loans/{employee_loan.id}/payments/9999", headers=employee_headers
        )

        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_concurrent_duplicate_month(
        self, test_engine, db_session, redis, employee_loan, employee_user
    ):
        other_sessions = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
        async with other_sessions() as other:
            other.add(LoanPayment(
                loan_id=employee_loan.id,
                month=1,
                amount=Decimal("1000"),
                payment_method=PaymentMethod.CASH,
                received_by_id=employee_user.id
            ))
            await other.commit()

        # employee_loan still holds the ledger it loaded before the other write
        with pytest.raises(DuplicatePaymentError):
            await LoanService(db_session, redis).add_payment(
                employee_loan, PaymentCreate(month=1, amount=Decimal("1000")), employee_user
            )


class TestPaymentsOverview:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_positions_and_summary(
        self, client, make_loan, admin_user, admin_headers
    ):
        paid = await make_loan(admin_user, applicant_name="Paid Customer")
        await make_loan(admin_user, applicant_name="Unpaid Customer")
        await pay(client, paid.id, admin_headers, 1, 4442.44, payment_method="cash")

        response = await client.get("/api/v1/payments", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        positions = {p["applicant_name"]: p for p in data["payments"]}

        settled = positions["Paid Customer"]
        assert settled["is_paid"] is True
        assert settled["remaining_amount"] == 0
        assert settled["payment_method"] == "cash"
        assert settled["transaction_id"].startswith(f"TXN{paid.loan_number}")

        open_position = positions["Unpaid Customer"]
        assert open_position["is_paid"] is False
        assert open_position["transaction_id"] is None
        assert open_position["remaining_amount"] == 4442.44

        assert data["summary"] == {
            "total_loans": 2, "total_emi": 8884.88, "paid_loans": 1, "unpaid_loans": 1
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_transaction_id_is_stable(self, client, employee_loan, employee_headers):
        await pay(client, employee_loan.id, employee_headers, 1, 5000)

        first = await client.get("/api/v1/payments", headers=employee_headers)
        second = await client.get("/api/v1/payments", headers=employee_headers)

        assert first.json()["payments"][0]["transaction_id"] == second.json()["payments"][0]["transaction_id"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_status_filter(self, client, make_loan, admin_user, admin_headers):
        paid = await make_loan(admin_user, applicant_name="Paid Customer")
        await make_loan(admin_user, applicant_name="Unpaid Customer")
        await pay(client, paid.id, admin_headers, 1, 100)

        paid_only = await client.get("/api/v1/payments", params={"status": "paid"}, headers=admin_headers)
        unpaid_only = await client.get("/api/v1/payments", params={"status": "unpaid"}, headers=admin_headers)

        assert [p["applicant_name"] for p in paid_only.json()["payments"]] == ["Paid Customer"]
        assert [p["applicant_name"] for p in unpaid_only.json()["payments"]] == ["Unpaid Customer"]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_summary_counts_overdue_and_rate(
        self, client, db_session, make_loan, admin_user, admin_headers
    ):
        overdue = await make_loan(admin_user)
        current = await make_loan(admin_user)
        overdue.due_date = datetime.utcnow() - timedelta(days=1)
        await db_session.commit()
        await pay(client, current.id, admin_headers, 1, 4442.44)

        response = await client.get("/api/v1/payments/summary", headers=admin_headers)

        assert response.json() == {
            "total_loans": 2,
            "total_emi": 8884.88,
            "total_paid": 4442.44,
            "overdue_loans": 1,
            "collection_rate": 50
        }

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_summary_is_cached_per_requester(
        self, client, redis, employee_loan, employee_user, employee_headers
    ):
        await client.get("/api/v1/payments/summary", headers=employee_headers)

        assert await redis.exists(f"loans:payments:employee:{employee_user.id}")
