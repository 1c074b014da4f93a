"""
Loan document rendering
"""
import pytest
from decimal import Decimal
from datetime import datetime

from app.modules.documents import renderer


class TestTeluguWords:

    @pytest.mark.unit
    @pytest.mark.parametrize("value,expected", [
        (0, "సున్న"),
        (7, "ఏడు"),
        (12, "పన్నెండు"),
        (45, "నలభై ఐదు"),
        (90, "తొంభై"),
        (300, "మూడువందలు"),
        (512, "ఐదువందలు పన్నెండు"),
        (25000, "25 వేలు"),
        (250000, "2 లక్షలు"),
    ])
    def test_number_words(self, value, expected):
        assert renderer.telugu_words(value) == expected

    @pytest.mark.unit
    def test_decimal_amount_uses_whole_rupees(self):
        assert renderer.telugu_words(Decimal("150.75")) == "వంద యాభై"


class TestFilters:

    @pytest.mark.unit
    def test_amount_grouping(self):
        assert renderer.format_amount(Decimal("50000.00")) == "50,000"
        assert renderer.format_amount(Decimal("4442.44")) == "4,442.44"
        assert renderer.format_amount(None) == "0"

    @pytest.mark.unit
    def test_number_trims_zeros(self):
        assert renderer.format_number(Decimal("20.50")) == "20.5"
        assert renderer.format_number(Decimal("12.00")) == "12"

    @pytest.mark.unit
    def test_dates(self):
        day = datetime(2026, 3, 7)

        assert renderer.us_date(day) == "3/7/2026"
        assert renderer.telugu_date(day) == "7-3-2026"


class TestDownloads:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_application_form(self, client, employee_loan, employee_headers):
        response = await client.get(f"/api/v1/loans/{employee_loan.id}/download", headers=employee_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert response.headers["content-disposition"] == (
            f'attachment; filename="loan-application-{employee_loan.loan_number}.html"'
        )
        body = response.text
        assert "Gold Loan Application Form" in body
        assert "Lakshmi Devi" in body
        assert "₹50,000" in body
        assert "Necklace" in body
        assert "12 Temple Road, Vijayawada" in body

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_traditional_form(self, client, employee_loan, employee_headers):
        response = await client.get(
            f"/api/v1/loans/{employee_loan.id}/download/traditional", headers=employee_headers
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        assert response.headers["content-disposition"] == (
            f'attachment; filename="traditional-loan-{employee_loan.loan_number}.html"'
        )
        body = response.text
        assert "శ్రీరామ" in body
        assert "50 వేలు రూపాయలు" in body
        assert "(నెల 1కి 100కి 12 రూపాయలు)" in body
        assert f"అప్లికేషన్ ID: {employee_loan.loan_number}" in body

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_values_are_escaped(self, client, make_loan, employee_user, employee_headers):
        loan = await make_loan(employee_user, applicant_name="<script>alert(1)</script>")

        for path in ("download", "download/traditional"):
            response = await client.get(f"/api/v1/loans/{loan.id}/{path}", headers=employee_headers)
            assert "<script>alert(1)</script>" not in response.text
            assert "&lt;script&gt;" in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_download_marks_document_generated(self, client, employee_loan, employee_headers):
        await client.get(f"/api/v1/loans/{employee_loan.id}/download", headers=employee_headers)

        response = await client.get(f"/api/v1/loans/{employee_loan.id}", headers=employee_headers)

        assert response.json()["document_status"] == "generated"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_download_respects_ownership(self, client, employee_loan, other_employee_headers):
        response = await client.get(
            f"/api/v1/loans/{employee_loan.id}/download", headers=other_employee_headers
        )

        assert response.status_code == 403
