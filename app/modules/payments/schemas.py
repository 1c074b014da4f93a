from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum

from app.modules.loans.schemas import Money, Pagination, PaymentMethodEnum


class PaymentStatusFilter(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"


class PaymentPositionResponse(BaseModel):
    """A loan seen from the collections side"""
    loan_id: int
    loan_number: str
    applicant_name: str
    applicant_phone: str
    applicant_email: Optional[str] = None
    monthly_emi: Money
    due_date: Optional[datetime] = None
    is_paid: bool
    paid_date: Optional[datetime] = None
    payment_method: Optional[PaymentMethodEnum] = None
    transaction_id: Optional[str] = None
    remaining_amount: Money
    total_paid: Money


class PaymentListSummary(BaseModel):
    total_loans: int = 0
    total_emi: Money = Decimal("0")
    paid_loans: int = 0
    unpaid_loans: int = 0


class PaymentListResponse(BaseModel):
    payments: List[PaymentPositionResponse]
    pagination: Pagination
    summary: PaymentListSummary


class PaymentSummaryResponse(BaseModel):
    total_loans: int = 0
    total_emi: Money = Decimal("0")
    total_paid: Money = Decimal("0")
    overdue_loans: int = 0
    collection_rate: int = 0
