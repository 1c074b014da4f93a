from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from redis import asyncio as aioredis
from typing import List, Optional, Tuple
from datetime import datetime
import logging

from app.core.cache import loan_stats_cache, requester_key
from app.modules.loans.models import Loan, LoanPayment
from app.modules.loans.schemas import SortOrder
from app.modules.loans.services import scope_conditions, sort_clause
from app.modules.payments import reconciliation
from app.modules.payments.schemas import (
    PaymentPositionResponse, PaymentListSummary, PaymentSummaryResponse, PaymentStatusFilter
)
from app.modules.users.models import User

logger = logging.getLogger(__name__)


def transaction_id(loan: Loan, payment: LoanPayment) -> str:
    """Stable reference for the payment that settled a loan's EMI"""
    return f"TXN{loan.loan_number}{payment.id}"


def to_position(loan: Loan) -> PaymentPositionResponse:
    position = reconciliation.reconcile(loan.monthly_emi, list(loan.payments))
    last = position.last_payment if position.is_paid else None
    return PaymentPositionResponse(
        loan_id=loan.id,
        loan_number=loan.loan_number,
        applicant_name=loan.applicant_name,
        applicant_phone=loan.applicant_phone,
        applicant_email=loan.applicant_email,
        monthly_emi=position.monthly_emi,
        due_date=loan.due_date,
        is_paid=position.is_paid,
        paid_date=last.payment_date if last else None,
        payment_method=last.payment_method.value if last else None,
        transaction_id=transaction_id(loan, last) if last else None,
        remaining_amount=position.remaining_amount,
        total_paid=position.total_paid
    )


class PaymentService:
    """Collections view over the loan book"""

    def __init__(self, db: AsyncSession, redis: Optional[aioredis.Redis] = None):
        self.db = db
        self.redis = redis

    async def list_positions(
        self,
        user: User,
        page: int = 1,
        limit: int = 10,
        status: Optional[PaymentStatusFilter] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sort_by: str = "due_date",
        sort_order: SortOrder = SortOrder.ASC
    ) -> Tuple[List[PaymentPositionResponse], int, PaymentListSummary]:
        conditions = scope_conditions(user)

        if status == PaymentStatusFilter.PAID:
            conditions.append(Loan.payments.any())
        elif status == PaymentStatusFilter.UNPAID:
            conditions.append(~Loan.payments.any())
        if start_date:
            conditions.append(Loan.due_date >= start_date)
        if end_date:
            conditions.append(Loan.due_date <= end_date)
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(or_(
                Loan.applicant_name.ilike(pattern),
                Loan.applicant_phone.ilike(pattern),
                Loan.loan_number.ilike(pattern),
            ))

        order = sort_clause(sort_by, sort_order)

        totals = await self.db.execute(
            select(func.count(Loan.id), func.sum(Loan.monthly_emi)).where(*conditions)
        )
        total, total_emi = totals.one()
        paid = (await self.db.execute(
            select(func.count(Loan.id)).where(*conditions, Loan.payments.any())
        )).scalar() or 0

        result = await self.db.execute(
            select(Loan)
            .where(*conditions)
            .order_by(order, Loan.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        positions = [to_position(loan) for loan in result.scalars().all()]

        summary = PaymentListSummary(
            total_loans=total or 0,
            total_emi=reconciliation.to_decimal(total_emi),
            paid_loans=paid,
            unpaid_loans=(total or 0) - paid
        )
        return positions, total or 0, summary

    async def get_summary(self, user: User) -> PaymentSummaryResponse:
        """Collection summary, memoized per role and requester"""
        key = requester_key(loan_stats_cache, user.role.value, user.id, "payments")
        return await loan_stats_cache.get_or_set(
            self.redis, key, PaymentSummaryResponse, lambda: self.compute_summary(user)
        )

    async def compute_summary(self, user: User) -> PaymentSummaryResponse:
        conditions = scope_conditions(user)

        totals = await self.db.execute(
            select(func.count(Loan.id), func.sum(Loan.monthly_emi)).where(*conditions)
        )
        total_loans, total_emi = totals.one()

        paid = await self.db.execute(
            select(func.sum(LoanPayment.amount))
            .join(Loan, LoanPayment.loan_id == Loan.id)
            .where(*conditions)
        )
        total_paid = reconciliation.to_decimal(paid.scalar())

        overdue = await self.db.execute(
            select(func.count(Loan.id)).where(
                *conditions,
                Loan.due_date < datetime.utcnow(),
                ~Loan.payments.any()
            )
        )

        total_emi = reconciliation.to_decimal(total_emi)
        return PaymentSummaryResponse(
            total_loans=total_loans or 0,
            total_emi=total_emi,
            total_paid=total_paid,
            overdue_loans=overdue.scalar() or 0,
            collection_rate=reconciliation.collection_rate(total_paid, total_emi)
        )
