from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, delete, extract
from sqlalchemy.exc import IntegrityError
from redis import asyncio as aioredis
from typing import List, Optional, Tuple
from datetime import datetime
from dateutil.relativedelta import relativedelta
import logging

from app.core.cache import dashboard_cache, requester_key, invalidate_for_submitter, CACHES
from app.core.security import mask_phone
from app.modules.loans.models import (
    Loan, LoanPayment, CollateralItem,
    LoanStatus, LoanAccount, GoldPurity, ClosureReason, PaymentMethod,
    CollateralType, DocumentStatus, generate_loan_number
)
from app.modules.loans.schemas import (
    LoanCreate, LoanUpdate, LoanCloseRequest, PaymentCreate, PaymentUpdate,
    CollateralItemIn, LoanListSummary, LoanAnalytics, PaymentResponse,
    DashboardStats, DashboardResponse, MonthlyTrend, SortOrder
)
from app.modules.payments import reconciliation
from app.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "application_date": Loan.application_date,
    "loan_amount": Loan.loan_amount,
    "applicant_name": Loan.applicant_name,
    "loan_number": Loan.loan_number,
    "status": Loan.status,
    "monthly_emi": Loan.monthly_emi,
    "due_date": Loan.due_date,
    "created_at": Loan.created_at,
}


class LoanValidationError(ValueError):
    """Request is well-formed but breaks a lending rule"""


class DuplicatePaymentError(LoanValidationError):
    pass


class PaymentMonthError(LoanValidationError):
    pass


def is_privileged(user: User) -> bool:
    return user.role in (UserRole.ADMIN, UserRole.LOAN_OFFICER)


def scope_conditions(user: User, include_inactive: bool = False) -> list:
    """Filters limiting a query to the loans a user may see"""
    conditions = []
    if not include_inactive:
        conditions.append(or_(Loan.is_active == True, Loan.is_active.is_(None)))
    if user.role == UserRole.EMPLOYEE:
        conditions.append(Loan.submitted_by_id == user.id)
    return conditions


def search_condition(search: str):
    pattern = f"%{search.strip()}%"
    return or_(
        Loan.applicant_name.ilike(pattern),
        Loan.applicant_phone.ilike(pattern),
        Loan.applicant_email.ilike(pattern),
        Loan.loan_number.ilike(pattern),
    )


def sort_clause(sort_by: str, sort_order: SortOrder):
    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise LoanValidationError(
            f"Cannot sort by '{sort_by}'. Allowed: {', '.join(sorted(SORTABLE_FIELDS))}"
        )
    return column.desc() if sort_order == SortOrder.DESC else column.asc()


class LoanService:
    """Loan applications, their payment ledger and dashboard aggregates"""

    def __init__(self, db: AsyncSession, redis: Optional[aioredis.Redis] = None):
        self.db = db
        self.redis = redis

    # ============================================================
    # Helpers
    # ============================================================

    def _build_collateral(self, items: List[CollateralItemIn]) -> List[CollateralItem]:
        return [
            CollateralItem(
                item_name=item.name,
                item_type=CollateralType(item.item_type.value),
                net_weight=item.net_weight,
                gross_weight=item.gross_weight,
                purity=item.purity or "22K",
                estimated_value=item.estimated_value,
                description=item.description or ""
            )
            for item in items
        ]

    def _recalculate(self, loan: Loan, terms_changed: bool, term_changed: bool, items_changed: bool):
        """Refresh the figures derived from terms and collateral"""
        if terms_changed:
            emi, interest, total = reconciliation.calculate_emi(
                loan.loan_amount, loan.interest_rate, loan.loan_term
            )
            loan.monthly_emi = emi
            loan.total_interest = interest
            loan.total_amount = total

        if items_changed:
            loan.total_net_weight, loan.total_gross_weight = reconciliation.collateral_weights(
                loan.collateral_items
            )

        if term_changed and loan.loan_term:
            loan.due_date = datetime.utcnow() + relativedelta(months=loan.loan_term)

    async def _invalidate(self, *loans: Loan):
        if self.redis is None:
            return
        await invalidate_for_submitter(self.redis, [loan.submitted_by_id for loan in loans])

    def can_access(self, loan: Loan, user: User) -> bool:
        """Privileged roles see every loan, employees only what they submitted"""
        return is_privileged(user) or loan.submitted_by_id == user.id

    # ============================================================
    # Loans
    # ============================================================

    async def get_loan(self, loan_id: int) -> Optional[Loan]:
        result = await self.db.execute(
            select(Loan)
            .where(Loan.id == loan_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_loan(self, data: LoanCreate, user: User) -> Loan:
        """Create a loan application; applications are approved on submission"""
        now = datetime.utcnow()
        address = data.applicant_address

        loan = Loan(
            loan_number=await self._unique_loan_number(),
            applicant_name=data.applicant_name,
            applicant_phone=data.applicant_phone,
            applicant_email=data.applicant_email,
            address_street=address.street,
            address_city=address.city,
            address_state=address.state,
            address_zip_code=address.zip_code,
            address_country=address.country,
            loan_amount=data.loan_amount,
            net_weight=data.net_weight,
            gross_weight=data.gross_weight,
            gold_purity=GoldPurity(data.gold_purity.value),
            interest_rate=data.interest_rate,
            loan_term=data.loan_term,
            account=LoanAccount(data.account.value),
            notes=data.notes,
            status=LoanStatus.APPROVED,
            application_date=now,
            approval_date=now,
            submitted_by_id=user.id,
            approved_by_id=user.id,
            is_active=True,
            collateral_items=self._build_collateral(data.items),
            payments=[]
        )
        if data.digital_signature:
            loan.signature_data = data.digital_signature
            loan.signed_at = now
            loan.signed_by_id = user.id

        self._recalculate(loan, terms_changed=True, term_changed=True, items_changed=True)

        self.db.add(loan)
        await self.db.commit()
        await self._invalidate(loan)

        logger.info(
            f"Loan {loan.loan_number} created by {user.username} "
            f"for {mask_phone(loan.applicant_phone)}"
        )
        return await self.get_loan(loan.id)

    async def _unique_loan_number(self) -> str:
        for _ in range(10):
            candidate = generate_loan_number()
            exists = await self.db.execute(select(Loan.id).where(Loan.loan_number == candidate))
            if exists.scalar_one_or_none() is None:
                return candidate
        raise RuntimeError("Could not allocate a unique loan number")

    async def list_loans(
        self,
        user: User,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sort_by: str = "application_date",
        sort_order: SortOrder = SortOrder.DESC,
        include_inactive: bool = False
    ) -> Tuple[List[Loan], int, LoanListSummary]:
        """Filtered, sorted page of loans plus totals over the caller's scope"""
        scope = scope_conditions(user, include_inactive)
        conditions = list(scope)

        if status:
            try:
                conditions.append(Loan.status == LoanStatus(status))
            except ValueError:
                raise LoanValidationError(f"Unknown loan status '{status}'")
        if start_date:
            conditions.append(Loan.application_date >= start_date)
        if end_date:
            conditions.append(Loan.application_date <= end_date)
        if search:
            conditions.append(search_condition(search))

        order = sort_clause(sort_by, sort_order)

        count_result = await self.db.execute(
            select(func.count(Loan.id)).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(Loan)
            .where(*conditions)
            .order_by(order, Loan.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        loans = list(result.scalars().all())

        summary = await self._list_summary(scope)
        return loans, total, summary

    async def _list_summary(self, scope: list) -> LoanListSummary:
        result = await self.db.execute(
            select(Loan.status, func.count(Loan.id), func.sum(Loan.loan_amount))
            .where(*scope)
            .group_by(Loan.status)
        )
        summary = LoanListSummary()
        for status, count, amount in result.all():
            summary.total_loans += count
            summary.total_amount += reconciliation.to_decimal(amount)
            if status == LoanStatus.PENDING:
                summary.pending_loans = count
            elif status == LoanStatus.APPROVED:
                summary.approved_loans = count
        return summary

    async def update_loan(self, loan_id: int, data: LoanUpdate) -> Optional[Loan]:
        loan = await self.get_loan(loan_id)
        if not loan:
            return None

        update_data = data.model_dump(exclude_unset=True, exclude={"applicant_address", "items"})
        terms_changed = bool({"loan_amount", "interest_rate", "loan_term"} & update_data.keys())
        term_changed = "loan_term" in update_data and update_data["loan_term"] != loan.loan_term

        new_term = update_data.get("loan_term")
        if new_term is not None and loan.payments:
            last_month = max(p.month for p in loan.payments)
            if new_term < last_month:
                raise LoanValidationError(
                    f"Loan term cannot be shorter than recorded payments (month {last_month})"
                )

        if "gold_purity" in update_data and update_data["gold_purity"] is not None:
            update_data["gold_purity"] = GoldPurity(update_data["gold_purity"])
        for field, value in update_data.items():
            if value is None and field not in ("applicant_email", "notes"):
                continue
            setattr(loan, field, value)

        if data.applicant_address is not None:
            address = data.applicant_address
            loan.address_street = address.street
            loan.address_city = address.city
            loan.address_state = address.state
            loan.address_zip_code = address.zip_code
            loan.address_country = address.country

        items_changed = data.items is not None
        if items_changed:
            loan.collateral_items = self._build_collateral(data.items)

        self._recalculate(loan, terms_changed, term_changed, items_changed)

        await self.db.commit()
        await self._invalidate(loan)
        return await self.get_loan(loan_id)

    async def update_status(
        self, loan_id: int, status: Optional[str], notes: Optional[str], user: User
    ) -> Optional[Loan]:
        if not status:
            raise LoanValidationError("Status is required")
        try:
            new_status = LoanStatus(status)
        except ValueError:
            raise LoanValidationError(f"Unknown loan status '{status}'")
        if new_status == LoanStatus.CLOSED:
            raise LoanValidationError("Use the close endpoint to close a loan")

        loan = await self.get_loan(loan_id)
        if not loan:
            return None

        loan.status = new_status
        if notes:
            loan.notes = notes

        now = datetime.utcnow()
        if new_status == LoanStatus.APPROVED:
            loan.approval_date = now
            loan.approved_by_id = user.id
        elif new_status == LoanStatus.DISBURSED:
            loan.disbursement_date = now
            if not loan.approved_by_id:
                loan.approved_by_id = user.id

        await self.db.commit()
        await self._invalidate(loan)
        logger.info(f"Loan {loan.loan_number} status set to {new_status.value} by {user.username}")
        return await self.get_loan(loan_id)

    async def update_account(self, loan_id: int, account: Optional[str]) -> Optional[Loan]:
        valid = [a.value for a in LoanAccount]
        if not account or account not in valid:
            raise LoanValidationError(
                "Invalid account type. Must be account1, account2, or account3"
            )

        loan = await self.get_loan(loan_id)
        if not loan:
            return None

        loan.account = LoanAccount(account)
        await self.db.commit()
        await self._invalidate(loan)
        return await self.get_loan(loan_id)

    async def close_loan(self, loan_id: int, data: LoanCloseRequest, user: User) -> Optional[Loan]:
        """
        Close an approved loan.

        The final amount defaults to everything received on the ledger when
        the caller does not state one.
        """
        if not data.closure_reason:
            raise LoanValidationError("Closure reason is required")

        loan = await self.get_loan(loan_id)
        if not loan:
            return None

        if loan.status == LoanStatus.CLOSED:
            raise LoanValidationError("Loan is already closed")
        if loan.status != LoanStatus.APPROVED:
            raise LoanValidationError(
                f"Cannot close loan with status '{loan.status.value}'. Loan must be approved first."
            )

        loan.status = LoanStatus.CLOSED
        loan.closed_at = datetime.utcnow()
        loan.closed_by_id = user.id
        loan.closure_reason = ClosureReason(data.closure_reason.value)
        loan.closure_notes = data.closure_notes or ""
        if data.final_amount is not None:
            loan.final_amount = data.final_amount
        else:
            loan.final_amount = reconciliation.total_paid(loan.payments)

        await self.db.commit()
        await self._invalidate(loan)
        logger.info(f"Loan {loan.loan_number} closed ({loan.closure_reason.value}) by {user.username}")
        return await self.get_loan(loan_id)

    async def add_signature(self, loan_id: int, signature_data: str, user: User) -> Optional[Loan]:
        loan = await self.get_loan(loan_id)
        if not loan:
            return None

        loan.signature_data = signature_data
        loan.signed_at = datetime.utcnow()
        loan.signed_by_id = user.id
        loan.document_status = DocumentStatus.SIGNED

        await self.db.commit()
        return await self.get_loan(loan_id)

    async def mark_document_generated(self, loan: Loan) -> None:
        if loan.document_status == DocumentStatus.DRAFT:
            loan.document_status = DocumentStatus.GENERATED
            await self.db.commit()

    async def soft_delete(self, loan_id: int) -> Optional[Loan]:
        loan = await self.get_loan(loan_id)
        if not loan:
            return None

        loan.is_active = False
        await self.db.commit()
        await self._invalidate(loan)
        logger.info(f"Loan {loan.loan_number} deactivated")
        return await self.get_loan(loan_id)

    async def clear_all(self) -> int:
        """Hard delete every loan. Testing escape hatch."""
        await self.db.execute(delete(LoanPayment))
        await self.db.execute(delete(CollateralItem))
        result = await self.db.execute(delete(Loan))
        await self.db.commit()

        if self.redis is not None:
            for cache in CACHES.values():
                await cache.clear(self.redis)

        logger.warning(f"Cleared {result.rowcount} loans")
        return result.rowcount

    async def migrate_statuses(self, user: User) -> dict:
        """Move pending and legacy disbursed loans to approved"""
        result = await self.db.execute(
            select(Loan).where(Loan.status.in_([LoanStatus.PENDING, LoanStatus.DISBURSED]))
        )
        loans = list(result.scalars().all())

        details = {"pending": 0, "disbursed": 0}
        now = datetime.utcnow()
        for loan in loans:
            details[loan.status.value] += 1
            loan.status = LoanStatus.APPROVED
            loan.approval_date = loan.approval_date or now
            loan.approved_by_id = loan.approved_by_id or user.id
            loan.disbursement_date = None

        if loans:
            await self.db.commit()
            await self._invalidate(*loans)
        return {"migrated": len(loans), "details": details}

    # ============================================================
    # Analytics and dashboard
    # ============================================================

    def analytics(self, loan: Loan) -> LoanAnalytics:
        payments = list(loan.payments)
        return LoanAnalytics(
            loan_number=loan.loan_number,
            applicant_name=loan.applicant_name,
            monthly_emi=reconciliation.to_decimal(loan.monthly_emi),
            total_amount=reconciliation.to_decimal(loan.total_amount),
            remaining_amount=reconciliation.outstanding_balance(loan.total_amount, payments),
            remaining_months=reconciliation.remaining_months(loan.due_date, loan.loan_term),
            payment_status=reconciliation.payment_status(loan.monthly_emi, payments),
            next_payment_due=reconciliation.next_payment_due(payments),
            total_paid=reconciliation.total_paid(payments),
            payment_history=[PaymentResponse.model_validate(p) for p in payments],
            collateral_value=reconciliation.collateral_total_value(loan.collateral_items)
        )

    async def get_dashboard_stats(self, user: User) -> DashboardResponse:
        """Dashboard aggregates, memoized per role and requester"""
        key = requester_key(dashboard_cache, user.role.value, user.id, "stats")
        return await dashboard_cache.get_or_set(
            self.redis, key, DashboardResponse, lambda: self.compute_dashboard_stats(user)
        )

    async def compute_dashboard_stats(self, user: User) -> DashboardResponse:
        conditions = scope_conditions(user)
        stats = DashboardStats()

        grouped = await self.db.execute(
            select(Loan.status, Loan.account, func.count(Loan.id), func.sum(Loan.loan_amount))
            .where(*conditions)
            .group_by(Loan.status, Loan.account)
        )
        for status, account, count, amount in grouped.all():
            amount = reconciliation.to_decimal(amount)
            stats.total_loans += count
            stats.total_amount += amount

            status_field = f"{status.value}_loans"
            if hasattr(stats, status_field):
                setattr(stats, status_field, getattr(stats, status_field) + count)

            bucket = (account or LoanAccount.ACCOUNT1).value
            setattr(stats, f"{bucket}_loans", getattr(stats, f"{bucket}_loans") + count)
            setattr(stats, f"{bucket}_amount", getattr(stats, f"{bucket}_amount") + amount)

        outsourced = await self.db.execute(
            select(func.count(Loan.id), func.sum(Loan.loan_amount))
            .where(*conditions, Loan.outsourced_to_id.isnot(None))
        )
        count, amount = outsourced.one()
        stats.outsourced_loans = count or 0
        stats.outsourced_amount = reconciliation.to_decimal(amount)

        year = datetime.utcnow().year
        month = extract("month", Loan.application_date)
        trends = await self.db.execute(
            select(month, func.count(Loan.id), func.sum(Loan.loan_amount))
            .where(
                *conditions,
                Loan.application_date >= datetime(year, 1, 1),
                Loan.application_date < datetime(year + 1, 1, 1)
            )
            .group_by(month)
            .order_by(month)
        )
        monthly_trends = [
            MonthlyTrend(month=int(m), count=c, total_amount=reconciliation.to_decimal(a))
            for m, c, a in trends.all()
        ]

        return DashboardResponse(stats=stats, monthly_trends=monthly_trends)

    # ============================================================
    # Payment ledger
    # ============================================================

    async def add_payment(self, loan: Loan, data: PaymentCreate, user: User) -> LoanPayment:
        """Record the EMI payment for one month of the loan term"""
        if any(p.month == data.month for p in loan.payments):
            raise DuplicatePaymentError("Payment for this month already recorded")
        if data.month < 1 or data.month > loan.loan_term:
            raise PaymentMonthError(f"Month must be between 1 and {loan.loan_term}")

        payment = LoanPayment(
            month=data.month,
            amount=data.amount,
            payment_method=PaymentMethod(data.payment_method.value),
            notes=data.notes,
            received_by_id=user.id,
            payment_date=datetime.utcnow()
        )
        loan.payments.append(payment)

        try:
            await self.db.commit()
        except IntegrityError:
            # Another request recorded the same month first
            await self.db.rollback()
            raise DuplicatePaymentError("Payment for this month already recorded")

        await self._invalidate(loan)
        logger.info(f"Payment for month {payment.month} recorded on loan {loan.loan_number}")
        return payment

    async def update_payment(self, loan: Loan, payment_id: int, data: PaymentUpdate) -> Optional[LoanPayment]:
        payment = next((p for p in loan.payments if p.id == payment_id), None)
        if payment is None:
            return None

        if data.amount is not None:
            payment.amount = data.amount
        if data.payment_method:
            payment.payment_method = PaymentMethod(data.payment_method.value)
        if "notes" in data.model_fields_set:
            payment.notes = data.notes
        payment.payment_date = datetime.utcnow()

        await self.db.commit()
        await self._invalidate(loan)
        return payment

    async def delete_payment(self, loan: Loan, payment_id: int) -> bool:
        payment = next((p for p in loan.payments if p.id == payment_id), None)
        if payment is None:
            return False

        loan.payments.remove(payment)
        await self.db.commit()
        await self._invalidate(loan)
        logger.info(f"Payment for month {payment.month} removed from loan {loan.loan_number}")
        return True
