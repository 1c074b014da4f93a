from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from redis import asyncio as aioredis
from typing import Optional
from datetime import datetime

from app.core.cache import CACHES
from app.core.database import get_db, get_redis
from app.core.dependencies import get_current_active_user, require_staff, require_admin
from app.modules.documents import renderer
from app.modules.loans import schemas
from app.modules.loans.models import Loan
from app.modules.loans.services import LoanService
from app.modules.users.models import User

router = APIRouter(prefix="/api/v1/loans", tags=["loans"])


async def get_accessible_loan(service: LoanService, loan_id: int, user: User) -> Loan:
    loan = await service.get_loan(loan_id)
    if loan is None:
        raise HTTPException(status_code=404, detail="Loan not found")
    if not service.can_access(loan, user):
        raise HTTPException(status_code=403, detail="Access denied to this loan")
    return loan


def message(text: str, loan: Loan) -> dict:
    return {"message": text, "loan": schemas.LoanResponse.model_validate(loan)}


@router.post("", response_model=schemas.LoanMessageResponse, status_code=status.HTTP_201_CREATED)
async def create_loan(
    data: schemas.LoanCreate,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_active_user)
):
    """Submit a gold loan application"""
    loan = await LoanService(db, redis).create_loan(data, current_user)
    return message("Loan application submitted successfully", loan)


@router.get("", response_model=schemas.LoanListResponse)
async def list_loans(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort_by: str = "application_date",
    sort_order: schemas.SortOrder = schemas.SortOrder.DESC,
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """List loans with filtering, search and pagination"""
    try:
        loans, total, summary = await LoanService(db).list_loans(
            current_user,
            page=page,
            limit=limit,
            status=status,
            search=search,
            start_date=start_date,
            end_date=end_date,
            sort_by=sort_by,
            sort_order=sort_order,
            include_inactive=include_inactive
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "loans": loans,
        "pagination": schemas.Pagination.build(page, limit, total),
        "summary": summary
    }


# ============================================================
# Static routes, declared before /{loan_id}
# ============================================================

@router.delete("/clear-all")
async def clear_all_loans(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_admin)
):
    """Delete every loan. Meant for test environments."""
    deleted = await LoanService(db, redis).clear_all()
    return {"message": f"Successfully cleared {deleted} loans", "deleted_count": deleted}


@router.get("/dashboard/stats", response_model=schemas.DashboardResponse)
async def dashboard_stats(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_active_user)
):
    return await LoanService(db, redis).get_dashboard_stats(current_user)


@router.post("/cache/clear")
async def clear_cache(
    data: schemas.CacheClearRequest,
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_admin)
):
    if data.cache_type == "all":
        targets = list(CACHES.values())
    elif data.cache_type in CACHES:
        targets = [CACHES[data.cache_type]]
    else:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown cache type '{data.cache_type}'. Use dashboard, loans or all"
        )

    for cache in targets:
        await cache.clear(redis)

    return {
        "message": f"Successfully cleared {data.cache_type} cache",
        "cache_stats": {name: await cache.stats(redis) for name, cache in CACHES.items()}
    }


@router.get("/cache/stats")
async def cache_stats(
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_admin)
):
    return {name: await cache.stats(redis) for name, cache in CACHES.items()}


@router.post("/migrate/status", response_model=schemas.StatusMigrationResponse)
async def migrate_statuses(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_admin)
):
    """Move pending and legacy disbursed loans to approved"""
    result = await LoanService(db, redis).migrate_statuses(current_user)
    text = "Migration completed" if result["migrated"] else "No loans to migrate"
    return {"message": text, **result}


# ============================================================
# Single loan
# ============================================================

@router.get("/{loan_id}", response_model=schemas.LoanResponse)
async def get_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    return await get_accessible_loan(LoanService(db), loan_id, current_user)


@router.put("/{loan_id}", response_model=schemas.LoanMessageResponse)
async def update_loan(
    loan_id: int,
    data: schemas.LoanUpdate,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_active_user)
):
    service = LoanService(db, redis)
    await get_accessible_loan(service, loan_id, current_user)
    try:
        loan = await service.update_loan(loan_id, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return message("Loan updated successfully", loan)


@router.put("/{loan_id}/status", response_model=schemas.LoanMessageResponse)
async def update_loan_status(
    loan_id: int,
    data: schemas.LoanStatusUpdate,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_staff)
):
    try:
        loan = await LoanService(db, redis).update_status(loan_id, data.status, data.notes, current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if loan is None:
        raise HTTPException(status_code=404, detail="Loan not found")
    return message("Loan status updated successfully", loan)


@router.put("/{loan_id}/account", response_model=schemas.LoanMessageResponse)
async def update_loan_account(
    loan_id: int,
    data: schemas.LoanAccountUpdate,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_staff)
):
    try:
        loan = await LoanService(db, redis).update_account(loan_id, data.account)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if loan is None:
        raise HTTPException(status_code=404, detail="Loan not found")
    return message("Loan account updated successfully", loan)


@router.put("/{loan_id}/close", response_model=schemas.LoanMessageResponse)
async def close_loan(
    loan_id: int,
    data: schemas.LoanCloseRequest,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_staff)
):
    try:
        loan = await LoanService(db, redis).close_loan(loan_id, data, current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if loan is None:
        raise HTTPException(status_code=404, detail="Loan not found")
    return message("Loan closed successfully", loan)


@router.put("/{loan_id}/signature", response_model=schemas.LoanMessageResponse)
async def add_signature(
    loan_id: int,
    data: schemas.SignatureRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    service = LoanService(db)
    await get_accessible_loan(service, loan_id, current_user)
    loan = await service.add_signature(loan_id, data.signature_data, current_user)
    return message("Digital signature added successfully", loan)


@router.delete("/{loan_id}", response_model=schemas.LoanMessageResponse)
async def delete_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_staff)
):
    """Soft delete; the loan stays in the database as inactive"""
    loan = await LoanService(db, redis).soft_delete(loan_id)
    if loan is None:
        raise HTTPException(status_code=404, detail="Loan not found")
    return message("Loan deleted successfully", loan)


@router.get("/{loan_id}/analytics", response_model=schemas.LoanAnalytics)
async def loan_analytics(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    service = LoanService(db)
    loan = await get_accessible_loan(service, loan_id, current_user)
    return service.analytics(loan)


# ============================================================
# Documents
# ============================================================

@router.get("/{loan_id}/download")
async def download_application(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """English application form as an HTML attachment"""
    service = LoanService(db)
    loan = await get_accessible_loan(service, loan_id, current_user)
    content = renderer.render_application(loan)
    await service.mark_document_generated(loan)
    return Response(
        content=content,
        media_type="text/html",
        headers={"Content-Disposition": f'attachment; filename="{renderer.application_filename(loan)}"'}
    )


@router.get("/{loan_id}/download/traditional")
async def download_traditional(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Telugu pledge deed as an HTML attachment"""
    service = LoanService(db)
    loan = await get_accessible_loan(service, loan_id, current_user)
    content = renderer.render_traditional(loan)
    await service.mark_document_generated(loan)
    return Response(
        content=content,
        media_type="text/html; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{renderer.traditional_filename(loan)}"'}
    )


# ============================================================
# Payment ledger
# ============================================================

@router.get("/{loan_id}/payments", response_model=schemas.LoanPaymentsResponse)
async def list_loan_payments(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    loan = await get_accessible_loan(LoanService(db), loan_id, current_user)
    return {
        "payments": loan.payments,
        "loan_term": loan.loan_term,
        "monthly_emi": loan.monthly_emi
    }


@router.post("/{loan_id}/payments", response_model=schemas.PaymentMessageResponse, status_code=status.HTTP_201_CREATED)
async def add_loan_payment(
    loan_id: int,
    data: schemas.PaymentCreate,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_active_user)
):
    """Record the payment for one month of the loan term"""
    service = LoanService(db, redis)
    loan = await get_accessible_loan(service, loan_id, current_user)
    try:
        payment = await service.add_payment(loan, data, current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Payment added successfully", "payment": payment}


@router.put("/{loan_id}/payments/{payment_id}", response_model=schemas.PaymentMessageResponse)
async def update_loan_payment(
    loan_id: int,
    payment_id: int,
    data: schemas.PaymentUpdate,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_active_user)
):
    service = LoanService(db, redis)
    loan = await get_accessible_loan(service, loan_id, current_user)
    payment = await service.update_payment(loan, payment_id, data)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    return {"message": "Payment updated successfully", "payment": payment}


@router.delete("/{loan_id}/payments/{payment_id}")
async def delete_loan_payment(
    loan_id: int,
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_active_user)
):
    service = LoanService(db, redis)
    loan = await get_accessible_loan(service, loan_id, current_user)
    if not await service.delete_payment(loan, payment_id):
        raise HTTPException(status_code=404, detail="Payment not found")
    return {"message": "Payment deleted successfully"}
