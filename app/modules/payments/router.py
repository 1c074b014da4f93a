from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from redis import asyncio as aioredis
from typing import Optional
from datetime import datetime

from app.core.database import get_db, get_redis
from app.core.dependencies import get_current_active_user
from app.modules.loans.schemas import Pagination, SortOrder
from app.modules.payments import schemas
from app.modules.payments.services import PaymentService
from app.modules.users.models import User

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.get("", response_model=schemas.PaymentListResponse)
async def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[schemas.PaymentStatusFilter] = None,
    search: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort_by: str = "due_date",
    sort_order: SortOrder = SortOrder.ASC,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Loans projected to their payment position against one EMI"""
    try:
        payments, total, summary = await PaymentService(db).list_positions(
            current_user,
            page=page,
            limit=limit,
            status=status,
            search=search,
            start_date=start_date,
            end_date=end_date,
            sort_by=sort_by,
            sort_order=sort_order
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "payments": payments,
        "pagination": Pagination.build(page, limit, total),
        "summary": summary
    }


@router.get("/summary", response_model=schemas.PaymentSummaryResponse)
async def payment_summary(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(get_current_active_user)
):
    return await PaymentService(db, redis).get_summary(current_user)
