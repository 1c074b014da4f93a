from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from redis import asyncio as aioredis
from typing import Optional

from app.core.database import get_db, get_redis
from app.core.dependencies import get_current_active_user, require_staff, require_admin
from app.modules.loans.schemas import LoanListItem, LoanResponse, Pagination, SortOrder
from app.modules.outsource import schemas
from app.modules.outsource.services import OutsourceService
from app.modules.users.models import User

router = APIRouter(prefix="/api/v1/outsource", tags=["outsource"])


@router.post("/entities", response_model=schemas.OutsourceEntityMessage, status_code=status.HTTP_201_CREATED)
async def create_entity(
    data: schemas.OutsourceEntityCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    entity = await OutsourceService(db).create_entity(data, current_user)
    return {"message": "Outsource entity created successfully", "entity": entity}


@router.get("/entities", response_model=schemas.OutsourceEntityListResponse)
async def list_entities(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[schemas.EntityStatusEnum] = None,
    entity_type: Optional[schemas.EntityTypeEnum] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: SortOrder = SortOrder.DESC,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """List outsource entities with filtering and pagination"""
    try:
        entities, total = await OutsourceService(db).list_entities(
            page=page,
            limit=limit,
            status=status.value if status else None,
            entity_type=entity_type.value if entity_type else None,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"entities": entities, "pagination": Pagination.build(page, limit, total)}


# Static loan routes come before /entities/{entity_id}
@router.get("/available-loans", response_model=schemas.AvailableLoansResponse)
async def available_loans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    loans = await OutsourceService(db).available_loans()
    return {"available_loans": [LoanListItem.model_validate(loan) for loan in loans]}


@router.get("/loans", response_model=schemas.OutsourcedLoansResponse)
async def outsourced_loans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    loans = await OutsourceService(db).outsourced_loans()
    return {"outsourced_loans": [LoanListItem.model_validate(loan) for loan in loans]}


@router.post("/loans", response_model=schemas.OutsourceAssignResponse)
async def assign_loan(
    data: schemas.OutsourceAssignRequest,
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    current_user: User = Depends(require_staff)
):
    """Assign a loan to an outsource entity"""
    try:
        result = await OutsourceService(db, redis).assign_loan(data, current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if result is None:
        raise HTTPException(status_code=404, detail="Loan or outsource entity not found")

    loan, profit_margin = result
    return {
        "message": "Loan assigned to outsource entity successfully",
        "loan": LoanResponse.model_validate(loan),
        "profit_margin": profit_margin
    }


@router.get("/entities/{entity_id}", response_model=schemas.OutsourceEntityResponse)
async def get_entity(
    entity_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    entity = await OutsourceService(db).get_entity(entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Outsource entity not found")
    return entity


@router.put("/entities/{entity_id}", response_model=schemas.OutsourceEntityMessage)
async def update_entity(
    entity_id: int,
    data: schemas.OutsourceEntityUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    entity = await OutsourceService(db).update_entity(entity_id, data)
    if entity is None:
        raise HTTPException(status_code=404, detail="Outsource entity not found")
    return {"message": "Outsource entity updated successfully", "entity": entity}


@router.delete("/entities/{entity_id}", response_model=schemas.OutsourceEntityMessage)
async def deactivate_entity(
    entity_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Deactivate an outsource entity; entities are never hard deleted"""
    entity = await OutsourceService(db).deactivate_entity(entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Outsource entity not found")
    return {"message": "Outsource entity deactivated successfully", "entity": entity}
