from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from redis import asyncio as aioredis
from typing import List, Optional, Tuple
from datetime import datetime
import logging

from app.core.cache import invalidate_for_submitter
from app.modules.loans.models import Loan, LoanAccount
from app.modules.loans.schemas import SortOrder
from app.modules.loans.services import LoanService, LoanValidationError
from app.modules.outsource.models import OutsourceEntity, EntityType, EntityStatus
from app.modules.outsource.schemas import (
    OutsourceEntityCreate, OutsourceEntityUpdate, OutsourceAssignRequest
)
from app.modules.payments.reconciliation import to_decimal
from app.modules.users.models import User

logger = logging.getLogger(__name__)

ENTITY_SORT_FIELDS = {
    "created_at": OutsourceEntity.created_at,
    "name": OutsourceEntity.name,
    "interest_rate": OutsourceEntity.interest_rate,
    "max_loan_amount": OutsourceEntity.max_loan_amount,
}


class OutsourceService:
    def __init__(self, db: AsyncSession, redis: Optional[aioredis.Redis] = None):
        self.db = db
        self.redis = redis

    async def create_entity(self, data: OutsourceEntityCreate, user: User) -> OutsourceEntity:
        entity = OutsourceEntity(
            name=data.name.strip(),
            entity_type=EntityType(data.entity_type.value),
            contact_person=data.contact_person.strip(),
            phone=data.phone,
            email=data.email,
            address=data.address.strip(),
            interest_rate=data.interest_rate,
            max_loan_amount=data.max_loan_amount,
            notes=data.notes,
            status=EntityStatus.ACTIVE,
            created_by_id=user.id
        )
        self.db.add(entity)
        await self.db.commit()
        logger.info(f"Outsource entity '{entity.name}' created by {user.username}")
        return await self.get_entity(entity.id)

    async def get_entity(self, entity_id: int) -> Optional[OutsourceEntity]:
        result = await self.db.execute(
            select(OutsourceEntity)
            .where(OutsourceEntity.id == entity_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_entities(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        entity_type: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: SortOrder = SortOrder.DESC
    ) -> Tuple[List[OutsourceEntity], int]:
        conditions = []
        if status:
            conditions.append(OutsourceEntity.status == EntityStatus(status))
        if entity_type:
            conditions.append(OutsourceEntity.entity_type == EntityType(entity_type))
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(or_(
                OutsourceEntity.name.ilike(pattern),
                OutsourceEntity.contact_person.ilike(pattern),
                OutsourceEntity.phone.ilike(pattern),
                OutsourceEntity.email.ilike(pattern),
            ))

        column = ENTITY_SORT_FIELDS.get(sort_by)
        if column is None:
            raise LoanValidationError(
                f"Cannot sort by '{sort_by}'. Allowed: {', '.join(sorted(ENTITY_SORT_FIELDS))}"
            )
        order = column.desc() if sort_order == SortOrder.DESC else column.asc()

        total = (await self.db.execute(
            select(func.count(OutsourceEntity.id)).where(*conditions)
        )).scalar() or 0

        result = await self.db.execute(
            select(OutsourceEntity)
            .where(*conditions)
            .order_by(order, OutsourceEntity.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def update_entity(self, entity_id: int, data: OutsourceEntityUpdate) -> Optional[OutsourceEntity]:
        entity = await self.get_entity(entity_id)
        if not entity:
            return None

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is None and field != "notes":
                continue
            if field == "entity_type":
                value = EntityType(value)
            elif field == "status":
                value = EntityStatus(value)
            setattr(entity, field, value)

        await self.db.commit()
        return await self.get_entity(entity_id)

    async def deactivate_entity(self, entity_id: int) -> Optional[OutsourceEntity]:
        entity = await self.get_entity(entity_id)
        if not entity:
            return None

        entity.status = EntityStatus.INACTIVE
        await self.db.commit()
        logger.info(f"Outsource entity '{entity.name}' deactivated")
        return await self.get_entity(entity_id)

    async def assign_loan(self, data: OutsourceAssignRequest, user: User):
        """
        Pass a loan on to an outsource entity.

        Returns (loan, profit_margin), or None when the loan or the entity
        does not exist. The margin is the loan rate less the rate the
        entity charges.
        """
        loans = LoanService(self.db, self.redis)
        loan = await loans.get_loan(data.loan_id)
        entity = await self.get_entity(data.entity_id)
        if loan is None or entity is None:
            return None

        if loan.outsourced_to_id is not None:
            raise LoanValidationError("Loan is already outsourced")
        if entity.status != EntityStatus.ACTIVE:
            raise LoanValidationError("Outsource entity is not active")

        outsource_rate = data.custom_interest_rate or entity.interest_rate
        profit_margin = to_decimal(loan.interest_rate or 12) - to_decimal(outsource_rate)

        loan.outsourced_to_id = entity.id
        loan.outsource_entity = entity.name
        loan.outsource_date = datetime.utcnow()
        loan.outsource_amount = data.custom_amount or loan.loan_amount
        loan.outsource_interest_rate = outsource_rate
        loan.profit_margin = profit_margin
        loan.outsource_notes = data.notes

        await self.db.commit()
        if self.redis is not None:
            await invalidate_for_submitter(self.redis, [loan.submitted_by_id])

        logger.info(f"Loan {loan.loan_number} outsourced to '{entity.name}' by {user.username}")
        return await loans.get_loan(loan.id), profit_margin

    async def available_loans(self) -> List[Loan]:
        """Active account3 loans not yet passed on"""
        result = await self.db.execute(
            select(Loan)
            .where(
                Loan.outsourced_to_id.is_(None),
                Loan.account == LoanAccount.ACCOUNT3,
                or_(Loan.is_active == True, Loan.is_active.is_(None))
            )
            .order_by(Loan.application_date.desc())
        )
        return list(result.scalars().all())

    async def outsourced_loans(self) -> List[Loan]:
        result = await self.db.execute(
            select(Loan)
            .where(Loan.outsourced_to_id.isnot(None))
            .order_by(Loan.outsource_date.desc())
        )
        return list(result.scalars().all())
