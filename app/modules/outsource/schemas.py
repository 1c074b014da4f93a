from pydantic import BaseModel, EmailStr, Field, validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum

from app.modules.loans.schemas import (
    EntityTypeEnum, LoanListItem, LoanResponse, Money, Pagination, PHONE_PATTERN
)
from app.modules.users.schemas import UserSummary


class EntityStatusEnum(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class OutsourceEntityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    entity_type: EntityTypeEnum = EntityTypeEnum.ORGANIZATION
    contact_person: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    email: EmailStr
    address: str = Field(..., min_length=1, max_length=500)
    interest_rate: Decimal = Field(..., ge=Decimal("0.1"), le=36)
    max_loan_amount: Decimal = Field(..., ge=1000, le=10000000)
    notes: Optional[str] = Field(None, max_length=1000)

    @validator('email')
    def lower_email(cls, v):
        return v.lower()


class OutsourceEntityUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    entity_type: Optional[EntityTypeEnum] = None
    contact_person: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, min_length=1, max_length=500)
    interest_rate: Optional[Decimal] = Field(None, ge=Decimal("0.1"), le=36)
    max_loan_amount: Optional[Decimal] = Field(None, ge=1000, le=10000000)
    status: Optional[EntityStatusEnum] = None
    notes: Optional[str] = Field(None, max_length=1000)


class OutsourceEntityResponse(BaseModel):
    id: int
    name: str
    entity_type: EntityTypeEnum
    display_name: str
    contact_person: str
    phone: str
    email: str
    address: str
    interest_rate: Money
    max_loan_amount: Money
    status: EntityStatusEnum
    notes: Optional[str] = None
    created_by: Optional[UserSummary] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OutsourceEntityMessage(BaseModel):
    message: str
    entity: OutsourceEntityResponse


class OutsourceEntityListResponse(BaseModel):
    entities: List[OutsourceEntityResponse]
    pagination: Pagination


class OutsourceAssignRequest(BaseModel):
    loan_id: int
    entity_id: int
    custom_amount: Optional[Decimal] = Field(None, gt=0)
    custom_interest_rate: Optional[Decimal] = Field(None, ge=Decimal("0.1"), le=36)
    notes: Optional[str] = Field(None, max_length=1000)


class OutsourceAssignResponse(BaseModel):
    message: str
    loan: LoanResponse
    profit_margin: Money


class AvailableLoansResponse(BaseModel):
    available_loans: List[LoanListItem]


class OutsourcedLoansResponse(BaseModel):
    outsourced_loans: List[LoanListItem]
