from pydantic import BaseModel, EmailStr, Field, PlainSerializer, validator
from typing import Optional, List
from typing_extensions import Annotated
from datetime import datetime
from decimal import Decimal
from enum import Enum

from app.core.config import settings
from app.modules.users.schemas import UserSummary


# Decimal in Python, plain JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


# ============================================================
# Enums
# ============================================================

class LoanStatusEnum(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    CLOSED = "closed"


class LoanAccountEnum(str, Enum):
    ACCOUNT1 = "account1"
    ACCOUNT2 = "account2"
    ACCOUNT3 = "account3"


class GoldPurityEnum(str, Enum):
    K18 = "18K"
    K22 = "22K"
    K24 = "24K"
    P916 = "91.6%"
    P917 = "91.7%"
    P999 = "99.9%"


class ClosureReasonEnum(str, Enum):
    FULLY_PAID = "fully_paid"
    SETTLEMENT = "settlement"
    WRITE_OFF = "write_off"
    COLLATERAL_AUCTION = "collateral_auction"
    OTHER = "other"


class PaymentMethodEnum(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    ONLINE = "online"


class CollateralTypeEnum(str, Enum):
    GOLD = "gold"
    SILVER = "silver"
    DIAMOND = "diamond"
    OTHER = "other"


class DocumentStatusEnum(str, Enum):
    DRAFT = "draft"
    GENERATED = "generated"
    SIGNED = "signed"
    COMPLETED = "completed"


class EntityTypeEnum(str, Enum):
    ORGANIZATION = "organization"
    INDIVIDUAL = "individual"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# ============================================================
# Nested pieces
# ============================================================

class Address(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = settings.DEFAULT_COUNTRY


class CollateralItemIn(BaseModel):
    """Collateral item as submitted with an application"""
    name: str = Field(..., min_length=1, max_length=200)
    item_type: CollateralTypeEnum = CollateralTypeEnum.GOLD
    net_weight: Decimal = Field(..., ge=Decimal("0.1"))
    gross_weight: Decimal = Field(..., ge=Decimal("0.1"))
    purity: str = "22K"
    estimated_value: Decimal = Field(Decimal("0"), ge=0)
    description: str = ""


class CollateralItemResponse(BaseModel):
    id: int
    item_name: str
    item_type: CollateralTypeEnum
    net_weight: Money
    gross_weight: Money
    purity: str
    estimated_value: Money
    description: Optional[str] = None

    class Config:
        from_attributes = True


class OutsourceEntitySummary(BaseModel):
    id: int
    name: str
    entity_type: EntityTypeEnum

    class Config:
        from_attributes = True


# ============================================================
# Loan requests
# ============================================================

PHONE_PATTERN = r"^\+?[1-9]\d{0,15}$"


class LoanCreate(BaseModel):
    """New gold loan application"""
    applicant_name: str = Field(..., min_length=1, max_length=100)
    applicant_phone: str = Field(..., pattern=PHONE_PATTERN)
    applicant_email: Optional[EmailStr] = None
    applicant_address: Address = Field(default_factory=Address)
    loan_amount: Decimal = Field(..., ge=1000, le=10000000)
    net_weight: Decimal = Field(..., ge=Decimal("0.1"), le=10000)
    gross_weight: Decimal = Field(..., ge=Decimal("0.1"), le=10000)
    gold_purity: GoldPurityEnum = GoldPurityEnum.K22
    interest_rate: Decimal = Field(Decimal("12"), ge=Decimal("0.1"), le=36)
    loan_term: int = Field(12, ge=1, le=60)
    account: LoanAccountEnum = LoanAccountEnum.ACCOUNT1
    notes: Optional[str] = Field(None, max_length=1000)
    items: List[CollateralItemIn] = []
    digital_signature: Optional[str] = None

    @validator('applicant_name')
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Applicant name is required')
        return v

    @validator('applicant_email')
    def lower_email(cls, v):
        return v.lower() if v else v


class LoanUpdate(BaseModel):
    """Editable loan fields; status and approval data are not settable here"""
    applicant_name: Optional[str] = Field(None, min_length=1, max_length=100)
    applicant_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    applicant_email: Optional[EmailStr] = None
    applicant_address: Optional[Address] = None
    loan_amount: Optional[Decimal] = Field(None, ge=1000, le=10000000)
    net_weight: Optional[Decimal] = Field(None, ge=Decimal("0.1"), le=10000)
    gross_weight: Optional[Decimal] = Field(None, ge=Decimal("0.1"), le=10000)
    gold_purity: Optional[GoldPurityEnum] = None
    interest_rate: Optional[Decimal] = Field(None, ge=Decimal("0.1"), le=36)
    loan_term: Optional[int] = Field(None, ge=1, le=60)
    notes: Optional[str] = Field(None, max_length=1000)
    items: Optional[List[CollateralItemIn]] = None


class LoanStatusUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


class LoanAccountUpdate(BaseModel):
    account: Optional[str] = None


class LoanCloseRequest(BaseModel):
    closure_reason: Optional[ClosureReasonEnum] = None
    closure_notes: Optional[str] = Field(None, max_length=1000)
    final_amount: Optional[Decimal] = Field(None, ge=0)


class SignatureRequest(BaseModel):
    signature_data: str = Field(..., min_length=1)


class CacheClearRequest(BaseModel):
    cache_type: str = "all"


# ============================================================
# Loan responses
# ============================================================

class LoanListItem(BaseModel):
    """Loan as shown in listings"""
    id: int
    loan_number: str
    applicant_name: str
    applicant_phone: str
    applicant_email: Optional[str] = None
    loan_amount: Money
    net_weight: Money
    gross_weight: Money
    total_net_weight: Money
    total_gross_weight: Money
    gold_purity: GoldPurityEnum
    status: LoanStatusEnum
    account: Optional[LoanAccountEnum] = None
    application_date: datetime
    monthly_emi: Money
    outsource_amount: Optional[Money] = None
    outsource_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    submitted_by: Optional[UserSummary] = None
    approved_by: Optional[UserSummary] = None
    outsourced_to: Optional[OutsourceEntitySummary] = None

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    month: int
    amount: Money
    payment_method: PaymentMethodEnum
    notes: Optional[str] = None
    received_by_id: Optional[int] = None
    payment_date: datetime

    class Config:
        from_attributes = True


class LoanResponse(LoanListItem):
    """Full loan record"""
    applicant_address: Address
    interest_rate: Money
    loan_term: int
    total_interest: Money
    total_amount: Money
    approval_date: Optional[datetime] = None
    disbursement_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    document_status: DocumentStatusEnum
    signed_at: Optional[datetime] = None
    has_signature: bool = False
    outsource_entity: Optional[str] = None
    outsource_interest_rate: Optional[Money] = None
    profit_margin: Optional[Money] = None
    outsource_notes: Optional[str] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[UserSummary] = None
    closure_reason: Optional[ClosureReasonEnum] = None
    closure_notes: Optional[str] = None
    final_amount: Optional[Money] = None
    collateral_items: List[CollateralItemResponse] = []
    payments: List[PaymentResponse] = []


class LoanMessageResponse(BaseModel):
    message: str
    loan: LoanResponse


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1
        )


class LoanListSummary(BaseModel):
    total_loans: int = 0
    total_amount: Money = Decimal("0")
    pending_loans: int = 0
    approved_loans: int = 0


class LoanListResponse(BaseModel):
    loans: List[LoanListItem]
    pagination: Pagination
    summary: LoanListSummary


class LoanAnalytics(BaseModel):
    loan_number: str
    applicant_name: str
    monthly_emi: Money
    total_amount: Money
    remaining_amount: Money
    remaining_months: int
    payment_status: str
    next_payment_due: int
    total_paid: Money
    payment_history: List[PaymentResponse]
    collateral_value: Money


# ============================================================
# Dashboard
# ============================================================

class DashboardStats(BaseModel):
    total_loans: int = 0
    total_amount: Money = Decimal("0")
    pending_loans: int = 0
    under_review_loans: int = 0
    approved_loans: int = 0
    rejected_loans: int = 0
    closed_loans: int = 0
    outsourced_loans: int = 0
    outsourced_amount: Money = Decimal("0")
    account1_loans: int = 0
    account1_amount: Money = Decimal("0")
    account2_loans: int = 0
    account2_amount: Money = Decimal("0")
    account3_loans: int = 0
    account3_amount: Money = Decimal("0")


class MonthlyTrend(BaseModel):
    month: int
    count: int
    total_amount: Money


class DashboardResponse(BaseModel):
    stats: DashboardStats
    monthly_trends: List[MonthlyTrend]


class StatusMigrationResponse(BaseModel):
    message: str
    migrated: int
    details: dict


# ============================================================
# Payments on a loan
# ============================================================

class PaymentCreate(BaseModel):
    month: int
    amount: Decimal = Field(..., ge=0)
    payment_method: PaymentMethodEnum = PaymentMethodEnum.CASH
    notes: Optional[str] = None


class PaymentUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[PaymentMethodEnum] = None
    notes: Optional[str] = None


class PaymentMessageResponse(BaseModel):
    message: str
    payment: PaymentResponse


class LoanPaymentsResponse(BaseModel):
    payments: List[PaymentResponse]
    loan_term: int
    monthly_emi: Money
