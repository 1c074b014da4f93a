from sqlalchemy import (
    Column, Integer, String, Numeric, ForeignKey, DateTime, Boolean, Text,
    UniqueConstraint, Index, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.config import settings
from app.core.database import Base
import enum
import random


class LoanStatus(str, enum.Enum):
    """Loan lifecycle status"""
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"  # legacy, migrated to approved
    CLOSED = "closed"


class LoanAccount(str, enum.Enum):
    """Internal ledger bucket a loan is booked under"""
    ACCOUNT1 = "account1"
    ACCOUNT2 = "account2"
    ACCOUNT3 = "account3"


class GoldPurity(str, enum.Enum):
    K18 = "18K"
    K22 = "22K"
    K24 = "24K"
    P916 = "91.6%"
    P917 = "91.7%"
    P999 = "99.9%"


class DocumentStatus(str, enum.Enum):
    DRAFT = "draft"
    GENERATED = "generated"
    SIGNED = "signed"
    COMPLETED = "completed"


class ClosureReason(str, enum.Enum):
    FULLY_PAID = "fully_paid"
    SETTLEMENT = "settlement"
    WRITE_OFF = "write_off"
    COLLATERAL_AUCTION = "collateral_auction"
    OTHER = "other"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    ONLINE = "online"


class CollateralType(str, enum.Enum):
    GOLD = "gold"
    SILVER = "silver"
    DIAMOND = "diamond"
    OTHER = "other"


def generate_loan_number() -> str:
    """GL followed by six digits"""
    return f"GL{random.randint(100000, 999999)}"


class Loan(Base):
    """Gold loan application with its embedded payment ledger and collateral"""
    __tablename__ = "loans"
    __table_args__ = (
        Index("ix_loans_status_application_date", "status", "application_date"),
        Index("ix_loans_submitted_by_status", "submitted_by_id", "status"),
        Index("ix_loans_account_status", "account", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    loan_number = Column(String(20), unique=True, index=True, nullable=False, default=generate_loan_number)

    # Applicant
    applicant_name = Column(String(100), nullable=False)
    applicant_phone = Column(String(20), index=True, nullable=False)
    applicant_email = Column(String(255), index=True, nullable=True)
    address_street = Column(String(255), default="")
    address_city = Column(String(100), default="")
    address_state = Column(String(100), default="")
    address_zip_code = Column(String(20), default="")
    address_country = Column(String(100), default=settings.DEFAULT_COUNTRY)

    # Terms
    loan_amount = Column(Numeric(15, 2), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False, default=12)
    loan_term = Column(Integer, nullable=False, default=12)

    # Gold summary
    net_weight = Column(Numeric(10, 2), nullable=False)
    gross_weight = Column(Numeric(10, 2), nullable=False)
    gold_purity = Column(SQLEnum(GoldPurity, values_callable=lambda e: [m.value for m in e]), nullable=False, default=GoldPurity.K22)

    # Calculated on save
    monthly_emi = Column(Numeric(15, 2), nullable=False, default=0)
    total_interest = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_net_weight = Column(Numeric(10, 2), nullable=False, default=0)
    total_gross_weight = Column(Numeric(10, 2), nullable=False, default=0)

    status = Column(SQLEnum(LoanStatus), nullable=False, default=LoanStatus.APPROVED, index=True)
    account = Column(SQLEnum(LoanAccount), nullable=True, default=LoanAccount.ACCOUNT1, index=True)

    # Dates
    application_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    approval_date = Column(DateTime, nullable=True)
    disbursement_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)

    # Actors
    submitted_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    notes = Column(Text, nullable=True)

    # Digital signature
    signature_data = Column(Text, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    signed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    document_status = Column(SQLEnum(DocumentStatus), nullable=False, default=DocumentStatus.DRAFT)

    # Outsourcing
    outsourced_to_id = Column(Integer, ForeignKey("outsource_entities.id"), nullable=True, index=True)
    outsource_entity = Column(String(100), nullable=True)
    outsource_date = Column(DateTime, nullable=True)
    outsource_amount = Column(Numeric(15, 2), nullable=True)
    outsource_interest_rate = Column(Numeric(5, 2), nullable=True)
    profit_margin = Column(Numeric(5, 2), nullable=True)
    outsource_notes = Column(Text, nullable=True)

    # Soft delete
    is_active = Column(Boolean, nullable=True, default=True, index=True)

    # Closure
    closed_at = Column(DateTime, nullable=True, index=True)
    closed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    closure_reason = Column(SQLEnum(ClosureReason), nullable=True)
    closure_notes = Column(Text, nullable=True)
    final_amount = Column(Numeric(15, 2), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    # Relationships
    payments = relationship(
        "LoanPayment",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanPayment.month",
        lazy="selectin"
    )
    collateral_items = relationship(
        "CollateralItem",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="CollateralItem.id",
        lazy="selectin"
    )
    submitted_by = relationship("User", foreign_keys=[submitted_by_id], lazy="selectin")
    approved_by = relationship("User", foreign_keys=[approved_by_id], lazy="selectin")
    closed_by = relationship("User", foreign_keys=[closed_by_id], lazy="selectin")
    outsourced_to = relationship("OutsourceEntity", lazy="selectin")

    @property
    def applicant_address(self) -> dict:
        return {
            "street": self.address_street or "",
            "city": self.address_city or "",
            "state": self.address_state or "",
            "zip_code": self.address_zip_code or "",
            "country": self.address_country or "",
        }

    @property
    def has_signature(self) -> bool:
        return bool(self.signature_data)

    @property
    def address_line(self) -> str:
        parts = [
            self.address_street, self.address_city, self.address_state,
            self.address_zip_code, self.address_country
        ]
        return ", ".join(p for p in parts if p)


class LoanPayment(Base):
    """One EMI payment; a loan holds at most one per month"""
    __tablename__ = "loan_payments"
    __table_args__ = (
        UniqueConstraint("loan_id", "month", name="uq_loan_payments_loan_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(SQLEnum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    notes = Column(Text, nullable=True)
    received_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    loan = relationship("Loan", back_populates="payments")


class CollateralItem(Base):
    """Pledged valuable securing a loan"""
    __tablename__ = "collateral_items"

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    item_name = Column(String(200), nullable=False)
    item_type = Column(SQLEnum(CollateralType), nullable=False, default=CollateralType.GOLD)
    net_weight = Column(Numeric(10, 2), nullable=False)
    gross_weight = Column(Numeric(10, 2), nullable=False)
    purity = Column(String(20), nullable=False, default="22K")
    estimated_value = Column(Numeric(15, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)

    loan = relationship("Loan", back_populates="collateral_items")
