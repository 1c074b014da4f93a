from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base
import enum


class EntityType(str, enum.Enum):
    ORGANIZATION = "organization"
    INDIVIDUAL = "individual"


class EntityStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class OutsourceEntity(Base):
    """Lender or individual that loans can be passed on to"""
    __tablename__ = "outsource_entities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    entity_type = Column(SQLEnum(EntityType), nullable=False, default=EntityType.ORGANIZATION, index=True)
    contact_person = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False)
    email = Column(String(255), nullable=False)
    address = Column(String(500), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)
    max_loan_amount = Column(Numeric(15, 2), nullable=False)
    status = Column(SQLEnum(EntityStatus), nullable=False, default=EntityStatus.ACTIVE, index=True)
    notes = Column(Text, nullable=True)

    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    created_by = relationship("User", lazy="selectin")

    @property
    def display_name(self) -> str:
        if self.entity_type == EntityType.INDIVIDUAL:
            return self.contact_person
        return self.name
