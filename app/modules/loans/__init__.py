# Loans module
from app.modules.loans.models import (
    Loan, LoanPayment, CollateralItem,
    LoanStatus, LoanAccount, GoldPurity, DocumentStatus, ClosureReason, PaymentMethod, CollateralType
)
from app.modules.loans.services import LoanService
from app.modules.loans.router import router

__all__ = [
    "Loan", "LoanPayment", "CollateralItem",
    "LoanStatus", "LoanAccount", "GoldPurity", "DocumentStatus", "ClosureReason", "PaymentMethod",
    "CollateralType", "LoanService", "router"
]
