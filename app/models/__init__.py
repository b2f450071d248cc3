from app.db.base import Base

# Import all models so Alembic can detect them
from app.models.member import Employee
from app.models.transaction import Loan, LoanStatus, LoanSurety, Transaction
from app.models.adjustment import AdjustmentHistory, AdjustmentAction
from app.models.system import MonthlyUploadLog, ArchivedMonth, UploadFileType, UploadStatus
from app.models.user import UserAccount, UserRoleEnum

__all__ = [
    "Base",
    "Employee",
    "Loan",
    "LoanStatus",
    "LoanSurety",
    "Transaction",
    "AdjustmentHistory",
    "AdjustmentAction",
    "MonthlyUploadLog",
    "ArchivedMonth",
    "UploadFileType",
    "UploadStatus",
    "UserAccount",
    "UserRoleEnum",
]
