from sqlalchemy import Column, String, DateTime, Numeric, Integer, Enum as SQLEnum, JSON, Uuid, text
import uuid
import enum
from decimal import Decimal
from app.db.base import Base


class UploadFileType(str, enum.Enum):
    """Which of the two sheet layouts a batch carried."""
    EMPLOYEES = "employees"
    MONTHLY = "monthly"


class UploadStatus(str, enum.Enum):
    """Outcome of a finished batch."""
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


class MonthlyUploadLog(Base):
    """Summary of one ingestion batch, written once when the batch finishes."""
    __tablename__ = "monthly_upload_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    uploaded_by = Column(String(100), nullable=True)
    file_name = Column(String(255), nullable=False)
    file_type = Column(SQLEnum(UploadFileType, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    month = Column(String(7), nullable=True)
    total_records = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    skipped_count = Column(Integer, nullable=False, default=0)
    warning_count = Column(Integer, nullable=False, default=0)
    error_log = Column(JSON, nullable=False, default=list)  # [{"row": 7, "error": "..."}]
    status = Column(SQLEnum(UploadStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=False, default=UploadStatus.COMPLETED)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"), index=True)


class ArchivedMonth(Base):
    """Per-employee snapshot of a month whose transaction rows were pruned."""
    __tablename__ = "archived_month"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    month = Column(String(7), nullable=False, unique=True, index=True)
    archived_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    employee_count = Column(Integer, nullable=False, default=0)
    total_thrift = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    total_emi = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    total_interest = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    total_deduction = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    employees = Column(JSON, nullable=False, default=list)
