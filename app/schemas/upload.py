from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from app.models.system import UploadFileType, UploadStatus


class RowIssue(BaseModel):
    """Coercible-but-suspect value; the row was still applied."""
    row: int
    column: str
    issue: str


class RowFailure(BaseModel):
    """Row that was skipped."""
    row: int
    error: str


class SkippedRow(BaseModel):
    """Employee that already existed and was left untouched."""
    row: int
    name: str
    emp_id: Optional[str] = None
    reason: str


class CreatedAccount(BaseModel):
    """Credentials issued for a newly created employee. Shown once."""
    employee_id: str
    emp_id: Optional[str] = None
    name: str
    email: Optional[str] = None
    username: str
    password: str


class ColumnDetection(BaseModel):
    field: str
    header: Optional[str] = None
    detected: bool


class UploadLogResponse(BaseModel):
    id: UUID
    uploaded_by: Optional[str] = None
    file_name: str
    file_type: UploadFileType
    month: Optional[str] = None
    total_records: int
    success_count: int
    failure_count: int
    skipped_count: int
    warning_count: int
    error_log: List[RowFailure] = Field(default_factory=list)
    status: UploadStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EmployeeUploadResult(BaseModel):
    message: str = "Processing complete"
    log: UploadLogResponse
    created_users: List[CreatedAccount] = Field(default_factory=list)
    skipped_existing: List[SkippedRow] = Field(default_factory=list)
    warnings: List[RowIssue] = Field(default_factory=list)
    column_summary: List[ColumnDetection] = Field(default_factory=list)


class MonthlyUploadResult(BaseModel):
    message: str = "Monthly update processed"
    log: UploadLogResponse
    uploaded_month: str
    transactions_created: int = 0
    transactions_updated: int = 0
    warnings: List[RowIssue] = Field(default_factory=list)
    column_summary: List[ColumnDetection] = Field(default_factory=list)
