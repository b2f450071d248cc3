from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal
from app.models.adjustment import AdjustmentAction
from app.models.transaction import LoanStatus


class EmployeeCreate(BaseModel):
    """Schema for creating a single employee."""
    emp_id: Optional[str] = Field(None, max_length=50, description="Business key, e.g. '19' or 'VT-1'")
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = None
    department: Optional[str] = "General"
    designation: Optional[str] = "Employee"
    pan: Optional[str] = Field(None, pattern=r"^[A-Z]{5}[0-9]{4}[A-Z]$")
    aadhaar: Optional[str] = Field(None, pattern=r"^\d{12}$")
    salary: Decimal = Field(Decimal("0.00"), ge=0)
    thrift_contribution: Decimal = Field(Decimal("0.00"), ge=0)
    thrift_balance: Decimal = Field(Decimal("0.00"), ge=0)


class EmployeeUpdate(BaseModel):
    """Profile update; balances change only through adjustments."""
    emp_id: Optional[str] = Field(None, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    pan: Optional[str] = Field(None, pattern=r"^[A-Z]{5}[0-9]{4}[A-Z]$")
    aadhaar: Optional[str] = Field(None, pattern=r"^\d{12}$")
    salary: Optional[Decimal] = Field(None, ge=0)
    thrift_contribution: Optional[Decimal] = Field(None, ge=0)


class LoanResponse(BaseModel):
    id: UUID
    borrower_id: UUID
    loan_amount: Decimal
    interest_rate: Decimal
    emi: Decimal
    remaining_balance: Decimal
    status: LoanStatus
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    surety_emp_ids: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True


class EmployeeResponse(BaseModel):
    id: UUID
    emp_id: Optional[str] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    salary: Decimal
    thrift_contribution: Decimal
    thrift_balance: Decimal
    loan_status: str
    has_loan: bool
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EmployeeCreatedResponse(BaseModel):
    employee: EmployeeResponse
    username: str
    password: str


class SalaryAdjustment(BaseModel):
    new_salary: Decimal = Field(..., ge=0)
    remarks: Optional[str] = None


class ThriftAdjustment(BaseModel):
    new_contribution: Optional[Decimal] = Field(None, ge=0)
    new_balance: Optional[Decimal] = Field(None, ge=0)
    remarks: Optional[str] = None


class LoanAdjustment(BaseModel):
    loan_amount: Optional[Decimal] = Field(None, ge=0)
    emi: Optional[Decimal] = Field(None, ge=0)
    interest_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    remarks: Optional[str] = None


class LoanCloseRequest(BaseModel):
    remarks: Optional[str] = None


class AdjustmentResponse(BaseModel):
    id: UUID
    employee_id: UUID
    action_type: AdjustmentAction
    target_field: Optional[str] = None
    old_value: Optional[Decimal] = None
    new_value: Optional[Decimal] = None
    remarks: str
    performed_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
