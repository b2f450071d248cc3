from pydantic import BaseModel, Field
from typing import Optional, List
from decimal import Decimal


class DividendRequest(BaseModel):
    """Administrator-supplied figures for the yearly dividend."""
    year: Optional[str] = Field(None, pattern=r"^\d{4}$", description="Dividend year; defaults to the current year")
    share_capital: Decimal = Field(..., ge=0, description="Society share capital")
    bank_balance: Decimal = Field(..., ge=0, description="Bank balance at year end")
    cash_in_hand: Decimal = Field(..., ge=0, description="Cash in hand at year end")
    preview: bool = Field(False, description="Compute the result without changing any balance")


class DividendFormulaResponse(BaseModel):
    total_thrift: Decimal
    total_loans_outstanding: Decimal
    share_capital: Decimal
    bank_balance: Decimal
    cash_in_hand: Decimal
    society_assets: Decimal
    society_capital: Decimal
    difference: Decimal
    rate_per_rupee: Decimal = Field(..., description="Rounded to 6 places for display")


class DividendResultRow(BaseModel):
    employee_id: str
    emp_id: Optional[str] = None
    name: str
    old_balance: Decimal
    dividend: Decimal
    new_balance: Decimal
    changed: bool


class DividendErrorRow(BaseModel):
    employee_id: str
    emp_id: Optional[str] = None
    name: str
    error: str


class DividendResponse(BaseModel):
    message: str
    year: str
    preview: bool
    total_processed: int
    total_changed: int
    total_errors: int
    formula: DividendFormulaResponse
    results: List[DividendResultRow]
    errors: List[DividendErrorRow]
