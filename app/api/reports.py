from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.db.base import get_db
from app.services.reports import (
    dashboard_stats,
    employee_statement,
    monthly_history,
    monthly_report,
    yearly_report,
)
from app.services.workbook import is_valid_month

router = APIRouter(prefix="/api/reports", tags=["reports"])


def _check_month(month: str) -> str:
    if not is_valid_month(month):
        raise HTTPException(status_code=400, detail="Month must be in YYYY-MM format")
    return month


@router.get("/monthly/{month}")
def get_monthly_report(month: str, db: Session = Depends(get_db)):
    """Monthly deduction sheet with a TOTAL row."""
    return monthly_report(db, _check_month(month))


@router.get("/yearly/{year}")
def get_yearly_report(year: int, db: Session = Depends(get_db)):
    """Yearly totals per employee with a GRAND TOTAL row."""
    return yearly_report(db, year)


@router.get("/employees/{employee_id}/statement/{year}")
def get_employee_statement(employee_id: UUID, year: int, db: Session = Depends(get_db)):
    try:
        return employee_statement(db, employee_id, year)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/history")
def get_monthly_history(db: Session = Depends(get_db)):
    """Live and archived months, newest first."""
    return monthly_history(db)


@router.get("/dashboard")
def get_dashboard(
    month: Optional[str] = Query(None, description="YYYY-MM, defaults to the current month"),
    db: Session = Depends(get_db)
):
    return dashboard_stats(db, _check_month(month) if month else None)
