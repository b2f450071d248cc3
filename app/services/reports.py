"""Report projections in the society's sheet layout.

These only assemble rows; rendering them to a workbook or PDF is the
caller's job.
"""
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.member import Employee
from app.models.system import ArchivedMonth, MonthlyUploadLog, UploadFileType
from app.models.transaction import Loan, LoanStatus, Transaction
from app.services.workbook import display_month

ZERO = Decimal("0.00")
SURETY_HEADERS = [f"surity{i}" for i in range(1, settings.SURETY_COLUMNS + 1)]

MONTHLY_REPORT_COLUMNS = [
    "S.No", "Emp. ID", "Name of the Employ", "CB Thrift Amount", "Loan", "Loan Re payment",
    "Interest", "Monthly Thrift Amount", "Total Amount", "Paid Amount", "Surity",
    "Loan Amount", "Thrift", "Total monthly deduction",
] + SURETY_HEADERS

YEARLY_REPORT_COLUMNS = [
    "S.No", "Emp. ID", "Name of the Employ", "CB Thrift Amount", "Loan", "Total Loan Re payment",
    "Total Interest", "Yearly Thrift Deducted", "Monthly Thrift", "Loan Amount", "Surity",
] + SURETY_HEADERS

MONTHLY_TOTAL_COLUMNS = [
    "CB Thrift Amount", "Loan", "Loan Re payment", "Interest", "Monthly Thrift Amount",
    "Total Amount", "Paid Amount", "Loan Amount", "Thrift", "Total monthly deduction",
]
YEARLY_TOTAL_COLUMNS = [
    "CB Thrift Amount", "Loan", "Total Loan Re payment", "Total Interest",
    "Yearly Thrift Deducted", "Monthly Thrift", "Loan Amount",
]


def _loan_maps(db: Session):
    loans = db.query(Loan).filter(Loan.status == LoanStatus.ACTIVE).all()
    by_borrower: Dict[UUID, Loan] = {}
    surety_counts: Dict[UUID, int] = {}
    for loan in loans:
        by_borrower[loan.borrower_id] = loan
        for link in loan.surety_links:
            surety_counts[link.employee_id] = surety_counts.get(link.employee_id, 0) + 1
    return by_borrower, surety_counts


def _surety_ids(loan: Optional[Loan]) -> List[str]:
    if loan is None:
        return []
    ids = [link.employee.emp_id or "" for link in loan.surety_links]
    if not ids:
        ids = list(loan.surety_emp_ids or [])
    return ids


def _total_row(rows: List[dict], columns: List[str], summed: List[str], label: str) -> dict:
    total = {col: "" for col in columns}
    total["Name of the Employ"] = label
    for col in summed:
        total[col] = sum((r[col] or ZERO for r in rows), ZERO)
    return total


def _report_employees(db: Session) -> List[Employee]:
    return db.query(Employee).filter(Employee.is_active.is_(True)).order_by(Employee.emp_id, Employee.name).all()


def monthly_report(db: Session, month: str) -> dict:
    """One row per active employee for ``month`` plus a TOTAL row."""
    employees = _report_employees(db)
    txns = {tx.employee_id: tx for tx in db.query(Transaction).filter(Transaction.month == month).all()}
    loans, surety_counts = _loan_maps(db)

    rows = []
    for idx, emp in enumerate(employees, start=1):
        tx = txns.get(emp.id)
        loan = loans.get(emp.id)
        thrift = tx.thrift_deduction if tx else (emp.thrift_contribution or ZERO)
        repayment = tx.loan_emi if tx else ZERO
        interest = tx.interest_payment if tx else ZERO
        total_amount = thrift + repayment + interest
        row = {
            "S.No": idx,
            "Emp. ID": emp.emp_id or "",
            "Name of the Employ": emp.name,
            "CB Thrift Amount": tx.cb_thrift_balance if tx else (emp.thrift_balance or ZERO),
            "Loan": tx.loan_balance if tx else (loan.remaining_balance if loan else ZERO),
            "Loan Re payment": repayment,
            "Interest": interest,
            "Monthly Thrift Amount": thrift,
            "Total Amount": total_amount,
            "Paid Amount": tx.paid_amount if tx else ZERO,
            "Surity": surety_counts.get(emp.id, 0),
            "Loan Amount": tx.loan_amount if tx else (loan.emi if loan else ZERO),
            "Thrift": thrift,
            "Total monthly deduction": tx.total_deduction if tx else total_amount,
        }
        sureties = _surety_ids(loan)
        for pos, header in enumerate(SURETY_HEADERS):
            row[header] = sureties[pos] if pos < len(sureties) else ""
        rows.append(row)

    totals = _total_row(rows, MONTHLY_REPORT_COLUMNS, MONTHLY_TOTAL_COLUMNS, "TOTAL")
    return {
        "organization": settings.ORGANIZATION_NAME,
        "society": settings.SOCIETY_NAME,
        "title": display_month(month),
        "month": month,
        "columns": MONTHLY_REPORT_COLUMNS,
        "rows": rows,
        "totals": totals,
    }


def yearly_report(db: Session, year: int) -> dict:
    """Per-employee yearly sums plus current balances, and a GRAND TOTAL row."""
    employees = _report_employees(db)
    loans, surety_counts = _loan_maps(db)
    sums = {
        row.employee_id: row
        for row in db.query(
            Transaction.employee_id,
            func.sum(Transaction.loan_emi).label("loan_emi"),
            func.sum(Transaction.interest_payment).label("interest"),
            func.sum(Transaction.thrift_deduction).label("thrift"),
        ).filter(Transaction.month.like(f"{year}-%")).group_by(Transaction.employee_id).all()
    }

    rows = []
    for idx, emp in enumerate(employees, start=1):
        loan = loans.get(emp.id)
        agg = sums.get(emp.id)
        row = {
            "S.No": idx,
            "Emp. ID": emp.emp_id or "",
            "Name of the Employ": emp.name,
            "CB Thrift Amount": emp.thrift_balance or ZERO,
            "Loan": loan.remaining_balance if loan else ZERO,
            "Total Loan Re payment": Decimal(str(agg.loan_emi or 0)) if agg else ZERO,
            "Total Interest": Decimal(str(agg.interest or 0)) if agg else ZERO,
            "Yearly Thrift Deducted": Decimal(str(agg.thrift or 0)) if agg else ZERO,
            "Monthly Thrift": emp.thrift_contribution or ZERO,
            "Loan Amount": loan.loan_amount if loan else ZERO,
            "Surity": surety_counts.get(emp.id, 0),
        }
        sureties = _surety_ids(loan)
        for pos, header in enumerate(SURETY_HEADERS):
            row[header] = sureties[pos] if pos < len(sureties) else ""
        rows.append(row)

    totals = _total_row(rows, YEARLY_REPORT_COLUMNS, YEARLY_TOTAL_COLUMNS, "GRAND TOTAL")
    return {
        "organization": settings.ORGANIZATION_NAME,
        "society": settings.SOCIETY_NAME,
        "title": f"YEARLY REPORT - {year}",
        "year": year,
        "columns": YEARLY_REPORT_COLUMNS,
        "rows": rows,
        "totals": totals,
    }


def employee_statement(db: Session, employee_id: UUID, year: int) -> dict:
    """One employee's months for ``year`` with a yearly total."""
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if not employee:
        raise ValueError("Employee not found")
    txns = db.query(Transaction).filter(
        Transaction.employee_id == employee_id,
        Transaction.month.like(f"{year}-%"),
    ).order_by(Transaction.month).all()

    months = [{
        "month": tx.month,
        "title": display_month(tx.month),
        "salary": tx.salary,
        "thrift_deduction": tx.thrift_deduction,
        "loan_emi": tx.loan_emi,
        "interest_payment": tx.interest_payment,
        "principal_repayment": tx.principal_repayment,
        "total_deduction": tx.total_deduction,
        "net_salary": tx.net_salary,
        "cb_thrift_balance": tx.cb_thrift_balance,
        "loan_balance": tx.loan_balance,
    } for tx in txns]

    totals = {
        key: sum((m[key] or ZERO for m in months), ZERO)
        for key in ("thrift_deduction", "loan_emi", "interest_payment", "principal_repayment", "total_deduction")
    }
    loan = employee.active_loan
    return {
        "employee_id": str(employee.id),
        "emp_id": employee.emp_id,
        "name": employee.name,
        "department": employee.department,
        "year": year,
        "thrift_balance": employee.thrift_balance,
        "thrift_contribution": employee.thrift_contribution,
        "loan_outstanding": loan.remaining_balance if loan is not None and loan.status == LoanStatus.ACTIVE else ZERO,
        "months": months,
        "totals": totals,
    }


def monthly_history(db: Session) -> List[dict]:
    """Live months aggregated from transactions merged with archived months, newest first."""
    live = db.query(
        Transaction.month,
        func.count(Transaction.id),
        func.sum(Transaction.thrift_deduction),
        func.sum(Transaction.loan_emi),
        func.sum(Transaction.total_deduction),
    ).group_by(Transaction.month).all()

    logs_by_month: Dict[str, MonthlyUploadLog] = {}
    for log in db.query(MonthlyUploadLog).filter(
        MonthlyUploadLog.file_type == UploadFileType.MONTHLY
    ).order_by(MonthlyUploadLog.created_at.desc()).all():
        if log.month and log.month not in logs_by_month:
            logs_by_month[log.month] = log

    history = {}
    for month, count, thrift, emi, deduction in live:
        log = logs_by_month.get(month)
        history[month] = {
            "month": month,
            "employee_count": count,
            "total_thrift": Decimal(str(thrift or 0)),
            "total_emi": Decimal(str(emi or 0)),
            "total_deduction": Decimal(str(deduction or 0)),
            "uploaded_on": log.created_at if log else None,
            "file_name": log.file_name if log else None,
            "data_status": "live",
        }
    for archived in db.query(ArchivedMonth).all():
        if archived.month in history:
            continue
        history[archived.month] = {
            "month": archived.month,
            "employee_count": archived.employee_count,
            "total_thrift": archived.total_thrift,
            "total_emi": archived.total_emi,
            "total_deduction": archived.total_deduction,
            "uploaded_on": archived.archived_at,
            "file_name": None,
            "data_status": "archived",
        }
    return sorted(history.values(), key=lambda h: h["month"], reverse=True)


def dashboard_stats(db: Session, month: str = None) -> dict:
    month = month or date.today().strftime("%Y-%m")
    total_thrift = db.query(func.sum(Employee.thrift_balance)).filter(Employee.is_active.is_(True)).scalar()
    summary = db.query(
        func.sum(Transaction.salary),
        func.sum(Transaction.thrift_deduction),
        func.sum(Transaction.loan_emi),
    ).filter(Transaction.month == month).one()
    return {
        "total_employees": db.query(Employee).filter(Employee.is_active.is_(True)).count(),
        "total_thrift": Decimal(str(total_thrift or 0)),
        "active_loans": db.query(Loan).filter(Loan.status == LoanStatus.ACTIVE).count(),
        "month": month,
        "monthly_summary": {
            "total_salary": Decimal(str(summary[0] or 0)),
            "total_thrift": Decimal(str(summary[1] or 0)),
            "total_emi": Decimal(str(summary[2] or 0)),
        },
    }
