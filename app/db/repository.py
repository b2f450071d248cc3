"""Persistence boundary used by the ingestion, loan and dividend services.

The services never build queries themselves; everything goes through
``LedgerRepository`` so the storage rules (row locks, upserts, aggregate sums)
live in one place.
"""
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.adjustment import AdjustmentHistory
from app.models.member import Employee
from app.models.system import MonthlyUploadLog
from app.models.transaction import Loan, LoanStatus, Transaction


def normalize_name(value) -> str:
    """Trim, collapse inner whitespace and lowercase a person name."""
    if value is None:
        return ""
    return " ".join(str(value).split()).lower()


class LedgerRepository:
    def __init__(self, db: Session):
        self.db = db

    # -- employees -------------------------------------------------------

    def find_employee(self, emp_id: Optional[str] = None, email: Optional[str] = None,
                      for_update: bool = False) -> Optional[Employee]:
        """Look up an employee by business key: emp ID first, then email."""
        if emp_id:
            query = self.db.query(Employee).filter(Employee.emp_id == str(emp_id))
            if for_update:
                query = query.with_for_update()
            employee = query.first()
            if employee:
                return employee
        if email:
            query = self.db.query(Employee).filter(func.lower(Employee.email) == email.lower())
            if for_update:
                query = query.with_for_update()
            return query.first()
        return None

    def find_employee_by_id(self, employee_id: UUID, for_update: bool = False) -> Optional[Employee]:
        query = self.db.query(Employee).filter(Employee.id == employee_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def find_employees_by_name(self, name: str) -> List[Employee]:
        """All employees whose normalized name equals ``name`` normalized."""
        target = normalize_name(name)
        if not target:
            return []
        # Case-insensitive prefilter in SQL, whitespace-insensitive compare in Python
        first_token = target.split(" ")[0]
        candidates = self.db.query(Employee).filter(
            func.lower(Employee.name).like(f"%{first_token}%")
        ).all()
        return [e for e in candidates if normalize_name(e.name) == target]

    def list_employees(self, active_only: bool = True, for_update: bool = False) -> List[Employee]:
        query = self.db.query(Employee)
        if active_only:
            query = query.filter(Employee.is_active.is_(True))
        if for_update:
            query = query.with_for_update()
        return query.order_by(Employee.emp_id, Employee.name).all()

    def employees_without_active_loan(self) -> List[Employee]:
        return self.db.query(Employee).filter(Employee.active_loan_id.is_(None)).all()

    def save_employee(self, employee: Employee) -> Employee:
        self.db.add(employee)
        self.db.flush()
        return employee

    # -- transactions ----------------------------------------------------

    def upsert_transaction(self, employee_id: UUID, month: str, fields: dict) -> Tuple[Transaction, bool]:
        """Create or update the single transaction for (employee, month).

        Returns ``(transaction, created)``.
        """
        tx = self.db.query(Transaction).filter(
            Transaction.employee_id == employee_id,
            Transaction.month == month,
        ).with_for_update().first()
        created = tx is None
        if created:
            tx = Transaction(employee_id=employee_id, month=month)
            self.db.add(tx)
        for key, value in fields.items():
            setattr(tx, key, value)
        self.db.flush()
        return tx, created

    def transactions_for_month(self, month: str) -> List[Transaction]:
        return self.db.query(Transaction).filter(Transaction.month == month).all()

    # -- audit -----------------------------------------------------------

    def append_audit(self, entry: AdjustmentHistory) -> AdjustmentHistory:
        self.db.add(entry)
        return entry

    # -- loans -----------------------------------------------------------

    def get_loan(self, loan_id: UUID, for_update: bool = False) -> Optional[Loan]:
        query = self.db.query(Loan).filter(Loan.id == loan_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def find_active_loan_for(self, employee_id: UUID) -> Optional[Loan]:
        return self.db.query(Loan).filter(
            Loan.borrower_id == employee_id,
            Loan.status == LoanStatus.ACTIVE,
        ).order_by(Loan.created_at.desc()).first()

    def active_loans(self) -> List[Loan]:
        return self.db.query(Loan).filter(Loan.status == LoanStatus.ACTIVE).all()

    # -- aggregates ------------------------------------------------------

    def total_thrift(self, employees: Iterable[Employee] = None) -> Decimal:
        if employees is not None:
            return sum((e.thrift_balance or Decimal("0.00") for e in employees), Decimal("0.00"))
        total = self.db.query(func.sum(Employee.thrift_balance)).filter(Employee.is_active.is_(True)).scalar()
        return Decimal(str(total)) if total is not None else Decimal("0.00")

    def total_loans_outstanding(self) -> Decimal:
        total = self.db.query(func.sum(Loan.remaining_balance)).filter(
            Loan.status == LoanStatus.ACTIVE
        ).scalar()
        return Decimal(str(total)) if total is not None else Decimal("0.00")

    # -- upload log ------------------------------------------------------

    def save_upload_log(self, log: MonthlyUploadLog) -> MonthlyUploadLog:
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    # -- unit of work ----------------------------------------------------

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    def savepoint(self):
        """Nested transaction; use as a context manager."""
        return self.db.begin_nested()
