import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.repository import LedgerRepository
from app.models.adjustment import AdjustmentAction, AdjustmentHistory
from app.models.member import Employee
from app.models.transaction import Loan, LoanStatus

logger = logging.getLogger(__name__)


class AdjustmentError(Exception):
    """Rejected administrative adjustment."""


def _load_employee(repo: LedgerRepository, employee_id: UUID) -> Employee:
    employee = repo.find_employee_by_id(employee_id, for_update=True)
    if not employee:
        raise ValueError("Employee not found")
    return employee


def _non_negative(value: Decimal, label: str) -> Decimal:
    value = Decimal(str(value))
    if value < 0:
        raise AdjustmentError(f"{label} cannot be negative")
    return value


def _audit(repo, employee, action, target_field, old_value, new_value, remarks, actor):
    repo.append_audit(AdjustmentHistory(
        employee=employee,
        action_type=action,
        target_field=target_field,
        old_value=old_value,
        new_value=new_value,
        remarks=remarks,
        performed_by=actor,
    ))


def adjust_salary(
    db: Session,
    employee_id: UUID,
    new_salary: Decimal,
    remarks: Optional[str] = None,
    actor: str = None,
) -> Employee:
    """Change an employee's salary and record the change."""
    repo = LedgerRepository(db)
    employee = _load_employee(repo, employee_id)
    new_salary = _non_negative(new_salary, "Salary")

    old_salary = employee.salary
    employee.salary = new_salary
    _audit(repo, employee, AdjustmentAction.SALARY, "salary", old_salary, new_salary,
           remarks or f"Salary adjusted from ₹{old_salary} to ₹{new_salary}", actor)

    db.commit()
    db.refresh(employee)
    logger.info("Salary of %s adjusted %s -> %s by %s", employee.emp_id, old_salary, new_salary, actor)
    return employee


def adjust_thrift(
    db: Session,
    employee_id: UUID,
    new_contribution: Optional[Decimal] = None,
    new_balance: Optional[Decimal] = None,
    remarks: Optional[str] = None,
    actor: str = None,
) -> Employee:
    """Change the monthly thrift rate and/or the accumulated balance."""
    if new_contribution is None and new_balance is None:
        raise AdjustmentError("Nothing to adjust: give a new contribution or a new balance")

    repo = LedgerRepository(db)
    employee = _load_employee(repo, employee_id)

    if new_contribution is not None:
        new_contribution = _non_negative(new_contribution, "Thrift contribution")
        old = employee.thrift_contribution
        employee.thrift_contribution = new_contribution
        _audit(repo, employee, AdjustmentAction.THRIFT, "thrift_contribution", old, new_contribution,
               remarks or f"Thrift contribution adjusted from ₹{old} to ₹{new_contribution}", actor)

    if new_balance is not None:
        new_balance = _non_negative(new_balance, "Thrift balance")
        old = employee.thrift_balance
        employee.thrift_balance = new_balance
        _audit(repo, employee, AdjustmentAction.THRIFT, "thrift_balance", old, new_balance,
               remarks or f"Thrift balance adjusted from ₹{old} to ₹{new_balance}", actor)

    db.commit()
    db.refresh(employee)
    return employee


def adjust_loan(
    db: Session,
    employee_id: UUID,
    loan_amount: Optional[Decimal] = None,
    emi: Optional[Decimal] = None,
    interest_rate: Optional[Decimal] = None,
    remarks: Optional[str] = None,
    actor: str = None,
) -> Loan:
    """Adjust the employee's active loan.

    A new loan amount is treated as a top-up: the remaining balance moves by
    the same delta.
    """
    if loan_amount is None and emi is None and interest_rate is None:
        raise AdjustmentError("Nothing to adjust: give a loan amount, EMI or interest rate")

    repo = LedgerRepository(db)
    employee = _load_employee(repo, employee_id)
    loan = employee.active_loan
    if loan is None or loan.status != LoanStatus.ACTIVE:
        raise AdjustmentError("Employee has no active loan")

    if loan_amount is not None:
        loan_amount = _non_negative(loan_amount, "Loan amount")
        old_amount = loan.loan_amount
        delta = loan_amount - old_amount
        new_remaining = loan.remaining_balance + delta
        if new_remaining < 0:
            raise AdjustmentError("Loan amount change would make the remaining balance negative")
        loan.loan_amount = loan_amount
        loan.remaining_balance = new_remaining
        _audit(repo, employee, AdjustmentAction.LOAN, "loan_amount", old_amount, loan_amount,
               remarks or f"Loan top-up: ₹{delta}. New total: ₹{loan_amount}", actor)

    if emi is not None:
        emi = _non_negative(emi, "EMI")
        old_emi = loan.emi
        loan.emi = emi
        _audit(repo, employee, AdjustmentAction.LOAN, "emi", old_emi, emi,
               remarks or f"EMI updated from ₹{old_emi} to ₹{emi}", actor)

    if interest_rate is not None:
        interest_rate = _non_negative(interest_rate, "Interest rate")
        old_rate = loan.interest_rate
        loan.interest_rate = interest_rate
        _audit(repo, employee, AdjustmentAction.LOAN, "interest_rate", old_rate, interest_rate,
               remarks or f"Interest rate updated from {old_rate}% to {interest_rate}%", actor)

    db.commit()
    db.refresh(loan)
    return loan


def employee_history(db: Session, employee_id: UUID) -> List[AdjustmentHistory]:
    """Adjustments for one employee, newest first."""
    repo = LedgerRepository(db)
    if not repo.find_employee_by_id(employee_id):
        raise ValueError("Employee not found")
    return db.query(AdjustmentHistory).filter(
        AdjustmentHistory.employee_id == employee_id
    ).order_by(AdjustmentHistory.created_at.desc()).all()
