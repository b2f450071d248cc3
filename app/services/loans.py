"""Loan linking: one active loan per borrower, guarantors kept in sync.

The monthly sheet is the source of truth for a loan's current state, so an
upload overwrites EMI, rate and remaining balance. Closing a loan is never a
side effect of an upload; only ``close_loan`` does it.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple
from uuid import UUID

from app.core.config import settings
from app.db.repository import LedgerRepository
from app.models.adjustment import AdjustmentAction, AdjustmentHistory
from app.models.member import Employee
from app.models.transaction import Loan, LoanStatus, LoanSurety

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class LoanLinkError(Exception):
    """A loan operation that cannot be carried out in the current state."""


@dataclass
class LoanFields:
    """Loan-related values taken from one monthly row."""
    balance: Decimal
    emi: Decimal = ZERO
    repayment: Decimal = ZERO
    interest: Decimal = ZERO
    sureties: List[str] = field(default_factory=list)
    month: Optional[str] = None

    @classmethod
    def from_record(cls, record, month: Optional[str] = None) -> "LoanFields":
        return cls(
            balance=record.loan_balance,
            emi=record.emi_total,
            repayment=record.loan_repayment,
            interest=record.interest,
            sureties=list(record.sureties),
            month=month,
        )

    @property
    def start_date(self) -> date:
        if self.month:
            year, month = self.month.split("-")
            return date(int(year), int(month), 1)
        return date.today().replace(day=1)


def estimate_interest_rate(interest: Decimal, balance: Decimal) -> Decimal:
    """Annual % implied by one month's interest on the balance, 1 decimal place."""
    if interest > 0 and balance > 0:
        return (interest / balance * 1200).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return Decimal(str(settings.DEFAULT_LOAN_INTEREST_RATE))


def _current_loan(repo: LedgerRepository, employee: Employee) -> Optional[Loan]:
    loan = employee.active_loan
    if loan is not None and loan.status == LoanStatus.ACTIVE:
        return loan
    if loan is not None:
        employee.active_loan = None
    orphan = repo.find_active_loan_for(employee.id) if employee.id else None
    if orphan is not None:
        logger.info("Relinking orphaned loan %s to employee %s", orphan.id, employee.emp_id)
        employee.active_loan = orphan
    return orphan


def link_loan(repo: LedgerRepository, employee: Employee, fields: LoanFields,
              actor: str = None) -> Tuple[Loan, List[str]]:
    """Create or refresh the borrower's active loan from a row's loan values.

    Returns the loan and human-readable warnings for the row.
    """
    if fields.balance <= 0:
        raise LoanLinkError("Loan balance must be positive to link a loan")

    warnings: List[str] = []
    loan = _current_loan(repo, employee)

    if loan is None:
        loan = Loan(
            borrower=employee,
            loan_amount=fields.balance,
            remaining_balance=fields.balance,
            interest_rate=estimate_interest_rate(fields.interest, fields.balance),
            emi=fields.emi if fields.emi > 0 else fields.repayment,
            status=LoanStatus.ACTIVE,
            start_date=fields.start_date,
            surety_emp_ids=[],
        )
        repo.db.add(loan)
        employee.active_loan = loan
        logger.info("Created loan of %s for employee %s", fields.balance, employee.emp_id)
    else:
        previous = loan.remaining_balance or ZERO
        if fields.balance > previous:
            delta = fields.balance - previous
            warnings.append(
                f"Loan balance rose from {previous} to {fields.balance}; recorded as a top-up"
            )
            loan.loan_amount = (loan.loan_amount or ZERO) + delta
            repo.append_audit(AdjustmentHistory(
                employee=employee,
                action_type=AdjustmentAction.LOAN,
                target_field="remaining_balance",
                old_value=previous,
                new_value=fields.balance,
                remarks=f"Loan top-up of {delta} detected in {fields.month or 'upload'} sheet",
                performed_by=actor,
            ))
        loan.remaining_balance = fields.balance
        if fields.emi > 0:
            loan.emi = fields.emi
        if fields.interest > 0:
            loan.interest_rate = estimate_interest_rate(fields.interest, fields.balance)

    employee.loan_status = "Loan"

    if fields.sureties:
        warnings.extend(replace_sureties(repo, loan, fields.sureties, employee))

    return loan, warnings


def apply_repayment(repo: LedgerRepository, employee: Employee, principal: Decimal,
                    emi: Decimal = ZERO) -> Optional[Loan]:
    """Reduce the active loan by a month's principal when the sheet gives no balance.

    The balance is floored at 0 and the loan stays active.
    """
    loan = _current_loan(repo, employee)
    if loan is None:
        return None
    previous = loan.remaining_balance or ZERO
    loan.remaining_balance = max(ZERO, previous - principal)
    if emi > 0:
        loan.emi = emi
    logger.info(
        "Loan %s for employee %s reduced from %s to %s by repayment",
        loan.id, employee.emp_id, previous, loan.remaining_balance,
    )
    return loan


def link_guarantor(loan: Loan, guarantor: Employee, position: int = None) -> bool:
    """Attach ``guarantor`` to ``loan`` once. Returns False if already attached."""
    for link in loan.surety_links:
        if link.employee is guarantor or (guarantor.id is not None and link.employee_id == guarantor.id):
            if position is not None:
                link.position = position
            return False
    loan.surety_links.append(LoanSurety(
        employee=guarantor,
        position=position if position is not None else len(loan.surety_links),
    ))
    return True


def _drop_link(repo: LedgerRepository, loan: Loan, link: LoanSurety):
    guarantor = link.employee
    loan.surety_links.remove(link)
    repo.db.flush()
    if guarantor is not None:
        repo.db.expire(guarantor, ["guarantee_links"])


def replace_sureties(repo: LedgerRepository, loan: Loan, raw_ids: List[str],
                     borrower: Employee) -> List[str]:
    """Make the loan's guarantors exactly the employees named in ``raw_ids``.

    IDs that do not resolve are kept in ``surety_emp_ids`` for a later
    ``reconcile_sureties`` run.
    """
    warnings: List[str] = []
    kept_raw: List[str] = []
    resolved: List[Employee] = []

    for raw in raw_ids:
        if borrower.emp_id and raw == borrower.emp_id:
            warnings.append(f"Borrower {raw} listed as own surety; ignored")
            continue
        kept_raw.append(raw)
        guarantor = repo.find_employee(emp_id=raw)
        if guarantor is None:
            warnings.append(f"Surety {raw} not found; kept as unresolved ID")
        elif guarantor not in resolved:
            resolved.append(guarantor)

    wanted = {id(g) for g in resolved}
    for link in list(loan.surety_links):
        if id(link.employee) not in wanted:
            _drop_link(repo, loan, link)

    for position, guarantor in enumerate(resolved):
        link_guarantor(loan, guarantor, position)

    loan.surety_emp_ids = kept_raw
    return warnings


def close_loan(db, loan_id: UUID, actor: str = None, remarks: str = None) -> Loan:
    """Explicitly close a loan and release its guarantors."""
    repo = LedgerRepository(db)
    loan = repo.get_loan(loan_id, for_update=True)
    if not loan:
        raise ValueError("Loan not found")
    if loan.status == LoanStatus.CLOSED:
        raise LoanLinkError("Loan is already closed")

    previous = loan.remaining_balance or ZERO
    loan.status = LoanStatus.CLOSED
    loan.end_date = date.today()
    loan.remaining_balance = ZERO

    borrower = loan.borrower
    if borrower.active_loan_id == loan.id:
        borrower.active_loan = None
    borrower.loan_status = ""

    for link in list(loan.surety_links):
        _drop_link(repo, loan, link)

    repo.append_audit(AdjustmentHistory(
        employee=borrower,
        action_type=AdjustmentAction.LOAN,
        target_field="status",
        old_value=previous,
        new_value=ZERO,
        remarks=remarks or f"Loan closed manually; outstanding balance at closure {previous}",
        performed_by=actor,
    ))
    repo.commit()
    db.refresh(loan)
    logger.info("Loan %s closed by %s", loan.id, actor)
    return loan


def reconcile_sureties(db) -> dict:
    """Link raw surety IDs that now resolve to an employee."""
    repo = LedgerRepository(db)
    loans_touched = 0
    links_added = 0
    for loan in repo.active_loans():
        added_here = 0
        for raw in loan.unresolved_surety_ids:
            guarantor = repo.find_employee(emp_id=raw)
            if guarantor is None or guarantor.id == loan.borrower_id:
                continue
            position = loan.surety_emp_ids.index(raw)
            if link_guarantor(loan, guarantor, position):
                added_here += 1
        if added_here:
            loans_touched += 1
            links_added += added_here
    repo.commit()
    logger.info("Surety reconciliation: %d links added on %d loans", links_added, loans_touched)
    return {"loans_touched": loans_touched, "links_added": links_added}


def relink_orphaned_loans(db) -> dict:
    """Point ``active_loan`` back at an active loan that names the employee as borrower."""
    repo = LedgerRepository(db)
    relinked = 0
    for employee in repo.employees_without_active_loan():
        loan = repo.find_active_loan_for(employee.id)
        if loan is None:
            continue
        employee.active_loan = loan
        employee.loan_status = "Loan"
        relinked += 1
    repo.commit()
    logger.info("Relinked %d orphaned loans", relinked)
    return {"relinked": relinked}
