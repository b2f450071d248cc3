"""Yearly dividend: redistribute the society's surplus (or deficit) over thrift.

    societyAssets  = totalLoansOutstanding + bankBalance + cashInHand
    societyCapital = totalThrift + shareCapital
    difference     = societyAssets - societyCapital
    ratePerRupee   = difference / totalThrift        (0 when totalThrift is 0)

Each member's dividend is ``ratePerRupee * thriftBalance`` with the unrounded
rate; only the resulting balance is rounded to the paisa.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.repository import LedgerRepository
from app.models.adjustment import AdjustmentAction, AdjustmentHistory
from app.models.member import Employee

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
RATE_DISPLAY = Decimal("0.000001")


class DividendComputationError(Exception):
    """One employee's dividend could not be computed or stored."""

    def __init__(self, employee: Employee, message: str):
        super().__init__(message)
        self.employee = employee
        self.message = message


@dataclass
class DividendFormula:
    total_thrift: Decimal
    total_loans_outstanding: Decimal
    share_capital: Decimal
    bank_balance: Decimal
    cash_in_hand: Decimal
    society_assets: Decimal
    society_capital: Decimal
    difference: Decimal
    rate_per_rupee: Decimal

    @property
    def display_rate(self) -> Decimal:
        return self.rate_per_rupee.quantize(RATE_DISPLAY, rounding=ROUND_HALF_UP)

    def as_dict(self) -> dict:
        return {
            "total_thrift": self.total_thrift,
            "total_loans_outstanding": self.total_loans_outstanding,
            "share_capital": self.share_capital,
            "bank_balance": self.bank_balance,
            "cash_in_hand": self.cash_in_hand,
            "society_assets": self.society_assets,
            "society_capital": self.society_capital,
            "difference": self.difference,
            "rate_per_rupee": self.display_rate,
        }

    def describe(self) -> str:
        return (
            f"((Loans:{self.total_loans_outstanding} + Bank:{self.bank_balance} + Cash:{self.cash_in_hand})"
            f" - (Thrift:{self.total_thrift} + ShareCap:{self.share_capital}))"
            f" / TotalThrift:{self.total_thrift}"
        )


@dataclass
class DividendRun:
    year: str
    formula: DividendFormula
    preview: bool = False
    results: List[dict] = field(default_factory=list)
    errors: List[dict] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.results)

    @property
    def total_changed(self) -> int:
        return sum(1 for r in self.results if r["changed"])

    @property
    def total_errors(self) -> int:
        return len(self.errors)


def compute_formula(
    total_thrift: Decimal,
    total_loans_outstanding: Decimal,
    share_capital: Decimal,
    bank_balance: Decimal,
    cash_in_hand: Decimal,
) -> DividendFormula:
    society_assets = total_loans_outstanding + bank_balance + cash_in_hand
    society_capital = total_thrift + share_capital
    difference = society_assets - society_capital
    rate = difference / total_thrift if total_thrift != 0 else Decimal("0")
    return DividendFormula(
        total_thrift=total_thrift,
        total_loans_outstanding=total_loans_outstanding,
        share_capital=share_capital,
        bank_balance=bank_balance,
        cash_in_hand=cash_in_hand,
        society_assets=society_assets,
        society_capital=society_capital,
        difference=difference,
        rate_per_rupee=rate,
    )


def compute_dividend(rate: Decimal, balance: Decimal) -> Tuple[Decimal, Decimal]:
    """Unrounded dividend and the rounded new balance."""
    dividend = rate * balance
    new_balance = (balance + dividend).quantize(CENT, rounding=ROUND_HALF_UP)
    return dividend, new_balance


def _opening_balance(employee: Employee) -> Decimal:
    balance = employee.thrift_balance
    if balance is None:
        raise DividendComputationError(employee, "Thrift balance is missing")
    try:
        balance = Decimal(str(balance))
    except InvalidOperation:
        raise DividendComputationError(employee, f"Malformed thrift balance {employee.thrift_balance!r}")
    if not balance.is_finite():
        raise DividendComputationError(employee, f"Malformed thrift balance {employee.thrift_balance!r}")
    return balance


def _to_amount(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


def run_yearly_dividend(
    db: Session,
    share_capital,
    bank_balance,
    cash_in_hand,
    year: Optional[str] = None,
    actor: str = None,
    preview: bool = False,
) -> DividendRun:
    """Compute the dividend rate and, unless previewing, credit every active member.

    Each employee is written inside its own savepoint; a failure is reported
    in ``errors`` and leaves the other employees untouched.
    """
    year = str(year or date.today().year)
    repo = LedgerRepository(db)

    employees = repo.list_employees(active_only=True, for_update=not preview)
    formula = compute_formula(
        total_thrift=repo.total_thrift(employees),
        total_loans_outstanding=repo.total_loans_outstanding(),
        share_capital=_to_amount(share_capital),
        bank_balance=_to_amount(bank_balance),
        cash_in_hand=_to_amount(cash_in_hand),
    )
    run = DividendRun(year=year, formula=formula, preview=preview)
    logger.info(
        "Dividend %s for %s: %d members, rate per rupee %s",
        "preview" if preview else "run", year, len(employees), formula.display_rate,
    )

    for employee in employees:
        try:
            if preview:
                entry, _ = _evaluate(employee, formula)
            else:
                with repo.savepoint():
                    entry, exact = _evaluate(employee, formula)
                    if entry["changed"]:
                        _apply(repo, employee, entry, exact, formula, year, actor)
            run.results.append(entry)
        except (DividendComputationError, SQLAlchemyError, ArithmeticError, TypeError) as e:
            message = e.message if isinstance(e, DividendComputationError) else str(e)
            logger.warning("Dividend for employee %s failed: %s", employee.emp_id or employee.id, message)
            run.errors.append({
                "employee_id": str(employee.id),
                "emp_id": employee.emp_id,
                "name": employee.name,
                "error": message,
            })

    if not preview:
        repo.commit()
    logger.info(
        "Dividend %s for %s finished: %d processed, %d changed, %d errors",
        "preview" if preview else "run", year, run.total_processed, run.total_changed, run.total_errors,
    )
    return run


def _evaluate(employee: Employee, formula: DividendFormula) -> Tuple[dict, Decimal]:
    old_balance = _opening_balance(employee)
    dividend, new_balance = compute_dividend(formula.rate_per_rupee, old_balance)
    return {
        "employee_id": str(employee.id),
        "emp_id": employee.emp_id,
        "name": employee.name,
        "old_balance": old_balance,
        "dividend": dividend.quantize(CENT, rounding=ROUND_HALF_UP),
        "new_balance": new_balance,
        "changed": new_balance != old_balance,
    }, dividend


def _apply(repo: LedgerRepository, employee: Employee, entry: dict, dividend: Decimal,
           formula: DividendFormula, year: str, actor: str):
    employee.thrift_balance = entry["new_balance"]
    repo.append_audit(AdjustmentHistory(
        employee=employee,
        action_type=AdjustmentAction.DIVIDEND,
        target_field="thrift_balance",
        old_value=entry["old_balance"],
        new_value=entry["new_balance"],
        remarks=(
            f"Yearly thrift update for {year}. Rate per rupee: ₹{formula.rate_per_rupee:.6f}. "
            f"Dividend: ₹{dividend:.2f}. Formula: {formula.describe()}"
        ),
        performed_by=actor,
    ))
    repo.save_employee(employee)
