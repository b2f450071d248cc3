"""Apply employee and monthly spreadsheets to the ledger.

Every row is its own unit of work: it is applied and committed, or rolled
back and recorded in the batch error log. Only a missing header row rejects
the whole file.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.security import AccountCredentialIssuer, CredentialIssuer
from app.db.repository import LedgerRepository
from app.models.member import Employee
from app.models.system import MonthlyUploadLog, UploadFileType, UploadStatus
from app.models.transaction import LoanStatus
from app.services.columns import StructuralError, column_summary, detect_header_row
from app.services.loans import LoanFields, LoanLinkError, apply_repayment, link_loan
from app.services.normalizer import (
    EmployeeRecord,
    MonthlyRecord,
    RowError,
    RowIssue,
    employee_layout,
    iter_data_rows,
    monthly_layout,
    normalize_employee_row,
    normalize_monthly_row,
)
from app.services.workbook import read_first_sheet, resolve_upload_month

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# Anything a single row can raise without taking the batch down
ROW_FAILURES = (RowError, LoanLinkError, SQLAlchemyError, ArithmeticError, ValueError)

ProgressCallback = Callable[[int, int], None]


@dataclass
class Resolved:
    employee: Employee
    via: str  # "emp_id" or "name"


@dataclass
class Ambiguous:
    candidates: List[Employee]


@dataclass
class NotFound:
    pass


EmployeeResolution = Union[Resolved, Ambiguous, NotFound]


def resolve_employee(repo: LedgerRepository, emp_id: Optional[str], name: Optional[str]) -> EmployeeResolution:
    """Exact emp ID first, then normalized name; never guesses between several."""
    if emp_id:
        employee = repo.find_employee(emp_id=emp_id, for_update=True)
        if employee is not None:
            return Resolved(employee, "emp_id")
    if name:
        matches = repo.find_employees_by_name(name)
        if len(matches) == 1:
            return Resolved(matches[0], "name")
        if len(matches) > 1:
            return Ambiguous(matches)
    return NotFound()


@dataclass
class BatchResult:
    log: MonthlyUploadLog
    month: Optional[str] = None
    warnings: List[RowIssue] = field(default_factory=list)
    skipped_existing: List[dict] = field(default_factory=list)
    created_users: List[dict] = field(default_factory=list)
    column_summary: List[dict] = field(default_factory=list)
    transactions_created: int = 0
    transactions_updated: int = 0


def _row_failure_message(exc: Exception) -> str:
    if isinstance(exc, RowError):
        return exc.message
    if isinstance(exc, SQLAlchemyError):
        return f"Database error: {exc.__class__.__name__}: {getattr(exc, 'orig', None) or exc}"
    return str(exc)


def _finish_log(repo: LedgerRepository, log: MonthlyUploadLog, errors: List[dict]) -> MonthlyUploadLog:
    log.error_log = errors
    log.failure_count = len(errors)
    log.status = UploadStatus.COMPLETED if not errors else UploadStatus.COMPLETED_WITH_ERRORS
    return repo.save_upload_log(log)


# ---------------------------------------------------------------------------
# Employee upload
# ---------------------------------------------------------------------------

def find_existing_employee(repo: LedgerRepository, record: EmployeeRecord) -> Tuple[Optional[Employee], Optional[str]]:
    """Already-registered employee for an upload row, by emp ID, email, then name.

    Returns ``(employee, key description)`` or ``(None, None)``. The name
    match is case- and whitespace-insensitive. A member already filed under
    a different emp ID is a different person and never matches by name.
    """
    if record.emp_id:
        employee = repo.find_employee(emp_id=record.emp_id)
        if employee is not None:
            return employee, f"Emp.ID: {record.emp_id}"
    if record.email:
        employee = repo.find_employee(email=record.email)
        if employee is not None:
            return employee, f"Email: {record.email}"
    matches = [
        e for e in repo.find_employees_by_name(record.name)
        if not record.emp_id or not e.emp_id
    ]
    if matches:
        return matches[0], f"Name: {record.name}"
    return None, None


def import_employees(
    db: Session,
    content: bytes,
    file_name: str,
    actor: str = None,
    issuer: CredentialIssuer = None,
    progress: ProgressCallback = None,
) -> BatchResult:
    """Create employees that do not exist yet; existing ones are only reported."""
    repo = LedgerRepository(db)
    issuer = issuer or AccountCredentialIssuer(db)

    rows = read_first_sheet(content)
    header_index = detect_header_row(rows, "employees")
    layout = employee_layout(rows[header_index])
    data_rows = list(iter_data_rows(rows, header_index, layout))
    logger.info("Employee upload %s: header at row %d, %d data rows", file_name, header_index + 1, len(data_rows))

    result = BatchResult(
        log=MonthlyUploadLog(uploaded_by=actor, file_name=file_name, file_type=UploadFileType.EMPLOYEES),
        column_summary=column_summary(layout.mapping),
    )
    errors: List[dict] = []
    success = 0

    for done, (row_number, cells) in enumerate(data_rows, start=1):
        try:
            record, warnings = normalize_employee_row(cells, layout, row_number)

            existing, key = find_existing_employee(repo, record)
            if existing is not None:
                result.warnings.extend(warnings)
                result.skipped_existing.append({
                    "row": row_number,
                    "name": record.name,
                    "emp_id": record.emp_id,
                    "reason": f"Already exists ({key})",
                })
                continue

            employee = Employee(
                emp_id=record.emp_id,
                name=record.name,
                email=record.email,
                department=record.department,
                designation=record.designation,
                phone=record.phone,
                pan=record.pan,
                aadhaar=record.aadhaar,
                salary=record.salary,
                thrift_contribution=record.thrift_contribution,
                thrift_balance=record.closing_balance,
                loan_status=record.loan_status,
            )
            repo.save_employee(employee)
            credentials = issuer.issue(employee)
            repo.commit()
            result.warnings.extend(warnings)

            result.created_users.append({
                "employee_id": str(employee.id),
                "emp_id": employee.emp_id,
                "name": employee.name,
                "email": employee.email,
                "username": credentials.username,
                "password": credentials.password,
            })
            success += 1
        except ROW_FAILURES as e:
            repo.rollback()
            message = _row_failure_message(e)
            logger.warning("Employee upload %s row %d failed: %s", file_name, row_number, message)
            errors.append({"row": row_number, "error": message})
        finally:
            if progress:
                progress(done, len(data_rows))

    log = result.log
    log.total_records = len(data_rows)
    log.success_count = success
    log.skipped_count = len(result.skipped_existing)
    log.warning_count = len(result.warnings)
    result.log = _finish_log(repo, log, errors)
    logger.info(
        "Employee upload %s finished: %d created, %d skipped, %d failed",
        file_name, success, len(result.skipped_existing), len(errors),
    )
    return result


# ---------------------------------------------------------------------------
# Monthly upload
# ---------------------------------------------------------------------------

def apply_monthly_record(
    repo: LedgerRepository,
    employee: Employee,
    record: MonthlyRecord,
    month: str,
    actor: str = None,
    source: str = None,
) -> tuple:
    """Write one row's effects on the employee, loan and transaction.

    Returns ``(created, warnings)`` where ``created`` tells whether the
    transaction for (employee, month) is new.
    """
    warnings: List[RowIssue] = []

    if record.phone:
        employee.phone = record.phone

    thrift_deduction = record.thrift_deduction
    if thrift_deduction > 0:
        employee.thrift_contribution = thrift_deduction

    if record.closing_balance is not None:
        employee.thrift_balance = record.closing_balance
    else:
        warnings.append(RowIssue(record.row, "CB Thrift Amount", "No closing balance; thrift balance left unchanged"))

    loan_balance = record.loan_balance
    if record.loan_balance > 0:
        _, loan_warnings = link_loan(repo, employee, LoanFields.from_record(record, month), actor)
        warnings.extend(RowIssue(record.row, "Loan", w) for w in loan_warnings)
    elif not record.loan_balance_given and record.loan_repayment > 0:
        loan = apply_repayment(repo, employee, record.principal_repayment, record.emi_total)
        if loan is not None:
            loan_balance = loan.remaining_balance
    elif record.loan_balance_given and employee.active_loan is not None \
            and employee.active_loan.status == LoanStatus.ACTIVE:
        warnings.append(RowIssue(
            record.row, "Loan",
            "Loan balance is 0; the active loan stays open until it is closed manually",
        ))

    repo.save_employee(employee)

    salary = employee.salary or ZERO
    total_deduction = record.effective_total_deduction
    fields = {
        "salary": salary,
        "thrift_deduction": thrift_deduction,
        "loan_emi": record.loan_repayment,
        "interest_payment": record.interest,
        "principal_repayment": record.principal_repayment,
        "loan_amount": record.emi_total,
        "total_deduction": total_deduction,
        "paid_amount": record.paid_amount,
        "net_salary": salary - total_deduction if salary > 0 else ZERO,
        "cb_thrift_balance": record.closing_balance if record.closing_balance is not None else employee.thrift_balance,
        "loan_balance": loan_balance,
        "remarks": f"Imported from {source}" if source else None,
    }
    _, created = repo.upsert_transaction(employee.id, month, fields)
    return created, warnings


def import_monthly(
    db: Session,
    content: bytes,
    file_name: str,
    month: str = None,
    actor: str = None,
    progress: ProgressCallback = None,
) -> BatchResult:
    """Apply a monthly deduction sheet; re-uploading a month updates it in place."""
    repo = LedgerRepository(db)

    rows = read_first_sheet(content)
    upload_month = resolve_upload_month(month, rows)
    header_index = detect_header_row(rows, "monthly")
    layout = monthly_layout(rows[header_index])
    if not layout.has("emp_id") and not layout.has("name"):
        raise StructuralError('Could not find "Emp. ID" or "Name" column')
    data_rows = list(iter_data_rows(rows, header_index, layout))
    logger.info(
        "Monthly upload %s for %s: header at row %d, %d data rows",
        file_name, upload_month, header_index + 1, len(data_rows),
    )

    result = BatchResult(
        log=MonthlyUploadLog(
            uploaded_by=actor,
            file_name=file_name,
            file_type=UploadFileType.MONTHLY,
            month=upload_month,
        ),
        month=upload_month,
        column_summary=column_summary(layout.mapping),
    )
    errors: List[dict] = []
    success = 0

    for done, (row_number, cells) in enumerate(data_rows, start=1):
        try:
            record, warnings = normalize_monthly_row(cells, layout, row_number)

            resolution = resolve_employee(repo, record.emp_id, record.name)
            if isinstance(resolution, Ambiguous):
                raise RowError(
                    row_number,
                    f'Name "{record.name}" matches {len(resolution.candidates)} employees; add the Emp. ID',
                )
            if isinstance(resolution, NotFound):
                raise RowError(
                    row_number,
                    f'Employee not found (Emp.ID: {record.emp_id or "N/A"}, Name: "{record.name or "N/A"}")',
                )
            if resolution.via == "name":
                warnings.append(RowIssue(
                    row_number, "Emp. ID",
                    f'Matched by name "{record.name}" (Emp.ID: {record.emp_id or "N/A"})',
                ))

            created, applied_warnings = apply_monthly_record(
                repo, resolution.employee, record, upload_month, actor,
                source=file_name,
            )
            repo.commit()

            result.warnings.extend(warnings)
            result.warnings.extend(applied_warnings)
            if created:
                result.transactions_created += 1
            else:
                result.transactions_updated += 1
            success += 1
        except ROW_FAILURES as e:
            repo.rollback()
            message = _row_failure_message(e)
            logger.warning("Monthly upload %s row %d failed: %s", file_name, row_number, message)
            errors.append({"row": row_number, "error": message})
        finally:
            if progress:
                progress(done, len(data_rows))

    log = result.log
    log.total_records = len(data_rows)
    log.success_count = success
    log.warning_count = len(result.warnings)
    result.log = _finish_log(repo, log, errors)
    logger.info(
        "Monthly upload %s for %s finished: %d applied (%d new, %d updated), %d failed",
        file_name, upload_month, success, result.transactions_created,
        result.transactions_updated, len(errors),
    )
    return result


def get_upload_log(db: Session, log_id: UUID) -> Optional[MonthlyUploadLog]:
    return db.query(MonthlyUploadLog).filter(MonthlyUploadLog.id == log_id).first()


def list_upload_logs(db: Session, limit: int = 50) -> List[MonthlyUploadLog]:
    return db.query(MonthlyUploadLog).order_by(MonthlyUploadLog.created_at.desc()).limit(limit).all()
