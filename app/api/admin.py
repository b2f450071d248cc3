from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, status
from sqlalchemy.orm import Session
from typing import Optional, List
from uuid import UUID

from app.db.base import get_db
from app.core.audit import write_audit_log
from app.core.dependencies import get_actor, get_credential_issuer
from app.core.security import CredentialIssuer
from app.schemas.upload import (
    EmployeeUploadResult,
    MonthlyUploadResult,
    UploadLogResponse,
)
from app.schemas.dividend import DividendRequest, DividendResponse
from app.schemas.employee import (
    AdjustmentResponse,
    EmployeeCreate,
    EmployeeCreatedResponse,
    EmployeeResponse,
    EmployeeUpdate,
    LoanAdjustment,
    LoanCloseRequest,
    LoanResponse,
    SalaryAdjustment,
    ThriftAdjustment,
)
from app.services.adjustments import AdjustmentError, adjust_loan, adjust_salary, adjust_thrift, employee_history
from app.services.archive import archive_old_months
from app.services.columns import StructuralError
from app.services.dividend import run_yearly_dividend
from app.services.employees import (
    DuplicateEmployeeError,
    create_employee,
    deactivate_employee,
    get_employee,
    list_employees,
    update_employee,
)
from app.services.ingestion import get_upload_log, import_employees, import_monthly, list_upload_logs
from app.services.loans import LoanLinkError, close_loan, reconcile_sureties, relink_orphaned_loans
from app.services.scheduler import get_scheduler_status

router = APIRouter(prefix="/api/admin", tags=["admin"])

SPREADSHEET_SUFFIXES = (".xlsx", ".xlsm")


def _read_upload(file: UploadFile) -> bytes:
    if not file.filename or not file.filename.lower().endswith(SPREADSHEET_SUFFIXES):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only .xlsx workbooks are accepted",
        )
    return file.file.read()


def _issue_list(issues) -> List[dict]:
    return [issue.as_dict() for issue in issues]


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------

@router.post("/upload/employees", response_model=EmployeeUploadResult, status_code=status.HTTP_201_CREATED)
def upload_employees(
    file: UploadFile = File(...),
    actor: str = Depends(get_actor),
    issuer: CredentialIssuer = Depends(get_credential_issuer),
    db: Session = Depends(get_db)
):
    """Create employees from a workbook. Existing employees are reported, never overwritten."""
    content = _read_upload(file)
    try:
        result = import_employees(db, content, file.filename, actor=actor, issuer=issuer)
    except StructuralError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    log = result.log
    write_audit_log(
        actor, "Employee upload",
        f"file={file.filename} created={log.success_count} skipped={log.skipped_count} failed={log.failure_count}",
    )
    return {
        "log": UploadLogResponse.model_validate(log),
        "created_users": result.created_users,
        "skipped_existing": result.skipped_existing,
        "warnings": _issue_list(result.warnings),
        "column_summary": result.column_summary,
    }


@router.post("/upload/monthly", response_model=MonthlyUploadResult, status_code=status.HTTP_201_CREATED)
def upload_monthly(
    file: UploadFile = File(...),
    month: Optional[str] = Form(None),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Apply a monthly deduction sheet (YYYY-MM month optional, otherwise detected)."""
    content = _read_upload(file)
    try:
        result = import_monthly(db, content, file.filename, month=month, actor=actor)
    except StructuralError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    log = result.log
    write_audit_log(
        actor, "Monthly upload",
        f"file={file.filename} month={result.month} applied={log.success_count} failed={log.failure_count}",
    )
    return {
        "log": UploadLogResponse.model_validate(log),
        "uploaded_month": result.month,
        "transactions_created": result.transactions_created,
        "transactions_updated": result.transactions_updated,
        "warnings": _issue_list(result.warnings),
        "column_summary": result.column_summary,
    }


@router.get("/uploads", response_model=List[UploadLogResponse])
def get_upload_history(
    limit: int = 50,
    db: Session = Depends(get_db)
):
    """Most recent ingestion batches."""
    return list_upload_logs(db, limit=limit)


@router.get("/uploads/{log_id}", response_model=UploadLogResponse)
def get_upload_details(log_id: UUID, db: Session = Depends(get_db)):
    log = get_upload_log(db, log_id)
    if not log:
        raise HTTPException(status_code=404, detail="Upload not found")
    return log


# ---------------------------------------------------------------------------
# Dividend
# ---------------------------------------------------------------------------

@router.post("/dividend", response_model=DividendResponse)
def yearly_dividend(
    request: DividendRequest,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Compute (and unless previewing, apply) the yearly dividend."""
    run = run_yearly_dividend(
        db,
        share_capital=request.share_capital,
        bank_balance=request.bank_balance,
        cash_in_hand=request.cash_in_hand,
        year=request.year,
        actor=actor,
        preview=request.preview,
    )
    if not run.preview:
        write_audit_log(
            actor, "Yearly dividend",
            f"year={run.year} rate={run.formula.display_rate} changed={run.total_changed} errors={run.total_errors}",
        )
    verb = "previewed" if run.preview else "completed"
    return {
        "message": f"Yearly thrift update {verb} for {run.year}",
        "year": run.year,
        "preview": run.preview,
        "total_processed": run.total_processed,
        "total_changed": run.total_changed,
        "total_errors": run.total_errors,
        "formula": run.formula.as_dict(),
        "results": run.results,
        "errors": run.errors,
    }


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------

@router.get("/employees", response_model=List[EmployeeResponse])
def get_employees(
    include_inactive: bool = False,
    search: Optional[str] = None,
    db: Session = Depends(get_db)
):
    return list_employees(db, include_inactive=include_inactive, search=search)


@router.get("/employees/{employee_id}", response_model=EmployeeResponse)
def get_employee_details(employee_id: UUID, db: Session = Depends(get_db)):
    employee = get_employee(db, employee_id)
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee


@router.post("/employees", response_model=EmployeeCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_single_employee(
    payload: EmployeeCreate,
    actor: str = Depends(get_actor),
    issuer: CredentialIssuer = Depends(get_credential_issuer),
    db: Session = Depends(get_db)
):
    """Create one employee and return its one-time credentials."""
    try:
        employee, credentials = create_employee(db, payload.model_dump(), issuer=issuer)
    except DuplicateEmployeeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    write_audit_log(actor, "Create employee", f"emp_id={employee.emp_id} name={employee.name}")
    return {"employee": employee, "username": credentials.username, "password": credentials.password}


@router.put("/employees/{employee_id}", response_model=EmployeeResponse)
def update_employee_details(
    employee_id: UUID,
    payload: EmployeeUpdate,
    db: Session = Depends(get_db)
):
    try:
        return update_employee(db, employee_id, payload.model_dump(exclude_unset=True))
    except DuplicateEmployeeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/employees/{employee_id}", response_model=EmployeeResponse)
def remove_employee(
    employee_id: UUID,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Deactivate an employee. Transactions and audit history are kept."""
    try:
        employee = deactivate_employee(db, employee_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    write_audit_log(actor, "Deactivate employee", f"emp_id={employee.emp_id}")
    return employee


@router.get("/employees/{employee_id}/history", response_model=List[AdjustmentResponse])
def get_adjustment_history(employee_id: UUID, db: Session = Depends(get_db)):
    try:
        return employee_history(db, employee_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/employees/{employee_id}/adjust-salary", response_model=EmployeeResponse)
def salary_adjustment(
    employee_id: UUID,
    payload: SalaryAdjustment,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    try:
        return adjust_salary(db, employee_id, payload.new_salary, payload.remarks, actor=actor)
    except AdjustmentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/employees/{employee_id}/adjust-thrift", response_model=EmployeeResponse)
def thrift_adjustment(
    employee_id: UUID,
    payload: ThriftAdjustment,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    try:
        return adjust_thrift(
            db, employee_id,
            new_contribution=payload.new_contribution,
            new_balance=payload.new_balance,
            remarks=payload.remarks,
            actor=actor,
        )
    except AdjustmentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/employees/{employee_id}/adjust-loan", response_model=LoanResponse)
def loan_adjustment(
    employee_id: UUID,
    payload: LoanAdjustment,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    try:
        return adjust_loan(
            db, employee_id,
            loan_amount=payload.loan_amount,
            emi=payload.emi,
            interest_rate=payload.interest_rate,
            remarks=payload.remarks,
            actor=actor,
        )
    except AdjustmentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ---------------------------------------------------------------------------
# Loans
# ---------------------------------------------------------------------------

@router.post("/loans/{loan_id}/close", response_model=LoanResponse)
def close_active_loan(
    loan_id: UUID,
    payload: Optional[LoanCloseRequest] = None,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Close a loan. Uploads never close loans on their own."""
    try:
        loan = close_loan(db, loan_id, actor=actor, remarks=payload.remarks if payload else None)
    except LoanLinkError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    write_audit_log(actor, "Close loan", f"loan_id={loan.id}")
    return loan


@router.post("/loans/reconcile-sureties")
def reconcile_loan_sureties(
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Link surety IDs that were unknown when their loan was imported."""
    result = reconcile_sureties(db)
    write_audit_log(actor, "Reconcile sureties", f"links_added={result['links_added']}")
    return result


@router.post("/loans/relink")
def relink_loans(
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    result = relink_orphaned_loans(db)
    write_audit_log(actor, "Relink loans", f"relinked={result['relinked']}")
    return result


# ---------------------------------------------------------------------------
# Archive
# ---------------------------------------------------------------------------

@router.post("/archive")
def archive_months(
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Archive transaction months beyond the retention window now."""
    result = archive_old_months(db)
    if result["archived_months"]:
        write_audit_log(actor, "Archive months", ", ".join(result["archived_months"]))
    return result


@router.get("/scheduler/status")
def scheduler_status():
    return get_scheduler_status()
