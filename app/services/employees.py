import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.security import AccountCredentialIssuer, CredentialIssuer, IssuedCredentials
from app.db.repository import LedgerRepository
from app.models.member import Employee

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "emp_id", "name", "email", "phone", "department", "designation",
    "pan", "aadhaar", "salary", "thrift_contribution",
)


class DuplicateEmployeeError(Exception):
    """Emp ID or email already belongs to another employee."""


def _check_unique(repo: LedgerRepository, emp_id: Optional[str], email: Optional[str],
                  exclude_id: Optional[UUID] = None):
    if emp_id:
        other = repo.find_employee(emp_id=emp_id)
        if other and other.id != exclude_id:
            raise DuplicateEmployeeError(f"Emp. ID {emp_id} already in use")
    if email:
        other = repo.find_employee(email=email)
        if other and other.id != exclude_id:
            raise DuplicateEmployeeError("Email already in use")


def create_employee(
    db: Session,
    data: dict,
    issuer: CredentialIssuer = None,
) -> Tuple[Employee, IssuedCredentials]:
    """Create one employee together with a login account."""
    repo = LedgerRepository(db)
    _check_unique(repo, data.get("emp_id"), data.get("email"))

    employee = Employee(**{k: v for k, v in data.items() if v is not None})
    repo.save_employee(employee)
    credentials = (issuer or AccountCredentialIssuer(db)).issue(employee)
    db.commit()
    db.refresh(employee)
    logger.info("Created employee %s (%s)", employee.emp_id, employee.name)
    return employee, credentials


def update_employee(db: Session, employee_id: UUID, updates: dict) -> Employee:
    """Update profile fields. Balances change only through adjustments."""
    repo = LedgerRepository(db)
    employee = repo.find_employee_by_id(employee_id, for_update=True)
    if not employee:
        raise ValueError("Employee not found")

    updates = {k: v for k, v in updates.items() if k in PROFILE_FIELDS and v is not None}
    _check_unique(repo, updates.get("emp_id"), updates.get("email"), exclude_id=employee.id)

    for key, value in updates.items():
        setattr(employee, key, value)
    db.commit()
    db.refresh(employee)
    return employee


def deactivate_employee(db: Session, employee_id: UUID) -> Employee:
    """Soft delete: the employee leaves dividend runs but keeps its history."""
    repo = LedgerRepository(db)
    employee = repo.find_employee_by_id(employee_id, for_update=True)
    if not employee:
        raise ValueError("Employee not found")
    employee.is_active = False
    db.commit()
    db.refresh(employee)
    logger.info("Deactivated employee %s", employee.emp_id)
    return employee


def get_employee(db: Session, employee_id: UUID) -> Optional[Employee]:
    return LedgerRepository(db).find_employee_by_id(employee_id)


def list_employees(db: Session, include_inactive: bool = False, search: str = None) -> List[Employee]:
    query = db.query(Employee)
    if not include_inactive:
        query = query.filter(Employee.is_active.is_(True))
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Employee.name).like(pattern),
            func.lower(Employee.emp_id).like(pattern),
            func.lower(Employee.email).like(pattern),
        ))
    return query.order_by(Employee.emp_id, Employee.name).all()
