import secrets
import string
from dataclasses import dataclass
from typing import Protocol

import bcrypt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.member import Employee
from app.models.user import UserAccount, UserRoleEnum


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its bcrypt hash."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def generate_temp_password(length: int = None) -> str:
    """Random lowercase-alphanumeric password handed out once on account creation."""
    length = length or settings.TEMP_PASSWORD_LENGTH
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass(frozen=True)
class IssuedCredentials:
    username: str
    password: str


class CredentialIssuer(Protocol):
    """Creates a login for a freshly imported employee.

    Implementations may add rows to the session but must not commit it; the
    caller commits the employee and the account together.
    """

    def issue(self, employee: Employee) -> IssuedCredentials:
        ...


class AccountCredentialIssuer:
    """Default issuer: one UserAccount per employee, username = emp ID."""

    def __init__(self, db: Session):
        self.db = db

    def issue(self, employee: Employee) -> IssuedCredentials:
        if employee.id is None:
            self.db.flush()
        username = str(employee.emp_id) if employee.emp_id else f"emp_{employee.id}"
        password = generate_temp_password()
        account = UserAccount(
            username=username,
            password_hash=get_password_hash(password),
            role=UserRoleEnum.EMPLOYEE,
            employee_id=employee.id,
            must_change_password=True,
        )
        self.db.add(account)
        return IssuedCredentials(username=username, password=password)
