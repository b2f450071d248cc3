"""
Thrift Society Ledger - Test Configuration

Pytest fixtures: an in-memory SQLite session per test, employee and loan
factories, and an API client bound to the session.
"""

from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.db.base import Base, enable_sqlite_savepoints, get_db
from app.main import app as fastapi_app
from app.models.member import Employee
from app.models.transaction import Loan, LoanStatus


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    """Fresh database session for each test."""
    TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def audit_dir(tmp_path, monkeypatch):
    """Keep audit files out of the project tree."""
    logs_dir = tmp_path / "logs"
    monkeypatch.setattr("app.core.audit.LOGS_DIR", logs_dir)
    return logs_dir


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """API client whose requests share the test session."""

    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest.fixture
def make_employee(db: Session):
    """Factory for persisted employees."""

    def _make(emp_id: str, name: str, thrift_balance="0", salary="30000",
              thrift_contribution="1000", **extra) -> Employee:
        employee = Employee(
            emp_id=emp_id,
            name=name,
            salary=Decimal(salary),
            thrift_contribution=Decimal(thrift_contribution),
            thrift_balance=Decimal(thrift_balance),
            **extra,
        )
        db.add(employee)
        db.commit()
        db.refresh(employee)
        return employee

    return _make


@pytest.fixture
def make_loan(db: Session):
    """Factory for an active loan already linked to its borrower."""

    def _make(borrower: Employee, balance="50000", emi="2500", rate="12.0") -> Loan:
        loan = Loan(
            borrower=borrower,
            loan_amount=Decimal(balance),
            remaining_balance=Decimal(balance),
            emi=Decimal(emi),
            interest_rate=Decimal(rate),
            status=LoanStatus.ACTIVE,
            surety_emp_ids=[],
        )
        db.add(loan)
        borrower.active_loan = loan
        borrower.loan_status = "Loan"
        db.commit()
        db.refresh(loan)
        return loan

    return _make
