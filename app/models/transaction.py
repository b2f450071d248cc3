from sqlalchemy import Column, String, ForeignKey, DateTime, Date, Numeric, Integer, Enum as SQLEnum, Text, JSON, UniqueConstraint, Uuid, text, func
from sqlalchemy.orm import relationship
import uuid
import enum
from decimal import Decimal
from app.db.base import Base


class LoanStatus(str, enum.Enum):
    """Loan status. Closing is always an explicit administrative action."""
    ACTIVE = "active"
    CLOSED = "closed"


class Loan(Base):
    """Loan held by one borrower and guaranteed by up to six sureties."""
    __tablename__ = "loan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Uuid(as_uuid=True), ForeignKey("employee.id"), nullable=False, index=True)
    loan_amount = Column(Numeric(14, 2), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)  # annual %
    emi = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    remaining_balance = Column(Numeric(14, 2), nullable=False)
    status = Column(SQLEnum(LoanStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=LoanStatus.ACTIVE, nullable=False, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    # Raw surety emp IDs exactly as they appeared in the last sheet, resolved or not
    surety_emp_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    # Relationships
    borrower = relationship("Employee", back_populates="loans", foreign_keys=[borrower_id])
    surety_links = relationship("LoanSurety", back_populates="loan", order_by="LoanSurety.position", cascade="all, delete-orphan")

    @property
    def sureties(self):
        return [link.employee for link in self.surety_links]

    @property
    def unresolved_surety_ids(self):
        linked = {link.employee.emp_id for link in self.surety_links}
        return [raw for raw in (self.surety_emp_ids or []) if raw not in linked]


class LoanSurety(Base):
    """Guarantor link; the composite key keeps each guarantor at most once per loan."""
    __tablename__ = "loan_surety"

    loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id"), primary_key=True)
    employee_id = Column(Uuid(as_uuid=True), ForeignKey("employee.id"), primary_key=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    loan = relationship("Loan", back_populates="surety_links")
    employee = relationship("Employee", back_populates="guarantee_links")


class Transaction(Base):
    """One month's deductions for one employee."""
    __tablename__ = "ledger_transaction"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    employee_id = Column(Uuid(as_uuid=True), ForeignKey("employee.id"), nullable=False, index=True)
    month = Column(String(7), nullable=False, index=True)  # YYYY-MM
    salary = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    thrift_deduction = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    loan_emi = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    interest_payment = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    principal_repayment = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    loan_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))  # monthly EMI total
    total_deduction = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    paid_amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    net_salary = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    cb_thrift_balance = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    loan_balance = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    employee = relationship("Employee", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("employee_id", "month", name="uq_transaction_employee_month"),
    )
