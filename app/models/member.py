from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric, Boolean, Integer, Uuid, text, func
from sqlalchemy.orm import relationship
import uuid
from decimal import Decimal
from app.db.base import Base


class Employee(Base):
    """Society member: identity, salary, thrift state and loan linkage.

    ``version`` is the optimistic lock: two sessions writing the same employee
    cannot both commit, the second one gets ``StaleDataError``.
    """
    __tablename__ = "employee"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    emp_id = Column(String(50), nullable=True, unique=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(255), nullable=True, unique=True, index=True)
    phone = Column(String(20), nullable=True)
    department = Column(String(100), nullable=True, default="General")
    designation = Column(String(100), nullable=True, default="Employee")
    pan = Column(String(10), nullable=True)
    aadhaar = Column(String(12), nullable=True)
    salary = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    thrift_contribution = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    thrift_balance = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    # Legacy free-text flag ("Loan" / ""), kept for imported sheets that only carry a status column
    loan_status = Column(String(20), nullable=False, default="")
    active_loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id", use_alter=True, name="fk_employee_active_loan"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    active_loan = relationship("Loan", foreign_keys=[active_loan_id], post_update=True)
    loans = relationship("Loan", back_populates="borrower", foreign_keys="[Loan.borrower_id]")
    guarantee_links = relationship("LoanSurety", back_populates="employee")
    transactions = relationship("Transaction", back_populates="employee", order_by="Transaction.month")
    adjustments = relationship("AdjustmentHistory", back_populates="employee", order_by="desc(AdjustmentHistory.created_at)")
    account = relationship("UserAccount", back_populates="employee", uselist=False)

    @property
    def has_loan(self) -> bool:
        return self.active_loan_id is not None

    @property
    def guaranteeing_loans(self):
        return [link.loan for link in self.guarantee_links]

    def __repr__(self):
        return f"<Employee {self.emp_id or self.id} {self.name!r}>"
