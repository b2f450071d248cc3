from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric, Enum as SQLEnum, Text, Uuid, text
from sqlalchemy.orm import relationship
import uuid
import enum
from app.db.base import Base


class AdjustmentAction(str, enum.Enum):
    """Kind of balance-affecting administrative action."""
    SALARY = "salary"
    THRIFT = "thrift"
    LOAN = "loan"
    DIVIDEND = "dividend"


class AdjustmentHistory(Base):
    """Append-only audit trail. Rows are only ever inserted."""
    __tablename__ = "adjustment_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    employee_id = Column(Uuid(as_uuid=True), ForeignKey("employee.id"), nullable=False, index=True)
    action_type = Column(SQLEnum(AdjustmentAction, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=False, index=True)
    target_field = Column(String(50), nullable=True)  # e.g. 'thrift_balance', 'emi'
    old_value = Column(Numeric(14, 2), nullable=True)
    new_value = Column(Numeric(14, 2), nullable=True)
    remarks = Column(Text, nullable=False)
    performed_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    employee = relationship("Employee", back_populates="adjustments")
