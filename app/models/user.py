from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Enum as SQLEnum, Uuid, text
from sqlalchemy.orm import relationship
import uuid
from app.db.base import Base
import enum


class UserRoleEnum(str, enum.Enum):
    """Login role."""
    ADMIN = "admin"
    EMPLOYEE = "employee"


class UserAccount(Base):
    """Login account issued to an employee on first import."""
    __tablename__ = "user_account"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(100), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRoleEnum, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=UserRoleEnum.EMPLOYEE, nullable=False)
    employee_id = Column(Uuid(as_uuid=True), ForeignKey("employee.id"), nullable=True, unique=True, index=True)
    must_change_password = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))

    employee = relationship("Employee", back_populates="account")
