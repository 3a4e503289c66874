# backend/repairdesk/models/user.py
"""User model. Role drives every authorization decision in the services."""

from sqlalchemy import CheckConstraint, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import RoleName
from ..database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(String(20), nullable=False, default=RoleName.USER.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    technician_profile = relationship("Technician", back_populates="user", uselist=False)

    __table_args__ = (
        CheckConstraint(
            "role IN ('user', 'technician', 'admin', 'system')", name="ck_users_role"
        ),
    )

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"
