from sqlalchemy import Column, String, DateTime, Integer, Boolean, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.enums import UserRole, check_constraint_sql


class User(Base):
    __tablename__ = "user"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    user_fname = Column(String(100), nullable=False)
    user_lname = Column(String(100), nullable=False)
    user_email = Column(String(255), unique=True, nullable=False, index=True)
    user_password_hash = Column(String(255), nullable=False)
    student_code = Column(String(20), nullable=True)
    major = Column(String(255), nullable=True)
    user_role = Column(String(50), default=UserRole.STUDENT.value, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    blocked_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    loans = relationship("Loan", back_populates="user", foreign_keys="Loan.user_id", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(check_constraint_sql("user_role", UserRole), name="chk_user_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.user_role == UserRole.ADMIN

    @property
    def full_name(self) -> str:
        return f"{self.user_fname} {self.user_lname}"

    def to_dict(self):
        return {
            "id": str(self.user_id),
            "name": self.full_name,
            "fname": self.user_fname,
            "lname": self.user_lname,
            "email": self.user_email,
            "studentCode": self.student_code,
            "major": self.major,
            "role": self.user_role,
            "isBlocked": self.is_blocked,
            "blockedReason": self.blocked_reason,
        }
