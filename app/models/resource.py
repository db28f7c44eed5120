from sqlalchemy import Column, String, DateTime, Integer, Numeric, Boolean, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.enums import ResourceStatus, check_constraint_sql


class ResourceCategory(Base):
    __tablename__ = "resource_category"

    category_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    base_wellness_hours = Column(Numeric(6, 2), default=0, nullable=False)
    hourly_factor = Column(Numeric(6, 3), default=0, nullable=False)
    is_low_risk = Column(Boolean, default=False, nullable=False)
    requires_approval = Column(Boolean, default=True, nullable=False)
    max_loan_days = Column(Integer, default=7, nullable=False)
    max_per_student = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    resources = relationship("Resource", back_populates="category")

    __table_args__ = (
        CheckConstraint("base_wellness_hours >= 0", name="chk_category_base_hours"),
        CheckConstraint("hourly_factor >= 0", name="chk_category_hourly_factor"),
        CheckConstraint("max_loan_days > 0", name="chk_category_max_loan_days"),
        CheckConstraint("max_per_student > 0", name="chk_category_max_per_student"),
    )

    def to_dict(self):
        return {
            "id": str(self.category_id),
            "name": self.name,
            "description": self.description,
            "baseWellnessHours": float(self.base_wellness_hours),
            "hourlyFactor": float(self.hourly_factor),
            "isLowRisk": self.is_low_risk,
            "requiresApproval": self.requires_approval,
            "maxLoanDays": self.max_loan_days,
            "maxPerStudent": self.max_per_student,
        }


class Resource(Base):
    __tablename__ = "resource"

    resource_id = Column(Integer, primary_key=True, autoincrement=True)
    category_id = Column(Integer, ForeignKey("resource_category.category_id", ondelete="RESTRICT"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(50), default=ResourceStatus.AVAILABLE.value, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    category = relationship("ResourceCategory", back_populates="resources")
    loans = relationship("Loan", back_populates="resource")

    __table_args__ = (
        CheckConstraint(check_constraint_sql("status", ResourceStatus), name="chk_resource_status"),
    )

    def to_dict(self):
        return {
            "id": str(self.resource_id),
            "categoryId": str(self.category_id),
            "name": self.name,
            "description": self.description,
            "notes": self.notes,
            "status": self.status,
            "category": self.category.to_dict() if self.category else None,
        }
