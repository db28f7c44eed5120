from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.enums import SanctionSeverity, SanctionStatus, check_constraint_sql


class Sanction(Base):
    __tablename__ = "student_sanction"

    sanction_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    severity = Column(String(20), nullable=False)
    reason = Column(Text, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), default=SanctionStatus.ACTIVE.value, nullable=False, index=True)
    appeal_notes = Column(Text, nullable=True)
    issued_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint(check_constraint_sql("severity", SanctionSeverity), name="chk_sanction_severity"),
        CheckConstraint(check_constraint_sql("status", SanctionStatus), name="chk_sanction_status"),
    )

    def to_dict(self):
        return {
            "id": str(self.sanction_id),
            "userId": str(self.user_id),
            "severity": self.severity,
            "reason": self.reason,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "status": self.status,
            "appealNotes": self.appeal_notes,
            "issuedBy": str(self.issued_by) if self.issued_by else None,
        }
