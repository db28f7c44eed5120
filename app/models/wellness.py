from sqlalchemy import Column, String, DateTime, Integer, Numeric, Text, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from app.database import Base
from app.models.enums import WellnessSource, check_constraint_sql


def _iso(value):
    return value.isoformat() if value else None


class WellnessHourAward(Base):
    """Hours credited once per qualifying loan return or event attendance."""
    __tablename__ = "wellness_hours"

    award_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    hours = Column(Numeric(6, 1), nullable=False)
    source_type = Column(String(20), nullable=False)
    source_id = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    awarded_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    awarded_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint("hours > 0", name="chk_wellness_hours_positive"),
        CheckConstraint(check_constraint_sql("source_type", WellnessSource), name="chk_wellness_source_type"),
        Index("ix_wellness_hours_source", "source_type", "source_id", "user_id", unique=True),
    )

    def to_dict(self):
        return {
            "id": str(self.award_id),
            "userId": str(self.user_id),
            "hours": float(self.hours),
            "sourceType": self.source_type,
            "sourceId": str(self.source_id),
            "description": self.description,
            "awardedAt": _iso(self.awarded_at),
        }


class HourPenalty(Base):
    """Hours deducted for late returns, damage or loss."""
    __tablename__ = "hour_penalty"

    penalty_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    hours = Column(Numeric(6, 1), nullable=False)
    source_type = Column(String(20), default=WellnessSource.LOAN.value, nullable=False)
    source_id = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    applied_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("hours > 0", name="chk_hour_penalty_positive"),
        CheckConstraint(check_constraint_sql("source_type", WellnessSource), name="chk_hour_penalty_source_type"),
    )

    def to_dict(self):
        return {
            "id": str(self.penalty_id),
            "userId": str(self.user_id),
            "hours": float(self.hours),
            "sourceType": self.source_type,
            "sourceId": str(self.source_id),
            "reason": self.reason,
            "appliedAt": _iso(self.applied_at),
        }
