from sqlalchemy import Column, String, DateTime, Integer, Numeric, Boolean, Text, ForeignKey, CheckConstraint, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.enums import QueueStatus, check_constraint_sql
from app.models.queue import QueueEntryMixin


def _iso(value):
    return value.isoformat() if value else None


class Event(Base):
    __tablename__ = "event"

    event_id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    max_participants = Column(Integer, nullable=True)  # None = unlimited
    wellness_hours = Column(Numeric(6, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    enrollments = relationship("EventEnrollment", back_populates="event", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("wellness_hours > 0", name="chk_event_wellness_hours"),
        CheckConstraint("max_participants IS NULL OR max_participants >= 1", name="chk_event_max_participants"),
    )

    def to_dict(self, enrollment_count=None):
        return {
            "id": str(self.event_id),
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "maxParticipants": self.max_participants,
            "wellnessHours": float(self.wellness_hours),
            "isActive": self.is_active,
            "enrollmentCount": enrollment_count,
        }


class EventEnrollment(Base):
    __tablename__ = "event_enrollment"

    enrollment_id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("event.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    enrolled_at = Column(DateTime(timezone=True), nullable=False)
    attended = Column(Boolean, default=False, nullable=False)
    attendance_registered_at = Column(DateTime(timezone=True), nullable=True)
    attendance_registered_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)

    # Relationships
    event = relationship("Event", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_enrollment_user"),
    )

    def to_dict(self):
        return {
            "id": str(self.enrollment_id),
            "eventId": str(self.event_id),
            "userId": str(self.user_id),
            "enrolledAt": _iso(self.enrolled_at),
            "attended": self.attended,
            "attendanceRegisteredAt": _iso(self.attendance_registered_at),
        }


class EventWaitlistEntry(QueueEntryMixin, Base):
    __tablename__ = "event_waitlist"
    queue_target = "event_id"

    event_id = Column(Integer, ForeignKey("event.event_id", ondelete="CASCADE"), nullable=False)

    event = relationship("Event")

    __table_args__ = (
        CheckConstraint(check_constraint_sql("status", QueueStatus), name="chk_event_waitlist_status"),
        CheckConstraint("position >= 1", name="chk_event_waitlist_position"),
        Index("ix_event_waitlist_target_status", "event_id", "status"),
    )
