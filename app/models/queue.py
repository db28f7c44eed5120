from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship, declared_attr
from app.database import Base
from app.models.enums import QueueStatus, check_constraint_sql


def _iso(value):
    return value.isoformat() if value else None


class QueueEntryMixin:
    """Columns shared by every FIFO waiting line.

    ``position`` is contiguous and 1-based among ``waiting`` entries of one
    target; entries that left the line keep the position they last held.
    """
    queue_target = None  # name of the column holding the target id

    entry_id = Column(Integer, primary_key=True, autoincrement=True)
    position = Column(Integer, nullable=False)
    status = Column(String(20), default=QueueStatus.WAITING.value, nullable=False, index=True)
    requested_at = Column(DateTime(timezone=True), nullable=False)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    enrolled_at = Column(DateTime(timezone=True), nullable=True)

    @declared_attr
    def user_id(cls):
        return Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)

    @property
    def target_id(self) -> int:
        return getattr(self, self.queue_target)

    def to_dict(self):
        return {
            "id": str(self.entry_id),
            "targetId": str(self.target_id),
            "userId": str(self.user_id),
            "position": self.position,
            "status": self.status,
            "requestedAt": _iso(self.requested_at),
            "notifiedAt": _iso(self.notified_at),
            "expiresAt": _iso(self.expires_at),
            "enrolledAt": _iso(self.enrolled_at),
        }


class QueueEntry(QueueEntryMixin, Base):
    __tablename__ = "resource_queue"
    queue_target = "resource_id"

    resource_id = Column(Integer, ForeignKey("resource.resource_id", ondelete="CASCADE"), nullable=False)

    resource = relationship("Resource")

    __table_args__ = (
        CheckConstraint(check_constraint_sql("status", QueueStatus), name="chk_resource_queue_status"),
        CheckConstraint("position >= 1", name="chk_resource_queue_position"),
        Index("ix_resource_queue_target_status", "resource_id", "status"),
    )
