from sqlalchemy import Column, String, DateTime, Integer, Boolean, Text, JSON, ForeignKey
from app.database import Base


class Notification(Base):
    __tablename__ = "notification"

    notification_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self):
        return {
            "id": str(self.notification_id),
            "userId": str(self.user_id),
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "isRead": self.is_read,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
