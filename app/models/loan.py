from sqlalchemy import Column, String, DateTime, Integer, Boolean, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.models.enums import LoanStatus, DecisionSource, check_constraint_sql


def _iso(value):
    return value.isoformat() if value else None


class Loan(Base):
    __tablename__ = "loan"

    loan_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    resource_id = Column(Integer, ForeignKey("resource.resource_id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(String(50), default=LoanStatus.PENDING.value, nullable=False, index=True)
    decision_source = Column(String(20), default=DecisionSource.HUMAN.value, nullable=False)
    # set when the loan was created by claiming a queue notification
    queue_entry_id = Column(Integer, ForeignKey("resource_queue.entry_id", ondelete="SET NULL"), nullable=True)

    # Transition timestamps, set once
    requested_at = Column(DateTime(timezone=True), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    pickup_deadline = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True, index=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)  # lost / damaged / expired

    admin_notes = Column(Text, nullable=True)
    damage_notes = Column(Text, nullable=True)

    # Extension request
    extension_requested = Column(Boolean, default=False, nullable=False)
    extension_reason = Column(Text, nullable=True)
    extension_approved = Column(Boolean, nullable=True)
    extension_decided_at = Column(DateTime(timezone=True), nullable=True)

    # Post-return rating
    rating = Column(Integer, nullable=True)
    rating_comment = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="loans", foreign_keys=[user_id])
    resource = relationship("Resource", back_populates="loans")

    __table_args__ = (
        CheckConstraint(check_constraint_sql("status", LoanStatus), name="chk_loan_status"),
        CheckConstraint(check_constraint_sql("decision_source", DecisionSource), name="chk_loan_decision_source"),
        CheckConstraint("rating IS NULL OR (rating BETWEEN 1 AND 5)", name="chk_loan_rating"),
    )

    def to_dict(self):
        return {
            "id": str(self.loan_id),
            "userId": str(self.user_id),
            "resourceId": str(self.resource_id),
            "status": self.status,
            "decisionSource": self.decision_source,
            "queueEntryId": str(self.queue_entry_id) if self.queue_entry_id else None,
            "requestedAt": _iso(self.requested_at),
            "approvedAt": _iso(self.approved_at),
            "pickupDeadline": _iso(self.pickup_deadline),
            "deliveredAt": _iso(self.delivered_at),
            "dueDate": _iso(self.due_date),
            "returnedAt": _iso(self.returned_at),
            "adminNotes": self.admin_notes,
            "damageNotes": self.damage_notes,
            "extensionRequested": self.extension_requested,
            "extensionReason": self.extension_reason,
            "extensionApproved": self.extension_approved,
            "rating": self.rating,
            "ratingComment": self.rating_comment,
            "resource": self.resource.to_dict() if self.resource else None,
        }
