from dataclasses import dataclass, asdict

from sqlalchemy.orm import Session

from app.models.enums import LoanStatus
from app.models.event import EventEnrollment
from app.models.loan import Loan
from app.models.user import User
from app.utils.timezone import ensure_aware

BASE_SCORE = 100


@dataclass
class StudentRecord:
    total_loans: int = 0
    on_time_returns: int = 0
    late_returns: int = 0
    damages: int = 0
    losses: int = 0
    events_attended: int = 0

    @property
    def trust_score(self) -> int:
        score = (
            BASE_SCORE
            + 5 * self.on_time_returns
            + 2 * self.events_attended
            - 10 * self.late_returns
            - 25 * self.damages
            - 40 * self.losses
        )
        return max(0, score)

    def to_dict(self):
        data = asdict(self)
        data["trust_score"] = self.trust_score
        data["level"] = score_level(self.trust_score)
        return data


def score_level(trust_score: int) -> str:
    if trust_score >= 150:
        return "excellent"
    if trust_score >= 100:
        return "good"
    if trust_score >= 70:
        return "regular"
    return "low"


def student_record(db: Session, user_id: int) -> StudentRecord:
    record = StudentRecord()
    for loan in db.query(Loan).filter(Loan.user_id == user_id).all():
        if loan.status in (LoanStatus.PENDING, LoanStatus.REJECTED):
            continue
        record.total_loans += 1
        if loan.status == LoanStatus.RETURNED:
            if loan.due_date and ensure_aware(loan.returned_at) > ensure_aware(loan.due_date):
                record.late_returns += 1
            else:
                record.on_time_returns += 1
        elif loan.status == LoanStatus.DAMAGED:
            record.damages += 1
        elif loan.status == LoanStatus.LOST:
            record.losses += 1
    record.events_attended = db.query(EventEnrollment).filter(
        EventEnrollment.user_id == user_id,
        EventEnrollment.attended.is_(True),
    ).count()
    return record


def has_unresolved_issue(db: Session, user_id: int, resource_id: int) -> bool:
    """Overdue, lost or damaged loans by this user on this exact resource."""
    return db.query(Loan).filter(
        Loan.user_id == user_id,
        Loan.resource_id == resource_id,
        Loan.status.in_([LoanStatus.OVERDUE.value, LoanStatus.LOST.value, LoanStatus.DAMAGED.value]),
    ).first() is not None


def in_good_standing(db: Session, user: User, resource_id: int, min_trust_score: int) -> bool:
    if user.is_blocked:
        return False
    if has_unresolved_issue(db, user.user_id, resource_id):
        return False
    return student_record(db, user.user_id).trust_score >= min_trust_score
