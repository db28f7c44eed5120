import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.database import atomic
from app.models.enums import SanctionSeverity, SanctionStatus, BLOCKING_SEVERITIES, values
from app.models.sanction import Sanction
from app.models.user import User
from app.services.errors import InvalidTransition, NotFound, PermissionDenied
from app.services.notifications import notification_service
from app.utils.timezone import now_local, to_local, ensure_aware

logger = logging.getLogger(__name__)

# an appeal does not suspend a sanction until it is decided
UNRESOLVED_SANCTION_STATUSES = (SanctionStatus.ACTIVE, SanctionStatus.APPEALED)


def _lock_sanction(db: Session, sanction_id: int) -> Sanction:
    sanction = db.query(Sanction).filter(Sanction.sanction_id == sanction_id).with_for_update().first()
    if sanction is None:
        raise NotFound(f"Sanction {sanction_id} not found")
    return sanction


def _lock_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.user_id == user_id).with_for_update().first()
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def _refresh_block(db: Session, user: User):
    """Lift the block once no active or appealed high/critical sanction remains."""
    db.flush()
    remaining = db.query(Sanction).filter(
        Sanction.user_id == user.user_id,
        Sanction.status.in_(values(UNRESOLVED_SANCTION_STATUSES)),
        Sanction.severity.in_(values(BLOCKING_SEVERITIES)),
    ).count()
    if remaining == 0 and user.is_blocked:
        user.is_blocked = False
        user.blocked_reason = None
        logger.info(f"User {user.user_id} unblocked")


def create_sanction(db: Session, user_id: int, severity: SanctionSeverity, reason: str, issued_by: int,
                    start_date: Optional[datetime] = None, end_date: Optional[datetime] = None,
                    now: Optional[datetime] = None) -> Sanction:
    now = now or now_local()
    severity = SanctionSeverity(severity)
    start_date = to_local(start_date) if start_date else now
    end_date = to_local(end_date) if end_date else None
    if end_date is not None and end_date <= start_date:
        raise InvalidTransition("Sanction end date must be after its start date")

    with atomic(db):
        user = _lock_user(db, user_id)
        sanction = Sanction(
            user_id=user_id,
            severity=severity.value,
            reason=reason.strip(),
            start_date=start_date,
            end_date=end_date,
            status=SanctionStatus.ACTIVE.value,
            issued_by=issued_by,
        )
        db.add(sanction)
        db.flush()

        if severity in BLOCKING_SEVERITIES:
            user.is_blocked = True
            user.blocked_reason = f"Sanction ({severity.value}): {reason.strip()}"
            logger.warning(f"User {user_id} blocked by {severity.value} sanction {sanction.sanction_id}")

        notification_service.push(
            db, user_id, type="sanction_created", title="Sanction applied",
            message=f"A {severity.value} sanction was applied to your account: {reason.strip()}",
            data={"sanctionId": sanction.sanction_id, "severity": severity.value}, now=now,
        )
        logger.info(f"Sanction {sanction.sanction_id} ({severity.value}) issued to user {user_id} by admin {issued_by}")
    return sanction


def appeal(db: Session, sanction_id: int, user_id: int, notes: str) -> Sanction:
    with atomic(db):
        sanction = _lock_sanction(db, sanction_id)
        if sanction.user_id != user_id:
            raise PermissionDenied("Sanction belongs to another user")
        if sanction.status != SanctionStatus.ACTIVE.value:
            raise InvalidTransition(f"Only active sanctions can be appealed (sanction {sanction_id} is {sanction.status})")
        sanction.status = SanctionStatus.APPEALED.value
        sanction.appeal_notes = notes.strip()
        logger.info(f"Sanction {sanction_id} appealed by user {user_id}")
    return sanction


def resolve_appeal(db: Session, sanction_id: int, approved: bool, notes: Optional[str] = None,
                   now: Optional[datetime] = None) -> Sanction:
    now = now or now_local()
    with atomic(db):
        sanction = _lock_sanction(db, sanction_id)
        if sanction.status != SanctionStatus.APPEALED.value:
            raise InvalidTransition(f"Sanction {sanction_id} has no pending appeal")
        user = _lock_user(db, sanction.user_id)
        sanction.status = SanctionStatus.VOIDED.value if approved else SanctionStatus.ACTIVE.value
        if notes:
            sanction.appeal_notes = f"{sanction.appeal_notes or ''}\n\nResolution: {notes.strip()}".strip()
        _refresh_block(db, user)
        notification_service.push(
            db, sanction.user_id, type="sanction_appeal", title="Appeal resolved",
            message="Your appeal was accepted and the sanction was voided." if approved
            else "Your appeal was rejected; the sanction remains active.",
            data={"sanctionId": sanction.sanction_id, "approved": approved}, now=now,
        )
        logger.info(f"Appeal for sanction {sanction_id} {'accepted' if approved else 'rejected'}")
    return sanction


def void(db: Session, sanction_id: int) -> Sanction:
    with atomic(db):
        sanction = _lock_sanction(db, sanction_id)
        if sanction.status == SanctionStatus.VOIDED.value:
            raise InvalidTransition(f"Sanction {sanction_id} is already voided")
        user = _lock_user(db, sanction.user_id)
        sanction.status = SanctionStatus.VOIDED.value
        _refresh_block(db, user)
        logger.info(f"Sanction {sanction_id} voided")
    return sanction


def complete_elapsed(db: Session, now: Optional[datetime] = None) -> List[Sanction]:
    """Active sanctions whose end date has passed are completed; blocks are lifted when none remain."""
    now = now or now_local()
    candidates = db.query(Sanction).filter(
        Sanction.status == SanctionStatus.ACTIVE.value,
        Sanction.end_date.isnot(None),
    ).all()
    completed = []
    for candidate in candidates:
        if ensure_aware(candidate.end_date) > now:
            continue
        with atomic(db):
            sanction = _lock_sanction(db, candidate.sanction_id)
            if sanction.status != SanctionStatus.ACTIVE.value:
                continue
            user = _lock_user(db, sanction.user_id)
            sanction.status = SanctionStatus.COMPLETED.value
            _refresh_block(db, user)
            notification_service.push(
                db, sanction.user_id, type="sanction_completed", title="Sanction completed",
                message=f"Your {sanction.severity} sanction ended on {ensure_aware(sanction.end_date):%Y-%m-%d}.",
                data={"sanctionId": sanction.sanction_id}, now=now,
            )
            completed.append(sanction)
    if completed:
        logger.info(f"Completed {len(completed)} elapsed sanction(s)")
    return completed
