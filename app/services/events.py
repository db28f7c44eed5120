import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.config import LoanPolicy
from app.database import atomic
from app.models.enums import WellnessSource
from app.models.event import Event, EventEnrollment
from app.models.wellness import WellnessHourAward
from app.services.errors import AlreadyEnrolled, InvalidTransition, NotFound, ResourceUnavailable
from app.services.notifications import notification_service
from app.services.queue_ledger import event_waitlist
from app.utils.timezone import now_local, to_local

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "location", "start_date", "end_date", "max_participants", "wellness_hours")


def get_event(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.event_id == event_id).first()
    if event is None:
        raise NotFound(f"Event {event_id} not found")
    return event


def enrollment_count(db: Session, event_id: int) -> int:
    return db.query(EventEnrollment).filter(EventEnrollment.event_id == event_id).count()


def is_full(db: Session, event: Event) -> bool:
    if event.max_participants is None:
        return False
    return enrollment_count(db, event.event_id) >= event.max_participants


def _advance_waitlist(db: Session, event: Event, policy: LoanPolicy, now: Optional[datetime] = None):
    """Offer a free seat to the head of the waitlist; one notification is live at a time."""
    if not event.is_active or is_full(db, event):
        return None
    return event_waitlist.notify_head(db, event.event_id, policy, now)


def _check_dates(start_date: datetime, end_date: datetime):
    if end_date <= start_date:
        raise InvalidTransition("Event end date must be after its start date")


def create_event(db: Session, created_by: int, title: str, start_date: datetime, end_date: datetime,
                 wellness_hours: float, description: Optional[str] = None, location: Optional[str] = None,
                 max_participants: Optional[int] = None) -> Event:
    start_date, end_date = to_local(start_date), to_local(end_date)
    _check_dates(start_date, end_date)
    with atomic(db):
        event = Event(
            title=title.strip(),
            description=description,
            location=location,
            start_date=start_date,
            end_date=end_date,
            wellness_hours=wellness_hours,
            max_participants=max_participants,
            is_active=True,
            created_by=created_by,
        )
        db.add(event)
        db.flush()
        logger.info(f"Event {event.event_id} '{event.title}' created by admin {created_by}")
    return event


def update_event(db: Session, event_id: int, policy: LoanPolicy, **changes) -> Event:
    """Apply field changes; raising capacity hands the new seats to the waitlist."""
    with atomic(db):
        event = event_waitlist.lock_target(db, event_id)
        for field in EDITABLE_FIELDS:
            value = changes.get(field)
            if value is None:
                continue
            if field in ("start_date", "end_date"):
                value = to_local(value)
            setattr(event, field, value)
        _check_dates(to_local(event.start_date), to_local(event.end_date))
        if event.max_participants is not None and enrollment_count(db, event_id) > event.max_participants:
            raise InvalidTransition("Capacity cannot be lowered below the current enrollment count")
        db.flush()
        _advance_waitlist(db, event, policy)
        logger.info(f"Event {event_id} updated")
    return event


def cancel_event(db: Session, event_id: int, now: Optional[datetime] = None) -> Event:
    now = now or now_local()
    with atomic(db):
        event = event_waitlist.lock_target(db, event_id)
        if not event.is_active:
            raise InvalidTransition(f"Event {event_id} is already cancelled")
        event.is_active = False
        for enrollment in event.enrollments:
            notification_service.push(
                db, enrollment.user_id, type="event_cancelled", title="Event cancelled",
                message=f"The event \"{event.title}\" was cancelled.",
                data={"eventId": event.event_id}, now=now,
            )
        logger.info(f"Event {event_id} cancelled ({len(event.enrollments)} enrolled students notified)")
    return event


def _add_enrollment(db: Session, event: Event, user_id: int, now: datetime) -> EventEnrollment:
    enrollment = EventEnrollment(event_id=event.event_id, user_id=user_id, enrolled_at=now, attended=False)
    db.add(enrollment)
    db.flush()
    notification_service.push(
        db, user_id, type="event_enrolled", title="Enrollment confirmed",
        message=f"You are enrolled in \"{event.title}\".",
        data={"eventId": event.event_id}, now=now,
    )
    return enrollment


def enroll(db: Session, event_id: int, user_id: int, policy: LoanPolicy, now: Optional[datetime] = None):
    """Enroll a student, or place them on the waitlist when the event is full.

    Returns ``(enrollment, waitlist_entry)``; exactly one of them is set.
    """
    now = now or now_local()
    with atomic(db):
        event = event_waitlist.lock_target(db, event_id)
        if not event.is_active:
            raise ResourceUnavailable(f"Event {event_id} is not active")
        existing = db.query(EventEnrollment).filter(
            EventEnrollment.event_id == event_id,
            EventEnrollment.user_id == user_id,
        ).first()
        if existing is not None:
            raise AlreadyEnrolled(f"User {user_id} is already enrolled in event {event_id}")

        holder = event_waitlist.holder(db, event_id, now)
        if holder is not None and holder.user_id == user_id:
            return enroll_from_waitlist(db, holder.entry_id, user_id, policy, now), holder

        # a free seat is not for walk-ins while anyone is waiting for one
        if is_full(db, event) or holder is not None or event_waitlist.waiting(db, event_id):
            if not policy.enable_queue_system:
                raise ResourceUnavailable(f"Event {event_id} is full")
            entry = event_waitlist.join(db, event_id, user_id, now)
            _advance_waitlist(db, event, policy, now)
            return None, entry

        enrollment = _add_enrollment(db, event, user_id, now)
        logger.info(f"User {user_id} enrolled in event {event_id}")
        return enrollment, None


def enroll_from_waitlist(db: Session, entry_id: int, user_id: int, policy: LoanPolicy,
                         now: Optional[datetime] = None) -> EventEnrollment:
    """Claim a waitlist notification, then pass any seat still free to the next in line."""
    now = now or now_local()
    with atomic(db):
        entry = event_waitlist.claim(db, entry_id, user_id, now)
        event = get_event(db, entry.event_id)
        if not event.is_active:
            raise ResourceUnavailable(f"Event {event.event_id} is not active")
        if db.query(EventEnrollment).filter(
            EventEnrollment.event_id == event.event_id,
            EventEnrollment.user_id == user_id,
        ).first() is not None:
            raise AlreadyEnrolled(f"User {user_id} is already enrolled in event {event.event_id}")
        enrollment = _add_enrollment(db, event, user_id, now)
        logger.info(f"User {user_id} enrolled in event {event.event_id} from the waitlist")
        _advance_waitlist(db, event, policy, now)
    return enrollment


def unenroll(db: Session, event_id: int, user_id: int, policy: LoanPolicy, now: Optional[datetime] = None):
    now = now or now_local()
    with atomic(db):
        event = event_waitlist.lock_target(db, event_id)
        enrollment = db.query(EventEnrollment).filter(
            EventEnrollment.event_id == event_id,
            EventEnrollment.user_id == user_id,
        ).first()
        if enrollment is None:
            raise NotFound(f"User {user_id} is not enrolled in event {event_id}")
        if enrollment.attended:
            raise InvalidTransition("Attendance was already recorded for this enrollment")
        db.delete(enrollment)
        db.flush()
        logger.info(f"User {user_id} unenrolled from event {event_id}")
        _advance_waitlist(db, event, policy, now)


def mark_attendance(db: Session, enrollment_id: int, attended: bool, admin_id: int,
                    now: Optional[datetime] = None) -> EventEnrollment:
    """Record attendance and keep exactly one matching hour award in step with it."""
    now = now or now_local()
    with atomic(db):
        enrollment = db.query(EventEnrollment).filter(
            EventEnrollment.enrollment_id == enrollment_id,
        ).with_for_update().first()
        if enrollment is None:
            raise NotFound(f"Enrollment {enrollment_id} not found")
        event = enrollment.event

        award = db.query(WellnessHourAward).filter(
            WellnessHourAward.source_type == WellnessSource.EVENT.value,
            WellnessHourAward.source_id == event.event_id,
            WellnessHourAward.user_id == enrollment.user_id,
        ).first()

        enrollment.attended = attended
        enrollment.attendance_registered_at = now
        enrollment.attendance_registered_by = admin_id

        if attended and award is None:
            db.add(WellnessHourAward(
                user_id=enrollment.user_id,
                hours=event.wellness_hours,
                source_type=WellnessSource.EVENT.value,
                source_id=event.event_id,
                description=f"Event: {event.title}",
                awarded_by=admin_id,
                awarded_at=now,
            ))
            notification_service.push(
                db, enrollment.user_id, type="event_attendance", title="Attendance recorded",
                message=f"You earned {float(event.wellness_hours)} wellness hours for \"{event.title}\".",
                data={"eventId": event.event_id}, now=now,
            )
            logger.info(f"Attendance recorded for user {enrollment.user_id} at event {event.event_id}")
        elif not attended and award is not None:
            db.delete(award)
            logger.info(f"Attendance removed for user {enrollment.user_id} at event {event.event_id}; award deleted")
    return enrollment

