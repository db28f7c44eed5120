import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import LoanPolicy
from app.database import atomic
from app.models.enums import QueueStatus, ResourceStatus, QUEUE_TRANSITIONS, LIVE_QUEUE_STATUSES, values
from app.models.event import Event, EventWaitlistEntry
from app.models.queue import QueueEntry
from app.models.resource import Resource
from app.services.errors import AlreadyQueued, NotQueued, Expired, InvalidTransition, NotFound, PermissionDenied, ResourceUnavailable
from app.services.notifications import notification_service
from app.utils.timezone import now_local, ensure_aware

logger = logging.getLogger(__name__)


class QueueLedger:
    """FIFO waiting line per target (a resource or an event).

    Entries move ``waiting -> notified -> enrolled | expired``; a ``waiting``
    entry may also be removed. Waiting positions stay 1..n without gaps; every
    mutation first locks the target row, which serializes position assignment.
    """

    def __init__(self, entry_model, target_model, kind: str, label_attr: str, is_closed=None):
        self.entry_model = entry_model
        self.target_model = target_model
        self.kind = kind
        self.label_attr = label_attr
        self.is_closed = is_closed or (lambda target: False)
        self.target_column = getattr(entry_model, entry_model.queue_target)
        self.target_pk = getattr(target_model, entry_model.queue_target)

    # -- queries -------------------------------------------------------

    def lock_target(self, db: Session, target_id: int):
        target = db.query(self.target_model).filter(self.target_pk == target_id).with_for_update().first()
        if target is None:
            raise NotFound(f"{self.kind.capitalize()} {target_id} not found")
        return target

    def get_entry(self, db: Session, entry_id: int):
        entry = db.query(self.entry_model).filter(self.entry_model.entry_id == entry_id).first()
        if entry is None:
            raise NotFound(f"Queue entry {entry_id} not found")
        return entry

    def waiting(self, db: Session, target_id: int) -> List:
        return db.query(self.entry_model).filter(
            self.target_column == target_id,
            self.entry_model.status == QueueStatus.WAITING.value,
        ).order_by(self.entry_model.position.asc(), self.entry_model.entry_id.asc()).all()

    def live_entry(self, db: Session, target_id: int, user_id: int):
        return db.query(self.entry_model).filter(
            self.target_column == target_id,
            self.entry_model.user_id == user_id,
            self.entry_model.status.in_(values(LIVE_QUEUE_STATUSES)),
        ).first()

    def holder(self, db: Session, target_id: int, now: Optional[datetime] = None):
        """The notified entry currently holding the target, if its window is open."""
        now = now or now_local()
        notified = db.query(self.entry_model).filter(
            self.target_column == target_id,
            self.entry_model.status == QueueStatus.NOTIFIED.value,
        ).all()
        for entry in notified:
            if ensure_aware(entry.expires_at) > now:
                return entry
        return None

    def entries_for_user(self, db: Session, user_id: int) -> List:
        return db.query(self.entry_model).filter(
            self.entry_model.user_id == user_id,
            self.entry_model.status.in_(values(LIVE_QUEUE_STATUSES)),
        ).order_by(self.entry_model.requested_at.asc()).all()

    # -- transitions ---------------------------------------------------

    def _transition(self, entry, target: QueueStatus):
        current = QueueStatus(entry.status)
        if target not in QUEUE_TRANSITIONS[current]:
            raise InvalidTransition(f"Queue entry {entry.entry_id} cannot go from {current.value} to {target.value}")
        entry.status = target.value

    def _resequence(self, db: Session, target_id: int):
        db.flush()
        for position, entry in enumerate(self.waiting(db, target_id), start=1):
            if entry.position != position:
                entry.position = position
        db.flush()

    def join(self, db: Session, target_id: int, user_id: int, now: Optional[datetime] = None):
        now = now or now_local()
        with atomic(db):
            target = self.lock_target(db, target_id)
            if self.is_closed(target):
                raise ResourceUnavailable(f"{self.kind.capitalize()} {target_id} is not accepting a queue")
            if self.live_entry(db, target_id, user_id) is not None:
                raise AlreadyQueued(f"User {user_id} is already queued for {self.kind} {target_id}")
            position = len(self.waiting(db, target_id)) + 1
            entry = self.entry_model(
                user_id=user_id,
                position=position,
                status=QueueStatus.WAITING.value,
                requested_at=now,
            )
            setattr(entry, self.entry_model.queue_target, target_id)
            db.add(entry)
            db.flush()
            logger.info(f"User {user_id} joined {self.kind} {target_id} queue at position {position}")
        return entry

    def leave(self, db: Session, target_id: int, user_id: int):
        with atomic(db):
            self.lock_target(db, target_id)
            entry = db.query(self.entry_model).filter(
                self.target_column == target_id,
                self.entry_model.user_id == user_id,
                self.entry_model.status == QueueStatus.WAITING.value,
            ).first()
            if entry is None:
                raise NotQueued(f"User {user_id} is not waiting for {self.kind} {target_id}")
            position = entry.position
            db.delete(entry)
            self._resequence(db, target_id)
            logger.info(f"User {user_id} left {self.kind} {target_id} queue (was position {position})")

    def notify(self, db: Session, entry_id: int, policy: LoanPolicy, now: Optional[datetime] = None):
        """Promote the head of the line to ``notified`` with a claim window."""
        now = now or now_local()
        with atomic(db):
            entry = self.get_entry(db, entry_id)
            target = self.lock_target(db, entry.target_id)
            head = next(iter(self.waiting(db, entry.target_id)), None)
            if head is None or head.entry_id != entry.entry_id:
                raise InvalidTransition(f"Queue entry {entry_id} is not at the head of the {self.kind} queue")
            current = self.holder(db, entry.target_id, now)
            if current is not None:
                raise InvalidTransition(f"{self.kind.capitalize()} {entry.target_id} is already held by entry {current.entry_id}")

            self._transition(entry, QueueStatus.NOTIFIED)
            entry.notified_at = now
            entry.expires_at = now + timedelta(hours=policy.queue_notification_hours)
            self._resequence(db, entry.target_id)

            label = getattr(target, self.label_attr)
            notification_service.push(
                db,
                entry.user_id,
                type="queue_spot_available",
                title="Spot available",
                message=f"\"{label}\" is available for you. You have {policy.queue_notification_hours} hours to claim it.",
                data={"kind": self.kind, "targetId": entry.target_id, "entryId": entry.entry_id,
                      "expiresAt": entry.expires_at.isoformat()},
                now=now,
            )
            logger.info(f"Notified user {entry.user_id} for {self.kind} {entry.target_id} (expires {entry.expires_at})")
        return entry

    def notify_head(self, db: Session, target_id: int, policy: LoanPolicy, now: Optional[datetime] = None):
        """Notify the first waiting entry unless someone already holds the target."""
        now = now or now_local()
        with atomic(db):
            self.lock_target(db, target_id)
            if self.holder(db, target_id, now) is not None:
                return None
            head = next(iter(self.waiting(db, target_id)), None)
            if head is None:
                return None
            return self.notify(db, head.entry_id, policy, now)

    def claim(self, db: Session, entry_id: int, user_id: int, now: Optional[datetime] = None):
        """``notified -> enrolled``. The caller creates the loan or enrollment."""
        now = now or now_local()
        with atomic(db):
            entry = self.get_entry(db, entry_id)
            self.lock_target(db, entry.target_id)
            if entry.user_id != user_id:
                raise PermissionDenied("Queue entry belongs to another user")
            if entry.status != QueueStatus.NOTIFIED.value:
                raise InvalidTransition(f"Queue entry {entry_id} is {entry.status}, not notified")
            if now > ensure_aware(entry.expires_at):
                raise Expired(f"Notification for queue entry {entry_id} expired at {entry.expires_at}")
            self._transition(entry, QueueStatus.ENROLLED)
            entry.enrolled_at = now
            logger.info(f"User {user_id} claimed {self.kind} {entry.target_id} from the queue")
        return entry

    def expire(self, db: Session, entry_id: int, policy: LoanPolicy, now: Optional[datetime] = None):
        """``notified -> expired`` once the window passed, then notify the next head."""
        now = now or now_local()
        with atomic(db):
            entry = self.get_entry(db, entry_id)
            self.lock_target(db, entry.target_id)
            if entry.status != QueueStatus.NOTIFIED.value:
                raise InvalidTransition(f"Queue entry {entry_id} is {entry.status}, not notified")
            if ensure_aware(entry.expires_at) > now:
                raise InvalidTransition(f"Notification for queue entry {entry_id} is still open")
            self._transition(entry, QueueStatus.EXPIRED)
            db.flush()
            logger.info(f"Queue entry {entry_id} for {self.kind} {entry.target_id} expired")
            notification_service.push(
                db,
                entry.user_id,
                type="queue_spot_expired",
                title="Reservation expired",
                message=f"Your {self.kind} spot was not claimed in time and went to the next person in line.",
                data={"kind": self.kind, "targetId": entry.target_id, "entryId": entry.entry_id},
                now=now,
            )
            self.notify_head(db, entry.target_id, policy, now)
        return entry

    def expire_due(self, db: Session, policy: LoanPolicy, now: Optional[datetime] = None) -> List:
        """Expire every notified entry whose window has passed."""
        now = now or now_local()
        notified = db.query(self.entry_model).filter(
            self.entry_model.status == QueueStatus.NOTIFIED.value,
        ).order_by(self.entry_model.expires_at.asc()).all()
        expired = []
        for entry in notified:
            if ensure_aware(entry.expires_at) <= now:
                expired.append(self.expire(db, entry.entry_id, policy, now))
        return expired


resource_queue = QueueLedger(
    QueueEntry, Resource, kind="resource", label_attr="name",
    is_closed=lambda resource: resource.status == ResourceStatus.RETIRED.value,
)
event_waitlist = QueueLedger(
    EventWaitlistEntry, Event, kind="event", label_attr="title",
    is_closed=lambda event: not event.is_active,
)
