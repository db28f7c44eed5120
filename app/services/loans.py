"""Loan lifecycle: request -> approval -> delivery -> return.

Each public function is one unit of work: the loan row, the resource row, any
award/penalty rows and the queue advancement commit together or not at all.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import LoanPolicy
from app.database import atomic
from app.models.enums import (
    LoanStatus, ResourceStatus, DecisionSource, WellnessSource,
    LOAN_TRANSITIONS, OPEN_LOAN_STATUSES, HOLDING_LOAN_STATUSES, values,
)
from app.models.loan import Loan
from app.models.queue import QueueEntry
from app.models.resource import Resource
from app.models.user import User
from app.models.wellness import WellnessHourAward, HourPenalty
from app.services import hours
from app.services.eligibility import Eligibility, CategoryFlags, evaluate
from app.services.errors import (
    LoanLimitExceeded, InvalidTransition, ResourceUnavailable, NotFound, PermissionDenied,
)
from app.services.notifications import notification_service
from app.services.queue_ledger import resource_queue
from app.services.scoring import in_good_standing
from app.utils.timezone import now_local, ensure_aware, to_local

logger = logging.getLogger(__name__)


@dataclass
class RequestOutcome:
    """Either a loan was created or the requester was queued."""
    loan: Optional[Loan] = None
    queue_entry: Optional[QueueEntry] = None
    eligibility: Optional[Eligibility] = None

    @property
    def queued(self) -> bool:
        return self.queue_entry is not None


# -- helpers -------------------------------------------------------------

def _transition(loan: Loan, target: LoanStatus):
    current = LoanStatus(loan.status)
    if target not in LOAN_TRANSITIONS[current]:
        raise InvalidTransition(f"Loan {loan.loan_id} cannot go from {current.value} to {target.value}")
    loan.status = target.value


def _get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.user_id == user_id).first()
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


def _lock_loan(db: Session, loan_id: int) -> Loan:
    loan = db.query(Loan).filter(Loan.loan_id == loan_id).with_for_update().first()
    if loan is None:
        raise NotFound(f"Loan {loan_id} not found")
    resource_queue.lock_target(db, loan.resource_id)
    return loan


def active_loan_count(db: Session, user_id: int) -> int:
    return db.query(Loan).filter(
        Loan.user_id == user_id,
        Loan.status.in_(values(OPEN_LOAN_STATUSES)),
    ).count()


def category_active_count(db: Session, user_id: int, category_id: int) -> int:
    return db.query(Loan).join(Resource, Loan.resource_id == Resource.resource_id).filter(
        Loan.user_id == user_id,
        Resource.category_id == category_id,
        Loan.status.in_(values(OPEN_LOAN_STATUSES)),
    ).count()


def holding_loan(db: Session, resource_id: int, exclude_loan_id: Optional[int] = None) -> Optional[Loan]:
    """The loan currently holding the resource (approved, active or overdue)."""
    query = db.query(Loan).filter(
        Loan.resource_id == resource_id,
        Loan.status.in_(values(HOLDING_LOAN_STATUSES)),
    )
    if exclude_loan_id is not None:
        query = query.filter(Loan.loan_id != exclude_loan_id)
    return query.first()


def open_loan_for(db: Session, user_id: int, resource_id: int) -> Optional[Loan]:
    return db.query(Loan).filter(
        Loan.user_id == user_id,
        Loan.resource_id == resource_id,
        Loan.status.in_(values(OPEN_LOAN_STATUSES)),
    ).first()


def _ensure_no_open_loan(db: Session, user_id: int, resource_id: int):
    existing = open_loan_for(db, user_id, resource_id)
    if existing is not None:
        raise InvalidTransition(
            f"User {user_id} already has loan {existing.loan_id} ({existing.status}) for resource {resource_id}"
        )


def queue_turn_in_use(db: Session, resource_id: int, now: datetime) -> bool:
    """The queue's turn is taken by a live notification or by a pending loan claimed from it."""
    if resource_queue.holder(db, resource_id, now) is not None:
        return True
    return db.query(Loan).filter(
        Loan.resource_id == resource_id,
        Loan.status == LoanStatus.PENDING.value,
        Loan.queue_entry_id.isnot(None),
    ).first() is not None


def _is_free_for(db: Session, resource: Resource, user_id: int, now: datetime) -> bool:
    if resource.status != ResourceStatus.AVAILABLE.value:
        return False
    if holding_loan(db, resource.resource_id) is not None:
        return False
    holder = resource_queue.holder(db, resource.resource_id, now)
    if holder is not None:
        return holder.user_id == user_id
    if queue_turn_in_use(db, resource.resource_id, now):
        return False
    # nobody may pass students already waiting in line
    return not resource_queue.waiting(db, resource.resource_id)


def advance_queue(db: Session, resource: Resource, policy: LoanPolicy, now: Optional[datetime] = None):
    """Offer an idle resource to the head of its queue; returns the notified entry, if any."""
    now = now or now_local()
    if resource.status != ResourceStatus.AVAILABLE.value:
        return None
    if holding_loan(db, resource.resource_id) is not None or queue_turn_in_use(db, resource.resource_id, now):
        return None
    return resource_queue.notify_head(db, resource.resource_id, policy, now)


def _default_due_date(resource: Resource, policy: LoanPolicy, now: datetime) -> datetime:
    days = policy.max_loan_days
    if policy.honor_category_max_loan_days and resource.category is not None:
        days = resource.category.max_loan_days
    return now + timedelta(days=days)


def _penalize(db: Session, loan: Loan, penalty_hours: float, reason: str, now: datetime):
    if penalty_hours <= 0:
        return None
    penalty = HourPenalty(
        user_id=loan.user_id,
        hours=round(penalty_hours, 1),
        source_type=WellnessSource.LOAN.value,
        source_id=loan.loan_id,
        reason=reason,
        applied_at=now,
    )
    db.add(penalty)
    logger.info(f"Penalty of {penalty_hours}h applied to user {loan.user_id} for loan {loan.loan_id}: {reason}")
    return penalty


def _create_loan(db: Session, user: User, resource: Resource, policy: LoanPolicy, now: datetime) -> RequestOutcome:
    category = resource.category
    eligibility = evaluate(
        active_loan_count(db, user.user_id),
        CategoryFlags.from_category(category),
        policy,
        in_good_standing=in_good_standing(db, user, resource.resource_id, policy.min_trust_score_auto_approve),
        category_active_count=category_active_count(db, user.user_id, category.category_id),
    )
    if eligibility == Eligibility.DENY_LIMIT:
        logger.warning(f"User {user.user_id} denied a loan of resource {resource.resource_id}: limit reached")
        raise LoanLimitExceeded(
            f"Active loan limit reached ({policy.system_max_active_loans}). Return a resource before requesting another."
        )

    loan = Loan(user_id=user.user_id, resource_id=resource.resource_id, requested_at=now)
    if eligibility == Eligibility.AUTO_APPROVE:
        loan.status = LoanStatus.APPROVED.value
        loan.decision_source = DecisionSource.AUTOMATIC.value
        loan.approved_at = now
        loan.pickup_deadline = now + timedelta(hours=policy.pickup_window_hours)
        resource.status = ResourceStatus.RESERVED.value
        title, message = "Loan approved", f"Your loan of \"{resource.name}\" was approved automatically. Pick it up at the wellness office."
    else:
        loan.status = LoanStatus.PENDING.value
        loan.decision_source = DecisionSource.HUMAN.value
        title, message = "Loan requested", f"Your request for \"{resource.name}\" is pending approval."
    db.add(loan)
    db.flush()

    notification_service.push(
        db, user.user_id, type=f"loan_{loan.status}", title=title, message=message,
        data={"loanId": loan.loan_id, "resourceId": resource.resource_id}, now=now,
    )
    logger.info(f"Loan {loan.loan_id} created for user {user.user_id} on resource {resource.resource_id} ({eligibility.value})")
    return RequestOutcome(loan=loan, eligibility=eligibility)


# -- inbound operations ----------------------------------------------------

def request_loan(db: Session, user_id: int, resource_id: int, policy: LoanPolicy,
                 now: Optional[datetime] = None) -> RequestOutcome:
    now = now or now_local()
    with atomic(db):
        resource = resource_queue.lock_target(db, resource_id)
        user = _get_user(db, user_id)

        if resource.status == ResourceStatus.RETIRED.value:
            raise ResourceUnavailable(f"Resource {resource_id} is retired")

        _ensure_no_open_loan(db, user_id, resource_id)

        holder = resource_queue.holder(db, resource_id, now)
        if holder is not None and holder.user_id == user_id:
            return enroll_from_waitlist(db, holder.entry_id, user_id, policy, now)

        if not _is_free_for(db, resource, user_id, now):
            if not policy.enable_queue_system:
                raise ResourceUnavailable(f"Resource {resource_id} is not available")
            entry = resource_queue.join(db, resource_id, user_id, now)
            advance_queue(db, resource, policy, now)
            return RequestOutcome(queue_entry=entry)

        return _create_loan(db, user, resource, policy, now)


def enroll_from_waitlist(db: Session, entry_id: int, user_id: int, policy: LoanPolicy,
                         now: Optional[datetime] = None) -> RequestOutcome:
    """Claim a queue notification; this is what creates the loan."""
    now = now or now_local()
    with atomic(db):
        entry = resource_queue.claim(db, entry_id, user_id, now)
        resource = resource_queue.lock_target(db, entry.resource_id)
        if resource.status != ResourceStatus.AVAILABLE.value or holding_loan(db, resource.resource_id) is not None:
            raise ResourceUnavailable(f"Resource {resource.resource_id} is no longer available")
        _ensure_no_open_loan(db, user_id, resource.resource_id)
        outcome = _create_loan(db, _get_user(db, user_id), resource, policy, now)
        outcome.loan.queue_entry_id = entry.entry_id
        db.flush()
        outcome.queue_entry = entry
        return outcome


def approve_loan(db: Session, loan_id: int, admin_id: int, policy: LoanPolicy,
                 notes: Optional[str] = None, now: Optional[datetime] = None) -> Loan:
    now = now or now_local()
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        if loan.status != LoanStatus.PENDING.value:
            raise InvalidTransition(f"Loan {loan_id} is {loan.status}, not pending")
        resource = loan.resource
        if resource.status in (ResourceStatus.MAINTENANCE.value, ResourceStatus.RETIRED.value):
            raise ResourceUnavailable(f"Resource {resource.resource_id} is {resource.status}")
        if holding_loan(db, resource.resource_id, exclude_loan_id=loan.loan_id) is not None:
            raise ResourceUnavailable(f"Resource {resource.resource_id} is already committed to another loan")

        _transition(loan, LoanStatus.APPROVED)
        loan.approved_at = now
        loan.approved_by = admin_id
        loan.pickup_deadline = now + timedelta(hours=policy.pickup_window_hours)
        if notes:
            loan.admin_notes = notes
        notification_service.push(
            db, loan.user_id, type="loan_approved", title="Loan approved",
            message=f"Your loan of \"{resource.name}\" was approved. Pick it up within {policy.pickup_window_hours} hours.",
            data={"loanId": loan.loan_id}, now=now,
        )
        logger.info(f"Loan {loan_id} approved by admin {admin_id}")
    return loan


def reject_loan(db: Session, loan_id: int, admin_id: int, policy: LoanPolicy, notes: Optional[str] = None,
                now: Optional[datetime] = None) -> Loan:
    now = now or now_local()
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        _transition(loan, LoanStatus.REJECTED)
        loan.rejected_at = now
        if notes:
            loan.admin_notes = notes
        notification_service.push(
            db, loan.user_id, type="loan_rejected", title="Loan rejected",
            message=f"Your request for \"{loan.resource.name}\" was rejected." + (f" {notes}" if notes else ""),
            data={"loanId": loan.loan_id}, now=now,
        )
        db.flush()
        logger.info(f"Loan {loan_id} rejected by admin {admin_id}")
        advance_queue(db, loan.resource, policy, now)
    return loan


def cancel_loan(db: Session, loan_id: int, user_id: int, policy: LoanPolicy, now: Optional[datetime] = None):
    """A requester withdraws a pending request; the row is deleted."""
    now = now or now_local()
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        if loan.user_id != user_id:
            raise PermissionDenied("Loan belongs to another user")
        if loan.status != LoanStatus.PENDING.value:
            raise InvalidTransition(f"Only pending loans can be cancelled (loan {loan_id} is {loan.status})")
        resource = loan.resource
        db.delete(loan)
        db.flush()
        logger.info(f"Loan {loan_id} cancelled by user {user_id}")
        advance_queue(db, resource, policy, now)


def deliver_loan(db: Session, loan_id: int, policy: LoanPolicy, due_date: Optional[datetime] = None,
                 now: Optional[datetime] = None) -> Loan:
    now = now or now_local()
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        resource = loan.resource
        if due_date is not None:
            due_date = to_local(due_date)
            if due_date <= now:
                raise InvalidTransition("Due date must be in the future")
        else:
            due_date = _default_due_date(resource, policy, now)

        _transition(loan, LoanStatus.ACTIVE)
        loan.delivered_at = now
        loan.due_date = due_date
        resource.status = ResourceStatus.BORROWED.value
        notification_service.push(
            db, loan.user_id, type="loan_delivered", title="Loan delivered",
            message=f"You picked up \"{resource.name}\". Return it by {due_date:%Y-%m-%d %H:%M}.",
            data={"loanId": loan.loan_id, "dueDate": due_date.isoformat()}, now=now,
        )
        logger.info(f"Loan {loan_id} delivered, due {due_date}")
    return loan


def return_loan(db: Session, loan_id: int, policy: LoanPolicy, admin_id: Optional[int] = None,
                now: Optional[datetime] = None) -> Loan:
    """Close the loan, credit wellness hours and hand the resource to the queue."""
    now = now or now_local()
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        resource = loan.resource
        category = resource.category
        was_late = loan.due_date is not None and now > ensure_aware(loan.due_date)

        _transition(loan, LoanStatus.RETURNED)
        loan.returned_at = now
        resource.status = ResourceStatus.AVAILABLE.value

        awarded = hours.compute(category.base_wellness_hours, category.hourly_factor, loan.delivered_at, now)
        if awarded > 0:
            db.add(WellnessHourAward(
                user_id=loan.user_id,
                hours=awarded,
                source_type=WellnessSource.LOAN.value,
                source_id=loan.loan_id,
                description=f"Loan: {resource.name}",
                awarded_by=admin_id,
                awarded_at=now,
            ))
        if was_late:
            _penalize(db, loan, policy.late_penalty_hours, f"Late return: {resource.name}", now)

        notification_service.push(
            db, loan.user_id, type="loan_returned", title="Loan returned",
            message=f"Thanks for returning \"{resource.name}\". You earned {awarded} wellness hours.",
            data={"loanId": loan.loan_id, "hours": awarded, "late": was_late}, now=now,
        )
        db.flush()
        logger.info(f"Loan {loan_id} returned (late={was_late}), awarded {awarded}h")

        advance_queue(db, resource, policy, now)
    return loan


def mark_damaged(db: Session, loan_id: int, policy: LoanPolicy, notes: Optional[str] = None,
                 now: Optional[datetime] = None) -> Loan:
    now = now or now_local()
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        resource = loan.resource
        _transition(loan, LoanStatus.DAMAGED)
        loan.returned_at = now
        loan.closed_at = now
        loan.damage_notes = notes
        resource.status = ResourceStatus.MAINTENANCE.value
        _penalize(db, loan, policy.damage_penalty_hours, f"Damaged resource: {resource.name}", now)
        notification_service.push(
            db, loan.user_id, type="loan_damaged", title="Resource reported damaged",
            message=f"\"{resource.name}\" was returned damaged. A penalty of {policy.damage_penalty_hours} hours was applied.",
            data={"loanId": loan.loan_id}, now=now,
        )
        logger.warning(f"Loan {loan_id} closed as damaged; resource {resource.resource_id} sent to maintenance")
    return loan


def mark_lost(db: Session, loan_id: int, policy: LoanPolicy, notes: Optional[str] = None,
              now: Optional[datetime] = None) -> Loan:
    now = now or now_local()
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        resource = loan.resource
        _transition(loan, LoanStatus.LOST)
        loan.closed_at = now
        if notes:
            loan.admin_notes = notes
        resource.status = ResourceStatus.RETIRED.value
        _penalize(db, loan, policy.lost_penalty_hours, f"Lost resource: {resource.name}", now)
        notification_service.push(
            db, loan.user_id, type="loan_lost", title="Resource reported lost",
            message=f"\"{resource.name}\" was reported lost. A penalty of {policy.lost_penalty_hours} hours was applied.",
            data={"loanId": loan.loan_id}, now=now,
        )
        logger.warning(f"Loan {loan_id} closed as lost; resource {resource.resource_id} retired")
    return loan


def request_extension(db: Session, loan_id: int, user_id: int, reason: str) -> Loan:
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        if loan.user_id != user_id:
            raise PermissionDenied("Loan belongs to another user")
        if loan.status not in (LoanStatus.ACTIVE.value, LoanStatus.OVERDUE.value):
            raise InvalidTransition(f"Extensions can only be requested for active loans (loan {loan_id} is {loan.status})")
        if loan.extension_requested:
            raise InvalidTransition(f"Loan {loan_id} already has an extension request")
        loan.extension_requested = True
        loan.extension_reason = reason.strip()
        loan.extension_approved = None
        logger.info(f"Extension requested for loan {loan_id}")
    return loan


def decide_extension(db: Session, loan_id: int, approved: bool, policy: LoanPolicy,
                     new_due_date: Optional[datetime] = None, now: Optional[datetime] = None) -> Loan:
    now = now or now_local()
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        if not loan.extension_requested or loan.extension_approved is not None:
            raise InvalidTransition(f"Loan {loan_id} has no pending extension request")
        if loan.status not in (LoanStatus.ACTIVE.value, LoanStatus.OVERDUE.value):
            raise InvalidTransition(f"Loan {loan_id} is {loan.status}; extensions apply to active loans")

        loan.extension_decided_at = now
        if approved:
            current_due = ensure_aware(loan.due_date)
            due = to_local(new_due_date) if new_due_date else current_due + timedelta(days=policy.extension_days)
            if due <= current_due:
                raise InvalidTransition("The extended due date must be later than the current one")
            loan.due_date = due
            loan.extension_approved = True
            if loan.status == LoanStatus.OVERDUE.value and due > now:
                _transition(loan, LoanStatus.ACTIVE)
            message = f"Your extension was approved. New due date: {due:%Y-%m-%d %H:%M}."
        else:
            loan.extension_approved = False
            message = "Your extension request was rejected."
        notification_service.push(
            db, loan.user_id, type="loan_extension", title="Extension decided", message=message,
            data={"loanId": loan.loan_id, "approved": approved}, now=now,
        )
        logger.info(f"Extension for loan {loan_id} {'approved' if approved else 'rejected'}")
    return loan


def rate_loan(db: Session, loan_id: int, user_id: int, rating: int, comment: Optional[str] = None) -> Loan:
    with atomic(db):
        loan = _lock_loan(db, loan_id)
        if loan.user_id != user_id:
            raise PermissionDenied("Loan belongs to another user")
        if loan.status != LoanStatus.RETURNED.value:
            raise InvalidTransition("Only returned loans can be rated")
        if loan.rating is not None:
            raise InvalidTransition(f"Loan {loan_id} was already rated")
        loan.rating = rating
        loan.rating_comment = comment.strip() if comment and comment.strip() else None
    return loan


# -- sweep-driven transitions ------------------------------------------------

def mark_overdue(db: Session, now: Optional[datetime] = None) -> List[Loan]:
    now = now or now_local()
    candidates = db.query(Loan).filter(
        Loan.status == LoanStatus.ACTIVE.value,
        Loan.due_date.isnot(None),
    ).all()
    overdue = []
    for candidate in candidates:
        if ensure_aware(candidate.due_date) >= now:
            continue
        with atomic(db):
            loan = _lock_loan(db, candidate.loan_id)
            if loan.status != LoanStatus.ACTIVE.value:
                continue
            _transition(loan, LoanStatus.OVERDUE)
            notification_service.push(
                db, loan.user_id, type="loan_overdue", title="Loan overdue",
                message=f"\"{loan.resource.name}\" was due {ensure_aware(loan.due_date):%Y-%m-%d %H:%M}. Please return it.",
                data={"loanId": loan.loan_id}, now=now,
            )
            overdue.append(loan)
    if overdue:
        logger.info(f"Marked {len(overdue)} loan(s) overdue")
    return overdue


def expire_unclaimed(db: Session, policy: LoanPolicy, now: Optional[datetime] = None) -> List[Loan]:
    """Approved loans never picked up before their pickup deadline."""
    now = now or now_local()
    candidates = db.query(Loan).filter(
        Loan.status == LoanStatus.APPROVED.value,
        Loan.pickup_deadline.isnot(None),
    ).all()
    expired = []
    for candidate in candidates:
        if ensure_aware(candidate.pickup_deadline) >= now:
            continue
        with atomic(db):
            loan = _lock_loan(db, candidate.loan_id)
            if loan.status != LoanStatus.APPROVED.value:
                continue
            _transition(loan, LoanStatus.EXPIRED)
            loan.closed_at = now
            resource = loan.resource
            if resource.status == ResourceStatus.RESERVED.value:
                resource.status = ResourceStatus.AVAILABLE.value
            notification_service.push(
                db, loan.user_id, type="loan_expired", title="Loan expired",
                message=f"Your approved loan of \"{resource.name}\" expired because it was not picked up in time.",
                data={"loanId": loan.loan_id}, now=now,
            )
            db.flush()
            advance_queue(db, resource, policy, now)
            expired.append(loan)
    if expired:
        logger.info(f"Expired {len(expired)} unclaimed loan(s)")
    return expired
