"""
Unit Tests for events, enrollments, attendance awards and the event waitlist
"""
from datetime import timedelta

import pytest

from app.config import LoanPolicy
from app.models.enums import QueueStatus, WellnessSource
from app.models.event import EventEnrollment
from app.models.notification import Notification
from app.models.wellness import WellnessHourAward
from app.services import events
from app.services.errors import AlreadyEnrolled, InvalidTransition, ResourceUnavailable, AlreadyQueued
from app.services.queue_ledger import event_waitlist


@pytest.fixture
def event_factory(db_session, admin_user, now):
    def make(**overrides):
        fields = dict(
            title="Yoga at sunrise",
            start_date=now + timedelta(days=3),
            end_date=now + timedelta(days=3, hours=2),
            wellness_hours=2.5,
            location="Gym B",
            max_participants=None,
        )
        fields.update(overrides)
        return events.create_event(db_session, admin_user.user_id, **fields)
    return make


def award_count(db, event_id):
    return db.query(WellnessHourAward).filter(
        WellnessHourAward.source_type == WellnessSource.EVENT.value,
        WellnessHourAward.source_id == event_id,
    ).count()


class TestEventAdmin:
    """create / update / cancel"""

    def test_create(self, event_factory):
        event = event_factory()
        assert event.is_active is True
        assert float(event.wellness_hours) == 2.5

    def test_end_before_start(self, event_factory, now):
        with pytest.raises(InvalidTransition):
            event_factory(start_date=now + timedelta(days=2), end_date=now + timedelta(days=1))

    def test_cancel_notifies_enrolled(self, db_session, event_factory, student, policy, now):
        event = event_factory()
        events.enroll(db_session, event.event_id, student.user_id, policy, now)

        events.cancel_event(db_session, event.event_id, now)

        db_session.refresh(event)
        assert event.is_active is False
        types = [n.type for n in db_session.query(Notification).filter(Notification.user_id == student.user_id)]
        assert "event_cancelled" in types

    def test_cancel_twice(self, db_session, event_factory, now):
        event = event_factory()
        events.cancel_event(db_session, event.event_id, now)
        with pytest.raises(InvalidTransition):
            events.cancel_event(db_session, event.event_id, now)

    def test_raising_capacity_notifies_waitlist(self, db_session, event_factory, student, other_student, policy, now):
        event = event_factory(max_participants=1)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        _, entry = events.enroll(db_session, event.event_id, other_student.user_id, policy, now)

        events.update_event(db_session, event.event_id, policy, max_participants=2)

        db_session.refresh(entry)
        assert entry.status == QueueStatus.NOTIFIED.value

    def test_capacity_below_enrollment(self, db_session, event_factory, student, other_student, policy, now):
        event = event_factory(max_participants=3)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        events.enroll(db_session, event.event_id, other_student.user_id, policy, now)
        with pytest.raises(InvalidTransition):
            events.update_event(db_session, event.event_id, policy, max_participants=1)


class TestEnrollment:
    """enroll / unenroll / waitlist"""

    def test_enroll(self, db_session, event_factory, student, policy, now):
        event = event_factory()
        enrollment, entry = events.enroll(db_session, event.event_id, student.user_id, policy, now)
        assert entry is None
        assert enrollment.user_id == student.user_id
        assert enrollment.attended is False

    def test_enroll_twice(self, db_session, event_factory, student, policy, now):
        event = event_factory()
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        with pytest.raises(AlreadyEnrolled):
            events.enroll(db_session, event.event_id, student.user_id, policy, now)

    def test_inactive_event(self, db_session, event_factory, student, policy, now):
        event = event_factory()
        events.cancel_event(db_session, event.event_id, now)
        with pytest.raises(ResourceUnavailable):
            events.enroll(db_session, event.event_id, student.user_id, policy, now)

    def test_full_event_waitlists(self, db_session, event_factory, student, other_student, third_student, policy, now):
        event = event_factory(max_participants=1)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)

        _, first = events.enroll(db_session, event.event_id, other_student.user_id, policy, now)
        _, second = events.enroll(db_session, event.event_id, third_student.user_id, policy, now)

        assert (first.position, second.position) == (1, 2)
        assert events.enrollment_count(db_session, event.event_id) == 1
        with pytest.raises(AlreadyQueued):
            events.enroll(db_session, event.event_id, other_student.user_id, policy, now)

    def test_full_event_without_queue(self, db_session, event_factory, student, other_student, now):
        policy = LoanPolicy(enable_queue_system=False)
        event = event_factory(max_participants=1)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        with pytest.raises(ResourceUnavailable):
            events.enroll(db_session, event.event_id, other_student.user_id, policy, now)

    def test_unenroll_hands_seat_to_waitlist(self, db_session, event_factory, student, other_student, policy, now):
        event = event_factory(max_participants=1)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        _, entry = events.enroll(db_session, event.event_id, other_student.user_id, policy, now)

        events.unenroll(db_session, event.event_id, student.user_id, policy, now)

        db_session.refresh(entry)
        assert entry.status == QueueStatus.NOTIFIED.value

        enrollment = events.enroll_from_waitlist(db_session, entry.entry_id, other_student.user_id, policy, now + timedelta(hours=1))
        assert enrollment.user_id == other_student.user_id
        db_session.refresh(entry)
        assert entry.status == QueueStatus.ENROLLED.value

    def test_enroll_call_by_holder_claims_seat(self, db_session, event_factory, student, other_student, policy, now):
        event = event_factory(max_participants=1)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        events.enroll(db_session, event.event_id, other_student.user_id, policy, now)
        events.unenroll(db_session, event.event_id, student.user_id, policy, now)

        enrollment, entry = events.enroll(db_session, event.event_id, other_student.user_id, policy, now)

        assert enrollment is not None
        assert entry.status == QueueStatus.ENROLLED.value

    def test_held_seat_is_not_given_away(self, db_session, event_factory, student, other_student, third_student, policy, now):
        event = event_factory(max_participants=1)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        events.enroll(db_session, event.event_id, other_student.user_id, policy, now)
        events.unenroll(db_session, event.event_id, student.user_id, policy, now)

        enrollment, entry = events.enroll(db_session, event.event_id, third_student.user_id, policy, now)

        assert enrollment is None
        assert entry.status == QueueStatus.WAITING.value

    def test_waitlist_advances_after_each_claim(self, db_session, event_factory, student_factory, policy, now):
        first, second, third, fourth, walk_in = (student_factory() for _ in range(5))
        event = event_factory(max_participants=2)
        events.enroll(db_session, event.event_id, first.user_id, policy, now)
        events.enroll(db_session, event.event_id, second.user_id, policy, now)
        _, third_entry = events.enroll(db_session, event.event_id, third.user_id, policy, now)
        _, fourth_entry = events.enroll(db_session, event.event_id, fourth.user_id, policy, now)

        events.unenroll(db_session, event.event_id, first.user_id, policy, now)
        events.unenroll(db_session, event.event_id, second.user_id, policy, now)
        enrollment, walk_in_entry = events.enroll(db_session, event.event_id, walk_in.user_id, policy, now)
        assert enrollment is None

        events.enroll_from_waitlist(db_session, third_entry.entry_id, third.user_id, policy, now + timedelta(hours=1))

        db_session.refresh(fourth_entry)
        assert fourth_entry.status == QueueStatus.NOTIFIED.value
        db_session.refresh(walk_in_entry)
        assert walk_in_entry.status == QueueStatus.WAITING.value
        assert walk_in_entry.position == 1

    def test_free_seat_goes_to_the_waiting_line(self, db_session, event_factory, student, other_student, third_student, policy, now):
        event = event_factory(max_participants=2)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        waiting = event_waitlist.join(db_session, event.event_id, other_student.user_id, now)

        enrollment, entry = events.enroll(db_session, event.event_id, third_student.user_id, policy, now)

        assert enrollment is None
        assert entry.status == QueueStatus.WAITING.value
        db_session.refresh(waiting)
        assert waiting.status == QueueStatus.NOTIFIED.value
        assert events.enrollment_count(db_session, event.event_id) == 1

    def test_unenroll_after_attendance(self, db_session, event_factory, student, admin_user, policy, now):
        event = event_factory()
        enrollment, _ = events.enroll(db_session, event.event_id, student.user_id, policy, now)
        events.mark_attendance(db_session, enrollment.enrollment_id, True, admin_user.user_id, now)
        with pytest.raises(InvalidTransition):
            events.unenroll(db_session, event.event_id, student.user_id, policy, now)


class TestAttendance:
    """mark_attendance keeps exactly one award in step"""

    def test_attendance_awards_event_hours(self, db_session, event_factory, student, admin_user, policy, now):
        event = event_factory()
        enrollment, _ = events.enroll(db_session, event.event_id, student.user_id, policy, now)

        events.mark_attendance(db_session, enrollment.enrollment_id, True, admin_user.user_id, now)

        award = db_session.query(WellnessHourAward).one()
        assert float(award.hours) == 2.5
        assert award.source_id == event.event_id
        assert award.user_id == student.user_id

    def test_marking_twice_is_idempotent(self, db_session, event_factory, student, admin_user, policy, now):
        event = event_factory()
        enrollment, _ = events.enroll(db_session, event.event_id, student.user_id, policy, now)
        events.mark_attendance(db_session, enrollment.enrollment_id, True, admin_user.user_id, now)
        events.mark_attendance(db_session, enrollment.enrollment_id, True, admin_user.user_id, now)
        assert award_count(db_session, event.event_id) == 1

    def test_unmarking_deletes_exactly_that_award(self, db_session, event_factory, student, other_student, admin_user, policy, now):
        event = event_factory()
        mine, _ = events.enroll(db_session, event.event_id, student.user_id, policy, now)
        theirs, _ = events.enroll(db_session, event.event_id, other_student.user_id, policy, now)
        events.mark_attendance(db_session, mine.enrollment_id, True, admin_user.user_id, now)
        events.mark_attendance(db_session, theirs.enrollment_id, True, admin_user.user_id, now)

        events.mark_attendance(db_session, mine.enrollment_id, False, admin_user.user_id, now)

        remaining = db_session.query(WellnessHourAward).all()
        assert [a.user_id for a in remaining] == [other_student.user_id]
        enrollment = db_session.query(EventEnrollment).filter(
            EventEnrollment.enrollment_id == mine.enrollment_id
        ).one()
        assert enrollment.attended is False

    def test_waitlist_expiry_moves_to_next(self, db_session, event_factory, student, other_student, third_student, policy, now):
        event = event_factory(max_participants=1)
        events.enroll(db_session, event.event_id, student.user_id, policy, now)
        _, first = events.enroll(db_session, event.event_id, other_student.user_id, policy, now)
        _, second = events.enroll(db_session, event.event_id, third_student.user_id, policy, now)
        events.unenroll(db_session, event.event_id, student.user_id, policy, now)

        event_waitlist.expire_due(db_session, policy, now + timedelta(hours=25))

        db_session.refresh(first)
        db_session.refresh(second)
        assert first.status == QueueStatus.EXPIRED.value
        assert second.status == QueueStatus.NOTIFIED.value
