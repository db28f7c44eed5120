"""
Unit Tests for the periodic sweep
"""
from datetime import timedelta
from unittest.mock import patch

from app.models.enums import LoanStatus, QueueStatus, SanctionSeverity, SanctionStatus
from app.models.loan import Loan
from app.models.queue import QueueEntry
from app.models.sanction import Sanction
from app.models.user import User
from app.services import loans, sanctions
from app.services.queue_ledger import resource_queue
from app.services.sweeper import run_sweep, create_scheduler, SWEEP_JOB_ID


class TestRunSweep:

    def test_sweep_applies_every_time_based_transition(self, db_session, session_factory, resource_factory,
                                                        student, other_student, third_student, policy, now):
        # an active loan that will be overdue
        borrowed = resource_factory()
        overdue = loans.request_loan(db_session, student.user_id, borrowed.resource_id, policy, now).loan
        loans.deliver_loan(db_session, overdue.loan_id, policy, now=now)
        # an approved loan nobody picks up, with someone queued behind it
        reserved = resource_factory()
        unclaimed = loans.request_loan(db_session, other_student.user_id, reserved.resource_id, policy, now).loan
        waiting = loans.request_loan(db_session, third_student.user_id, reserved.resource_id, policy, now).queue_entry

        overdue_id, unclaimed_id, waiting_id = overdue.loan_id, unclaimed.loan_id, waiting.entry_id

        counts = run_sweep(session_factory, policy, now + timedelta(days=8))

        assert counts["overdue"] == 1
        assert counts["unclaimed"] == 1
        assert counts["errors"] == 0
        db_session.expire_all()
        assert db_session.get(Loan, overdue_id).status == LoanStatus.OVERDUE.value
        assert db_session.get(Loan, unclaimed_id).status == LoanStatus.EXPIRED.value
        # the released resource went to the queue head
        assert db_session.get(QueueEntry, waiting_id).status == QueueStatus.NOTIFIED.value

    def test_sweep_expires_lapsed_notifications(self, db_session, session_factory, resource, student, policy, now):
        entry = resource_queue.join(db_session, resource.resource_id, student.user_id, now)
        resource_queue.notify(db_session, entry.entry_id, policy, now)
        entry_id = entry.entry_id

        counts = run_sweep(session_factory, policy, now + timedelta(hours=30))

        assert counts["queueExpired"] == 1
        db_session.expire_all()
        assert db_session.get(QueueEntry, entry_id).status == QueueStatus.EXPIRED.value

    def test_sweep_completes_elapsed_sanctions(self, db_session, session_factory, student, admin_user, policy, now):
        sanction = sanctions.create_sanction(
            db_session, student.user_id, SanctionSeverity.CRITICAL, "Lost projector",
            issued_by=admin_user.user_id, start_date=now, end_date=now + timedelta(days=30), now=now,
        )
        sanction_id, student_id = sanction.sanction_id, student.user_id

        counts = run_sweep(session_factory, policy, now + timedelta(days=31))

        assert counts["sanctionsCompleted"] == 1
        db_session.expire_all()
        assert db_session.get(Sanction, sanction_id).status == SanctionStatus.COMPLETED.value
        assert db_session.get(User, student_id).is_blocked is False

    def test_failing_step_does_not_stop_the_others(self, session_factory, policy, now):
        with patch("app.services.sweeper.loans.mark_overdue", side_effect=RuntimeError("boom")):
            counts = run_sweep(session_factory, policy, now)
        assert counts["errors"] == 1
        assert counts["unclaimed"] == 0


class TestScheduler:

    def test_job_is_registered(self):
        scheduler = create_scheduler()
        job = scheduler.get_job(SWEEP_JOB_ID)
        assert job is not None
        assert job.max_instances == 1
        assert not scheduler.running
