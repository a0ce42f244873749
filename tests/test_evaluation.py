"""
Evaluation sessions: soft lock, heartbeat, submitting scores and the
faculty-facing queue / history / stats views.
"""

from datetime import timedelta

import pytest

from evalportal.core.exceptions import (
    AuthorizationError,
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from evalportal.core.timeutil import ensure_utc
from evalportal.models.audit_log import AssignmentLog
from evalportal.models.evaluation import ManualEvaluation
from evalportal.models.submission import Submission
from evalportal.services import evaluation_service
from evalportal.services.reallocation_service import reallocate

from tests.conftest import T0, assert_load_invariant

GOOD_SCORES = {"code_quality": 30, "requirements": 30, "expected_output": 25}
POOR_SCORES = {"code_quality": 20, "requirements": 20, "expected_output": 10}


class TestEvaluationSession:
    def test_start_takes_lock(self, db_session, make_user, make_assignment):
        faculty = make_user()
        row = make_assignment(faculty)

        started = evaluation_service.start_evaluation(
            db_session, submission_id=row.submission_id, actor=faculty, now=T0
        )

        assert started.status == "in_progress"
        assert started.locked_by == faculty.id
        assert ensure_utc(started.locked_at) == T0
        assert started.version == 2

    def test_start_by_non_owner_is_forbidden(self, db_session, make_user, make_assignment):
        owner, other = make_user(), make_user()
        row = make_assignment(owner)

        with pytest.raises(AuthorizationError):
            evaluation_service.start_evaluation(
                db_session, submission_id=row.submission_id, actor=other, now=T0
            )

    def test_heartbeat_extends_lock(self, db_session, make_user, make_assignment):
        faculty = make_user()
        row = make_assignment(faculty)
        evaluation_service.start_evaluation(
            db_session, submission_id=row.submission_id, actor=faculty, now=T0
        )

        later = T0 + timedelta(minutes=10)
        beat = evaluation_service.heartbeat(
            db_session, submission_id=row.submission_id, actor=faculty, now=later
        )

        assert ensure_utc(beat.locked_at) == later
        assert beat.version == 3
        assert beat.status == "in_progress"

    def test_heartbeat_without_lock_reports_lock_lost(
        self, db_session, make_user, make_assignment
    ):
        faculty, other = make_user(), make_user()
        row = make_assignment(faculty)

        # never started
        with pytest.raises(NotFoundError, match="Lock lost"):
            evaluation_service.heartbeat(
                db_session, submission_id=row.submission_id, actor=faculty, now=T0
            )

        evaluation_service.start_evaluation(
            db_session, submission_id=row.submission_id, actor=faculty, now=T0
        )
        with pytest.raises(NotFoundError):
            evaluation_service.heartbeat(
                db_session, submission_id=row.submission_id, actor=other, now=T0
            )

    def test_heartbeat_after_reallocation_reports_lock_lost(
        self, db_session, make_user, make_assignment
    ):
        a, b = make_user(), make_user()
        row = make_assignment(a)
        evaluation_service.start_evaluation(
            db_session, submission_id=row.submission_id, actor=a, now=T0
        )
        reallocate(
            db_session,
            submission_id=row.submission_id,
            actor=a,
            target_faculty_id=b.id,
            reason="Handing over",
            now=T0 + timedelta(minutes=1),
        )

        with pytest.raises(NotFoundError):
            evaluation_service.heartbeat(
                db_session,
                submission_id=row.submission_id,
                actor=a,
                now=T0 + timedelta(minutes=2),
            )

    def test_foreign_lock_blocks_until_lease_expires(
        self, db_session, make_user, admin, make_assignment
    ):
        faculty = make_user()
        row = make_assignment(faculty)
        evaluation_service.start_evaluation(
            db_session, submission_id=row.submission_id, actor=faculty, now=T0
        )

        with pytest.raises(ConflictError):
            evaluation_service.submit_evaluation(
                db_session,
                submission_id=row.submission_id,
                actor=admin,
                scores=GOOD_SCORES,
                now=T0 + timedelta(minutes=5),
            )

        evaluation = evaluation_service.submit_evaluation(
            db_session,
            submission_id=row.submission_id,
            actor=admin,
            scores=GOOD_SCORES,
            now=T0 + timedelta(minutes=15),
        )
        assert evaluation.faculty_id == admin.id


class TestSubmitEvaluation:
    def test_scenario_evaluated_submission_is_terminal(
        self, db_session, make_user, make_assignment
    ):
        a, b = make_user(), make_user()
        row = make_assignment(a)
        make_assignment(a)

        evaluation = evaluation_service.submit_evaluation(
            db_session,
            submission_id=row.submission_id,
            actor=a,
            scores=GOOD_SCORES,
            comments="Clean structure",
            now=T0,
        )

        assert evaluation.total_score == 85
        db_session.expire_all()
        assert a.current_load == 1
        assert_load_invariant(db_session)

        with pytest.raises(BusinessRuleError, match="evaluated"):
            reallocate(
                db_session,
                submission_id=row.submission_id,
                actor=a,
                target_faculty_id=b.id,
                reason="too late",
                now=T0 + timedelta(hours=1),
            )

    def test_pass_threshold_sets_submission_outcome(
        self, db_session, make_user, make_assignment
    ):
        faculty = make_user()
        good = make_assignment(faculty)
        poor = make_assignment(faculty)

        evaluation_service.submit_evaluation(
            db_session, submission_id=good.submission_id, actor=faculty, scores=GOOD_SCORES, now=T0
        )
        evaluation_service.submit_evaluation(
            db_session, submission_id=poor.submission_id, actor=faculty, scores=POOR_SCORES, now=T0
        )

        passed = db_session.get(Submission, good.submission_id)
        failed = db_session.get(Submission, poor.submission_id)
        assert passed.status == "passed"
        assert passed.passed is True
        assert failed.status == "failed"
        assert failed.passed is False
        assert ensure_utc(failed.evaluated_at) == T0

    def test_threshold_is_inclusive(self, db_session, make_user, make_assignment):
        faculty = make_user()
        row = make_assignment(faculty)

        evaluation_service.submit_evaluation(
            db_session,
            submission_id=row.submission_id,
            actor=faculty,
            scores={"code_quality": 40, "requirements": 40, "expected_output": 0},
            now=T0,
        )
        assert db_session.get(Submission, row.submission_id).status == "passed"

    def test_assignment_closed_and_audited(self, db_session, make_user, make_assignment):
        faculty = make_user()
        row = make_assignment(faculty)
        evaluation_service.start_evaluation(
            db_session, submission_id=row.submission_id, actor=faculty, now=T0
        )

        evaluation_service.submit_evaluation(
            db_session,
            submission_id=row.submission_id,
            actor=faculty,
            scores=POOR_SCORES,
            now=T0 + timedelta(minutes=3),
        )

        db_session.refresh(row)
        assert row.status == "evaluated"
        assert row.locked_by is None
        assert row.locked_at is None
        assert row.version == 3

        log = db_session.query(AssignmentLog).one()
        assert log.action_type == "evaluate"
        assert log.from_faculty_id == faculty.id
        assert log.details == {"total_score": 50, "passed": False}

    def test_admin_may_evaluate(self, db_session, make_user, admin, make_assignment):
        faculty = make_user()
        row = make_assignment(faculty)

        evaluation_service.submit_evaluation(
            db_session, submission_id=row.submission_id, actor=admin, scores=GOOD_SCORES, now=T0
        )

        log = db_session.query(AssignmentLog).one()
        assert log.actor_role == "admin"
        assert log.admin_id == admin.id
        db_session.expire_all()
        assert faculty.current_load == 0

    def test_other_faculty_cannot_evaluate(self, db_session, make_user, make_assignment):
        owner, other = make_user(), make_user()
        row = make_assignment(owner)

        with pytest.raises(AuthorizationError):
            evaluation_service.submit_evaluation(
                db_session, submission_id=row.submission_id, actor=other, scores=GOOD_SCORES, now=T0
            )
        assert db_session.query(ManualEvaluation).count() == 0

    def test_cannot_evaluate_twice(self, db_session, make_user, make_assignment):
        faculty = make_user()
        row = make_assignment(faculty)
        evaluation_service.submit_evaluation(
            db_session, submission_id=row.submission_id, actor=faculty, scores=GOOD_SCORES, now=T0
        )

        with pytest.raises(BusinessRuleError):
            evaluation_service.submit_evaluation(
                db_session, submission_id=row.submission_id, actor=faculty, scores=POOR_SCORES, now=T0
            )

    @pytest.mark.parametrize(
        "scores",
        [
            {"code_quality": -1, "requirements": 0, "expected_output": 0},
            {"code_quality": 101, "requirements": 0, "expected_output": 0},
            {"code_quality": 50, "requirements": 50, "expected_output": 1},
        ],
    )
    def test_invalid_scores(self, db_session, make_user, make_assignment, scores):
        faculty = make_user()
        row = make_assignment(faculty)

        with pytest.raises(ValidationError):
            evaluation_service.submit_evaluation(
                db_session, submission_id=row.submission_id, actor=faculty, scores=scores, now=T0
            )
        db_session.refresh(row)
        assert row.status == "assigned"

    def test_unassigned_submission(self, db_session, make_user, make_submission):
        faculty = make_user()
        submission = make_submission()

        with pytest.raises(NotFoundError):
            evaluation_service.submit_evaluation(
                db_session, submission_id=submission.id, actor=faculty, scores=GOOD_SCORES, now=T0
            )


class TestFacultyViews:
    def test_queue_history_and_stats(self, db_session, make_user, make_assignment):
        faculty, other = make_user(max_capacity=5), make_user()
        first = make_assignment(faculty)
        second = make_assignment(faculty)
        make_assignment(other)

        evaluation_service.submit_evaluation(
            db_session, submission_id=first.submission_id, actor=faculty, scores=GOOD_SCORES, now=T0
        )

        queue = evaluation_service.faculty_queue(db_session, faculty=faculty)
        history = evaluation_service.faculty_history(db_session, faculty=faculty)
        stats = evaluation_service.faculty_stats(db_session, faculty=faculty)

        assert [a.submission_id for a in queue] == [second.submission_id]
        assert [a.submission_id for a in history] == [first.submission_id]
        assert stats["pending"] == 1
        assert stats["evaluated"] == 1
        assert stats["current_load"] == 1
        assert stats["max_capacity"] == 5

    def test_queue_is_oldest_first(self, db_session, make_user, make_assignment):
        faculty = make_user()
        rows = [make_assignment(faculty) for _ in range(3)]

        queue = evaluation_service.faculty_queue(db_session, faculty=faculty)
        assert [a.submission_id for a in queue] == [r.submission_id for r in rows]


class TestSubmissionDetail:
    def test_owner_sees_submission_and_assignment(self, db_session, make_user, make_assignment):
        faculty = make_user()
        row = make_assignment(faculty)

        detail = evaluation_service.get_submission_detail(
            db_session, submission_id=row.submission_id, actor=faculty
        )

        assert detail["submission"].id == row.submission_id
        assert detail["assignment"].faculty_id == faculty.id
        assert detail["evaluation"] is None

    def test_includes_existing_evaluation(self, db_session, make_user, make_assignment):
        faculty = make_user()
        row = make_assignment(faculty)
        evaluation_service.submit_evaluation(
            db_session,
            submission_id=row.submission_id,
            actor=faculty,
            scores=GOOD_SCORES,
            comments="Solid",
            now=T0,
        )

        detail = evaluation_service.get_submission_detail(
            db_session, submission_id=row.submission_id, actor=faculty
        )

        assert detail["evaluation"].total_score == 85
        assert detail["evaluation"].comments == "Solid"
        assert detail["submission"].status == "passed"

    def test_other_faculty_is_forbidden(self, db_session, make_user, make_assignment):
        owner, other = make_user(), make_user()
        row = make_assignment(owner)

        with pytest.raises(AuthorizationError):
            evaluation_service.get_submission_detail(
                db_session, submission_id=row.submission_id, actor=other
            )

    def test_admin_sees_any_submission(self, db_session, admin, make_submission):
        submission = make_submission()

        detail = evaluation_service.get_submission_detail(
            db_session, submission_id=submission.id, actor=admin
        )

        assert detail["submission"].id == submission.id
        assert detail["assignment"] is None

    def test_admin_missing_submission(self, db_session, admin):
        with pytest.raises(NotFoundError):
            evaluation_service.get_submission_detail(db_session, submission_id=4242, actor=admin)
