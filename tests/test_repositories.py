import pytest

from appraisal.domain.models import GraderRole
from appraisal.infrastructure.exceptions import (
    AssessmentNotFoundError,
    EmployeeNotFoundError,
    NotFoundError,
    ValidationError,
)
from appraisal.infrastructure.models import QuestionORM
from appraisal.infrastructure.repositories import (
    AssessmentRepo,
    EmployeeRepo,
    NotificationRepo,
    QuestionRepo,
    ResponseRepo,
)


def test_employee_chain_is_read_as_domain_object(SessionLocal, questions):
    with SessionLocal() as s:
        employee = EmployeeRepo(s).get_chain("E1")
    assert employee.chain == ("X1", None, "-", "M1", "G1")
    assert employee.warning_count == 1


def test_missing_employee(SessionLocal, questions):
    with SessionLocal() as s:
        repo = EmployeeRepo(s)
        with pytest.raises(EmployeeNotFoundError):
            repo.get_required("NOPE")
        with pytest.raises(ValidationError):
            repo.get_required("  ")


def test_employee_upsert_updates_in_place(SessionLocal, questions):
    with SessionLocal() as s:
        repo = EmployeeRepo(s)
        repo.upsert("E2", name="Eli B", approver1_code="X2")
        repo.upsert("N1", name="Nia")
        s.commit()
    with SessionLocal() as s:
        assert EmployeeRepo(s).get_required("E2").approver1_code == "X2"
        assert EmployeeRepo(s).get_required("N1").name == "Nia"
        assert EmployeeRepo(s).count() == 9


def test_applicable_questions_include_all_levels(SessionLocal, questions):
    with SessionLocal() as s:
        staff = [q.title for q in QuestionRepo(s).list_applicable("Staff")]
        managers = [q.title for q in QuestionRepo(s).list_applicable("Manager")]
    assert staff == ["Delivery", "Teamwork"]
    assert managers == ["Leadership", "Teamwork"]


def test_inactive_questions_are_not_applicable(SessionLocal, questions):
    with SessionLocal() as s:
        s.get(QuestionORM, questions["teamwork"]).is_active = False
        s.flush()
        assert [q.title for q in QuestionRepo(s).list_applicable("Staff")] == ["Delivery"]


def test_question_upsert_matches_title_and_level(SessionLocal, questions):
    with SessionLocal() as s:
        repo = QuestionRepo(s)
        again = repo.upsert_by_title("Delivery", "Staff", weight=55)
        other = repo.upsert_by_title("Delivery", "Manager", weight=20)
        assert again.id == questions["delivery"]
        assert again.weight == 55
        assert other.id not in questions.values()


def test_assessment_lookup_validates_id(SessionLocal, questions):
    with SessionLocal() as s:
        repo = AssessmentRepo(s)
        with pytest.raises(ValidationError):
            repo.get_required(0)
        with pytest.raises(AssessmentNotFoundError):
            repo.get_required(999)


def test_response_upsert_is_idempotent_and_per_role(SessionLocal, questions):
    with SessionLocal() as s:
        assessment = AssessmentRepo(s).create_assessment("Review", "Staff", "ASSIGNED", "E1", "E1")
        question = s.get(QuestionORM, questions["delivery"])
        repo = ResponseRepo(s)

        repo.upsert_grader_scores(assessment.id, question, GraderRole.SELF, 4, "did well")
        repo.upsert_grader_scores(assessment.id, question, GraderRole.SELF, 4, "did well")
        repo.upsert_grader_scores(assessment.id, question, "appr1", 3)

        (row,) = repo.list_for_assessment(assessment.id)
        assert row.score_self == 4
        assert row.comment_self == "did well"
        assert row.score_appr1 == 3
        assert row.score_mgr is None
        assert row.question_weight == 60
        assert row.question_max_score == 5
        assert repo.has_any_score(assessment.id)


def test_response_rejects_scores_outside_scale(SessionLocal, questions):
    with SessionLocal() as s:
        assessment = AssessmentRepo(s).create_assessment("Review", "Staff", "ASSIGNED", "E1", "E1")
        question = s.get(QuestionORM, questions["delivery"])
        repo = ResponseRepo(s)
        with pytest.raises(ValidationError):
            repo.upsert_grader_scores(assessment.id, question, "self", 5.5)
        with pytest.raises(ValidationError):
            repo.upsert_grader_scores(assessment.id, question, "self", -1)


def test_frozen_weight_survives_catalog_change(SessionLocal, questions):
    with SessionLocal() as s:
        assessment = AssessmentRepo(s).create_assessment("Review", "Staff", "ASSIGNED", "E1", "E1")
        question = s.get(QuestionORM, questions["delivery"])
        repo = ResponseRepo(s)
        repo.upsert_grader_scores(assessment.id, question, "self", 4)

        question.weight = 10
        question.max_score = 10
        s.flush()
        repo.upsert_grader_scores(assessment.id, question, "appr1", 5)

        (scores,) = repo.scores_for_assessment(assessment.id)
        assert scores.question_weight == 60
        assert scores.question_max_score == 5
        assert scores.score_for("appr1") == 5


def test_notification_inbox(SessionLocal, questions):
    with SessionLocal() as s:
        repo = NotificationRepo(s)
        first = repo.add("X1", "ApprovalRequired", "Awaiting", "Please review", 1)
        repo.add("X1", "ApprovalRequired", "Awaiting", "Please review", 2)
        repo.add("M1", "ApprovalRequired", "Awaiting", "Please review", 1)

        assert repo.unread_count("X1") == 2
        repo.mark_read(first.id, "X1")
        assert repo.unread_count("X1") == 1
        assert len(repo.list_for_user("X1")) == 1
        assert len(repo.list_for_user("X1", unread_only=False)) == 2

        with pytest.raises(NotFoundError):
            repo.mark_read(first.id, "M1")

        assert repo.mark_all_read("X1") == 1
        assert repo.unread_count("X1") == 0
        assert repo.delete_read("X1") == 2
        assert repo.list_for_user("X1", unread_only=False) == []
        assert repo.unread_count("M1") == 1
