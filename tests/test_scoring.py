import pytest

from appraisal.domain.models import (
    AssessmentStatus,
    ChainSlot,
    Phase,
    Question,
    ResponseScores,
    Stage,
    WorkflowState,
)
from appraisal.domain.scoring import (
    calculate_rank,
    grader_scores,
    grand_result,
    round_score,
    weighted_score,
)

QUESTIONS = [Question(id=1, weight=60), Question(id=2, weight=40)]


def response(question_id, **scores):
    return ResponseScores(question_id=question_id, scores=scores)


@pytest.mark.parametrize(
    "score,rank",
    [
        (5.0, "S"),
        (4.5, "S"),
        (4.49, "A"),
        (4.0, "A"),
        (3.99, "B"),
        (3.0, "B"),
        (2.99, "C"),
        (2.0, "C"),
        (1.99, "D"),
        (0.0, "D"),
    ],
)
def test_rank_boundaries_are_inclusive(score, rank):
    assert calculate_rank(score) == rank


def test_round_score_is_half_up():
    assert round_score(2.675) == 2.68
    assert round_score(2.665) == 2.67
    assert round_score(4.300000000000001) == 4.3


def test_weighted_score_sums_score_times_weight():
    responses = [response(1, appr1=4.5), response(2, appr1=4.0)]
    assert weighted_score(QUESTIONS, responses, "appr1") == pytest.approx(4.3)


def test_weighted_score_none_when_grader_scored_nothing():
    responses = [response(1, self=3.0)]
    assert weighted_score(QUESTIONS, responses, "appr1") is None


def test_partial_scores_are_not_renormalised():
    responses = [response(1, appr1=5.0)]
    assert weighted_score(QUESTIONS, responses, "appr1") == pytest.approx(3.0)


def test_frozen_weight_wins_over_catalog_weight():
    frozen = ResponseScores(question_id=1, scores={"appr1": 5.0}, question_weight=20)
    assert weighted_score(QUESTIONS, [frozen], "appr1") == pytest.approx(1.0)


def test_grader_scores_covers_every_role():
    scores = grader_scores(QUESTIONS, [response(1, self=5.0, appr1=4.0)])
    assert scores["self"] == pytest.approx(3.0)
    assert scores["appr1"] == pytest.approx(2.4)
    assert scores["mgr"] is None
    assert set(scores) == {"self", "appr1", "appr2", "appr3", "mgr", "gm"}


def test_grand_result_applies_warning_penalty():
    responses = [response(1, appr1=4.5), response(2, appr1=4.0)]
    result = grand_result(QUESTIONS, responses, warning_count=1)
    assert result.total_score == pytest.approx(4.3)
    assert result.warning_deduction == pytest.approx(0.5)
    assert result.net_score == pytest.approx(3.8)
    assert result.rank == "B"
    assert result.grader_scores == {"appr1": pytest.approx(4.3)}


THREE_WAY = [Question(id=1, weight=50), Question(id=2, weight=30), Question(id=3, weight=20)]


@pytest.mark.parametrize("warnings,net,rank", [(0, 4.3, "A"), (1, 3.8, "B")])
def test_fifty_thirty_twenty_catalog(warnings, net, rank):
    responses = [response(1, appr1=5.0), response(2, appr1=4.0), response(3, appr1=3.0)]
    assert weighted_score(THREE_WAY, responses, "appr1") == pytest.approx(4.3)
    result = grand_result(THREE_WAY, responses, warning_count=warnings)
    assert result.total_score == pytest.approx(4.3)
    assert result.net_score == pytest.approx(net)
    assert result.rank == rank


@pytest.mark.parametrize("question_id", [1, 2, 3])
def test_raising_one_score_never_lowers_weighted_score(question_id):
    base = {1: 2.0, 2: 3.0, 3: 4.0}
    previous = None
    for bump in (0.0, 0.5, 1.0):
        scores = dict(base)
        scores[question_id] += bump
        current = weighted_score(
            THREE_WAY, [response(qid, appr1=v) for qid, v in scores.items()], "appr1"
        )
        if previous is not None:
            assert current >= previous
        previous = current

    # Adding a score to an unanswered question never lowers the result either.
    partial = [response(qid, appr1=v) for qid, v in base.items() if qid != question_id]
    full = [response(qid, appr1=v) for qid, v in base.items()]
    assert weighted_score(THREE_WAY, full, "appr1") >= weighted_score(
        THREE_WAY, partial, "appr1"
    )


def test_grand_result_averages_only_approvers_who_scored():
    responses = [
        response(1, appr1=5.0, appr2=3.0, mgr=1.0),
        response(2, appr1=5.0, appr2=3.0, mgr=1.0),
    ]
    result = grand_result(QUESTIONS, responses, warning_count=0)
    assert result.total_score == pytest.approx(4.0)
    assert set(result.grader_scores) == {"appr1", "appr2"}
    assert result.rank == "A"


def test_grand_result_none_without_approver_scores():
    responses = [response(1, self=5.0, mgr=4.0)]
    assert grand_result(QUESTIONS, responses, warning_count=0) is None


def test_net_score_never_negative():
    responses = [response(1, appr1=1.0), response(2, appr1=1.0)]
    result = grand_result(QUESTIONS, responses, warning_count=10)
    assert result.net_score == 0.0
    assert result.rank == "D"


def test_negative_warning_count_rejected():
    with pytest.raises(ValueError):
        grand_result(QUESTIONS, [], warning_count=-1)


def test_custom_thresholds_and_penalty():
    responses = [response(1, appr1=4.0), response(2, appr1=4.0)]
    result = grand_result(
        QUESTIONS,
        responses,
        warning_count=2,
        penalty_per_warning=0.25,
        thresholds=[("S", 3.9), ("A", 3.5), ("B", 2.5), ("C", 1.0)],
    )
    assert result.net_score == pytest.approx(3.5)
    assert result.rank == "A"


def test_workflow_state_maps_to_status():
    assert WorkflowState.pending(ChainSlot.MANAGER).status is AssessmentStatus.SUBMITTED_MGR
    assert WorkflowState.completed().status is AssessmentStatus.COMPLETED
    assert WorkflowState(Stage.SELF, Phase.REJECTED).status is AssessmentStatus.REJECTED
    assert WorkflowState.from_status("SUBMITTED_APPR2").slot is ChainSlot.APPROVER2
    assert WorkflowState.from_status("COMPLETED").is_terminal
    with pytest.raises(ValueError):
        WorkflowState.from_status("ARCHIVED")
