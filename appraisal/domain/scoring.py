"""
Score aggregation and grand-result composition.

Weighted scores are Σ(score × weight / 100) over the questions a grader has
scored. Partial completion is not renormalised over the answered subset:
weights are defined to total about 100 across the whole catalog, so an
unfinished grader yields a lower partial sum.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal

from .models import GraderRole, Question, ResponseScores, ScoreResult

WARNING_PENALTY_PER_COUNT = 0.5

RANK_THRESHOLDS: tuple[tuple[str, float], ...] = (
    ("S", 4.50),
    ("A", 4.00),
    ("B", 3.00),
    ("C", 2.00),
)
LOWEST_RANK = "D"

# Graders counted toward the grand result. Manager and GM only review.
RESULT_GRADERS: tuple[GraderRole, ...] = (GraderRole.APPR1, GraderRole.APPR2, GraderRole.APPR3)


def round_score(value: float, places: int = 2) -> float:
    """Round half-up on the decimal representation, e.g. 2.675 -> 2.68."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def calculate_rank(
    score: float, thresholds: Sequence[tuple[str, float]] = RANK_THRESHOLDS
) -> str:
    for rank, lower_bound in thresholds:
        if score >= lower_bound:
            return rank
    return LOWEST_RANK


def index_responses(responses: Iterable[ResponseScores]) -> dict[int, ResponseScores]:
    return {r.question_id: r for r in responses}


def weighted_score(
    questions: Iterable[Question],
    responses: Mapping[int, ResponseScores] | Iterable[ResponseScores],
    grader: GraderRole | str,
    rounded: bool = True,
    places: int = 2,
) -> float | None:
    """
    Weighted score of one grader, or ``None`` when that grader scored nothing.

    A response's frozen ``question_weight`` takes precedence over the catalog
    weight so later catalog edits do not reinterpret recorded scores.

    Args:
        questions: applicable questions
        responses: responses keyed by question id (or an iterable of them)
        grader: which grader's scores to read
        rounded: round to ``places`` decimals; pass False when chaining
    """
    if not isinstance(responses, Mapping):
        responses = index_responses(responses)
    role = GraderRole(grader)

    total = 0.0
    has_score = False
    for question in questions:
        response = responses.get(question.id)
        if response is None:
            continue
        value = response.score_for(role)
        if value is None:
            continue
        weight = (
            response.question_weight if response.question_weight is not None else question.weight
        )
        total += value * (weight / 100)
        has_score = True

    if not has_score:
        return None
    return round_score(total, places) if rounded else total


def grader_scores(
    questions: Sequence[Question],
    responses: Mapping[int, ResponseScores] | Iterable[ResponseScores],
    graders: Iterable[GraderRole] = tuple(GraderRole),
    places: int = 2,
) -> dict[str, float | None]:
    """Rounded weighted score for each grader, keyed by role value."""
    if not isinstance(responses, Mapping):
        responses = index_responses(responses)
    return {g.value: weighted_score(questions, responses, g, places=places) for g in graders}


def grand_result(
    questions: Sequence[Question],
    responses: Mapping[int, ResponseScores] | Iterable[ResponseScores],
    warning_count: int,
    penalty_per_warning: float = WARNING_PENALTY_PER_COUNT,
    thresholds: Sequence[tuple[str, float]] = RANK_THRESHOLDS,
    places: int = 2,
) -> ScoreResult | None:
    """
    Penalised average of the approver-slot scores with its letter rank.

    Returns ``None`` when none of appr1/appr2/appr3 has scored anything.
    """
    if warning_count < 0:
        raise ValueError("warning_count must be non-negative")
    if not isinstance(responses, Mapping):
        responses = index_responses(responses)

    valid: dict[str, float] = {}
    for role in RESULT_GRADERS:
        value = weighted_score(questions, responses, role, rounded=False)
        if value is not None:
            valid[role.value] = value

    if not valid:
        return None

    total = round_score(sum(valid.values()) / len(valid), places)
    deduction = warning_count * penalty_per_warning
    net = max(0.0, round_score(total - deduction, places))

    return ScoreResult(
        total_score=total,
        warning_deduction=deduction,
        net_score=net,
        rank=calculate_rank(net, thresholds),
        grader_scores={k: round_score(v, places) for k, v in valid.items()},
    )
