from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Mapping, Optional

from ..models import (
    AnswerRecord,
    AttemptRecord,
    AttemptStats,
    Question,
    QuestionResult,
    QuestionType,
    QuizDefinition,
    RetakePolicy,
    ScoreResult,
)

def normalize_text(text: Optional[str]) -> str:
    return (text or "").strip().lower()

def round_half_up(value: float | Decimal) -> int:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def percentage(earned: float, possible: float) -> int:
    # ratio stays in Decimal so exact halves such as 29/200 survive
    if possible <= 0:
        return 0
    return round_half_up(Decimal(str(earned)) * 100 / Decimal(str(possible)))

def is_answer_correct(question: Question, answer: Optional[AnswerRecord]) -> bool:
    if answer is None:
        return False
    selected = answer.selected_option_ids
    if question.type in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE):
        return len(selected) == 1 and selected[0] in question.correct_option_ids
    if question.type == QuestionType.MULTIPLE_CHOICE:
        return bool(question.correct_option_ids) and set(selected) == set(question.correct_option_ids)
    if question.type == QuestionType.FILL_IN_BLANK:
        expected = normalize_text(question.expected_answer)
        return bool(expected) and normalize_text(answer.text_answer) == expected
    return False

def can_retake(max_attempts: int, attempts_so_far: int) -> bool:
    # max_attempts of 0 (or less) means unlimited
    if max_attempts <= 0:
        return True
    return attempts_so_far < max_attempts

def attempts_left(max_attempts: int, attempts_so_far: int) -> Optional[int]:
    if max_attempts <= 0:
        return None
    return max(0, max_attempts - attempts_so_far)

def best_attempt(history: Iterable[AttemptRecord]) -> Optional[AttemptRecord]:
    best: Optional[AttemptRecord] = None
    for attempt in history:
        if best is None or attempt.score > best.score:
            best = attempt
    return best

def retake_policy(max_attempts: int, history: List[AttemptRecord]) -> RetakePolicy:
    return RetakePolicy(
        can_retake=can_retake(max_attempts, len(history)),
        attempts_left=attempts_left(max_attempts, len(history)),
        attempts_so_far=len(history),
        has_passed=any(a.passed for a in history),
        best_attempt=best_attempt(history),
    )

def attempt_stats(history: List[AttemptRecord]) -> AttemptStats:
    if not history:
        return AttemptStats(total_attempts=0, average_score=0, pass_rate=0)
    total = len(history)
    return AttemptStats(
        total_attempts=total,
        average_score=round_half_up(Decimal(str(sum(a.percentage for a in history))) / total),
        pass_rate=percentage(sum(1 for a in history if a.passed), total),
    )

def grade_question(question: Question, answer: Optional[AnswerRecord], reveal: bool = True) -> QuestionResult:
    correct = is_answer_correct(question, answer)
    result = QuestionResult(
        question_id=question.id,
        correct=correct,
        score=question.points if correct else 0,
        max_score=question.points,
        selected_option_ids=list(answer.selected_option_ids) if answer else [],
        text_answer=answer.text_answer if answer else None,
    )
    if reveal:
        if question.type == QuestionType.FILL_IN_BLANK:
            result.correct_answers = [question.expected_answer] if question.expected_answer else []
        else:
            result.correct_answers = list(question.correct_option_ids)
        result.explanation = question.explanation
    return result

def grade_attempt(
    definition: QuizDefinition,
    answers: Mapping[str, AnswerRecord],
    time_spent_seconds: int,
    attempts_so_far: int,
    timed_out: bool = False,
) -> ScoreResult:
    """Grade every question of `definition` against `answers`.

    `attempts_so_far` includes the attempt being graded, so retake eligibility
    reflects the caller's full history.
    """
    results = [grade_question(q, answers.get(q.id), definition.show_correct_answers) for q in definition.questions]
    earned = sum(r.score for r in results)
    possible = definition.total_points
    pct = percentage(earned, possible)
    return ScoreResult(
        score=earned,
        max_score=possible,
        percentage=pct,
        passed=pct >= definition.passing_score,
        time_spent_seconds=max(0, int(time_spent_seconds)),
        question_results=results,
        can_retake=can_retake(definition.max_attempts, attempts_so_far),
        attempts_left=attempts_left(definition.max_attempts, attempts_so_far),
        timed_out=timed_out,
    )
