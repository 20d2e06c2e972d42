"""Parsing of loosely shaped quiz payloads coming from remote collaborators.

Remote generators answer in camelCase (`question`, `correctOptionId`) or
snake_case (`text`, `correct_option_id`), sometimes with `correct_index` or
`correctAnswers` instead. Everything is normalized into our models here.
"""
import uuid
from typing import Any, Dict, List, Optional

from ..models import Option, Question, QuestionResult, QuestionType, ScoreResult

def _first(item: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None

def parse_options(opts_raw: Any, question_index: int) -> List[Option]:
    opts: List[Option] = []
    if isinstance(opts_raw, list):
        if all(isinstance(o, dict) for o in opts_raw):
            for idx, o in enumerate(opts_raw):
                opts.append(Option(id=str(o.get("id") or f"{question_index}-{idx}"), text=str(o.get("text", ""))))
        elif all(isinstance(o, str) for o in opts_raw):
            for idx, text in enumerate(opts_raw):
                opts.append(Option(id=f"{question_index}-{idx}", text=text))
    return opts

def _question_type(raw: Any, correct_count: int) -> QuestionType:
    try:
        return QuestionType(raw)
    except ValueError:
        return QuestionType.MULTIPLE_CHOICE if correct_count > 1 else QuestionType.SINGLE_CHOICE

def question_from_payload(item: Dict[str, Any], index: int) -> Optional[Question]:
    text = _first(item, "question", "text")
    if not text:
        return None
    options = parse_options(item.get("options", []), index)
    option_ids = {o.id for o in options}

    correct: List[str] = []
    single = _first(item, "correctOptionId", "correct_option_id")
    if single is not None:
        correct = [str(single)]
    elif isinstance(item.get("correctAnswers"), list):
        correct = [str(c) for c in item["correctAnswers"]]
    elif isinstance(item.get("correct_index"), int) and 0 <= item["correct_index"] < len(options):
        correct = [options[item["correct_index"]].id]
    # options flagged isCorrect, as stored by the course backend
    if not correct and isinstance(item.get("options"), list):
        correct = [
            opt.id for opt, raw in zip(options, item["options"])
            if isinstance(raw, dict) and raw.get("isCorrect")
        ]

    qtype = _question_type(item.get("type"), len(correct))
    expected_answer = None
    if qtype == QuestionType.FILL_IN_BLANK:
        expected_answer = _first(item, "expectedAnswer", "expected_answer") or (correct[0] if correct else None)
        correct = []
    else:
        if not options:
            return None
        correct = [c for c in correct if c in option_ids]
        if not correct:
            return None

    return Question(
        id=str(item.get("id") or f"q-{index}-{uuid.uuid4().hex[:8]}"),
        text=str(text),
        type=qtype,
        options=options,
        correct_option_ids=correct,
        expected_answer=expected_answer,
        points=float(item.get("points", 1) or 1),
        explanation=item.get("explanation"),
    )

def questions_from_payload(items: List[Any], count: int | None = None) -> List[Question]:
    questions: List[Question] = []
    seen_texts: set[str] = set()
    for index, item in enumerate(items if count is None else items[:count]):
        if not isinstance(item, dict):
            continue
        q = question_from_payload(item, index)
        if q is None:
            continue
        norm = q.text.strip().lower()
        if norm in seen_texts:
            continue
        seen_texts.add(norm)
        questions.append(q)
    return questions

def score_result_from_payload(data: Dict[str, Any]) -> ScoreResult:
    breakdown = []
    for r in data.get("questionResults") or data.get("question_results") or []:
        user_answer = r.get("userAnswer")
        breakdown.append(QuestionResult(
            question_id=str(r.get("questionId") or r.get("question_id")),
            correct=bool(r.get("correct")),
            score=r.get("score", 0),
            max_score=r.get("maxScore", r.get("max_score", 0)),
            selected_option_ids=user_answer if isinstance(user_answer, list) else [],
            text_answer=user_answer if isinstance(user_answer, str) else None,
            correct_answers=r.get("correctAnswers") or r.get("correct_answers"),
            explanation=r.get("explanation"),
        ))
    left = data.get("attemptsLeft", data.get("attempts_left"))
    return ScoreResult(
        score=data.get("score", 0),
        max_score=data.get("maxScore", data.get("max_score", 0)),
        percentage=int(data.get("percentage", 0)),
        passed=bool(data.get("passed")),
        time_spent_seconds=int(data.get("timeSpent", data.get("time_spent_seconds", 0)) or 0),
        question_results=breakdown,
        can_retake=bool(data.get("canRetake", data.get("can_retake", False))),
        attempts_left=None if left is None or left < 0 else int(left),
    )
