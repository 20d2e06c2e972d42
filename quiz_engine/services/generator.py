"""Deterministic local quiz generator.

Used when no remote generator is configured or the remote one fails. The same
(topic, difficulty, salt, count) always yields the same questions, option order
and correct ids; a new salt per modal session gives learners a fresh set.
"""
import logging
from typing import Callable, Dict, List, MutableSequence, TypeVar

from ..config import settings
from ..models import Difficulty, Option, Question, QuestionType, QuizDefinition

logger = logging.getLogger("quiz_engine")

T = TypeVar("T")

MASK_32 = 0xFFFFFFFF
FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
MULBERRY_INCREMENT = 0x6D2B79F5

DIFFICULTY_PHRASES: Dict[Difficulty, List[str]] = {
    Difficulty.EASY: [
        "basic idea of",
        "primary goal of",
        "simple definition of",
        "common use of",
        "main benefit of",
    ],
    Difficulty.INTERMEDIATE: [
        "key principle behind",
        "difference between concepts in",
        "best practice for",
        "typical workflow in",
        "important trade-off in",
    ],
    Difficulty.ADVANCED: [
        "edge case consideration in",
        "time/space complexity aspect of",
        "optimization strategy for",
        "security implication of",
        "scalability concern with",
    ],
}

OPTION_TEMPLATES = [
    "Is closely related to",
    "Is the opposite of",
    "Is an example of",
    "Is not related to",
]

DISTRACTOR_SUFFIX = " (distractor)"

def _imul(a: int, b: int) -> int:
    return (a * b) & MASK_32

def hash_string(value: str) -> int:
    """FNV-1a over the code points of `value`, as an unsigned 32-bit int."""
    h = FNV_OFFSET_BASIS
    for ch in value:
        h ^= ord(ch)
        h = _imul(h, FNV_PRIME)
    return h & MASK_32

def mulberry32(seed: int) -> Callable[[], float]:
    """Small 32-bit PRNG; each call returns a float in [0, 1)."""
    state = seed & MASK_32

    def rng() -> float:
        nonlocal state
        state = (state + MULBERRY_INCREMENT) & MASK_32
        t = state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & MASK_32
        return ((t ^ (t >> 14)) & MASK_32) / 4294967296

    return rng

def pick_index(rng: Callable[[], float], size: int) -> int:
    return int(rng() * size)

def shuffle(items: MutableSequence[T], rng: Callable[[], float]) -> MutableSequence[T]:
    """Fisher-Yates, walking from the end, driven by `rng`."""
    for i in range(len(items) - 1, 0, -1):
        j = pick_index(rng, i + 1)
        items[i], items[j] = items[j], items[i]
    return items

def seed_for(topic: str, difficulty: Difficulty | str, salt: str = "") -> int:
    level = Difficulty(difficulty).value
    return hash_string(f"{topic}:{level}:{salt}")

def generate_questions(topic: str, difficulty: Difficulty | str, count: int, salt: str = "") -> List[Question]:
    # topic length and count are checked by callers; degenerate input gives degenerate output
    level = Difficulty(difficulty)
    rng = mulberry32(seed_for(topic, level, salt))
    phrases = DIFFICULTY_PHRASES[level]
    questions: List[Question] = []
    for i in range(max(0, count)):
        phrase = phrases[pick_index(rng, len(phrases))]
        templates = shuffle(list(OPTION_TEMPLATES), rng)
        correct_index = pick_index(rng, 4)
        options = []
        for j in range(4):
            text = f"{templates[j]} {topic}"
            if j != correct_index:
                text += DISTRACTOR_SUFFIX
            options.append(Option(id=f"{i}-{j}", text=text))
        questions.append(Question(
            id=f"q-{i}",
            text=f"What is the {phrase} {topic}?",
            type=QuestionType.SINGLE_CHOICE,
            options=options,
            correct_option_ids=[f"{i}-{correct_index}"],
            points=1,
        ))
    return questions

def generate_quiz(
    topic: str,
    difficulty: Difficulty | str,
    count: int,
    salt: str = "",
    time_limit_minutes: int | None = None,
    passing_score: int | None = None,
    max_attempts: int | None = None,
) -> QuizDefinition:
    level = Difficulty(difficulty)
    questions = generate_questions(topic, level, count, salt)
    quiz = QuizDefinition(
        id=f"local-{seed_for(topic, level, salt):08x}-{max(0, count)}",
        title=f"{topic} ({level.value})",
        questions=questions,
        time_limit_minutes=settings.default_time_limit_minutes if time_limit_minutes is None else time_limit_minutes,
        passing_score=settings.default_passing_score if passing_score is None else passing_score,
        max_attempts=settings.default_max_attempts if max_attempts is None else max_attempts,
        source="local",
    )
    logger.debug({"event": "local_quiz_generated", "quiz_id": quiz.id, "difficulty": level.value, "count": len(questions)})
    return quiz
