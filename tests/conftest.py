import asyncio

import pytest

from quiz_engine.errors import SubmissionError
from quiz_engine.models import Option, Question, QuestionType, QuizDefinition
from quiz_engine.services.scoring import grade_attempt


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingGrader:
    """Local grading that yields to the loop once and counts submissions."""

    def __init__(self) -> None:
        self.calls = 0

    async def submit_attempt(self, definition, answers, time_spent_seconds, attempts_so_far, timed_out=False):
        self.calls += 1
        await asyncio.sleep(0)
        return grade_attempt(definition, answers, time_spent_seconds, attempts_so_far, timed_out)


class GatedGrader(CountingGrader):
    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def submit_attempt(self, definition, answers, time_spent_seconds, attempts_so_far, timed_out=False):
        self.calls += 1
        await self.gate.wait()
        return grade_attempt(definition, answers, time_spent_seconds, attempts_so_far, timed_out)


class FlakyGrader(CountingGrader):
    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self.failures = failures

    async def submit_attempt(self, definition, answers, time_spent_seconds, attempts_so_far, timed_out=False):
        if self.failures > 0:
            self.failures -= 1
            self.calls += 1
            raise SubmissionError("grading service unavailable")
        return await super().submit_attempt(definition, answers, time_spent_seconds, attempts_so_far, timed_out)


def make_quiz(time_limit_minutes: int = 0, passing_score: int = 60, max_attempts: int = 0, show_correct_answers: bool = True) -> QuizDefinition:
    return QuizDefinition(
        id="quiz-1",
        title="Sorting Algorithms",
        questions=[
            Question(
                id="q-0",
                text="Which sort is stable?",
                type=QuestionType.SINGLE_CHOICE,
                options=[Option(id=f"0-{i}", text=t) for i, t in enumerate(["Heap", "Quick", "Merge", "Selection"])],
                correct_option_ids=["0-2"],
                explanation="Merge sort keeps equal keys in order.",
            ),
            Question(
                id="q-1",
                text="Which sorts run in O(n log n) worst case?",
                type=QuestionType.MULTIPLE_CHOICE,
                options=[Option(id=f"1-{i}", text=t) for i, t in enumerate(["Merge", "Quick", "Bubble", "Heap"])],
                correct_option_ids=["1-0", "1-3"],
            ),
        ],
        time_limit_minutes=time_limit_minutes,
        passing_score=passing_score,
        max_attempts=max_attempts,
        show_correct_answers=show_correct_answers,
    )


@pytest.fixture
def quiz() -> QuizDefinition:
    return make_quiz()


@pytest.fixture
def timed_quiz() -> QuizDefinition:
    return make_quiz(time_limit_minutes=1)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
