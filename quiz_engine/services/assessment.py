"""Lifecycle of a single timed quiz attempt.

The session is an explicit state machine. All lifecycle changes go through
`transition`, a pure lookup over the allowed (state, event) pairs, so the
single-submission guard and timer cleanup do not depend on whoever hosts the
session (HTTP handlers, a UI loop or tests).

Everything runs on one asyncio loop. The countdown tick is the only mutator
competing with learner actions; both submission paths check and set the
in-flight flag before their first await, so the first one wins and the other
is a no-op.
"""
import asyncio
import random
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ..config import settings
from ..errors import (
    AnswerTypeError,
    InvalidTransitionError,
    RetakeNotAllowedError,
    SessionLockedError,
    SubmissionError,
    UnknownOptionError,
)
from ..models import AnswerRecord, AttemptRecord, Question, QuestionType, QuizDefinition, RetakePolicy, ScoreResult
from . import generator, scoring
from .graders import Grader, LocalGrader

logger = logging.getLogger("quiz_engine")

class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    TIMED_OUT = "timed_out"
    GRADED = "graded"
    CANCELLED = "cancelled"

class SessionEvent(str, Enum):
    START = "start"
    SUBMIT = "submit"
    TIMEOUT = "timeout"
    GRADE = "grade"
    CANCEL = "cancel"

TRANSITIONS: Dict[Tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.NOT_STARTED, SessionEvent.START): SessionState.IN_PROGRESS,
    (SessionState.IN_PROGRESS, SessionEvent.SUBMIT): SessionState.SUBMITTED,
    (SessionState.IN_PROGRESS, SessionEvent.TIMEOUT): SessionState.TIMED_OUT,
    (SessionState.SUBMITTED, SessionEvent.GRADE): SessionState.GRADED,
    (SessionState.TIMED_OUT, SessionEvent.GRADE): SessionState.GRADED,
    (SessionState.NOT_STARTED, SessionEvent.CANCEL): SessionState.CANCELLED,
    (SessionState.IN_PROGRESS, SessionEvent.CANCEL): SessionState.CANCELLED,
    (SessionState.SUBMITTED, SessionEvent.CANCEL): SessionState.CANCELLED,
    (SessionState.TIMED_OUT, SessionEvent.CANCEL): SessionState.CANCELLED,
}

def transition(state: SessionState, event: SessionEvent) -> SessionState:
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state.value, event.value) from None

def format_time(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes}:{secs:02d}"

class CountdownTimer:
    """Periodic tick bound to one session.

    `on_tick` returns False once the countdown has nothing left to do.
    """

    def __init__(self, on_tick: Callable[[], Awaitable[bool]], interval: float) -> None:
        self.on_tick = on_tick
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not await self.on_tick():
                break

    def stop(self) -> None:
        task, self._task = self._task, None
        # the tick itself may trigger the submission that stops the timer
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

class AttemptSession:
    def __init__(
        self,
        definition: QuizDefinition,
        grader: Grader | None = None,
        attempt_history: List[AttemptRecord] | None = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float | None = None,
        shuffle_seed: int | None = None,
    ) -> None:
        self.definition = definition
        self.shuffle_seed = shuffle_seed
        self.grader = grader or LocalGrader()
        self.attempt_history: List[AttemptRecord] = list(attempt_history or [])
        self.clock = clock
        self.tick_interval = settings.tick_interval_seconds if tick_interval is None else tick_interval

        self.state = SessionState.NOT_STARTED
        self.current_index = 0
        self.question_order: List[int] = list(range(len(definition.questions)))
        self.answers: Dict[str, AnswerRecord] = {}
        self.remaining_seconds: Optional[int] = None
        self.started_at: Optional[float] = None
        self.started_at_wall: Optional[datetime] = None
        self.time_spent_seconds: Optional[int] = None
        self.completed_at: Optional[datetime] = None
        self.result: Optional[ScoreResult] = None
        self.last_error: Optional[str] = None
        self._submitting = False
        self._timer: Optional[CountdownTimer] = None
        self._listeners: List[Callable[[ScoreResult], None]] = []

    def _apply(self, event: SessionEvent) -> None:
        previous = self.state
        self.state = transition(self.state, event)
        logger.debug({"event": "session_transition", "quiz_id": self.definition.id, "from": previous.value, "to": self.state.value})

    @property
    def attempts_so_far(self) -> int:
        """Attempts counted against the limit, including this one."""
        return len(self.attempt_history) + 1

    @property
    def submitting(self) -> bool:
        return self._submitting

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and self._timer.running

    # lifecycle

    def start(self) -> "AttemptSession":
        self._apply(SessionEvent.START)
        self.answers = {q.id: AnswerRecord(question_id=q.id) for q in self.definition.questions}
        self.current_index = 0
        if self.definition.randomize_questions:
            # per-attempt order; answers stay keyed by question id
            seed = self.shuffle_seed if self.shuffle_seed is not None else random.getrandbits(32)
            generator.shuffle(self.question_order, generator.mulberry32(seed))
        self.started_at = self.clock()
        self.started_at_wall = datetime.now(timezone.utc)
        if self.definition.is_timed:
            self.remaining_seconds = self.definition.time_limit_minutes * 60
            self._timer = CountdownTimer(self.tick, self.tick_interval)
            self._timer.start()
        logger.info({
            "event": "session_started",
            "quiz_id": self.definition.id,
            "questions": len(self.definition.questions),
            "time_limit_seconds": self.remaining_seconds,
            "attempt": self.attempts_so_far,
        })
        return self

    def _release_timer(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

    def cancel(self) -> None:
        """Tear the session down; late grader replies are dropped."""
        self._release_timer()
        self._submitting = False
        if self.state in (SessionState.GRADED, SessionState.CANCELLED):
            return
        self._apply(SessionEvent.CANCEL)
        logger.info({"event": "session_cancelled", "quiz_id": self.definition.id})

    # navigation

    @property
    def questions(self) -> List[Question]:
        """Questions in the order this attempt presents them."""
        return [self.definition.questions[i] for i in self.question_order]

    @property
    def current_question(self) -> Optional[Question]:
        if not self.definition.questions:
            return None
        return self.definition.questions[self.question_order[self.current_index]]

    def jump_to(self, index: int) -> int:
        last = max(0, len(self.definition.questions) - 1)
        self.current_index = min(max(0, index), last)
        return self.current_index

    def next(self) -> int:
        return self.jump_to(self.current_index + 1)

    def previous(self) -> int:
        return self.jump_to(self.current_index - 1)

    # answers

    def _editable_answer(self) -> Tuple[Question, AnswerRecord]:
        if self.state is not SessionState.IN_PROGRESS:
            raise SessionLockedError(f"answers are locked in state {self.state.value}")
        question = self.current_question
        if question is None:
            raise AnswerTypeError("quiz has no questions")
        return question, self.answers[question.id]

    def select_option(self, option_id: str) -> AnswerRecord:
        question, answer = self._editable_answer()
        if question.type == QuestionType.FILL_IN_BLANK:
            raise AnswerTypeError(f"question {question.id} takes a text answer")
        if not question.has_option(option_id):
            raise UnknownOptionError(f"option {option_id} not in question {question.id}")
        if question.type == QuestionType.MULTIPLE_CHOICE:
            if option_id in answer.selected_option_ids:
                answer.selected_option_ids.remove(option_id)
            else:
                answer.selected_option_ids.append(option_id)
        else:
            answer.selected_option_ids = [option_id]
        return answer

    def set_text_answer(self, text: str) -> AnswerRecord:
        question, answer = self._editable_answer()
        if question.type != QuestionType.FILL_IN_BLANK:
            raise AnswerTypeError(f"question {question.id} takes option answers")
        answer.text_answer = text
        return answer

    def progress(self) -> Tuple[int, int]:
        answered = sum(1 for a in self.answers.values() if a.is_answered)
        return answered, len(self.definition.questions)

    def elapsed_seconds(self) -> int:
        if self.started_at is None:
            return 0
        return max(0, int(self.clock() - self.started_at))

    # timer and submission

    async def tick(self) -> bool:
        if self.state is not SessionState.IN_PROGRESS or self.remaining_seconds is None:
            return False
        self.remaining_seconds = max(0, self.remaining_seconds - 1)
        if self.remaining_seconds > 0:
            return True
        logger.info({"event": "auto_submit", "quiz_id": self.definition.id})
        try:
            await self._submit(timed_out=True)
        except SubmissionError:
            # last_error stays set; the learner retries from the results screen
            logger.debug({"event": "auto_submit_pending_retry", "quiz_id": self.definition.id})
        return False

    async def submit(self) -> Optional[ScoreResult]:
        return await self._submit(timed_out=False)

    async def _submit(self, timed_out: bool) -> Optional[ScoreResult]:
        if self._submitting:
            logger.debug({"event": "submit_ignored", "quiz_id": self.definition.id, "reason": "in_flight"})
            return None
        if self.state in (SessionState.GRADED, SessionState.CANCELLED):
            logger.debug({"event": "submit_ignored", "quiz_id": self.definition.id, "reason": self.state.value})
            return None
        if self.state is SessionState.NOT_STARTED:
            raise InvalidTransitionError(self.state.value, SessionEvent.SUBMIT.value)

        self._submitting = True
        try:
            if self.state is SessionState.IN_PROGRESS:
                self._apply(SessionEvent.TIMEOUT if timed_out else SessionEvent.SUBMIT)
                self.time_spent_seconds = self.elapsed_seconds()
                if self.remaining_seconds is not None and timed_out:
                    self.remaining_seconds = 0
            self._release_timer()
            self.last_error = None
            try:
                result = await self.grader.submit_attempt(
                    self.definition,
                    self.answers,
                    self.time_spent_seconds or 0,
                    self.attempts_so_far,
                    timed_out=self.state is SessionState.TIMED_OUT,
                )
            except SubmissionError as e:
                if self.state is SessionState.CANCELLED:
                    return None
                self.last_error = str(e)
                logger.warning({"event": "submission_failed", "quiz_id": self.definition.id, "state": self.state.value, "error": str(e)})
                raise
            if self.state is SessionState.CANCELLED:
                logger.debug({"event": "grade_discarded", "quiz_id": self.definition.id})
                return None
            self.result = result
            self.completed_at = datetime.now(timezone.utc)
            self._apply(SessionEvent.GRADE)
        finally:
            self._submitting = False

        logger.info({
            "event": "attempt_graded",
            "quiz_id": self.definition.id,
            "score": result.score,
            "max_score": result.max_score,
            "percentage": result.percentage,
            "passed": result.passed,
            "timed_out": result.timed_out,
        })
        self._notify(result)
        return result

    def on_graded(self, callback: Callable[[ScoreResult], None]) -> None:
        self._listeners.append(callback)
        if self.result is not None:
            callback(self.result)

    def _notify(self, result: ScoreResult) -> None:
        for callback in list(self._listeners):
            try:
                callback(result)
            except Exception:
                logger.exception("on_graded_listener_failed")

    # retakes

    def history_with_current(self) -> List[AttemptRecord]:
        history = list(self.attempt_history)
        if self.result is not None:
            history.append(AttemptRecord(
                score=self.result.score,
                max_score=self.result.max_score,
                percentage=self.result.percentage,
                passed=self.result.passed,
                time_spent_seconds=self.result.time_spent_seconds,
                completed_at=self.completed_at,
            ))
        return history

    def retake_policy(self) -> RetakePolicy:
        return scoring.retake_policy(self.definition.max_attempts, self.history_with_current())

    def retake(self) -> "AttemptSession":
        if self.state is not SessionState.GRADED or self.result is None:
            raise RetakeNotAllowedError("attempt has not been graded")
        if not self.result.can_retake:
            raise RetakeNotAllowedError("maximum attempts reached")
        return AttemptSession(
            self.definition,
            grader=self.grader,
            attempt_history=self.history_with_current(),
            clock=self.clock,
            tick_interval=self.tick_interval,
        )
