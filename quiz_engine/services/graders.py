import logging
from typing import Mapping, Protocol

from ..config import settings
from ..errors import RemoteServiceError, SubmissionError
from ..models import AnswerRecord, QuizDefinition, ScoreResult
from .backend_client import CourseBackendClient
from .scoring import grade_attempt

logger = logging.getLogger("quiz_engine")

class Grader(Protocol):
    async def submit_attempt(
        self,
        definition: QuizDefinition,
        answers: Mapping[str, AnswerRecord],
        time_spent_seconds: int,
        attempts_so_far: int,
        timed_out: bool = False,
    ) -> ScoreResult:
        ...

class LocalGrader:
    async def submit_attempt(self, definition, answers, time_spent_seconds, attempts_so_far, timed_out=False) -> ScoreResult:
        return grade_attempt(definition, answers, time_spent_seconds, attempts_so_far, timed_out)

class RemoteGrader:
    """Grades through the course backend.

    With `offline_fallback` the attempt is graded locally when the backend
    cannot be reached; otherwise the failure is raised as `SubmissionError`.
    """

    def __init__(self, client: CourseBackendClient, offline_fallback: bool | None = None) -> None:
        self.client = client
        self.offline_fallback = settings.offline_grading_fallback if offline_fallback is None else offline_fallback

    async def submit_attempt(self, definition, answers, time_spent_seconds, attempts_so_far, timed_out=False) -> ScoreResult:
        ordered = [answers[q.id] for q in definition.questions if q.id in answers]
        try:
            result = await self.client.submit_attempt(definition.id, ordered, time_spent_seconds)
        except RemoteServiceError as e:
            if not self.offline_fallback:
                raise SubmissionError(str(e)) from e
            logger.warning({"event": "offline_grading_fallback", "quiz_id": definition.id, "error": str(e)})
            return grade_attempt(definition, answers, time_spent_seconds, attempts_so_far, timed_out)
        return result.model_copy(update={"timed_out": timed_out})

def build_grader() -> Grader:
    client = CourseBackendClient()
    if client.enabled:
        return RemoteGrader(client)
    return LocalGrader()
