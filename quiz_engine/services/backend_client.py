import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from ..config import settings
from ..errors import RemoteServiceError
from ..models import AnswerRecord, Difficulty, QuizDefinition, ScoreResult
from .payloads import questions_from_payload, score_result_from_payload

logger = logging.getLogger("quiz_engine")

class CourseBackendClient:
    """Thin async client for the course platform's quiz endpoints.

    Both calls use the platform's `{success, message, data}` envelope.
    """

    name = "course_backend"

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.course_api_url or "").rstrip("/")
        self.token = token if token is not None else settings.course_api_token
        self.timeout = timeout or settings.remote_timeout_seconds
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(path, json=payload, headers=self._headers())
            except httpx.HTTPError as e:
                raise RemoteServiceError(f"{path}: {e.__class__.__name__}") from e
        if response.status_code >= 400:
            raise RemoteServiceError(f"{path}: HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteServiceError(f"{path}: invalid JSON") from e
        if not isinstance(body, dict) or not body.get("success"):
            message = body.get("message") if isinstance(body, dict) else None
            raise RemoteServiceError(f"{path}: {message or 'unsuccessful response'}")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise RemoteServiceError(f"{path}: malformed data")
        return data

    async def fetch_quiz(self, topic: str, difficulty: Difficulty, count: int) -> Optional[QuizDefinition]:
        if not self.enabled:
            return None
        data = await self._post("/chatbot/generate-quiz", {
            "topic": topic,
            "difficulty": difficulty.value,
            "numQuestions": count,
        })
        questions = questions_from_payload(data.get("questions") or [], count)
        if not questions:
            return None
        quiz = data.get("quiz") or {}
        return QuizDefinition(
            id=str(quiz.get("_id") or data.get("quizId") or f"remote-{topic}-{difficulty.value}"),
            title=quiz.get("title") or f"{topic} ({difficulty.value})",
            questions=questions,
            time_limit_minutes=int(quiz.get("timeLimit", settings.default_time_limit_minutes)),
            passing_score=int(quiz.get("passingScore", settings.default_passing_score)),
            max_attempts=int(quiz.get("maxAttempts", settings.default_max_attempts)),
            randomize_questions=bool(quiz.get("randomizeQuestions", False)),
            show_correct_answers=bool(quiz.get("showCorrectAnswers", True)),
            source=self.name,
        )

    async def submit_attempt(self, quiz_id: str, answers: Iterable[AnswerRecord], time_spent_seconds: int) -> ScoreResult:
        payload = {
            "answers": [
                {
                    "questionId": a.question_id,
                    "selectedOptions": list(a.selected_option_ids),
                    "textAnswer": a.text_answer or "",
                }
                for a in answers
            ],
            "timeSpent": time_spent_seconds,
        }
        data = await self._post(f"/quizzes/{quiz_id}/submit", payload)
        result = data.get("result")
        if not isinstance(result, dict):
            raise RemoteServiceError("submit: missing result")
        try:
            score = score_result_from_payload(result)
        except (TypeError, ValueError, AttributeError) as e:
            raise RemoteServiceError(f"submit: malformed result ({e.__class__.__name__})") from e
        logger.debug({"event": "remote_attempt_graded", "quiz_id": quiz_id, "percentage": score.percentage})
        return score
