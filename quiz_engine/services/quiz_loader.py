import asyncio
import logging
from typing import List, Optional, Protocol, Sequence

from ..config import settings
from ..models import Difficulty, QuizDefinition
from . import generator

logger = logging.getLogger("quiz_engine")

class QuizSource(Protocol):
    name: str

    async def fetch_quiz(self, topic: str, difficulty: Difficulty, count: int) -> Optional[QuizDefinition]:
        ...

class QuizLoader:
    """Resolves a quiz definition: remote sources first, then the local generator.

    Remote failures never reach the caller; the local generator always
    produces a usable definition.
    """

    def __init__(self, sources: Sequence[QuizSource] = (), timeout: float | None = None) -> None:
        self.sources: List[QuizSource] = list(sources)
        self.timeout = timeout if timeout is not None else settings.remote_timeout_seconds

    async def resolve_remote(self, topic: str, difficulty: Difficulty, count: int) -> Optional[QuizDefinition]:
        for source in self.sources:
            try:
                quiz = await asyncio.wait_for(source.fetch_quiz(topic, difficulty, count), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning({"event": "remote_quiz_timeout", "source": source.name, "timeout": self.timeout})
                continue
            except Exception:
                logger.exception("remote_quiz_failed", extra={"source": source.name})
                continue
            if quiz is None or not quiz.questions:
                logger.debug({"event": "remote_quiz_empty", "source": source.name})
                continue
            return quiz
        return None

    def resolve_local(self, topic: str, difficulty: Difficulty, count: int, salt: str) -> QuizDefinition:
        return generator.generate_quiz(topic, difficulty, count, salt)

    async def load_or_generate_quiz(self, topic: str, difficulty: Difficulty | str, count: int, salt: str = "") -> QuizDefinition:
        level = Difficulty(difficulty)
        quiz = await self.resolve_remote(topic, level, count)
        if quiz is None:
            quiz = self.resolve_local(topic, level, count, salt)
        logger.info({"event": "quiz_loaded", "quiz_id": quiz.id, "source": quiz.source, "questions": len(quiz.questions)})
        return quiz
