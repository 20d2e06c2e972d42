import os
import json
import uuid
import asyncio
from typing import List, Dict, Any
import logging
from time import perf_counter
import google.generativeai as genai
from ..config import settings
from ..models import Difficulty, Question, QuizDefinition
from .payloads import questions_from_payload
from .prompt_builder import PromptBuilder

logger = logging.getLogger("quiz_engine")

PROMPT_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "prompts")

class GeminiQuizSource:
    name = "gemini"

    def __init__(self, api_key: str | None = None, model_name: str | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        if self.api_key:
            genai.configure(api_key=self.api_key)
        self.model_name = model_name or settings.gemini_model
        self.generation_config = {
            "temperature": 0.4,
            "top_p": 0.9,
            "top_k": 50,
            "response_mime_type": "application/json",
        }
        self.prompt_builder = PromptBuilder()

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _load_prompt_template(self, difficulty: str) -> str:
        path = os.path.join(PROMPT_DIR, f"quiz_{difficulty}.txt")
        if not os.path.exists(path):
            path = os.path.join(PROMPT_DIR, "quiz_base.txt")
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def _build_prompt(self, topic: str, difficulty: str, count: int) -> str:
        template = self._load_prompt_template(difficulty)
        return self.prompt_builder.build(template, topic=topic, difficulty=difficulty, question_count=count)

    def _strip_code_fences(self, text: str) -> str:
        t = text.strip()
        if t.startswith("```"):
            parts = t.split("\n", 1)
            if len(parts) == 2:
                t = parts[1]
            if t.endswith("```"):
                t = t[:-3]
        if t.startswith("json\n"):
            t = t[5:]
        return t.strip()

    def _coerce_payload_to_list(self, obj: Any) -> List[Dict[str, Any]]:
        if isinstance(obj, list):
            return obj
        if isinstance(obj, dict):
            if "questions" in obj and isinstance(obj["questions"], list):
                return obj["questions"]
        return []

    def _try_slice_to_array(self, text: str) -> List[Dict[str, Any]]:
        first = text.find("[")
        last = text.rfind("]")
        if first != -1 and last != -1 and last > first:
            try:
                return json.loads(text[first:last + 1])
            except json.JSONDecodeError:
                return []
        return []

    def parse_response_text(self, raw_text: str, count: int) -> List[Question]:
        cleaned = self._strip_code_fences(raw_text)
        try:
            payload_obj: Any = json.loads(cleaned)
        except json.JSONDecodeError:
            payload_obj = self._try_slice_to_array(cleaned)
        return questions_from_payload(self._coerce_payload_to_list(payload_obj), count)

    def generate_questions(self, topic: str, difficulty: str, count: int) -> List[Question]:
        if not self.enabled:
            logger.warning({"event": "gemini_no_api_key", "message": "Remote generation disabled"})
            return []
        prompt = self._build_prompt(topic, difficulty, count)
        logger.debug({"event": "gemini_request", "model": self.model_name, "topic": topic, "difficulty": difficulty})
        model = genai.GenerativeModel(self.model_name, generation_config=self.generation_config)
        t0 = perf_counter()
        response = model.generate_content(prompt)
        latency_ms = int((perf_counter() - t0) * 1000)
        raw_text = (getattr(response, "text", "") or "").strip()
        questions = self.parse_response_text(raw_text, count)
        logger.debug({"event": "gemini_response", "preview": raw_text[:200], "latency_ms": latency_ms, "count": len(questions)})
        return questions

    async def fetch_quiz(self, topic: str, difficulty: Difficulty, count: int) -> QuizDefinition | None:
        questions = await asyncio.to_thread(self.generate_questions, topic, difficulty.value, count)
        if not questions:
            return None
        return QuizDefinition(
            id=f"gemini-{uuid.uuid4()}",
            title=f"{topic} ({difficulty.value})",
            questions=questions,
            time_limit_minutes=settings.default_time_limit_minutes,
            passing_score=settings.default_passing_score,
            max_attempts=settings.default_max_attempts,
            source=self.name,
        )
