import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    course_api_url: str | None = os.getenv("COURSE_API_URL")
    course_api_token: str | None = os.getenv("COURSE_API_TOKEN")
    remote_timeout_seconds: float = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))
    default_question_count: int = int(os.getenv("DEFAULT_QUESTION_COUNT", "12"))
    min_topic_length: int = int(os.getenv("MIN_TOPIC_LENGTH", "3"))
    default_time_limit_minutes: int = int(os.getenv("DEFAULT_TIME_LIMIT_MINUTES", "0"))
    default_passing_score: int = int(os.getenv("DEFAULT_PASSING_SCORE", "60"))
    default_max_attempts: int = int(os.getenv("DEFAULT_MAX_ATTEMPTS", "0"))
    tick_interval_seconds: float = float(os.getenv("TICK_INTERVAL_SECONDS", "1"))
    session_ttl_seconds: float = float(os.getenv("SESSION_TTL_SECONDS", "3600"))
    offline_grading_fallback: bool = os.getenv("OFFLINE_GRADING_FALLBACK", "false").lower() == "true"

settings = Settings()
