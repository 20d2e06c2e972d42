from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

class Difficulty(str, Enum):
    EASY = "easy"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_IN_BLANK = "fill_in_blank"

class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str

class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    type: QuestionType = QuestionType.SINGLE_CHOICE
    options: List[Option] = Field(default_factory=list)
    correct_option_ids: List[str] = Field(default_factory=list)
    expected_answer: Optional[str] = None
    points: float = 1
    explanation: Optional[str] = None

    @property
    def correct_option_id(self) -> Optional[str]:
        if len(self.correct_option_ids) == 1:
            return self.correct_option_ids[0]
        return None

    def has_option(self, option_id: str) -> bool:
        return any(o.id == option_id for o in self.options)

class QuizDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    questions: List[Question]
    time_limit_minutes: int = 0
    passing_score: int = 60
    max_attempts: int = 0
    randomize_questions: bool = False
    show_correct_answers: bool = True
    source: str = "remote"

    @property
    def total_points(self) -> float:
        return sum(q.points for q in self.questions)

    @property
    def is_timed(self) -> bool:
        return self.time_limit_minutes > 0

class AnswerRecord(BaseModel):
    question_id: str
    selected_option_ids: List[str] = Field(default_factory=list)
    text_answer: Optional[str] = ""

    @property
    def is_answered(self) -> bool:
        return bool(self.selected_option_ids) or bool((self.text_answer or "").strip())

class QuestionResult(BaseModel):
    question_id: str
    correct: bool
    score: float
    max_score: float
    selected_option_ids: List[str] = Field(default_factory=list)
    text_answer: Optional[str] = None
    correct_answers: Optional[List[str]] = None
    explanation: Optional[str] = None

class ScoreResult(BaseModel):
    score: float
    max_score: float
    percentage: int
    passed: bool
    time_spent_seconds: int
    question_results: List[QuestionResult] = Field(default_factory=list)
    can_retake: bool = False
    attempts_left: Optional[int] = None
    timed_out: bool = False

class AttemptRecord(BaseModel):
    score: float
    max_score: float
    percentage: int
    passed: bool
    time_spent_seconds: int = 0
    completed_at: Optional[datetime] = None

class RetakePolicy(BaseModel):
    can_retake: bool
    attempts_left: Optional[int] = None
    attempts_so_far: int
    has_passed: bool = False
    best_attempt: Optional[AttemptRecord] = None

class AttemptStats(BaseModel):
    total_attempts: int
    average_score: int
    pass_rate: int

# API payloads

class GenerateQuizRequest(BaseModel):
    topic: str
    difficulty: Difficulty = Difficulty.EASY
    count: Optional[int] = None
    salt: Optional[str] = None

class StartSessionRequest(GenerateQuizRequest):
    time_limit_minutes: Optional[int] = None
    passing_score: Optional[int] = None
    max_attempts: Optional[int] = None
    randomize_questions: Optional[bool] = None
    attempt_history: List[AttemptRecord] = Field(default_factory=list)

class NavigateRequest(BaseModel):
    action: str
    index: Optional[int] = None

class AnswerRequest(BaseModel):
    option_id: Optional[str] = None
    text: Optional[str] = None

class PublicQuestion(BaseModel):
    id: str
    text: str
    type: QuestionType
    options: List[Option]
    points: float

class SessionView(BaseModel):
    session_id: str
    quiz_id: str
    title: str
    state: str
    current_index: int
    total_questions: int
    answered: int
    remaining_seconds: Optional[int] = None
    remaining_display: Optional[str] = None
    question: Optional[PublicQuestion] = None
    answer: Optional[AnswerRecord] = None
    submitting: bool = False
    last_error: Optional[str] = None
    result: Optional[ScoreResult] = None
