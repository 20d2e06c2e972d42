from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
import uuid
from time import perf_counter
from datetime import datetime, timezone
from .state import session_store
from .models import (
	AnswerRequest,
	GenerateQuizRequest,
	NavigateRequest,
	PublicQuestion,
	QuizDefinition,
	ScoreResult,
	SessionView,
	StartSessionRequest,
)
from .errors import AnswerTypeError, RetakeNotAllowedError, SessionLockedError, SubmissionError, UnknownOptionError
from .services.assessment import AttemptSession, format_time
from .services.backend_client import CourseBackendClient
from .services.gemini_client import GeminiQuizSource
from .services.graders import build_grader
from .services.quiz_loader import QuizLoader
from .services.scoring import attempt_stats
from .config import settings

logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("quiz_engine")

app = FastAPI(default_response_class=ORJSONResponse)

app.add_middleware(
	CORSMiddleware,
	allow_origins=["*"],
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

quiz_loader = QuizLoader([CourseBackendClient(), GeminiQuizSource()])
grader = build_grader()

@app.on_event("startup")
def on_startup() -> None:
	logger.info({
		"event": "api_startup",
		"utc_time": datetime.now(timezone.utc).isoformat(),
		"model": settings.gemini_model,
		"course_api": settings.course_api_url,
		"grader": type(grader).__name__,
		"tick_interval": settings.tick_interval_seconds,
	})

@app.on_event("shutdown")
def on_shutdown() -> None:
	session_store.clear()

@app.middleware("http")
async def timing_middleware(request: Request, call_next):
	start = perf_counter()
	response = await call_next(request)
	duration_ms = int((perf_counter() - start) * 1000)
	logger.debug({
		"event": "request_timing",
		"method": request.method,
		"path": request.url.path,
		"status_code": response.status_code,
		"duration_ms": duration_ms,
	})
	return response

def _validated(payload: GenerateQuizRequest) -> tuple[str, int, str]:
	# the generator does not validate its input; reject bad requests here
	topic = payload.topic.strip()
	if len(topic) < settings.min_topic_length:
		raise HTTPException(status_code=422, detail="topic_too_short")
	count = settings.default_question_count if payload.count is None else payload.count
	if count <= 0:
		raise HTTPException(status_code=422, detail="count_must_be_positive")
	salt = payload.salt if payload.salt is not None else uuid.uuid4().hex
	return topic, count, salt

def _get_session(session_id: str) -> AttemptSession:
	session = session_store.get(session_id)
	if session is None:
		raise HTTPException(status_code=404, detail="session_not_found")
	return session

def _to_view(session_id: str, session: AttemptSession) -> SessionView:
	question = session.current_question
	answered, total = session.progress()
	return SessionView(
		session_id=session_id,
		quiz_id=session.definition.id,
		title=session.definition.title,
		state=session.state.value,
		current_index=session.current_index,
		total_questions=total,
		answered=answered,
		remaining_seconds=session.remaining_seconds,
		remaining_display=format_time(session.remaining_seconds) if session.remaining_seconds is not None else None,
		question=PublicQuestion(id=question.id, text=question.text, type=question.type, options=question.options, points=question.points) if question else None,
		answer=session.answers.get(question.id) if question else None,
		submitting=session.submitting,
		last_error=session.last_error,
		result=session.result,
	)

def _announce_result(quiz: QuizDefinition):
	def _listener(result: ScoreResult) -> None:
		if result.passed:
			logger.info({"event": "certificate_eligible", "quiz_id": quiz.id, "percentage": result.percentage})
	return _listener

@app.post("/api/quiz/generate", response_model=QuizDefinition)
async def generate_quiz(payload: GenerateQuizRequest):
	topic, count, salt = _validated(payload)
	return await quiz_loader.load_or_generate_quiz(topic, payload.difficulty, count, salt)

@app.post("/api/session/start", response_model=SessionView)
async def start_session(payload: StartSessionRequest):
	topic, count, salt = _validated(payload)
	quiz = await quiz_loader.load_or_generate_quiz(topic, payload.difficulty, count, salt)
	overrides = {
		k: v for k, v in {
			"time_limit_minutes": payload.time_limit_minutes,
			"passing_score": payload.passing_score,
			"max_attempts": payload.max_attempts,
			"randomize_questions": payload.randomize_questions,
		}.items() if v is not None
	}
	if overrides:
		quiz = quiz.model_copy(update=overrides)
	session = AttemptSession(quiz, grader=grader, attempt_history=payload.attempt_history)
	if not session.retake_policy().can_retake:
		raise HTTPException(status_code=403, detail="max_attempts_reached")
	session.on_graded(_announce_result(quiz))
	session.start()
	session_id = session_store.add(session)
	logger.debug({"event": "session_registered", "session_id": session_id, "quiz_id": quiz.id, "source": quiz.source})
	return _to_view(session_id, session)

@app.get("/api/session/{session_id}", response_model=SessionView)
async def get_session(session_id: str):
	return _to_view(session_id, _get_session(session_id))

@app.post("/api/session/{session_id}/navigate", response_model=SessionView)
async def navigate(session_id: str, payload: NavigateRequest):
	session = _get_session(session_id)
	if payload.action == "next":
		session.next()
	elif payload.action == "previous":
		session.previous()
	elif payload.action == "jump" and payload.index is not None:
		session.jump_to(payload.index)
	else:
		raise HTTPException(status_code=400, detail="invalid_navigation")
	return _to_view(session_id, session)

@app.post("/api/session/{session_id}/answer", response_model=SessionView)
async def answer(session_id: str, payload: AnswerRequest):
	session = _get_session(session_id)
	try:
		if payload.option_id is not None:
			session.select_option(payload.option_id)
		elif payload.text is not None:
			session.set_text_answer(payload.text)
		else:
			raise HTTPException(status_code=400, detail="empty_answer")
	except SessionLockedError:
		raise HTTPException(status_code=409, detail="session_locked")
	except (UnknownOptionError, AnswerTypeError) as e:
		raise HTTPException(status_code=400, detail=str(e))
	return _to_view(session_id, session)

@app.post("/api/session/{session_id}/submit", response_model=SessionView)
async def submit(session_id: str):
	session = _get_session(session_id)
	answered, total = session.progress()
	logger.debug({"event": "submit_requested", "session_id": session_id, "answered": answered, "total": total})
	try:
		await session.submit()
	except SubmissionError:
		# answers are kept; the client shows a retry button
		raise HTTPException(status_code=502, detail="submission_failed")
	return _to_view(session_id, session)

@app.post("/api/session/{session_id}/retake", response_model=SessionView)
async def retake(session_id: str):
	session = _get_session(session_id)
	try:
		fresh = session.retake()
	except RetakeNotAllowedError as e:
		raise HTTPException(status_code=403, detail=str(e))
	fresh.on_graded(_announce_result(fresh.definition))
	fresh.start()
	new_id = session_store.replace(session_id, fresh)
	logger.debug({"event": "session_retake", "previous_session_id": session_id, "session_id": new_id, "attempt": fresh.attempts_so_far})
	return _to_view(new_id, fresh)

@app.get("/api/session/{session_id}/attempts")
async def attempts(session_id: str):
	session = _get_session(session_id)
	history = session.history_with_current()
	return {
		"policy": session.retake_policy().model_dump(mode="json"),
		"stats": attempt_stats(history).model_dump(mode="json"),
	}

@app.delete("/api/session/{session_id}")
async def discard_session(session_id: str):
	_get_session(session_id)
	session_store.discard(session_id)
	return {"discarded": session_id}
