import logging
import time
import uuid
from typing import Callable, Dict, List, Optional
from .config import settings
from .services.assessment import AttemptSession, SessionState

logger = logging.getLogger("quiz_engine")

FINISHED_STATES = (SessionState.GRADED, SessionState.CANCELLED)

class SessionStore:
	def __init__(self, ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
		self.sessions: Dict[str, AttemptSession] = {}
		self.last_seen: Dict[str, float] = {}
		self.ttl_seconds = settings.session_ttl_seconds if ttl_seconds is None else ttl_seconds
		self.clock = clock

	def add(self, session: AttemptSession) -> str:
		self.evict_expired()
		session_id = str(uuid.uuid4())
		self.sessions[session_id] = session
		self.last_seen[session_id] = self.clock()
		return session_id

	def has_session(self, session_id: str) -> bool:
		return session_id in self.sessions

	def get(self, session_id: str) -> Optional[AttemptSession]:
		session = self.sessions.get(session_id)
		if session is not None:
			self.last_seen[session_id] = self.clock()
		return session

	def replace(self, session_id: str, session: AttemptSession) -> str:
		# a retake discards the finished attempt and starts a fresh one
		self.discard(session_id)
		return self.add(session)

	def discard(self, session_id: str) -> None:
		self.last_seen.pop(session_id, None)
		session = self.sessions.pop(session_id, None)
		if session is not None:
			session.cancel()

	def evict_expired(self) -> List[str]:
		# only finished attempts expire; live ones end through their own timer or a DELETE
		if self.ttl_seconds <= 0:
			return []
		now = self.clock()
		expired = [
			session_id for session_id, session in self.sessions.items()
			if session.state in FINISHED_STATES and now - self.last_seen.get(session_id, now) > self.ttl_seconds
		]
		for session_id in expired:
			self.discard(session_id)
		if expired:
			logger.debug({"event": "sessions_evicted", "count": len(expired)})
		return expired

	def clear(self) -> None:
		for session_id in list(self.sessions):
			self.discard(session_id)

session_store = SessionStore()
