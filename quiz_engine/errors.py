class QuizEngineError(Exception):
    pass

class RemoteServiceError(QuizEngineError):
    """A remote collaborator (quiz generator or grader) failed or answered with an error."""

class SubmissionError(QuizEngineError):
    """Grading an attempt failed. The session keeps its answers so the caller can retry."""

class SessionStateError(QuizEngineError):
    pass

class InvalidTransitionError(SessionStateError):
    def __init__(self, state: str, event: str) -> None:
        super().__init__(f"cannot apply {event} in state {state}")
        self.state = state
        self.event = event

class SessionLockedError(SessionStateError):
    """Answers can only change while the attempt is in progress."""

class UnknownOptionError(QuizEngineError, ValueError):
    pass

class AnswerTypeError(QuizEngineError, ValueError):
    pass

class RetakeNotAllowedError(QuizEngineError):
    pass
