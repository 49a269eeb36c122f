from typing import Optional


class EngineError(Exception):
    """Base class for practice engine failures."""


class InvalidState(EngineError):
    """A memory state is corrupted or outside its configured bounds."""

    def __init__(self, message: str, item_id: Optional[str] = None):
        super().__init__(message)
        self.item_id = item_id


class EmptyQueue(EngineError):
    """No eligible items could be selected for a session."""


class SessionError(EngineError):
    pass


class AlreadyAnswered(SessionError):
    def __init__(self, question_index: int):
        super().__init__(f"Question {question_index} has already been answered")
        self.question_index = question_index


class QuestionNotFound(SessionError):
    def __init__(self, question_index: int):
        super().__init__(f"Question {question_index} does not exist")
        self.question_index = question_index


class QuestionOutOfOrder(SessionError):
    def __init__(self, question_index: int, position: int):
        super().__init__(
            f"Question {question_index} is not the current question ({position})"
        )
        self.question_index = question_index
        self.position = position


class SessionClosed(SessionError):
    """The session is completed or abandoned and accepts no more answers."""


class SessionNotCompleted(SessionError):
    """A summary was requested before the session finished."""


class PersistenceFailure(EngineError):
    """Writing progress to the store failed after retries.

    ``item_id`` is None when the failed write was the student's adaptive difficulty.
    """

    def __init__(self, student_id: str, item_id: Optional[str], cause: BaseException):
        target = f"item {item_id}" if item_id is not None else "adaptive difficulty"
        super().__init__(
            f"Could not save progress for {target} (student {student_id}): {cause}"
        )
        self.student_id = student_id
        self.item_id = item_id
        self.cause = cause
