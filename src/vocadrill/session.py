import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from .adaptor import DifficultyAdaptor
from .config import settings
from .errors import (
    AlreadyAnswered,
    EmptyQueue,
    InvalidState,
    QuestionNotFound,
    QuestionOutOfOrder,
    SessionClosed,
    SessionNotCompleted,
)
from .memory import MemoryModel
from .models import (
    AnswerOutcome,
    Grade,
    MemoryState,
    PracticeQuestion,
    QuestionOutcome,
    QuestionRecord,
    SessionHandle,
    SessionStatus,
    SessionSummary,
)
from .persistence import ProgressWriter
from .quiz import QuestionGenerator
from .storage import ProgressStore
from .validator import AnswerValidator
from .vocabulary import VocabularyManager

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
RngFactory = Callable[[str], random.Random]

CLOSED_STATUSES = (SessionStatus.Completed, SessionStatus.Abandoned)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionOrchestrator:
    """
    Drives practice sessions.

    Every call takes the caller-owned SessionHandle and mutates it in place;
    the orchestrator itself holds only collaborators. Memory state updates
    are handed to the ProgressWriter and never block the session.
    """

    def __init__(
        self,
        catalog: VocabularyManager,
        store: ProgressStore,
        writer: ProgressWriter,
        memory_model: Optional[MemoryModel] = None,
        validator: Optional[AnswerValidator] = None,
        adaptor: Optional[DifficultyAdaptor] = None,
        generator: Optional[QuestionGenerator] = None,
        clock: Optional[Clock] = None,
        rng_factory: Optional[RngFactory] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.writer = writer
        self.memory_model = memory_model or MemoryModel()
        self.validator = validator or AnswerValidator()
        self.adaptor = adaptor or DifficultyAdaptor()
        self.generator = generator or QuestionGenerator(self.memory_model)
        self.clock = clock or utcnow
        self.rng_factory = rng_factory or random.Random

    # --- Session Lifecycle ---
    def generate_session(
        self,
        student_id: str,
        unit_id: str,
        size: int = settings.DEFAULT_SESSION_SIZE,
        mode: str = "standard",
        adaptive_difficulty: Optional[float] = None,
        typo_tolerant: bool = False,
        language: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> SessionHandle:
        pool = self.catalog.fetch_pool(unit_id)
        if not pool:
            raise EmptyQueue(f"Unit '{unit_id}' has no items")

        now = self.clock()
        session_id = session_id or str(uuid.uuid4())

        stored = self.store.load_states(student_id, [item.id for item in pool])
        states = {}
        for item in pool:
            state = stored.get(item.id)
            if state is not None:
                state = self._checked(student_id, item.id, state, now)
            states[item.id] = state or self.memory_model.initial_state(item, now)

        if adaptive_difficulty is None:
            adaptive_difficulty = self.store.load_difficulty(student_id)
        opening = self.adaptor.clamp(adaptive_difficulty)

        questions = self.generator.build_session(
            pool,
            states,
            size,
            opening,
            now,
            rng=self.rng_factory(session_id),
            language=language,
            mode=mode,
        )

        handle = SessionHandle(
            session_id=session_id,
            student_id=student_id,
            unit_id=unit_id,
            mode=mode,
            language=language,
            typo_tolerant=typo_tolerant,
            questions=questions,
            opening_difficulty=opening,
            adaptive_difficulty=opening,
            states={q.item_id: states[q.item_id] for q in questions},
            created_at=now,
        )
        logger.info(
            f"New session: {session_id} [Student: {student_id}, Unit: {unit_id}, "
            f"Mode: {mode}, Questions: {len(questions)}, Difficulty: {opening:.2f}]"
        )
        return handle

    def current_question(self, handle: SessionHandle) -> Optional[PracticeQuestion]:
        if handle.status in CLOSED_STATUSES or handle.position >= handle.total_questions:
            return None
        self._start(handle)
        return handle.questions[handle.position]

    def submit_answer(
        self,
        handle: SessionHandle,
        question_index: int,
        raw_answer: str,
        time_spent_ms: int = 0,
        hint_used: bool = False,
    ) -> AnswerOutcome:
        question = self._question_at(handle, question_index)
        if question.is_finalized:
            raise AlreadyAnswered(question_index)
        self._ensure_open(handle)
        if question_index != handle.position:
            raise QuestionOutOfOrder(question_index, handle.position)

        self._start(handle)
        now = self.clock()
        time_spent_ms = max(0, int(time_spent_ms))

        result = self.validator.validate(
            question,
            raw_answer,
            time_spent_ms=time_spent_ms,
            hint_used=hint_used,
            typo_tolerant=handle.typo_tolerant,
        )

        updated = self._advance_memory(handle, question.item_id, result.grade, now)
        handle.states[question.item_id] = updated
        self.writer.save(handle.session_id, handle.student_id, question.item_id, updated)

        handle.adaptive_difficulty = self.adaptor.update(
            handle.adaptive_difficulty, result.grade, time_spent_ms, hint_used
        )

        question.user_answer = raw_answer
        question.is_correct = result.is_correct
        question.time_spent_ms = time_spent_ms
        question.hints_used = 1 if hint_used else 0
        question.grade = result.grade
        question.outcome = QuestionOutcome.Answered

        counters = handle.counters
        if result.is_correct:
            counters.correct += 1
        else:
            counters.incorrect += 1
        if hint_used:
            counters.hints_used += 1
        counters.total_time_ms += time_spent_ms

        logger.info(
            f"Session {handle.session_id} Q{question_index}: "
            f"{'CORRECT' if result.is_correct else 'INCORRECT'} ({result.grade.name}), "
            f"next due {updated.due_date.isoformat()}"
        )
        self._next(handle, now)

        return AnswerOutcome(
            is_correct=result.is_correct,
            grade=result.grade,
            correct_answer=question.correct_answer,
            updated_memory_state=updated,
            next_due_date=updated.due_date,
            adaptive_difficulty=handle.adaptive_difficulty,
            completed=handle.status == SessionStatus.Completed,
        )

    def skip_current(self, handle: SessionHandle) -> None:
        """Marks the current question skipped; its scheduling is left untouched."""
        self._ensure_open(handle)
        self._start(handle)
        question = handle.questions[handle.position]
        question.grade = Grade.Skip
        question.outcome = QuestionOutcome.Skipped
        handle.counters.skipped += 1
        self._next(handle, self.clock())

    def abandon(self, handle: SessionHandle) -> None:
        """Discards the rest of the queue. Answers already given stay committed."""
        if handle.status in CLOSED_STATUSES:
            return
        handle.status = SessionStatus.Abandoned
        handle.completed_at = self.clock()
        logger.info(
            f"Abandoned session: {handle.session_id} at "
            f"{handle.position}/{handle.total_questions}"
        )

    def get_summary(self, handle: SessionHandle) -> SessionSummary:
        if handle.status not in CLOSED_STATUSES:
            raise SessionNotCompleted(
                f"Session {handle.session_id} is {handle.status.value}"
            )

        counters = handle.counters
        total = handle.total_questions
        score = round((counters.correct / total) * 100) if total > 0 else 0
        ended = handle.completed_at or self.clock()

        return SessionSummary(
            session_id=handle.session_id,
            status=handle.status,
            correct_count=counters.correct,
            incorrect_count=counters.incorrect,
            skipped_count=counters.skipped,
            hints_used=counters.hints_used,
            total_questions=total,
            score_percentage=score,
            total_time_ms=counters.total_time_ms,
            elapsed_seconds=(ended - handle.created_at).total_seconds(),
            opening_difficulty=handle.opening_difficulty,
            final_difficulty=handle.adaptive_difficulty,
            answers=[
                QuestionRecord(
                    item_id=q.item_id,
                    question_type=q.question_type,
                    prompt=q.prompt,
                    user_answer=q.user_answer,
                    correct_answer=q.correct_answer,
                    is_correct=q.is_correct,
                    grade=q.grade,
                    outcome=q.outcome,
                )
                for q in handle.questions
            ],
            persistence_warnings=[
                str(f) for f in self.writer.failures(handle.session_id)
            ],
        )

    # --- Helpers ---
    def _question_at(self, handle: SessionHandle, index: int) -> PracticeQuestion:
        if not (0 <= index < handle.total_questions):
            raise QuestionNotFound(index)
        return handle.questions[index]

    def _ensure_open(self, handle: SessionHandle) -> None:
        if handle.status in CLOSED_STATUSES or handle.position >= handle.total_questions:
            raise SessionClosed(
                f"Session {handle.session_id} is {handle.status.value}"
            )

    def _start(self, handle: SessionHandle) -> None:
        if handle.status == SessionStatus.NotStarted:
            handle.status = SessionStatus.InProgress

    def _next(self, handle: SessionHandle, now: datetime) -> None:
        handle.position += 1
        if handle.position < handle.total_questions:
            return
        handle.status = SessionStatus.Completed
        handle.completed_at = now
        self.writer.save_difficulty(
            handle.student_id, handle.adaptive_difficulty, handle.session_id
        )
        logger.info(
            f"Completed session: {handle.session_id} "
            f"[{handle.counters.correct}/{handle.total_questions} correct, "
            f"Difficulty: {handle.adaptive_difficulty:.2f}]"
        )

    def _checked(
        self, student_id: str, item_id: str, state: MemoryState, now: datetime
    ) -> Optional[MemoryState]:
        """Returns ``state`` if valid, otherwise None so it is re-initialised."""
        try:
            self.memory_model.validate(state, item_id)
        except InvalidState as e:
            logger.warning(f"Re-initialising state for {student_id}/{item_id}: {e}")
            return None
        return state

    def _advance_memory(
        self, handle: SessionHandle, item_id: str, grade: Grade, now: datetime
    ) -> MemoryState:
        item = self.catalog.get_item(handle.unit_id, item_id)
        state = handle.states.get(item_id) or self.memory_model.initial_state(item, now)
        try:
            return self.memory_model.advance(state, grade, now)
        except InvalidState as e:
            logger.warning(
                f"Re-initialising state for {handle.student_id}/{item_id}: {e}"
            )
            return self.memory_model.advance(
                self.memory_model.initial_state(item, now), grade, now
            )
