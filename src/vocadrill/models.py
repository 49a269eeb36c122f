from datetime import datetime
from enum import Enum, IntEnum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .config import settings


# --- Enumerations ---
class Grade(IntEnum):
    """Discretized quality of a single response."""

    Skip = 0
    Again = 1
    Hard = 2
    Good = 3
    Easy = 4


class QuestionType(str, Enum):
    MultipleChoice = "multiple_choice"
    Typing = "typing"
    FillBlank = "fill_blank"
    AudioRecognition = "audio_recognition"


class SessionStatus(str, Enum):
    NotStarted = "not_started"
    InProgress = "in_progress"
    Completed = "completed"
    Abandoned = "abandoned"


class QuestionOutcome(str, Enum):
    Answered = "answered"
    Skipped = "skipped"


# --- Catalog ---
class PracticeItem(BaseModel):
    id: str
    word: str
    definition: str = ""
    translations: Dict[str, str]
    category: str = ""
    audio_url: Optional[str] = None
    image_url: Optional[str] = None
    example: Optional[str] = None

    model_config = {"frozen": True}

    def translation_for(self, language: Optional[str] = None) -> str:
        """Translation in ``language``, falling back to the default language, then any."""
        for lang in (language, settings.DEFAULT_LANGUAGE):
            if lang and self.translations.get(lang):
                return self.translations[lang]
        return next((t for t in self.translations.values() if t), "")


# --- Memory ---
class MemoryState(BaseModel):
    stability: float
    difficulty: float
    due_date: datetime
    repetition_count: int = 0
    lapse_count: int = 0
    last_reviewed: Optional[datetime] = None

    @property
    def is_new(self) -> bool:
        return self.last_reviewed is None


# --- Questions & Sessions ---
class PracticeQuestion(BaseModel):
    item_id: str
    question_type: QuestionType
    prompt: str
    options: List[str] = Field(default_factory=list)
    correct_answer: str
    audio_url: Optional[str] = None
    image_url: Optional[str] = None
    user_answer: Optional[str] = None
    is_correct: Optional[bool] = None
    time_spent_ms: int = 0
    hints_used: int = 0
    grade: Optional[Grade] = None
    outcome: Optional[QuestionOutcome] = None

    @property
    def is_finalized(self) -> bool:
        return self.outcome is not None


class SessionCounters(BaseModel):
    correct: int = 0
    incorrect: int = 0
    skipped: int = 0
    hints_used: int = 0
    total_time_ms: int = 0


class SessionHandle(BaseModel):
    session_id: str
    student_id: str
    unit_id: str
    mode: str = "standard"
    language: Optional[str] = None
    typo_tolerant: bool = False
    status: SessionStatus = SessionStatus.NotStarted
    questions: List[PracticeQuestion]
    position: int = 0
    counters: SessionCounters = Field(default_factory=SessionCounters)
    opening_difficulty: float
    adaptive_difficulty: float
    states: Dict[str, MemoryState] = Field(default_factory=dict)
    created_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)


class AnswerOutcome(BaseModel):
    is_correct: bool
    grade: Grade
    correct_answer: str
    updated_memory_state: MemoryState
    next_due_date: datetime
    adaptive_difficulty: float
    completed: bool


class QuestionRecord(BaseModel):
    item_id: str
    question_type: QuestionType
    prompt: str
    user_answer: Optional[str]
    correct_answer: str
    is_correct: Optional[bool]
    grade: Optional[Grade]
    outcome: Optional[QuestionOutcome]


class SessionSummary(BaseModel):
    session_id: str
    status: SessionStatus
    correct_count: int
    incorrect_count: int
    skipped_count: int
    hints_used: int
    total_questions: int
    score_percentage: int
    total_time_ms: int
    elapsed_seconds: float
    opening_difficulty: float
    final_difficulty: float
    answers: List[QuestionRecord]
    persistence_warnings: List[str] = Field(default_factory=list)
