import random
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .config import GeneratorConfig, settings
from .errors import EmptyQueue
from .memory import MemoryModel
from .models import MemoryState, PracticeItem, PracticeQuestion, QuestionType
from .validator import normalize

BLANK = "____"


# --- Strategy Pattern: Item Selection ---
class SelectionStrategy(ABC):
    """Abstract Base Class for choosing which items a session covers."""

    @abstractmethod
    def select(
        self,
        pool: List[PracticeItem],
        states: Dict[str, MemoryState],
        size: int,
        now: datetime,
        memory_model: MemoryModel,
    ) -> List[PracticeItem]:
        pass

    @staticmethod
    def due_items(
        pool: List[PracticeItem],
        states: Dict[str, MemoryState],
        now: datetime,
        memory_model: MemoryModel,
    ) -> List[PracticeItem]:
        """Reviewed items that are due, least-remembered first."""
        due = [
            item
            for item in pool
            if item.id in states
            and not states[item.id].is_new
            and states[item.id].due_date <= now
        ]
        due.sort(
            key=lambda item: (
                memory_model.retrievability_at(states[item.id], now),
                states[item.id].due_date,
                item.id,
            )
        )
        return due

    @staticmethod
    def new_items(
        pool: List[PracticeItem], states: Dict[str, MemoryState]
    ) -> List[PracticeItem]:
        return [
            item for item in pool if item.id not in states or states[item.id].is_new
        ]


class StandardSelection(SelectionStrategy):
    """Due reviews first, then padded with new items."""

    def select(self, pool, states, size, now, memory_model):
        due = self.due_items(pool, states, now, memory_model)
        return (due + self.new_items(pool, states))[:size]


class ReviewSelection(SelectionStrategy):
    """Due reviews only."""

    def select(self, pool, states, size, now, memory_model):
        return self.due_items(pool, states, now, memory_model)[:size]


class LearnSelection(SelectionStrategy):
    """New items only."""

    def select(self, pool, states, size, now, memory_model):
        return self.new_items(pool, states)[:size]


class DailySelection(SelectionStrategy):
    """A short daily set: fewest repetitions first, then the longest unseen."""

    def __init__(self, daily_size: int):
        self.daily_size = daily_size

    def select(self, pool, states, size, now, memory_model):
        def rank(item: PracticeItem):
            state = states.get(item.id)
            if state is None or state.last_reviewed is None:
                return (state.repetition_count if state else 0, float("-inf"))
            return (state.repetition_count, state.last_reviewed.timestamp())

        return sorted(pool, key=rank)[: min(size, self.daily_size)]


class SelectionFactory:
    """Factory to select the appropriate selection strategy."""

    MODES = ("standard", "review", "learn", "daily")

    @staticmethod
    def create(
        mode: str, config: Optional[GeneratorConfig] = None
    ) -> SelectionStrategy:
        config = config or settings.GENERATOR
        if mode == "review":
            return ReviewSelection()
        elif mode == "learn":
            return LearnSelection()
        elif mode == "daily":
            return DailySelection(config.daily_size)
        elif mode == "standard":
            return StandardSelection()
        else:
            raise ValueError(f"Unknown practice mode: {mode}")


# --- Question Generation ---
class QuestionGenerator:
    """Builds a typed question queue from an item pool."""

    def __init__(
        self,
        memory_model: Optional[MemoryModel] = None,
        config: Optional[GeneratorConfig] = None,
    ):
        self.memory_model = memory_model or MemoryModel()
        self.config = config or settings.GENERATOR

    def build_session(
        self,
        pool: List[PracticeItem],
        due_states: Dict[str, MemoryState],
        size: int,
        adaptive_difficulty: float,
        now: datetime,
        rng: Optional[random.Random] = None,
        language: Optional[str] = None,
        mode: str = "standard",
    ) -> List[PracticeQuestion]:
        if size < 1:
            raise ValueError("Session size must be at least 1")
        if not pool:
            raise EmptyQueue("Item pool is empty")

        rng = rng or random.Random()
        strategy = SelectionFactory.create(mode, self.config)
        selected = strategy.select(pool, due_states, size, now, self.memory_model)
        if not selected:
            raise EmptyQueue(f"No eligible items for mode '{mode}'")

        return [
            self.build_question(item, pool, adaptive_difficulty, rng, language)
            for item in selected
        ]

    def choose_type(
        self, item: PracticeItem, adaptive_difficulty: float, rng: random.Random
    ) -> QuestionType:
        """Weighted pick: recall-heavy types gain weight as difficulty rises."""
        level = min(1.0, max(0.0, adaptive_difficulty))
        weights = {
            QuestionType.MultipleChoice: 0.15 + 0.85 * (1 - level),
            QuestionType.Typing: 0.15 + 0.85 * level,
        }
        if item.example or item.definition:
            weights[QuestionType.FillBlank] = 0.25
        if item.audio_url:
            weights[QuestionType.AudioRecognition] = 0.1 + 0.6 * level

        types = list(weights)
        return rng.choices(types, weights=[weights[t] for t in types])[0]

    def build_question(
        self,
        item: PracticeItem,
        pool: List[PracticeItem],
        adaptive_difficulty: float,
        rng: random.Random,
        language: Optional[str] = None,
    ) -> PracticeQuestion:
        question_type = self.choose_type(item, adaptive_difficulty, rng)

        if question_type == QuestionType.MultipleChoice:
            correct = item.translation_for(language)
            distractors = self._generate_distractors(item, pool, rng, language)
            if len(distractors) == self.config.distractor_count:
                options = [correct] + distractors
                rng.shuffle(options)
                return PracticeQuestion(
                    item_id=item.id,
                    question_type=question_type,
                    prompt=item.word,
                    options=options,
                    correct_answer=correct,
                    image_url=item.image_url,
                )
            # Too few distinct translations for a full option set.
            question_type = QuestionType.Typing

        if question_type == QuestionType.FillBlank:
            prompt = self._blank_out(item)
        elif question_type == QuestionType.AudioRecognition:
            prompt = item.audio_url or ""
        else:
            prompt = item.translation_for(language)

        return PracticeQuestion(
            item_id=item.id,
            question_type=question_type,
            prompt=prompt,
            correct_answer=item.word,
            audio_url=item.audio_url,
            image_url=item.image_url,
        )

    def _generate_distractors(
        self,
        item: PracticeItem,
        pool: List[PracticeItem],
        rng: random.Random,
        language: Optional[str] = None,
    ) -> List[str]:
        """Distinct wrong translations, same category first, then the whole pool."""
        count = self.config.distractor_count
        seen = {normalize(item.translation_for(language))}

        def candidates(items: Iterable[PracticeItem]) -> List[str]:
            found = []
            for other in items:
                if other.id == item.id:
                    continue
                text = other.translation_for(language)
                key = normalize(text)
                if not key or key in seen:
                    continue
                seen.add(key)
                found.append(text)
            return found

        same_category = []
        if item.category:
            same_category = candidates(o for o in pool if o.category == item.category)
        if len(same_category) >= count:
            return rng.sample(same_category, count)

        rest = candidates(pool)
        return same_category + rng.sample(rest, min(count - len(same_category), len(rest)))

    @staticmethod
    def _blank_out(item: PracticeItem) -> str:
        if item.example and item.word:
            pattern = re.compile(rf"\b{re.escape(item.word)}\b", re.IGNORECASE)
            if pattern.search(item.example):
                return pattern.sub(BLANK, item.example)
        return f"{item.definition} {BLANK}".strip()
