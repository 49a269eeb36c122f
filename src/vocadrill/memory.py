import math
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from .config import MemoryModelConfig, settings
from .errors import InvalidState
from .models import Grade, MemoryState, PracticeItem

SECONDS_PER_DAY = 86400.0

# Minimum gap (days) between consecutive grades' intervals on a successful review.
MIN_GRADE_SPACING_DAYS = 1.0


class MemoryModel:
    """
    Forgetting-curve memory model.

    Converts (memory state, grade, time) into the next memory state. All
    functions are pure: the same inputs always produce the same output, and
    retrievability is derived on demand rather than stored.
    """

    def __init__(self, config: Optional[MemoryModelConfig] = None):
        self.config = config or settings.MEMORY

    # --- Construction & Validation ---
    def initial_state(
        self, item: Optional[PracticeItem], now: datetime
    ) -> MemoryState:
        """State for an item that has never been reviewed; due immediately."""
        category = item.category if item else ""
        return MemoryState(
            stability=self.config.initial_stability["Good"],
            difficulty=self.config.category_initial_difficulty.get(
                category, self.config.default_initial_difficulty
            ),
            due_date=now,
        )

    def validate(self, state: MemoryState, item_id: Optional[str] = None) -> None:
        cfg = self.config
        if not math.isfinite(state.stability) or state.stability <= 0:
            raise InvalidState(f"stability must be positive, got {state.stability}", item_id)
        if not math.isfinite(state.difficulty) or not (
            cfg.min_difficulty <= state.difficulty <= cfg.max_difficulty
        ):
            raise InvalidState(
                f"difficulty {state.difficulty} outside "
                f"[{cfg.min_difficulty}, {cfg.max_difficulty}]",
                item_id,
            )
        if state.repetition_count < 0 or state.lapse_count < 0:
            raise InvalidState("counters must not be negative", item_id)
        if state.last_reviewed is not None and state.due_date < state.last_reviewed:
            raise InvalidState("due date precedes last review", item_id)

    # --- Forgetting Curve ---
    def retrievability_at(self, state: MemoryState, now: datetime) -> float:
        """Probability of recall at ``now``. Never-reviewed items have nothing to recall."""
        if state.last_reviewed is None:
            return 0.0
        elapsed_days = max(
            0.0, (now - state.last_reviewed).total_seconds() / SECONDS_PER_DAY
        )
        return (1 + elapsed_days / (self.config.factor * state.stability)) ** (
            -self.config.decay
        )

    def interval_for(self, stability: float) -> float:
        """Days until retrievability falls to the target for the given stability."""
        cfg = self.config
        days = (
            cfg.factor
            * stability
            * (cfg.target_retrievability ** (-1 / cfg.decay) - 1)
        )
        return min(days, cfg.max_interval_days)

    # --- Transitions ---
    def advance(self, state: MemoryState, grade: Grade, now: datetime) -> MemoryState:
        if grade == Grade.Skip:
            return state.model_copy()

        self.validate(state)

        if grade == Grade.Again:
            if state.is_new:
                stability = self.config.initial_stability["Again"]
            else:
                stability = max(
                    self.config.min_stability,
                    state.stability * self.config.again_multiplier,
                )
            due_date = now + timedelta(minutes=self.config.relearn_interval_minutes)
        else:
            stability, days = self._review_schedule(state, now)[grade]
            due_date = now + timedelta(days=days)

        return MemoryState(
            stability=stability,
            difficulty=self._next_difficulty(state.difficulty, grade),
            due_date=due_date,
            repetition_count=state.repetition_count + 1,
            lapse_count=state.lapse_count + (1 if grade == Grade.Again else 0),
            last_reviewed=now,
        )

    def _review_schedule(
        self, state: MemoryState, now: datetime
    ) -> Dict[Grade, Tuple[float, float]]:
        """New (stability, interval days) for every successful grade.

        Intervals are computed together so Easy > Good > Hard holds for any
        input state.
        """
        cfg = self.config
        if state.is_new:
            stabilities = {
                grade: cfg.initial_stability[grade.name]
                for grade in (Grade.Hard, Grade.Good, Grade.Easy)
            }
        else:
            recall = self.retrievability_at(state, now)
            stabilities = {
                grade: state.stability * self._gain(grade, state.difficulty, recall)
                for grade in (Grade.Hard, Grade.Good, Grade.Easy)
            }

        hard_days = max(
            self.interval_for(stabilities[Grade.Hard]),
            cfg.min_review_interval_hours / 24,
        )
        good_days = max(
            self.interval_for(stabilities[Grade.Good]),
            hard_days + MIN_GRADE_SPACING_DAYS,
        )
        easy_days = max(
            self.interval_for(stabilities[Grade.Easy]) * cfg.easy_interval_bonus,
            good_days + MIN_GRADE_SPACING_DAYS,
        )
        return {
            Grade.Hard: (stabilities[Grade.Hard], min(hard_days, cfg.max_interval_days)),
            Grade.Good: (stabilities[Grade.Good], min(good_days, cfg.max_interval_days)),
            Grade.Easy: (stabilities[Grade.Easy], min(easy_days, cfg.max_interval_days)),
        }

    def _gain(self, grade: Grade, difficulty: float, recall: float) -> float:
        cfg = self.config
        span = cfg.max_difficulty - cfg.min_difficulty + 1
        ease = (cfg.max_difficulty - difficulty + 1) / span
        spacing = 1 + cfg.spacing_bonus * (1 - recall)
        return 1 + (cfg.base_gain[grade.name] - 1) * ease * spacing

    def _next_difficulty(self, difficulty: float, grade: Grade) -> float:
        cfg = self.config
        if grade == Grade.Again:
            difficulty += cfg.again_difficulty_weight * (cfg.max_difficulty - difficulty)
        elif grade == Grade.Hard:
            difficulty += cfg.hard_difficulty_weight * (cfg.max_difficulty - difficulty)
        elif grade == Grade.Good:
            difficulty += cfg.good_reversion_weight * (
                cfg.neutral_difficulty - difficulty
            )
        elif grade == Grade.Easy:
            difficulty -= cfg.easy_difficulty_weight * (difficulty - cfg.min_difficulty)
        return min(cfg.max_difficulty, max(cfg.min_difficulty, difficulty))
