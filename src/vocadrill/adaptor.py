import math
from typing import Optional

from .config import AdaptorConfig, settings
from .models import Grade

GRADE_SIGNAL = {
    Grade.Skip: 0.0,
    Grade.Again: -1.0,
    Grade.Hard: -0.2,
    Grade.Good: 0.6,
    Grade.Easy: 1.0,
}


class DifficultyAdaptor:
    """
    Rolling estimate of recent learner performance, in [0, 1].

    Higher values bias sessions toward recall-heavy question types. Moves are
    proportional to the distance from the bound they head toward, so the value
    never pins at 0 or 1, and a small decay pulls it back toward the baseline.
    """

    def __init__(self, config: Optional[AdaptorConfig] = None):
        self.config = config or settings.ADAPTOR

    def speed_factor(self, time_spent_ms: int) -> float:
        cfg = self.config
        if time_spent_ms <= cfg.fast_answer_ms:
            return 1.0
        if time_spent_ms >= cfg.slow_answer_ms:
            return cfg.slow_floor
        span = cfg.slow_answer_ms - cfg.fast_answer_ms
        progress = (time_spent_ms - cfg.fast_answer_ms) / span
        return 1.0 - progress * (1.0 - cfg.slow_floor)

    def signal(self, grade: Grade, time_spent_ms: int, hint_used: bool) -> float:
        base = GRADE_SIGNAL[grade]
        if grade in (Grade.Skip, Grade.Again):
            return base
        speed = self.speed_factor(time_spent_ms)
        if hint_used:
            # Grade is already hint-downgraded; the penalty grows with latency only.
            return self.config.hint_signal * (2.0 - speed)
        if base <= 0:
            return base
        return base * speed

    def update(
        self,
        previous: float,
        grade: Grade,
        time_spent_ms: int = 0,
        hint_used: bool = False,
    ) -> float:
        cfg = self.config
        if grade == Grade.Skip:
            return self.clamp(previous)

        value = self.clamp(previous)
        signal = self.signal(grade, max(0, time_spent_ms), hint_used)
        if signal > 0:
            value += cfg.step_up * signal * (1.0 - value)
        elif signal < 0:
            value += cfg.step_down * signal * value

        value += cfg.decay * (cfg.baseline - value)
        return self.clamp(value)

    def clamp(self, value: Optional[float]) -> float:
        if value is None or not math.isfinite(value):
            return self.config.initial
        return min(1.0, max(0.0, value))
