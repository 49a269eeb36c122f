from typing import Dict

from pydantic import BaseModel, Field


class MemoryModelConfig(BaseModel):
    """Tunable constants of the forgetting curve and stability updates."""

    decay: float = 0.5
    factor: float = 81 / 19
    target_retrievability: float = 0.9
    min_stability: float = 0.1
    min_difficulty: float = 1.0
    max_difficulty: float = 10.0
    neutral_difficulty: float = 5.0
    default_initial_difficulty: float = 5.0
    category_initial_difficulty: Dict[str, float] = Field(default_factory=dict)
    # Stability (days) after the very first review, keyed by grade name.
    initial_stability: Dict[str, float] = Field(
        default_factory=lambda: {"Again": 0.2, "Hard": 0.8, "Good": 2.0, "Easy": 5.0}
    )
    # Stability growth before difficulty and spacing modulation.
    base_gain: Dict[str, float] = Field(
        default_factory=lambda: {"Hard": 1.2, "Good": 2.5, "Easy": 3.5}
    )
    again_multiplier: float = 0.5
    spacing_bonus: float = 0.5
    again_difficulty_weight: float = 0.25
    hard_difficulty_weight: float = 0.08
    good_reversion_weight: float = 0.1
    easy_difficulty_weight: float = 0.15
    relearn_interval_minutes: int = 10
    min_review_interval_hours: float = 4.0
    easy_interval_bonus: float = 1.3
    max_interval_days: float = 36500.0


class ValidatorConfig(BaseModel):
    min_fuzzy_length: int = 3
    tolerance_ratio: float = 0.2
    fast_answer_ms: int = 5000


class AdaptorConfig(BaseModel):
    initial: float = 0.5
    baseline: float = 0.5
    step_up: float = 0.25
    step_down: float = 0.2
    decay: float = 0.05
    fast_answer_ms: int = 4000
    slow_answer_ms: int = 15000
    slow_floor: float = 0.25
    hint_signal: float = -0.5


class GeneratorConfig(BaseModel):
    distractor_count: int = 3
    daily_size: int = 5


class PersistenceConfig(BaseModel):
    max_workers: int = 4
    retry_attempts: int = 3
    retry_min_wait: float = 0.5
    retry_max_wait: float = 8.0
    # Sessions whose write failures are kept for their summary; oldest evicted first.
    max_tracked_sessions: int = 1000


class Settings:
    PROJECT_NAME: str = "vocadrill"
    DEBUG: bool = False
    LOG_DIR: str = "log"
    LOG_FILE: str = "vocadrill.log"
    REDIS_URL: str = "redis://localhost:6379/0"
    VOCAB_DIR: str = "vocabulary"
    DEFAULT_SESSION_SIZE: int = 15
    DEFAULT_LANGUAGE: str = "ru"
    SESSION_COOKIE_NAME: str = "practice_session_id"
    SESSION_TIMEOUT_MINUTES: int = 120
    PROGRESS_KEY_PREFIX: str = "progress"

    MEMORY: MemoryModelConfig = MemoryModelConfig()
    VALIDATOR: ValidatorConfig = ValidatorConfig()
    ADAPTOR: AdaptorConfig = AdaptorConfig()
    GENERATOR: GeneratorConfig = GeneratorConfig()
    PERSISTENCE: PersistenceConfig = PersistenceConfig()


settings = Settings()
