"""Runtime settings read from ``SUDOKUDUEL_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .match import DEFAULT_MAX_MISTAKES
from .puzzle import DEFAULT_ATTEMPTS, DEFAULT_DIFFICULTY, cells_to_remove

ENV_PREFIX = "SUDOKUDUEL_"


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8000
    max_mistakes: int = DEFAULT_MAX_MISTAKES
    default_difficulty: str = DEFAULT_DIFFICULTY
    generation_attempts: int = DEFAULT_ATTEMPTS
    strict_moves: bool = False
    # Seconds before a finished room gets a fresh puzzle; 0 disables rematches.
    rematch_delay_sec: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        def get(name: str, default: str) -> str:
            return env.get(ENV_PREFIX + name, default)

        settings = cls(
            host=get("HOST", cls.host),
            port=int(get("PORT", str(cls.port))),
            max_mistakes=int(get("MAX_MISTAKES", str(cls.max_mistakes))),
            default_difficulty=get("DEFAULT_DIFFICULTY", cls.default_difficulty),
            generation_attempts=int(
                get("GENERATION_ATTEMPTS", str(cls.generation_attempts))
            ),
            strict_moves=_flag(get("STRICT_MOVES", "0")),
            rematch_delay_sec=float(get("REMATCH_DELAY_SEC", str(cls.rematch_delay_sec))),
            log_level=get("LOG_LEVEL", cls.log_level).upper(),
        )
        # Fail at startup rather than on the first match.
        cells_to_remove(settings.default_difficulty)
        if settings.max_mistakes < 1:
            raise ValueError("SUDOKUDUEL_MAX_MISTAKES must be at least 1")
        return settings
