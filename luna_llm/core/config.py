"""Library-wide settings and logging setup."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

POOL_STRATEGIES = ("round-robin", "random", "least-concurrent", "weighted-random", "fallback")

_HANDLER_MARKER = "_luna_llm_handler"


@dataclass
class LunaConfig:
    """Defaults used by the generation engines and the provider pool."""

    pool_strategy: str = "round-robin"
    max_steps: int = 5
    stream_buffer_size: int = 256
    log_level: str = "WARNING"
    default_retries: int = 3
    default_concurrency: int = 10

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "LunaConfig":
        """Create configuration from environment variables.

        A ``.env`` file is loaded first; variables already set in the
        process environment win.

        Environment variables:
            LUNA_POOL_STRATEGY: Provider selection strategy
            LUNA_MAX_STEPS: Step limit for multi-step generation
            LUNA_STREAM_BUFFER_SIZE: Per-view buffer of stream_text
            LUNA_LOG_LEVEL: Level for the ``luna_llm`` logger
            LUNA_DEFAULT_RETRIES: Retries when a provider config sets none
            LUNA_DEFAULT_CONCURRENCY: Concurrency cap for pooled callers
        """
        load_dotenv(dotenv_path)

        return cls(
            pool_strategy=os.getenv("LUNA_POOL_STRATEGY", "round-robin"),
            max_steps=_int_env("LUNA_MAX_STEPS", 5),
            stream_buffer_size=_int_env("LUNA_STREAM_BUFFER_SIZE", 256),
            log_level=os.getenv("LUNA_LOG_LEVEL", "WARNING").upper(),
            default_retries=_int_env("LUNA_DEFAULT_RETRIES", 3),
            default_concurrency=_int_env("LUNA_DEFAULT_CONCURRENCY", 10),
        )

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        if self.pool_strategy not in POOL_STRATEGIES:
            return False
        if self.max_steps < 1 or self.stream_buffer_size < 1 or self.default_concurrency < 1:
            return False
        if self.default_retries < 0:
            return False
        return isinstance(logging.getLevelName(self.log_level), int)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.is_valid():
            raise ValueError(
                f"Invalid luna-llm configuration. "
                f"Strategy: {self.pool_strategy}, max_steps: {self.max_steps}, "
                f"stream_buffer_size: {self.stream_buffer_size}, log_level: {self.log_level}"
            )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach one stream handler to the ``luna_llm`` logger.

    Calling it again only updates the level.
    """
    if level is None:
        level = LunaConfig.from_env().log_level

    logger = logging.getLogger("luna_llm")
    logger.setLevel(level.upper())

    if not any(getattr(h, _HANDLER_MARKER, False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        setattr(handler, _HANDLER_MARKER, True)
        logger.addHandler(handler)

    return logger
