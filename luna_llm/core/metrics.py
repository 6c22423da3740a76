"""Token accounting for language and embedding models."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional, Union


@dataclass(frozen=True)
class LanguageModelUsage:
    """Token counters reported by a language model call.

    Usage objects are never mutated or overwritten; totals across steps are
    always produced with :func:`add_language_model_usage`.
    """
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LanguageModelUsage":
        return cls(
            prompt_tokens=data.get("prompt_tokens", data.get("promptTokens", 0)) or 0,
            completion_tokens=data.get("completion_tokens", data.get("completionTokens", 0)) or 0,
            total_tokens=data.get("total_tokens", data.get("totalTokens", 0)) or 0,
            cached_tokens=data.get("cached_tokens", data.get("cachedTokens", 0)) or 0,
        )

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


EMPTY_USAGE = LanguageModelUsage()


def add_language_model_usage(
    usage1: Optional[Union[LanguageModelUsage, Mapping[str, Any]]],
    usage2: Optional[Union[LanguageModelUsage, Mapping[str, Any]]],
) -> LanguageModelUsage:
    """Add two usage records field by field. ``None`` counts as zero."""
    left = _coerce_usage(usage1)
    right = _coerce_usage(usage2)
    return LanguageModelUsage(
        prompt_tokens=left.prompt_tokens + right.prompt_tokens,
        completion_tokens=left.completion_tokens + right.completion_tokens,
        total_tokens=left.total_tokens + right.total_tokens,
        cached_tokens=left.cached_tokens + right.cached_tokens,
    )


def _coerce_usage(usage) -> LanguageModelUsage:
    if usage is None:
        return EMPTY_USAGE
    if isinstance(usage, LanguageModelUsage):
        return usage
    return LanguageModelUsage.from_dict(usage)


@dataclass(frozen=True)
class EmbeddingModelUsage:
    tokens: int = 0


def add_embedding_model_usage(
    usage1: Optional[EmbeddingModelUsage], usage2: Optional[EmbeddingModelUsage]
) -> EmbeddingModelUsage:
    return EmbeddingModelUsage(
        tokens=(usage1.tokens if usage1 else 0) + (usage2.tokens if usage2 else 0)
    )
