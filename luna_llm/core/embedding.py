"""Embedding model interface."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .metrics import EmbeddingModelUsage

DEFAULT_EMBEDDING_BATCH_SIZE = 20


@dataclass
class EmbeddingResult:
    embeddings: List[List[float]]
    usage: Optional[EmbeddingModelUsage] = None


class EmbeddingModel(ABC):
    provider: str = ""
    model: str = ""
    batch_size: Optional[int] = None

    @abstractmethod
    async def do_embed(
        self,
        values: Sequence[str],
        model_id: Optional[str] = None,
        signal: Optional[asyncio.Event] = None,
    ) -> EmbeddingResult:
        """Embed ``values`` in one request, returning one vector per value."""
