"""Batched embedding."""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from ..embedding import DEFAULT_EMBEDDING_BATCH_SIZE, EmbeddingModel
from ..metrics import EmbeddingModelUsage, add_embedding_model_usage
from ...utils.json_utils import chunk_array

logger = logging.getLogger(__name__)


@dataclass
class EmbedResult:
    """``embedding`` is one vector for a single value, a list of vectors for a list."""
    value: Union[str, List[str]]
    embedding: Union[List[float], List[List[float]]]
    usage: Optional[EmbeddingModelUsage] = None


async def embed(
    model: EmbeddingModel,
    value: Union[str, Sequence[str]],
    signal: Optional[asyncio.Event] = None,
    model_id: Optional[str] = None,
) -> EmbedResult:
    """Embed one value or a list of values.

    Lists longer than the model's batch size are sent in consecutive
    batches and the usage of every batch is summed.
    """
    if isinstance(value, str):
        response = await model.do_embed([value], model_id=model_id, signal=signal)
        return EmbedResult(value=value, embedding=response.embeddings[0], usage=response.usage)

    values = list(value)
    batch_size = model.batch_size or DEFAULT_EMBEDDING_BATCH_SIZE

    if len(values) <= batch_size:
        response = await model.do_embed(values, model_id=model_id, signal=signal)
        return EmbedResult(value=values, embedding=list(response.embeddings), usage=response.usage)

    batches = chunk_array(values, batch_size)
    logger.debug(f"Embedding {len(values)} values in {len(batches)} batches")

    embeddings: List[List[float]] = []
    usage: Optional[EmbeddingModelUsage] = EmbeddingModelUsage()
    for batch in batches:
        response = await model.do_embed(batch, model_id=model_id, signal=signal)
        embeddings.extend(response.embeddings)
        if response.usage is None or usage is None:
            usage = None
        else:
            usage = add_embedding_model_usage(usage, response.usage)

    return EmbedResult(value=values, embedding=embeddings, usage=usage)
