"""Scripted models and an in-process provider.

The scripted models replay canned responses, which makes them the
reference implementation of the model contract for tests and examples.
:class:`MockProvider` wraps them so every call goes through the provider's
config pool the same way a network-backed provider would.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..core.config import LunaConfig
from ..core.embedding import EmbeddingModel, EmbeddingResult
from ..core.exceptions import ModelError
from ..core.language_model import (
    GenerateResponse,
    LanguageModel,
    LanguageModelCallOptions,
    LanguageModelStreamChunk,
)
from ..core.message import Message
from ..core.metrics import EmbeddingModelUsage
from ..utils.limiter import ConcurrencyLimiter
from .base import PooledCaller, Provider
from .config import ProviderConfig
from .pool import PoolStrategy, ProviderHandle
from .registry import ModelInfo, ModelType

logger = logging.getLogger(__name__)

ScriptedResponse = Union[GenerateResponse, str, BaseException]
ScriptedStream = Union[Sequence[LanguageModelStreamChunk], BaseException]


class ScriptedLanguageModel(LanguageModel):
    """Language model that replays scripted responses in order.

    ``responses`` feed :meth:`do_generate`: a :class:`GenerateResponse`,
    a plain string (an assistant reply finishing with ``stop``) or an
    exception to raise. ``streams`` feed :meth:`do_stream`: a list of
    chunks or an exception. ``chunk_delay`` sleeps between streamed chunks.
    Every call's options are kept in :attr:`calls`.
    """

    def __init__(
        self,
        responses: Optional[Iterable[ScriptedResponse]] = None,
        streams: Optional[Iterable[ScriptedStream]] = None,
        model: str = "scripted",
        provider: str = "mock",
        chunk_delay: float = 0.0,
    ):
        self._responses = list(responses or [])
        self._streams = list(streams or [])
        self.model = model
        self.provider = provider
        self.chunk_delay = chunk_delay
        self.calls: List[LanguageModelCallOptions] = []

    async def do_generate(self, options: LanguageModelCallOptions) -> GenerateResponse:
        self.calls.append(options)
        if not self._responses:
            raise ModelError(f"{self.model}: no scripted response left")

        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, str):
            return GenerateResponse(response=Message.assistant(response), text=response)
        return response

    async def do_stream(self, options: LanguageModelCallOptions) -> AsyncIterator[LanguageModelStreamChunk]:
        self.calls.append(options)
        if not self._streams:
            raise ModelError(f"{self.model}: no scripted stream left")

        chunks = self._streams.pop(0)
        if isinstance(chunks, BaseException):
            raise chunks
        return self._replay(list(chunks))

    async def _replay(self, chunks: List[Any]) -> AsyncIterator[Any]:
        for chunk in chunks:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield chunk


class ScriptedEmbeddingModel(EmbeddingModel):
    """Deterministic embeddings: each value maps to ``[len(value), index, 1.0]``
    unless a vector is given in ``vectors``. Usage counts one token per word.
    """

    def __init__(
        self,
        vectors: Optional[Mapping[str, List[float]]] = None,
        batch_size: Optional[int] = None,
        model: str = "scripted-embedding",
        provider: str = "mock",
        report_usage: bool = True,
    ):
        self.vectors = dict(vectors or {})
        self.batch_size = batch_size
        self.model = model
        self.provider = provider
        self.report_usage = report_usage
        self.batches: List[List[str]] = []

    async def do_embed(
        self,
        values: Sequence[str],
        model_id: Optional[str] = None,
        signal: Optional[asyncio.Event] = None,
    ) -> EmbeddingResult:
        values = list(values)
        self.batches.append(values)
        embeddings = [
            self.vectors.get(value, [float(len(value)), float(index), 1.0])
            for index, value in enumerate(values)
        ]
        usage = None
        if self.report_usage:
            usage = EmbeddingModelUsage(tokens=sum(len(v.split()) for v in values))
        return EmbeddingResult(embeddings=embeddings, usage=usage)


class PooledLanguageModel(LanguageModel):
    """Runs an inner model's calls through a :class:`PooledCaller`.

    The config id leased for each attempt is appended to :attr:`leases`.
    """

    def __init__(self, inner: LanguageModel, caller: PooledCaller, provider: str):
        self.inner = inner
        self.caller = caller
        self.provider = provider
        self.model = inner.model
        self.leases: List[str] = []

    async def do_generate(self, options: LanguageModelCallOptions) -> GenerateResponse:
        def request(handle: ProviderHandle):
            self.leases.append(handle.id)
            return self.inner.do_generate(options)

        return await self.caller.call(request)

    async def do_stream(self, options: LanguageModelCallOptions) -> AsyncIterator[LanguageModelStreamChunk]:
        def request(handle: ProviderHandle):
            self.leases.append(handle.id)
            return self.inner.do_stream(options)

        return self.caller.call_stream(request)


class PooledEmbeddingModel(EmbeddingModel):
    def __init__(self, inner: EmbeddingModel, caller: PooledCaller, provider: str):
        self.inner = inner
        self.caller = caller
        self.provider = provider
        self.model = inner.model
        self.batch_size = inner.batch_size

    async def do_embed(
        self,
        values: Sequence[str],
        model_id: Optional[str] = None,
        signal: Optional[asyncio.Event] = None,
    ) -> EmbeddingResult:
        return await self.caller.call(
            lambda handle: self.inner.do_embed(values, model_id=model_id, signal=signal)
        )


class MockProvider(Provider):
    """In-process provider serving scripted models through its config pool."""

    name = "mock"

    def __init__(
        self,
        language_models: Optional[Mapping[str, LanguageModel]] = None,
        embedding_models: Optional[Mapping[str, EmbeddingModel]] = None,
        configs: Optional[Iterable[Union[ProviderConfig, Mapping[str, Any]]]] = None,
        strategy: Union[str, PoolStrategy, None] = None,
        config: Optional[LunaConfig] = None,
        limiter: Optional[ConcurrencyLimiter] = None,
        retries: int = 0,
        disable_on_failure: bool = False,
        retry_timeout: Optional[float] = 0.0,
        latest_models: Optional[List[ModelInfo]] = None,
    ):
        super().__init__(strategy=strategy, config=config)
        for provider_config in configs or [ProviderConfig(api_key="mock")]:
            self.pool.add_provider(provider_config)

        if config is not None:
            self.caller = PooledCaller.from_config(
                self.pool, config, disable_on_failure=disable_on_failure, retry_timeout=retry_timeout
            )
        else:
            self.caller = PooledCaller(
                self.pool,
                limiter=limiter,
                retries=retries,
                disable_on_failure=disable_on_failure,
                retry_timeout=retry_timeout,
            )
        self._language_models: Dict[str, PooledLanguageModel] = {
            model_id: PooledLanguageModel(model, self.caller, self.name)
            for model_id, model in (language_models or {}).items()
        }
        self._embedding_models: Dict[str, PooledEmbeddingModel] = {
            model_id: PooledEmbeddingModel(model, self.caller, self.name)
            for model_id, model in (embedding_models or {}).items()
        }
        self.latest_models = latest_models

    def language_model(self, model_id: str) -> Optional[PooledLanguageModel]:
        return self._language_models.get(model_id)

    def text_embedding_model(self, model_id: str) -> Optional[PooledEmbeddingModel]:
        return self._embedding_models.get(model_id)

    def default_models(self) -> List[ModelInfo]:
        return [ModelInfo(name=model_id) for model_id in self._language_models] + [
            ModelInfo(name=model_id, type=ModelType.TEXT_EMBEDDING_MODEL)
            for model_id in self._embedding_models
        ]

    async def fetch_models(self) -> List[ModelInfo]:
        if self.latest_models is None:
            return self.default_models()
        return list(self.latest_models)
