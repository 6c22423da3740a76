"""Provider base class and the pooled call path used by concrete models."""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple, TypeVar, Union

from ..core.config import LunaConfig
from ..core.embedding import EmbeddingModel
from ..core.exceptions import ProviderUnavailableError
from ..core.exceptions import TimeoutError as LunaTimeoutError
from ..core.language_model import LanguageModel
from ..utils.limiter import ConcurrencyLimiter, create_limiter
from ..utils.retry import RetryInfo, with_retry
from .pool import PoolStrategy, ProviderHandle, ProviderPool
from .registry import ModelInfo

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRIES = 3


class Provider(ABC):
    """A logical backend exposing language and embedding models.

    Subclasses implement :meth:`language_model`, :meth:`default_models`
    and optionally :meth:`text_embedding_model` and :meth:`fetch_models`.
    Every provider owns a :class:`ProviderPool` of configs.
    """

    name: str = ""

    def __init__(
        self,
        pool: Optional[ProviderPool] = None,
        strategy: Union[str, PoolStrategy, None] = None,
        config: Optional[LunaConfig] = None,
    ):
        if strategy is None:
            strategy = config.pool_strategy if config is not None else PoolStrategy.ROUND_ROBIN
        self.config = config
        self.pool = pool if pool is not None else ProviderPool(strategy)
        self._latest_models: Optional[List[ModelInfo]] = None
        self._refresh: Optional[asyncio.Future] = None

    @abstractmethod
    def language_model(self, model_id: str) -> Optional[LanguageModel]:
        """Return the model for ``model_id`` or ``None`` if unknown."""

    def text_embedding_model(self, model_id: str) -> Optional[EmbeddingModel]:
        return None

    @abstractmethod
    def default_models(self) -> List[ModelInfo]:
        """Hard-coded model list used until a refresh succeeds."""

    async def fetch_models(self) -> List[ModelInfo]:
        """Fetch the current model list from the backend."""
        return self.default_models()

    def models(self) -> Tuple[List[ModelInfo], "asyncio.Future[List[ModelInfo]]"]:
        """Return the cached model list and a future for the latest one.

        Concurrent callers share a single in-flight refresh. Once a refresh
        has succeeded its result is served directly. A failed refresh is
        logged and resolves to the cached list.
        """
        loop = asyncio.get_running_loop()

        if self._latest_models is not None:
            done = loop.create_future()
            done.set_result(self._latest_models)
            return self._latest_models, done

        snapshot = self.default_models()
        if self._refresh is None or self._refresh.done():
            self._refresh = loop.create_task(self._refresh_models(snapshot))
        return snapshot, self._refresh

    async def _refresh_models(self, snapshot: List[ModelInfo]) -> List[ModelInfo]:
        try:
            models = await self.fetch_models()
        except Exception as e:
            logger.warning(f"Failed to refresh models for {self.name or type(self).__name__}: {e}")
            return snapshot
        self._latest_models = list(models)
        return self._latest_models


class PooledCaller:
    """Run network calls through a provider pool with retries.

    Every attempt leases a fresh config from the pool and releases it when
    the attempt ends. The number of retries and the per-attempt timeout
    come from the config leased for the first attempt (``max_retries`` and
    ``timeout``), falling back to ``retries`` when the config leaves
    ``max_retries`` unset. :class:`ProviderUnavailableError` is never
    retried.
    """

    def __init__(
        self,
        pool: ProviderPool,
        limiter: Optional[ConcurrencyLimiter] = None,
        retries: int = DEFAULT_RETRIES,
        disable_on_failure: bool = False,
        min_timeout: float = 1.0,
        factor: float = 2.0,
        retry_timeout: Optional[float] = None,
    ):
        self.pool = pool
        self.limiter = limiter
        self.retries = retries
        self.disable_on_failure = disable_on_failure
        self.min_timeout = min_timeout
        self.factor = factor
        self.retry_timeout = retry_timeout

    @classmethod
    def from_config(cls, pool: ProviderPool, config: Optional[LunaConfig] = None, **kwargs) -> "PooledCaller":
        """Build a caller using the retry and concurrency defaults of a :class:`LunaConfig`."""
        config = config or LunaConfig.from_env()
        return cls(
            pool,
            limiter=create_limiter(config.default_concurrency),
            retries=config.default_retries,
            **kwargs,
        )

    async def call(self, fn: Callable[[ProviderHandle], Awaitable[T]]) -> T:
        """Run ``fn(handle)`` and return its result."""
        if self.limiter is not None:
            return await self.limiter.run(lambda: self._call(fn))
        return await self._call(fn)

    async def call_stream(
        self, fn: Callable[[ProviderHandle], Any]
    ) -> AsyncIterator[Any]:
        """Open a stream with ``fn(handle)`` and yield its items.

        Only opening the stream is retried. The leased config is held until
        the stream is exhausted or closed.
        """
        if self.limiter is not None:
            handle, stream = await self.limiter.run(lambda: self._open(fn))
        else:
            handle, stream = await self._open(fn)

        try:
            async for item in stream:
                yield item
        except Exception:
            if self.disable_on_failure:
                handle.disable()
            raise
        finally:
            try:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            finally:
                handle.release()

    async def _call(self, fn: Callable[[ProviderHandle], Awaitable[T]]) -> T:
        async def attempt(handle: ProviderHandle) -> T:
            try:
                return await self._bounded(fn(handle), handle)
            except Exception:
                if self.disable_on_failure:
                    handle.disable()
                raise
            finally:
                handle.release()

        return await self._with_pool_retry(attempt)

    async def _open(self, fn: Callable[[ProviderHandle], Any]) -> Tuple[ProviderHandle, Any]:
        async def attempt(handle: ProviderHandle) -> Tuple[ProviderHandle, Any]:
            try:
                stream = fn(handle)
                if inspect.isawaitable(stream):
                    stream = await self._bounded(stream, handle)
            except BaseException as e:
                if isinstance(e, Exception) and self.disable_on_failure:
                    handle.disable()
                handle.release()
                raise
            return handle, stream

        return await self._with_pool_retry(attempt)

    async def _with_pool_retry(self, attempt: Callable[[ProviderHandle], Awaitable[T]]) -> T:
        first = self.pool.get_provider()
        leased: List[Optional[ProviderHandle]] = [first]

        retries = first.config.max_retries
        if retries is None:
            retries = self.retries

        async def run() -> T:
            handle = leased.pop() if leased else None
            if handle is None:
                handle = self.pool.get_provider()
            return await attempt(handle)

        def should_retry(error: BaseException, attempt_number: int, info: RetryInfo) -> bool:
            return not isinstance(error, ProviderUnavailableError)

        retrying = with_retry(
            run,
            retries=retries,
            factor=self.factor,
            min_timeout=self.min_timeout,
            retry_timeout=self.retry_timeout,
            should_retry=should_retry,
        )
        try:
            return await retrying()
        finally:
            # first attempt never started, e.g. cancelled while queued
            for handle in leased:
                if handle is not None:
                    handle.release()

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], handle: ProviderHandle) -> T:
        timeout = handle.config.timeout
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise LunaTimeoutError(timeout) from e
