"""Registry resolving ``"provider:model"`` ids to model instances."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from ..core.embedding import EmbeddingModel
from ..core.exceptions import UnknownModelError, UnknownProviderError
from ..core.language_model import LanguageModel

if TYPE_CHECKING:
    from .base import Provider

logger = logging.getLogger(__name__)


class ModelType(str, Enum):
    LANGUAGE_MODEL = "languageModel"
    TEXT_EMBEDDING_MODEL = "textEmbeddingModel"


class ModelCapability(str, Enum):
    IMAGE_INPUT = "imageInput"
    IMAGE_OUTPUT = "imageOutput"
    AUDIO_INPUT = "audioInput"
    AUDIO_OUTPUT = "audioOutput"
    VIDEO_INPUT = "videoInput"
    VIDEO_OUTPUT = "videoOutput"


@dataclass(frozen=True)
class ModelInfo:
    name: str
    type: ModelType = ModelType.LANGUAGE_MODEL
    context_token: Optional[int] = None
    cost_per_token_input: Optional[float] = None
    cost_per_token_output: Optional[float] = None
    capability: Tuple[ModelCapability, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PlatformModelInfo(ModelInfo):
    """A :class:`ModelInfo` tagged with the registry id of its provider."""
    provider: str = ""

    @property
    def qualified_name(self) -> str:
        return f"{self.provider}:{self.name}"

    @classmethod
    def from_model_info(cls, info: ModelInfo, provider: str) -> "PlatformModelInfo":
        return cls(
            name=info.name,
            type=info.type,
            context_token=info.context_token,
            cost_per_token_input=info.cost_per_token_input,
            cost_per_token_output=info.cost_per_token_output,
            capability=info.capability,
            provider=provider,
        )


def split_model_id(model_id: str, kind: str = "language model") -> Tuple[str, str]:
    """Split ``"providerId:modelId"`` on the first colon."""
    provider_id, sep, name = model_id.partition(":")
    if not sep:
        raise ValueError(
            f"Invalid {kind} id for registry: {model_id} (must be in the format \"providerId:modelId\")"
        )
    return provider_id, name


class ProviderRegistry:
    """Named providers plus a cache of the models each one offers.

    Model lists follow stale-while-revalidate: :meth:`models` returns the
    cached lists immediately together with an awaitable for fresh ones.
    """

    name = "default"

    def __init__(self):
        self._providers: Dict[str, "Provider"] = {}
        self._provider_models: Dict[str, List[PlatformModelInfo]] = {}
        self._tasks: Set[asyncio.Future] = set()

    @property
    def provider_ids(self) -> List[str]:
        return list(self._providers)

    def register_provider(self, id: str, provider: "Provider") -> Callable[[], None]:
        """Register ``provider`` under ``id`` and return a function that unregisters it.

        When called inside a running event loop, a model list refresh is
        started in the background.
        """
        self._providers[id] = provider
        self._provider_models.pop(id, None)
        logger.debug(f"Registered provider {id}")

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            _, task = self.models()
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        def unregister() -> None:
            if self._providers.get(id) is provider:
                del self._providers[id]
                self._provider_models.pop(id, None)
                logger.debug(f"Unregistered provider {id}")

        return unregister

    def get_provider(self, provider_id: str) -> "Provider":
        provider = self._providers.get(provider_id)
        if provider is None:
            raise UnknownProviderError(provider_id, list(self._providers))
        return provider

    def language_model(self, model_id: str) -> LanguageModel:
        provider_id, name = split_model_id(model_id, "language model")
        model = self.get_provider(provider_id).language_model(name)
        if model is None:
            raise UnknownModelError(name, self._known_models(), "language model")
        return model

    def text_embedding_model(self, model_id: str) -> EmbeddingModel:
        provider_id, name = split_model_id(model_id, "text embedding model")
        model = self.get_provider(provider_id).text_embedding_model(name)
        if model is None:
            raise UnknownModelError(name, self._known_models(), "text embedding model")
        return model

    def models(self) -> Tuple[List[PlatformModelInfo], "asyncio.Future[List[PlatformModelInfo]]"]:
        """Return ``(snapshot, refresh)`` over every registered provider.

        ``snapshot`` is available right away and may be stale. Awaiting
        ``refresh`` gives the up-to-date list; a provider whose refresh
        fails keeps contributing its cached models. Must be called from a
        running event loop.
        """
        loop = asyncio.get_running_loop()
        snapshot: List[PlatformModelInfo] = []
        pending: List[Tuple[str, Awaitable]] = []

        for provider_id, provider in self._providers.items():
            cached, latest = provider.models()
            platform_models = [PlatformModelInfo.from_model_info(m, provider_id) for m in cached]
            self._provider_models[provider_id] = platform_models
            snapshot.extend(platform_models)
            pending.append((provider_id, latest))

        return snapshot, loop.create_task(self._collect(snapshot, pending))

    async def _collect(
        self,
        snapshot: List[PlatformModelInfo],
        pending: List[Tuple[str, Awaitable]],
    ) -> List[PlatformModelInfo]:
        if not pending:
            return list(snapshot)

        await asyncio.gather(*(self._refresh_one(pid, latest) for pid, latest in pending))

        result: List[PlatformModelInfo] = []
        for models in self._provider_models.values():
            result.extend(models)
        return result

    async def _refresh_one(self, provider_id: str, latest: Awaitable) -> None:
        models = await latest
        if provider_id not in self._providers:
            return
        self._provider_models[provider_id] = [
            PlatformModelInfo.from_model_info(m, provider_id) for m in models
        ]

    def _known_models(self) -> List[str]:
        return [m.qualified_name for models in self._provider_models.values() for m in models]


def create_provider_registry() -> ProviderRegistry:
    return ProviderRegistry()
