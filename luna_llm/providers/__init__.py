"""Provider configs, pooling, registry and the in-process mock provider."""

from .base import PooledCaller, Provider
from .config import ProviderConfig, configs_from_env, generate_config_id
from .mock import (
    MockProvider,
    PooledEmbeddingModel,
    PooledLanguageModel,
    ScriptedEmbeddingModel,
    ScriptedLanguageModel,
)
from .pool import PoolStrategy, ProviderHandle, ProviderPool, create_provider_pool
from .registry import (
    ModelCapability,
    ModelInfo,
    ModelType,
    PlatformModelInfo,
    ProviderRegistry,
    create_provider_registry,
    split_model_id,
)

__all__ = [
    "PooledCaller",
    "Provider",
    "ProviderConfig",
    "configs_from_env",
    "generate_config_id",
    "MockProvider",
    "PooledEmbeddingModel",
    "PooledLanguageModel",
    "ScriptedEmbeddingModel",
    "ScriptedLanguageModel",
    "PoolStrategy",
    "ProviderHandle",
    "ProviderPool",
    "create_provider_pool",
    "ModelCapability",
    "ModelInfo",
    "ModelType",
    "PlatformModelInfo",
    "ProviderRegistry",
    "create_provider_registry",
    "split_model_id",
]
