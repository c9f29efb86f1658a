"""
Generation Providers.

This package provides integrations with the backends that run generative nodes:
- fal: FLUX, ESRGAN, Kling and hosted LLMs through the fal queue API
- edge: A Supabase edge function that executes node requests server-side

Usage:
    from compute_flow.providers import get_registry

    registry = get_registry()
    provider, model = registry.resolve("image.generate", "fal-ai/flux/dev")
    result = await provider.run(request, model)
"""

from compute_flow.providers.base import (
    AuthenticationError,
    GenerationError,
    GenerationProvider,
    ModelCard,
    NodeExecutionRequest,
    NodeExecutionResult,
    ProviderConfig,
    ProviderError,
    QuotaExceededError,
    RateLimitError,
)

from compute_flow.providers.registry import (
    BUILTIN_MODEL_CARDS,
    DEFAULT_MODELS,
    ProviderRegistry,
    get_model,
    get_registry,
)

# Import providers to register them
from compute_flow.providers.fal import FalProvider
from compute_flow.providers.edge_function import EdgeFunctionProvider


def register_providers() -> None:
    """Register the built-in provider classes."""
    registry = get_registry()
    registry.register_provider(FalProvider)
    registry.register_provider(EdgeFunctionProvider)


register_providers()


__all__ = [
    # Base classes
    "GenerationProvider",
    "ModelCard",
    "ProviderConfig",
    "NodeExecutionRequest",
    "NodeExecutionResult",
    # Exceptions
    "ProviderError",
    "AuthenticationError",
    "RateLimitError",
    "QuotaExceededError",
    "GenerationError",
    # Registry
    "ProviderRegistry",
    "get_registry",
    "get_model",
    "register_providers",
    "BUILTIN_MODEL_CARDS",
    "DEFAULT_MODELS",
    # Providers
    "FalProvider",
    "EdgeFunctionProvider",
]
