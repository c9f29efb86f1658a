"""
Provider Registry - Central registry for providers and model cards.

This module manages:
- Registration of provider implementations
- Built-in model cards for supported models
- The default model for each generative node kind
- Per-provider configuration
"""

from __future__ import annotations

import logging

from compute_flow.providers.base import (
    GenerationError,
    GenerationProvider,
    ModelCard,
    ProviderConfig,
)


logger = logging.getLogger(__name__)


# ============================================================================
# Built-in Model Cards
# ============================================================================

BUILTIN_MODEL_CARDS: dict[str, ModelCard] = {
    "fal-ai/flux/dev": ModelCard(
        id="fal-ai/flux/dev",
        provider="fal",
        name="FLUX.1 [dev]",
        description="High-quality text-to-image generation",
        kinds={"image.generate"},
        params={"steps", "aspect_ratio"},
        param_defaults={"steps": 28, "aspect_ratio": "1:1"},
    ),
    "fal-ai/flux/schnell": ModelCard(
        id="fal-ai/flux/schnell",
        provider="fal",
        name="FLUX.1 [schnell]",
        description="Fast text-to-image generation",
        kinds={"image.generate"},
        params={"steps", "aspect_ratio"},
        param_defaults={"steps": 4, "aspect_ratio": "1:1"},
    ),
    "fal-ai/flux-pro": ModelCard(
        id="fal-ai/flux-pro",
        provider="fal",
        name="FLUX.1 [pro]",
        description="Professional text-to-image generation",
        kinds={"image.generate"},
        params={"steps", "aspect_ratio"},
        param_defaults={"steps": 25, "aspect_ratio": "1:1"},
    ),
    "fal-ai/esrgan": ModelCard(
        id="fal-ai/esrgan",
        provider="fal",
        name="ESRGAN Upscaler",
        description="Image super-resolution",
        kinds={"image.transform"},
        params={"scale"},
        param_defaults={"scale": 2},
    ),
    "fal-ai/kling-video/v1/standard/image-to-video": ModelCard(
        id="fal-ai/kling-video/v1/standard/image-to-video",
        provider="fal",
        name="Kling Image to Video",
        description="Animate a still image into a short clip",
        kinds={"video.generate"},
        params={"duration"},
        param_defaults={"duration": 5},
    ),
    "fal-ai/any-llm": ModelCard(
        id="fal-ai/any-llm",
        provider="fal",
        name="Any LLM",
        description="Text generation through hosted language models",
        kinds={"text.generate"},
        params={"temperature", "llm"},
        param_defaults={"llm": "google/gemini-flash-1.5"},
    ),
}

DEFAULT_MODELS: dict[str, str] = {
    "text.generate": "fal-ai/any-llm",
    "image.generate": "fal-ai/flux/dev",
    "image.transform": "fal-ai/esrgan",
    "video.generate": "fal-ai/kling-video/v1/standard/image-to-video",
}


class ProviderRegistry:
    """
    Central registry for providers and model cards.

    Handles:
    - Provider registration
    - Model card lookup and default model resolution
    - Configuration management
    """

    _instance: ProviderRegistry | None = None

    def __new__(cls) -> ProviderRegistry:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init()
        return cls._instance

    @classmethod
    def instance(cls) -> ProviderRegistry:
        return cls()

    def _init(self) -> None:
        """Initialize the registry."""
        self._providers: dict[str, type[GenerationProvider]] = {}
        self._provider_instances: dict[str, GenerationProvider] = {}
        self._model_cards: dict[str, ModelCard] = dict(BUILTIN_MODEL_CARDS)
        self._defaults: dict[str, str] = dict(DEFAULT_MODELS)
        self._configs: dict[str, ProviderConfig] = {}

    def reset(self) -> None:
        """Forget registrations and configuration (for testing)."""
        self._init()

    # -------------------------------------------------------------------------
    # Provider Registration
    # -------------------------------------------------------------------------

    def register_provider(self, provider_class: type[GenerationProvider]) -> None:
        """Register a provider implementation."""
        self._providers[provider_class.id] = provider_class
        self._provider_instances.pop(provider_class.id, None)

    def set_provider_instance(self, provider: GenerationProvider) -> None:
        """Install a ready-made provider instance (e.g. a fake in tests)."""
        self._provider_instances[provider.id] = provider

    def get_provider(self, provider_id: str) -> GenerationProvider | None:
        """Get an instantiated provider."""
        if provider_id in self._provider_instances:
            return self._provider_instances[provider_id]

        if provider_id not in self._providers:
            return None

        config = self._configs.get(provider_id, ProviderConfig())
        provider = self._providers[provider_id](config)
        self._provider_instances[provider_id] = provider
        return provider

    def list_providers(self) -> list[str]:
        """Get list of registered provider IDs."""
        return list(self._providers.keys())

    def list_configured_providers(self) -> list[str]:
        """Get list of providers with API keys configured."""
        return [
            pid for pid in self._providers.keys()
            if pid in self._configs and self._configs[pid].api_key
        ]

    # -------------------------------------------------------------------------
    # Model Cards
    # -------------------------------------------------------------------------

    def register_model(self, card: ModelCard) -> None:
        """Register a model card."""
        self._model_cards[card.id] = card

    def get_model(self, model_id: str) -> ModelCard | None:
        """Get a model card by ID."""
        return self._model_cards.get(model_id)

    def list_models(self, kind: str | None = None) -> list[ModelCard]:
        """List all model cards, optionally filtered by node kind."""
        if kind:
            return [m for m in self._model_cards.values() if kind in m.kinds]
        return list(self._model_cards.values())

    def default_model(self, kind: str) -> str | None:
        return self._defaults.get(kind)

    def set_default_model(self, kind: str, model_id: str) -> None:
        self._defaults[kind] = model_id

    def resolve(self, kind: str, model_id: str | None) -> tuple[GenerationProvider, ModelCard]:
        """
        Find the provider and model card that should run a node.

        Raises:
            GenerationError: Unknown model, model/kind mismatch, or the
                model's provider is unavailable or disabled
        """
        model_id = model_id or self.default_model(kind)
        if not model_id:
            raise GenerationError(f"No model available for {kind}")

        card = self._model_cards.get(model_id)
        if card is None:
            raise GenerationError(f"Unknown model: {model_id}")
        if card.kinds and kind not in card.kinds:
            raise GenerationError(f"Model {model_id} cannot run {kind} nodes")

        config = self._configs.get(card.provider)
        if config is not None and not config.enabled:
            raise GenerationError(f"Provider {card.provider} is disabled")

        provider = self.get_provider(card.provider)
        if provider is None:
            raise GenerationError(f"Provider {card.provider} is not available")
        return provider, card

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def set_config(self, provider_id: str, config: ProviderConfig) -> None:
        """Set configuration for a provider."""
        self._configs[provider_id] = config
        # Invalidate cached instance
        self._provider_instances.pop(provider_id, None)

    def get_config(self, provider_id: str) -> ProviderConfig:
        """Get configuration for a provider."""
        return self._configs.get(provider_id, ProviderConfig())

    def apply_configs(self, configs: dict[str, ProviderConfig]) -> None:
        """Apply every provider config from loaded settings."""
        for provider_id, config in configs.items():
            self.set_config(provider_id, config)
        logger.debug("Applied provider configs: %s", ", ".join(configs) or "none")


# ============================================================================
# Module-level convenience functions
# ============================================================================

def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return ProviderRegistry.instance()


def get_model(model_id: str) -> ModelCard | None:
    """Get a model card by ID."""
    return get_registry().get_model(model_id)
