"""
Provider Base - Abstract base classes and model card definitions.

This module provides the foundation for all generation providers:
- ModelCard: Specification of a model and the node kinds it serves
- GenerationProvider: Abstract base class for provider implementations
- NodeExecutionRequest/Result: The wire contract for delegated node execution

Providers are opaque, asynchronous and fallible. They own their timeouts and
any retry policy; the core never retries a failed request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ModelCard:
    """
    Specification of a generation model.

    Attributes:
        id: Model identifier used by the provider (e.g. "fal-ai/flux/dev")
        provider: Provider ID this model belongs to (e.g. "fal")
        name: Human-readable display name
        kinds: Node kinds this model can execute (e.g. {"image.generate"})
        params: Parameter names forwarded to the provider
        param_defaults: Default values for parameters
    """
    id: str
    provider: str
    name: str
    description: str = ""
    kinds: set[str] = field(default_factory=set)
    params: set[str] = field(default_factory=set)
    param_defaults: dict[str, Any] = field(default_factory=dict)

    def validate_params(self, params: dict[str, Any]) -> dict[str, Any]:
        """Keep only the parameters this model understands, over its defaults."""
        validated = dict(self.param_defaults)
        validated.update({k: v for k, v in params.items() if k in self.params})
        return validated


@dataclass
class NodeExecutionRequest:
    """Request sent toward a generation backend for one node."""
    node_id: str
    node_type: str
    inputs: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "nodeType": self.node_type,
            "inputs": self.inputs,
            "params": self.params,
        }


@dataclass
class NodeExecutionResult:
    """Result returned by a generation backend for one node."""
    success: bool
    outputs: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def ok(cls, outputs: dict[str, Any]) -> NodeExecutionResult:
        return cls(success=True, outputs=outputs)

    @classmethod
    def failed(cls, error: str) -> NodeExecutionResult:
        return cls(success=False, error=error)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NodeExecutionResult:
        return cls(
            success=bool(data.get("success", False)),
            outputs=data.get("outputs") or {},
            error=data.get("error"),
        )


@dataclass
class ProviderConfig:
    """Configuration for a provider."""
    api_key: str = ""
    enabled: bool = True
    base_url: str | None = None  # Override default URL
    timeout: float = 300.0  # Seconds before a request is abandoned
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "api_key": self.api_key,
            "enabled": self.enabled,
            "base_url": self.base_url,
            "timeout": self.timeout,
            "extra": self.extra,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        return cls(
            api_key=data.get("api_key", ""),
            enabled=data.get("enabled", True),
            base_url=data.get("base_url"),
            timeout=float(data.get("timeout", 300.0)),
            extra=data.get("extra", {}),
        )


class ProviderError(Exception):
    """Base exception for provider errors."""
    pass


class AuthenticationError(ProviderError):
    """API key invalid or missing."""
    pass


class RateLimitError(ProviderError):
    """Rate limit exceeded."""
    retry_after: float | None = None


class QuotaExceededError(ProviderError):
    """Account credits or quota exhausted."""
    pass


class GenerationError(ProviderError):
    """Error during generation (including provider-side timeouts)."""
    pass


class GenerationProvider(ABC):
    """
    Abstract base class for generation providers.

    Each provider handles communication with a specific backend.
    Model capabilities are defined separately in ModelCard.
    """

    # Provider identification
    id: str = ""
    name: str = ""
    base_url: str = ""

    def __init__(self, config: ProviderConfig):
        self.config = config
        if config.base_url:
            self.base_url = config.base_url

    @property
    def api_key(self) -> str:
        return self.config.api_key

    @property
    def is_configured(self) -> bool:
        """Check if provider has necessary configuration."""
        return bool(self.config.api_key)

    @abstractmethod
    async def run(self, request: NodeExecutionRequest, model: ModelCard) -> NodeExecutionResult:
        """
        Execute one node on the backend.

        Returns:
            NodeExecutionResult with outputs keyed by output port id

        Raises:
            AuthenticationError: Invalid API key
            RateLimitError: Rate limit exceeded
            QuotaExceededError: Credits exhausted
            GenerationError: Generation failed or timed out
        """
        ...

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Check if API credentials are valid."""
        ...

    def get_headers(self) -> dict[str, str]:
        """Get default headers for API requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
