"""
Edge Function Provider - Delegates node execution to a hosted function.

Posts the NodeExecutionRequest wire form to a Supabase edge function
(default "compute-execute") and reads back a NodeExecutionResult.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from compute_flow.providers.base import (
    AuthenticationError,
    GenerationError,
    GenerationProvider,
    ModelCard,
    NodeExecutionRequest,
    NodeExecutionResult,
    ProviderConfig,
    RateLimitError,
)


logger = logging.getLogger(__name__)


class EdgeFunctionProvider(GenerationProvider):
    """Runs nodes through a Supabase edge function."""

    id = "edge"
    name = "Supabase Edge Function"
    base_url = ""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.function_name = config.extra.get("function", "compute-execute")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.base_url)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/functions/v1/{self.function_name}"

    def get_headers(self) -> dict[str, str]:
        headers = super().get_headers()
        headers["apikey"] = self.api_key
        return headers

    async def run(self, request: NodeExecutionRequest, model: ModelCard) -> NodeExecutionResult:
        if not self.base_url:
            raise GenerationError("Edge function provider has no base URL configured")

        body = request.to_dict()
        body["model"] = model.id
        logger.debug("POST %s for node %s", self.endpoint, request.node_id)

        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            data = await self._post(body, timeout)
        except asyncio.TimeoutError as e:
            raise GenerationError(
                f"Edge function timed out after {self.config.timeout:.0f}s"
            ) from e
        except aiohttp.ClientError as e:
            raise GenerationError(f"Edge function request failed: {e}") from e

        if not isinstance(data, dict):
            raise GenerationError("Malformed edge function response")
        result = NodeExecutionResult.from_dict(data)
        if not result.success:
            raise GenerationError(result.error or "Edge function execution failed")
        return result

    async def _post(self, body: dict[str, Any], timeout: aiohttp.ClientTimeout) -> Any:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.endpoint, json=body, headers=self.get_headers()) as resp:
                if resp.status == 401:
                    raise AuthenticationError("Edge function rejected credentials")
                if resp.status == 429:
                    error = RateLimitError("Edge function rate limit exceeded")
                    retry_after = resp.headers.get("Retry-After")
                    error.retry_after = float(retry_after) if retry_after else None
                    raise error
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise GenerationError(f"Edge function returned HTTP {resp.status}") from e

    async def validate_credentials(self) -> bool:
        return self.is_configured
