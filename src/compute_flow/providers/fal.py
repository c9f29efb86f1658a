"""
fal.ai Provider - Hosted text, image and video models.

Supports:
- FLUX dev/schnell/pro: Text-to-image
- ESRGAN: Image upscaling
- Kling: Image-to-video
- any-llm: Text generation

API Reference: https://fal.ai/docs
Note: fal queues requests; the provider submits, then polls the queue status
until the result is ready or the configured timeout elapses.
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
    QuotaExceededError,
    RateLimitError,
)


logger = logging.getLogger(__name__)


class FalProvider(GenerationProvider):
    """
    fal.ai generation provider.

    Uses the queue API: POST the model input, then poll the request status
    and fetch the response once it is COMPLETED.
    """

    id = "fal"
    name = "fal.ai"
    base_url = "https://queue.fal.run"

    poll_interval = 1.0

    def __init__(self, config: ProviderConfig):
        super().__init__(config)

    def get_headers(self) -> dict[str, str]:
        """fal uses the Key authorization scheme."""
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def run(self, request: NodeExecutionRequest, model: ModelCard) -> NodeExecutionResult:
        """Run a node on fal and map the response to output ports."""
        body = self.build_input(request, model)
        url = f"{self.base_url}/{model.id}"
        logger.debug("fal request %s for node %s", model.id, request.node_id)

        try:
            async with aiohttp.ClientSession() as session:
                status_url, response_url = await self._submit(session, url, body)
                data = await self._poll_result(session, status_url, response_url)
        except aiohttp.ClientError as e:
            raise GenerationError(f"fal request failed: {e}") from e

        return NodeExecutionResult.ok(self.parse_output(request.node_type, data))

    def build_input(self, request: NodeExecutionRequest, model: ModelCard) -> dict[str, Any]:
        """Translate node inputs and params into a fal model input."""
        params = model.validate_params(request.params)
        inputs = request.inputs
        body: dict[str, Any] = {}

        prompt = inputs.get("text-in") or inputs.get("params-in")
        if prompt:
            body["prompt"] = prompt

        image = inputs.get("image-in")
        if image:
            body["image_url"] = image.get("url") if isinstance(image, dict) else image

        if "steps" in params:
            body["num_inference_steps"] = params["steps"]
        if "aspect_ratio" in params:
            body["image_size"] = _IMAGE_SIZES.get(params["aspect_ratio"], "square_hd")
        if "scale" in params:
            body["scale"] = params["scale"]
        if "duration" in params:
            body["duration"] = str(params["duration"])
        if "temperature" in params:
            body["temperature"] = params["temperature"]
        if "llm" in params:
            body["model"] = params["llm"]

        return body

    def parse_output(self, node_type: str, data: dict[str, Any]) -> dict[str, Any]:
        """Map a fal response onto the node's output port."""
        if node_type == "text.generate":
            text = data.get("output") or data.get("text")
            if not text:
                raise GenerationError("No text in fal response")
            return {"text-out": text}

        if node_type == "video.generate":
            video = data.get("video") or {}
            if not video.get("url"):
                raise GenerationError("No video in fal response")
            return {"video-out": _artifact(video, "video/mp4")}

        images = data.get("images") or ([data["image"]] if data.get("image") else [])
        if not images or not images[0].get("url"):
            raise GenerationError("No image in fal response")
        return {"image-out": _artifact(images[0], "image/png")}

    async def _submit(
        self,
        session: aiohttp.ClientSession,
        url: str,
        body: dict[str, Any],
    ) -> tuple[str, str]:
        """Submit to the queue; return the status and response URLs."""
        async with session.post(url, json=body, headers=self.get_headers()) as resp:
            data = await _read_json(resp)
            self._check_error(resp.status, data)

            request_id = data.get("request_id")
            if not request_id:
                raise GenerationError("No request ID in fal response")

            status_url = data.get("status_url") or f"{url}/requests/{request_id}/status"
            response_url = data.get("response_url") or f"{url}/requests/{request_id}"
            return status_url, response_url

    async def _poll_result(
        self,
        session: aiohttp.ClientSession,
        status_url: str,
        response_url: str,
    ) -> dict[str, Any]:
        """Poll the queue status until the request completes."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.timeout

        while True:
            if loop.time() > deadline:
                raise GenerationError("fal generation timed out")

            async with session.get(status_url, headers=self.get_headers()) as resp:
                data = await _read_json(resp)
                self._check_error(resp.status, data)
                status = data.get("status")

            if status == "COMPLETED":
                if data.get("error"):
                    raise GenerationError(f"fal error: {data['error']}")
                break
            elif status in ("IN_QUEUE", "IN_PROGRESS"):
                await asyncio.sleep(self.poll_interval)
            else:
                raise GenerationError(f"Unknown fal status: {status}")

        async with session.get(response_url, headers=self.get_headers()) as resp:
            data = await _read_json(resp)
            self._check_error(resp.status, data)
            return data

    async def validate_credentials(self) -> bool:
        """Validate API key."""
        if not self.api_key:
            return False
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{self.base_url}/fal-ai/flux/schnell/requests/validate/status",
                    headers=self.get_headers(),
                ) as resp:
                    return resp.status not in (401, 403)
        except aiohttp.ClientError:
            return False

    def _check_error(self, status: int, data: dict[str, Any]) -> None:
        """Check for API errors."""
        if status in (401, 403):
            raise AuthenticationError("Invalid fal API key")
        elif status == 402:
            raise QuotaExceededError("fal account balance exhausted")
        elif status == 429:
            error = RateLimitError("fal rate limit exceeded")
            error.retry_after = 60
            raise error
        elif status >= 400:
            error_msg = data.get("detail") or data.get("message") or data.get("error") or "Unknown error"
            raise GenerationError(f"fal error: {error_msg}")


_IMAGE_SIZES = {
    "1:1": "square_hd",
    "16:9": "landscape_16_9",
    "9:16": "portrait_16_9",
}


def _artifact(data: dict[str, Any], default_mime: str) -> dict[str, Any]:
    artifact: dict[str, Any] = {
        "url": data["url"],
        "mimeType": data.get("content_type") or default_mime,
    }
    for key in ("width", "height", "duration"):
        if data.get(key) is not None:
            artifact[key] = data[key]
    return artifact


async def _read_json(resp: aiohttp.ClientResponse) -> dict[str, Any]:
    try:
        data = await resp.json(content_type=None)
    except ValueError:
        text = await resp.text()
        return {"error": text[:200]}
    return data if isinstance(data, dict) else {"result": data}
