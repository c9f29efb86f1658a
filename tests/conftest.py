from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest


def pytest_configure() -> None:
    """
    Ensure `src/` is on sys.path so tests can import `compute_flow`
    without requiring an editable install.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"
    sys.path.insert(0, str(src_root))


@pytest.fixture(autouse=True)
def registries():
    """Fresh node and provider registries, with built-in executors attached."""
    from compute_flow.core.node_types import NodeRegistry
    from compute_flow.core.project import ProjectManager
    from compute_flow.nodes import register_all_nodes
    from compute_flow.providers import get_registry, register_providers

    NodeRegistry.instance().reset()
    register_all_nodes()
    get_registry().reset()
    register_providers()
    ProjectManager._instance = None
    yield
    NodeRegistry.instance().reset()
    get_registry().reset()
    ProjectManager._instance = None


@pytest.fixture
def fake_provider():
    """
    Install a provider standing in for fal: every built-in model card
    resolves to it, and it answers without network access.
    """
    from compute_flow.providers import (
        GenerationProvider,
        NodeExecutionResult,
        ProviderConfig,
        get_registry,
    )

    class FakeProvider(GenerationProvider):
        id = "fal"
        name = "Fake"

        def __init__(self):
            super().__init__(ProviderConfig(api_key="test"))
            self.requests: list[Any] = []
            self.fail_with: Exception | None = None

        async def run(self, request, model):
            self.requests.append((request, model))
            if self.fail_with is not None:
                raise self.fail_with
            prompt = request.inputs.get("text-in", "")
            if request.node_type == "text.generate":
                return NodeExecutionResult.ok({"text-out": f"generated: {prompt}"})
            if request.node_type == "video.generate":
                return NodeExecutionResult.ok({
                    "video-out": {"url": "https://cdn.test/clip.mp4", "mimeType": "video/mp4"},
                })
            return NodeExecutionResult.ok({
                "image-out": {"url": f"https://cdn.test/{model.id}.png", "mimeType": "image/png"},
            })

        async def validate_credentials(self) -> bool:
            return True

    provider = FakeProvider()
    get_registry().set_provider_instance(provider)
    return provider
