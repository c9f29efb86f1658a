"""
Nodes package - Executors for every built-in node kind.

- input: Text, image and video inputs (computed locally)
- generation: Text, image, transform and video generation (provider-backed)
"""

from compute_flow.nodes.generation import register_generation_nodes
from compute_flow.nodes.input import register_input_nodes


def register_all_nodes() -> None:
    """Register all built-in node executors."""
    register_input_nodes()
    register_generation_nodes()


__all__ = [
    "register_all_nodes",
]
