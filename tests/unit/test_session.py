"""
Tests for GraphSession and ProjectManager.
"""

import asyncio

import pytest

from compute_flow.config import StudioSettings
from compute_flow.core.errors import (
    CardinalityExceeded,
    ExecutionRejected,
    GraphValidationError,
)
from compute_flow.core.execution import ExecutionStatus
from compute_flow.core.graph import Point2D
from compute_flow.core.node_types import NodeKind, NodeRegistry
from compute_flow.core.project import Project, ProjectManager
from compute_flow.core.session import GraphSession
from compute_flow.core.status import NodeStatus
from compute_flow.sync.events import parse_event


def gate_image_inputs():
    """Image inputs block until released; returns (started, release) events."""
    started = asyncio.Event()
    release = asyncio.Event()

    async def gated_input(inputs, parameters, context):
        started.set()
        await release.wait()
        return {"image-out": {"url": parameters["url"]}}

    NodeRegistry.instance().register_executor(NodeKind.IMAGE_INPUT, gated_input)
    return started, release


def fast_settings(**overrides):
    values = {"position_debounce_seconds": 0.01, "history_limit": 10}
    values.update(overrides)
    return StudioSettings(**values)


class TestEditingAndHistory:

    def test_each_mutation_is_one_undo_step(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            prompt = await session.add_node(NodeKind.TEXT_INPUT)
            image = await session.add_node(NodeKind.IMAGE_GENERATE)
            await session.connect(prompt.id, "text-out", image.id, "text-in")

            assert len(session.graph.edges) == 1
            assert await session.undo()
            assert session.graph.edges == []
            assert len(session.graph.nodes) == 2
            assert await session.undo()
            assert [n.id for n in session.graph.nodes] == [prompt.id]
            assert await session.redo()
            assert await session.redo()
            assert len(session.graph.edges) == 1
            assert not await session.redo()
            await session.close()

        asyncio.run(scenario())

    def test_rejected_connection_records_nothing(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            first = await session.add_node(NodeKind.TEXT_INPUT)
            second = await session.add_node(NodeKind.TEXT_INPUT)
            image = await session.add_node(NodeKind.IMAGE_GENERATE)
            await session.connect(first.id, "text-out", image.id, "text-in")
            entries = len(session.history)

            with pytest.raises(CardinalityExceeded):
                await session.connect(second.id, "text-out", image.id, "text-in")

            assert len(session.history) == entries
            assert len(session.graph.edges) == 1
            await session.close()

        asyncio.run(scenario())

    def test_undo_restores_parameters_and_labels(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            node = await session.add_node(NodeKind.IMAGE_GENERATE)
            await session.set_parameter(node.id, "steps", 50)
            await session.rename_node(node.id, "Hero shot")

            await session.undo()
            restored = session.graph.get_node(node.id)
            assert restored.label != "Hero shot"
            assert restored.params["steps"] == 50

            await session.undo()
            assert session.graph.get_node(node.id).params["steps"] == 28
            await session.close()

        asyncio.run(scenario())

    def test_moves_are_debounced_into_one_step(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            node = await session.add_node(NodeKind.TEXT_INPUT, Point2D(0, 0))
            entries = len(session.history)

            for x in range(1, 6):
                await session.move_node(node.id, Point2D(x * 10, 0))
            assert session.can_undo
            await asyncio.sleep(0.05)

            assert len(session.history) == entries + 1
            await session.undo()
            assert session.graph.get_node(node.id).position == Point2D(0, 0)
            await session.close()

        asyncio.run(scenario())

    def test_undo_flushes_pending_move(self):
        async def scenario():
            session = GraphSession(settings=fast_settings(position_debounce_seconds=10.0))
            node = await session.add_node(NodeKind.TEXT_INPUT, Point2D(0, 0))
            await session.move_node(node.id, Point2D(99, 99))

            assert not session.can_redo
            await session.undo()
            assert session.graph.get_node(node.id).position == Point2D(0, 0)
            await session.redo()
            assert session.graph.get_node(node.id).position == Point2D(99, 99)
            await session.close()

        asyncio.run(scenario())

    def test_history_is_bounded(self):
        async def scenario():
            session = GraphSession(settings=fast_settings(history_limit=3))
            for _ in range(5):
                await session.add_node(NodeKind.TEXT_INPUT)
            undone = 0
            while await session.undo():
                undone += 1
            assert undone == 2
            assert len(session.graph.nodes) == 3
            await session.close()

        asyncio.run(scenario())

    def test_remove_node(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            prompt = await session.add_node(NodeKind.TEXT_INPUT)
            image = await session.add_node(NodeKind.IMAGE_GENERATE)
            edge = await session.connect(prompt.id, "text-out", image.id, "text-in")

            await session.remove_node(prompt.id)
            assert session.graph.edges == []

            await session.undo()
            assert session.graph.get_edge(edge.id) is not None
            await session.disconnect(edge.id)
            assert session.graph.edges == []
            await session.close()

        asyncio.run(scenario())


class TestGeneratedWorkflow:

    def test_import_with_port_fallback(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            entries = len(session.history)
            nodes, edges = await session.add_generated_workflow(
                nodes=[
                    {"id": "a", "kind": "text.input", "params": {"value": "a cat"}},
                    {"id": "b", "kind": "image.generate", "position": {"x": 300, "y": 0}},
                    {"id": "c", "kind": "audio.generate"},
                ],
                edges=[
                    {"source": {"nodeId": "a", "portId": "prompt"},
                     "target": {"nodeId": "b", "portId": "text-in"}},
                    {"source": {"nodeId": "b", "portId": "image-out"},
                     "target": {"nodeId": "a", "portId": "text-in"}},
                    {"source": {"nodeId": "a"}, "target": {"nodeId": "ghost"}},
                ],
            )

            assert [n.kind for n in nodes] == ["text.input", "image.generate"]
            assert nodes[0].id != "a"
            assert nodes[0].params["value"] == "a cat"
            assert nodes[1].position == Point2D(300, 0)
            assert len(edges) == 1
            assert edges[0].source_port_id == "text-out"
            assert len(session.history) == entries + 1

            await session.undo()
            assert session.graph.nodes == []
            await session.close()

        asyncio.run(scenario())


class TestRunning:

    def test_run_executes_graph(self, fake_provider):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            prompt = await session.add_node(NodeKind.TEXT_INPUT)
            await session.set_parameter(prompt.id, "value", "a lighthouse")
            image = await session.add_node(NodeKind.IMAGE_GENERATE)
            await session.connect(prompt.id, "text-out", image.id, "text-in")

            handle = await session.run()
            job = await handle.wait()

            assert job.status is ExecutionStatus.COMPLETED
            assert session.graph.get_node(image.id).status is NodeStatus.COMPLETE
            await session.close()

        asyncio.run(scenario())

    def test_run_target_skips_unrelated_nodes(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            wanted = await session.add_node(NodeKind.TEXT_INPUT)
            other = await session.add_node(NodeKind.TEXT_INPUT)

            assert await session.plan(wanted.id) == [wanted.id]
            job = await (await session.run(wanted.id)).wait()

            assert job.plan == [wanted.id]
            assert session.graph.get_node(other.id).status is NodeStatus.IDLE
            await session.close()

        asyncio.run(scenario())

    def test_run_refuses_invalid_graph(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            await session.add_node(NodeKind.IMAGE_GENERATE)

            result = await session.validate()
            assert not result.valid
            with pytest.raises(GraphValidationError):
                await session.run()
            await session.close()

        asyncio.run(scenario())

    def test_run_rejected_while_generating(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            node = await session.add_node(NodeKind.TEXT_INPUT)
            node.status = NodeStatus.GENERATING

            with pytest.raises(ExecutionRejected):
                await session.run()
            await session.close()

        asyncio.run(scenario())

    def test_undo_across_edit_made_mid_run(self):
        async def scenario():
            started, release = gate_image_inputs()
            session = GraphSession(settings=fast_settings())
            source = await session.add_node(NodeKind.IMAGE_INPUT)
            await session.set_parameter(source.id, "url", "https://cdn.test/a.png")

            handle = await session.run()
            await started.wait()
            await session.add_node(NodeKind.TEXT_INPUT)
            release.set()
            await handle.wait()
            await session.add_node(NodeKind.TEXT_INPUT)

            await session.undo()
            restored = session.graph.get_node(source.id)
            assert restored.status is NodeStatus.COMPLETE
            assert restored.output_values == {"image-out": {"url": "https://cdn.test/a.png"}}
            await session.undo()
            await session.redo()
            assert session.graph.get_node(source.id).status is NodeStatus.COMPLETE

            job = await (await session.run()).wait()
            assert job.status is ExecutionStatus.COMPLETED
            await session.close()

        asyncio.run(scenario())

    def test_undo_brings_back_removed_node_idle(self):
        async def scenario():
            started, release = gate_image_inputs()
            session = GraphSession(settings=fast_settings())
            source = await session.add_node(NodeKind.IMAGE_INPUT)
            await session.set_parameter(source.id, "url", "https://cdn.test/a.png")

            handle = await session.run()
            await started.wait()
            await session.add_node(NodeKind.TEXT_INPUT)
            await session.remove_node(source.id)
            release.set()
            await handle.wait()

            await session.undo()
            restored = session.graph.get_node(source.id)
            assert restored.status is NodeStatus.IDLE
            assert restored.progress == 0.0
            assert await session.reset_statuses() == 2
            job = await (await session.run()).wait()
            assert job.status is ExecutionStatus.COMPLETED
            await session.close()

        asyncio.run(scenario())

    def test_reset_statuses_skips_generating(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            done = await session.add_node(NodeKind.TEXT_INPUT)
            failed = await session.add_node(NodeKind.TEXT_INPUT)
            busy = await session.add_node(NodeKind.TEXT_INPUT)
            done.status, done.progress = NodeStatus.COMPLETE, 1.0
            failed.status = NodeStatus.ERROR
            busy.status, busy.progress = NodeStatus.GENERATING, 0.5

            count = await session.reset_statuses()

            assert count == 2
            assert done.status is NodeStatus.IDLE and done.progress == 0.0
            assert failed.status is NodeStatus.IDLE and failed.error is None
            assert busy.status is NodeStatus.GENERATING and busy.progress == 0.5
            await session.close()

        asyncio.run(scenario())


class TestRemoteEvents:

    def test_remote_update_applies_status(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            node = await session.add_node(NodeKind.TEXT_INPUT)
            entries = len(session.history)

            await session.apply_remote_event(parse_event({
                "type": "UPDATE",
                "table": "execution_node_status",
                "record": {"node_id": node.id, "status": "running", "progress": 40},
            }))

            assert node.status is NodeStatus.GENERATING
            assert node.progress == pytest.approx(0.4)
            assert len(session.history) == entries
            await session.close()

        asyncio.run(scenario())

    def test_local_label_edit_wins_over_older_event(self):
        async def scenario():
            session = GraphSession(settings=fast_settings())
            node = await session.add_node(NodeKind.TEXT_INPUT)
            await session.rename_node(node.id, "Mine")

            await session.apply_remote_event(parse_event({
                "type": "UPDATE",
                "table": "compute_nodes",
                "record": {"id": node.id, "label": "Theirs", "status": "completed"},
                "commit_timestamp": "2001-01-01T00:00:00Z",
            }))

            assert node.label == "Mine"
            assert node.status is NodeStatus.COMPLETE
            await session.close()

        asyncio.run(scenario())


class TestProjectManager:

    def test_open_project_closes_previous_session(self):
        async def scenario():
            manager = ProjectManager.instance()
            first = await manager.new_project("First")
            second = await manager.open_project(Project.create("Second"))

            assert first.is_closed
            assert not second.is_closed
            assert manager.session is second
            assert manager.current.name == "Second"

            await manager.close_current()
            assert second.is_closed
            assert manager.current is None

        asyncio.run(scenario())

    def test_project_save_and_load(self, tmp_path):
        project = Project.create("Demo")
        project.graph.add_node(NodeKind.TEXT_INPUT)
        project.mark_modified()
        assert project.display_name == "* Demo"

        path = project.save(tmp_path / "demo.json")
        assert not project.is_modified

        loaded = Project.load(path)
        assert loaded.id == project.id
        assert loaded.name == "demo"
        assert len(loaded.graph) == 1

    def test_recent_projects_deduplicated(self, tmp_path):
        manager = ProjectManager.instance()
        for name in ("a", "b", "a"):
            manager.add_recent(tmp_path / name)
        assert manager.recent_projects == [tmp_path / "a", tmp_path / "b"]
