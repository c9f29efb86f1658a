"""
Project Model - A graph with its settings, and the active-project manager.

Opening a project creates its GraphSession; opening another closes the
previous session first, which releases its realtime subscription.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

from compute_flow.config import StudioSettings
from compute_flow.core.graph import NodeGraph
from compute_flow.core.session import GraphSession
from compute_flow.core.workspace import load_workspace, save_workspace

if TYPE_CHECKING:
    from compute_flow.providers.registry import ProviderRegistry
    from compute_flow.sync.feed import ChangeFeed


logger = logging.getLogger(__name__)


@dataclass
class Project:
    """
    A project containing the compute graph and settings.

    Projects can be saved to and loaded from disk.
    """
    id: str
    name: str
    graph: NodeGraph
    settings: StudioSettings = field(default_factory=StudioSettings)

    # File location (None for unsaved projects)
    path: Path | None = None

    # State
    is_modified: bool = False

    @classmethod
    def create(cls, name: str = "Untitled", created_by: str = "") -> Project:
        """Create a new empty project."""
        project_id = str(uuid4())
        return cls(
            id=project_id,
            name=name,
            graph=NodeGraph(graph_id=project_id, created_by=created_by),
        )

    @classmethod
    def load(cls, path: Path, settings: StudioSettings | None = None) -> Project:
        """Load a project from a workspace document."""
        graph = load_workspace(path)
        return cls(
            id=graph.id,
            name=path.stem,
            graph=graph,
            settings=settings or StudioSettings(),
            path=path,
        )

    def save(self, path: Path | None = None) -> Path:
        path = path or self.path
        saved = save_workspace(self.graph, path, name=self.name)
        self.mark_saved(saved)
        return saved

    def mark_modified(self) -> None:
        """Mark the project as having unsaved changes."""
        self.is_modified = True

    def mark_saved(self, path: Path | None = None) -> None:
        """Mark the project as saved."""
        self.is_modified = False
        if path:
            self.path = path

    @property
    def display_name(self) -> str:
        """Get the display name with modified indicator."""
        modified = "* " if self.is_modified else ""
        return f"{modified}{self.name}"


class ProjectManager:
    """
    Manages the active project and its session.

    This is a singleton that holds the current project, and
    handles recent project history.
    """

    _instance: ProjectManager | None = None

    def __new__(cls) -> ProjectManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._current = None
            cls._instance._session = None
            cls._instance._recent = []
        return cls._instance

    @classmethod
    def instance(cls) -> ProjectManager:
        return cls()

    @property
    def current(self) -> Project | None:
        """Get the current project."""
        return self._current

    @property
    def session(self) -> GraphSession | None:
        """Get the session of the current project."""
        return self._session

    @property
    def recent_projects(self) -> list[Path]:
        """Get list of recent project paths."""
        return self._recent.copy()

    async def open_project(
        self,
        project: Project,
        feed: ChangeFeed | None = None,
        providers: ProviderRegistry | None = None,
    ) -> GraphSession:
        """
        Make `project` current and return its new session.

        The previous session is closed first. With a feed, the new session
        is subscribed to the project's remote changes.
        """
        await self.close_current()

        session = GraphSession(project.graph, project.settings, providers=providers)
        if feed is not None:
            session.start_sync(feed, project_id=project.id)

        self._current = project
        self._session = session
        if project.path:
            self.add_recent(project.path)
        logger.info("Opened project %s", project.name)
        return session

    async def new_project(self, name: str = "Untitled") -> GraphSession:
        """Create and open a new project."""
        return await self.open_project(Project.create(name))

    def add_recent(self, path: Path) -> None:
        """Add a path to recent projects."""
        if path in self._recent:
            self._recent.remove(path)
        self._recent.insert(0, path)
        # Keep only last 10
        self._recent = self._recent[:10]

    async def close_current(self) -> None:
        """Close the current project's session, if any."""
        if self._session is not None:
            await self._session.close()
        self._session = None
        self._current = None
