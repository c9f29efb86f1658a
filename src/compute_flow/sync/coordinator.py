"""
Realtime Sync Coordinator - Keeps a session current with remote changes.

The coordinator owns the feed subscription for one project. Node changes are
merged into the session's graph under its mutation lock; media changes go to
the media library. Malformed events are logged and dropped; a dropped feed
is resubscribed after a delay until the coordinator is stopped.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator

from compute_flow.core.errors import SyncError
from compute_flow.sync.events import ChangeEvent, EntityType, parse_event
from compute_flow.sync.feed import ChangeFeed
from compute_flow.sync.media import MediaLibrary
from compute_flow.sync.merge import MergeOutcome

if TYPE_CHECKING:
    from compute_flow.core.session import GraphSession


logger = logging.getLogger(__name__)


class RealtimeSyncCoordinator:
    """Subscribes a session to its project's change feed."""

    def __init__(
        self,
        session: GraphSession,
        feed: ChangeFeed,
        project_id: str | None = None,
        resubscribe_delay: float = 2.0,
        media: MediaLibrary | None = None,
    ):
        self.session = session
        self.feed = feed
        self.project_id = project_id or session.graph.id
        self.resubscribe_delay = resubscribe_delay
        self.media = media if media is not None else MediaLibrary()
        self._stopped = asyncio.Event()
        self._subscribed = False

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    @asynccontextmanager
    async def subscription(self) -> AsyncIterator[RealtimeSyncCoordinator]:
        """Hold the feed subscription for the duration of the block."""
        await self.feed.connect(self.project_id)
        self._subscribed = True
        try:
            yield self
        finally:
            self._subscribed = False
            await self.feed.close()

    async def handle(self, raw: Any) -> MergeOutcome | None:
        """Parse and apply one raw event; malformed events are dropped."""
        try:
            event = parse_event(raw)
            return await self.apply(event)
        except SyncError as e:
            logger.warning("Dropping change event: %s", e)
            return None
        except Exception:
            logger.exception("Dropping change event that could not be applied")
            return None

    async def apply(self, event: ChangeEvent) -> MergeOutcome:
        if event.entity is EntityType.MEDIA:
            self.media.merge(event.record)
            return MergeOutcome.UPDATED
        return await self.session.apply_remote_event(event)

    async def run(self) -> None:
        """Receive and apply events until stopped, resubscribing on drops."""
        while not self._stopped.is_set():
            try:
                async with self.subscription():
                    while not self._stopped.is_set():
                        raw = await self.feed.receive()
                        await self.handle(raw)
            except SyncError as e:
                if self._stopped.is_set():
                    break
                logger.warning(
                    "Realtime feed dropped (%s); resubscribing in %.1fs",
                    e, self.resubscribe_delay,
                )
                try:
                    await asyncio.wait_for(self._stopped.wait(), self.resubscribe_delay)
                except asyncio.TimeoutError:
                    pass

    def stop(self) -> None:
        self._stopped.set()
