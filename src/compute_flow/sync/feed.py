"""
Change feeds - Sources of remote change events for a project.

- ChangeFeed: Abstract connect/receive/close interface
- SupabaseRealtimeFeed: Supabase realtime (Phoenix channels over websocket)
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from compute_flow.core.errors import SyncError
from compute_flow.sync.events import TABLE_ENTITIES


logger = logging.getLogger(__name__)


class ChangeFeed(ABC):
    """A subscription to remote changes scoped to one project."""

    @abstractmethod
    async def connect(self, project_id: str) -> None:
        """Open the subscription. Raises SyncError on failure."""
        ...

    @abstractmethod
    async def receive(self) -> dict[str, Any]:
        """Wait for the next raw change. Raises SyncError if the feed drops."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        ...


class SupabaseRealtimeFeed(ChangeFeed):
    """
    Supabase realtime feed.

    Joins the channel "project:{id}" with a postgres_changes listener per
    table, filtered to the project, and yields each change payload.
    """

    heartbeat_interval = 25.0

    def __init__(
        self,
        url: str,
        api_key: str,
        tables: list[str] | None = None,
        schema: str = "public",
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.tables = tables or list(TABLE_ENTITIES)
        self.schema = schema
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._heartbeat: asyncio.Task | None = None
        self._refs = itertools.count(1)
        self._topic = ""

    @property
    def socket_url(self) -> str:
        base = self.url.replace("https://", "wss://").replace("http://", "ws://")
        return f"{base}/realtime/v1/websocket?apikey={self.api_key}&vsn=1.0.0"

    def join_message(self, project_id: str) -> dict[str, Any]:
        return {
            "topic": f"realtime:project:{project_id}",
            "event": "phx_join",
            "payload": {
                "config": {
                    "postgres_changes": [
                        {
                            "event": "*",
                            "schema": self.schema,
                            "table": table,
                            "filter": f"project_id=eq.{project_id}",
                        }
                        for table in self.tables
                    ],
                },
            },
            "ref": str(next(self._refs)),
        }

    async def connect(self, project_id: str) -> None:
        await self.close()
        join = self.join_message(project_id)
        self._topic = join["topic"]
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.socket_url)
            await self._ws.send_json(join)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self.close()
            raise SyncError(f"Realtime connection failed: {e}") from e

        self._heartbeat = asyncio.create_task(self._send_heartbeats())
        logger.info("Subscribed to %s", self._topic)

    async def receive(self) -> dict[str, Any]:
        if self._ws is None:
            raise SyncError("Realtime feed is not connected")

        while True:
            try:
                msg = await self._ws.receive()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise SyncError(f"Realtime connection error: {e}") from e
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON realtime frame")
                    continue
                if not isinstance(data, dict):
                    logger.warning("Ignoring realtime frame that is not an object")
                    continue
                if data.get("event") == "postgres_changes":
                    return data.get("payload") or {}
                if data.get("event") == "phx_error":
                    raise SyncError(f"Realtime channel error: {data.get('payload')}")
                # phx_reply, presence, system messages
                continue
            if msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                raise SyncError("Realtime connection closed")
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise SyncError(f"Realtime connection error: {self._ws.exception()}")

    async def close(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
            self._heartbeat = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _send_heartbeats(self) -> None:
        while self._ws is not None and not self._ws.closed:
            await asyncio.sleep(self.heartbeat_interval)
            if self._ws is None or self._ws.closed:
                break
            try:
                await self._ws.send_json({
                    "topic": "phoenix",
                    "event": "heartbeat",
                    "payload": {},
                    "ref": str(next(self._refs)),
                })
            except (aiohttp.ClientError, ConnectionResetError) as e:
                # receive() reports the drop
                logger.warning("Realtime heartbeat failed: %s", e)
                break
