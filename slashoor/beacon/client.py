"""Remote Beacon API client for watching an upstream beacon node."""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

import aiohttp

from ..exceptions import FetchError, SubscriptionError
from .exceptions import BeaconAPIError, BlockNotFoundError
from .types import BeaconBlock

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, dict], Awaitable[None]]

DEFAULT_TIMEOUT = 120.0


class RemoteBeaconClient:
    """Client for a remote Beacon API (any conformant client)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        log: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.log = log or logger
        self._session: Optional[aiohttp.ClientSession] = None
        self._sse_task: Optional[asyncio.Task] = None
        self._running = False
        self._initial_reconnect_delay = 1.0
        self._reconnect_delay = self._initial_reconnect_delay
        self._max_reconnect_delay = 30.0

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def subscribe_to_events(
        self,
        topics: list[str],
        callback: EventCallback,
    ) -> asyncio.Task:
        """Subscribe to SSE events from the Beacon API.

        Args:
            topics: Event topics to subscribe to (e.g., ["head"])
            callback: Async callback function that receives (event_type, event_data)

        Returns:
            The task reading the event stream; it runs until stop_events().
        """
        if not topics:
            raise SubscriptionError("No event topics supplied")
        if self._sse_task is not None and not self._sse_task.done():
            raise SubscriptionError("Already subscribed to events")

        self._running = True
        self._sse_task = asyncio.create_task(
            self._sse_loop(topics, callback)
        )
        return self._sse_task

    async def _sse_loop(
        self,
        topics: list[str],
        callback: EventCallback,
    ) -> None:
        """Internal SSE event loop with reconnection logic."""
        topics_param = ",".join(topics)
        url = f"{self.base_url}/eth/v1/events?topics={topics_param}"

        while self._running:
            try:
                session = await self._ensure_session()
                self.log.info(f"Connecting to SSE stream: {url}")

                async with session.get(
                    url,
                    headers={"Accept": "text/event-stream"},
                    timeout=aiohttp.ClientTimeout(total=None, sock_read=None),
                ) as response:
                    if response.status != 200:
                        self.log.error(f"SSE connection failed: {response.status}")
                        await self._backoff()
                        continue

                    self._reconnect_delay = self._initial_reconnect_delay
                    self.log.info("SSE connection established")

                    await self._read_stream(response.content, callback)

            except asyncio.CancelledError:
                break
            except aiohttp.ClientError as e:
                self.log.error(f"SSE connection error: {e}")
                await self._backoff()
            except Exception as e:
                self.log.error(f"Unexpected SSE error: {e}")
                await self._backoff()

    async def _read_stream(self, content, callback: EventCallback) -> None:
        """Split an SSE byte stream into events and hand each to the callback."""
        event_type = None
        event_data = ""

        async for line in content:
            if not self._running:
                break

            line = line.decode("utf-8", errors="replace").strip()

            if not line:
                if event_type and event_data:
                    try:
                        data = json.loads(event_data)
                    except json.JSONDecodeError as e:
                        self.log.error(f"Undecodable SSE event data: {e}")
                    else:
                        try:
                            await callback(event_type, data)
                        except Exception as e:
                            self.log.error(f"Error processing SSE event: {e}")
                event_type = None
                event_data = ""
                continue

            if line.startswith("event:"):
                event_type = line[6:].strip()
            elif line.startswith("data:"):
                event_data += line[5:].strip()

    async def _backoff(self) -> None:
        await asyncio.sleep(self._reconnect_delay)
        self._reconnect_delay = min(
            self._reconnect_delay * 2,
            self._max_reconnect_delay,
        )

    async def stop_events(self) -> None:
        """Stop the SSE event subscription."""
        self._running = False
        if self._sse_task:
            self._sse_task.cancel()
            try:
                await self._sse_task
            except asyncio.CancelledError:
                pass
            self._sse_task = None

    async def get_block_json(self, block_id: str) -> dict:
        """Fetch a block as JSON."""
        session = await self._ensure_session()
        url = f"{self.base_url}/eth/v2/beacon/blocks/{block_id}"

        async with session.get(
            url,
            headers={"Accept": "application/json"},
        ) as response:
            if response.status == 404:
                raise BlockNotFoundError(block_id)
            if response.status != 200:
                text = await response.text()
                raise BeaconAPIError(block_id, response.status, text)
            return await response.json()

    async def fetch_block(self, block_id: str) -> BeaconBlock:
        """Fetch and decode a block.

        Raises:
            FetchError: if the block cannot be obtained or read.
        """
        try:
            response = await self.get_block_json(block_id)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise FetchError(block_id, str(e) or type(e).__name__) from e

        try:
            return BeaconBlock.from_response(response)
        except ValueError as e:
            raise FetchError(block_id, f"unreadable block: {e}") from e

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        await self.stop_events()
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
