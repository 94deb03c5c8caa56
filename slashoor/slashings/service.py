"""Head-following slashings service.

Subscribes to the beacon node's `head` events, fetches each new head block
and reports any slashings it contains. Each head update is handled in its own
task, so a slow fetch or a hung script for one block does not hold up the
blocks that follow it.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from ..beacon.types import BeaconBlock, HeadEvent
from ..exceptions import ConfigError, EventTypeError, FetchError, SubscriptionError
from ..metrics import SlashingMetrics
from .detector import SlashingDetector, SlashingEvent
from .notifier import Notifier

logger = logging.getLogger(__name__)

HEAD_TOPIC = "head"


@runtime_checkable
class BlockProvider(Protocol):
    async def fetch_block(self, block_id: str) -> BeaconBlock: ...


@runtime_checkable
class EventsProvider(Protocol):
    async def subscribe_to_events(self, topics: list[str], callback: Any) -> asyncio.Task: ...

    async def stop_events(self) -> None: ...


class ServiceState(str, Enum):
    UNINITIALIZED = "uninitialized"
    SUBSCRIBED = "subscribed"
    RUNNING = "running"
    REPLAY_ONCE = "replay_once"
    STOPPED = "stopped"


class HeadSlashingService:
    """Watches head blocks for slashings."""

    def __init__(
        self,
        client: Any,
        notifier: Optional[Notifier] = None,
        detector: Optional[SlashingDetector] = None,
        metrics: Optional[SlashingMetrics] = None,
        log: Optional[logging.Logger] = None,
    ):
        if client is None:
            raise ConfigError("No beacon node client specified")
        if not isinstance(client, BlockProvider):
            raise ConfigError("Beacon node client does not provide blocks")

        self.log = log or logger
        self.client = client
        self.events_provider: Optional[EventsProvider] = (
            client if isinstance(client, EventsProvider) else None
        )
        self.metrics = metrics
        self.notifier = notifier or Notifier(metrics=metrics, log=self.log)
        self.detector = detector or SlashingDetector()

        self.state = ServiceState.UNINITIALIZED
        self._subscription: Optional[asyncio.Task] = None
        self._handlers: set[asyncio.Task] = set()

    async def start(self) -> None:
        """Subscribe to head events.

        Raises:
            ConfigError: if the client cannot supply events.
            SubscriptionError: if the subscription is refused.
        """
        if self.state != ServiceState.UNINITIALIZED:
            raise SubscriptionError(f"Cannot subscribe from state {self.state.value}")
        if self.events_provider is None:
            raise ConfigError("Beacon node client is not an events provider")

        self._subscription = await self.events_provider.subscribe_to_events(
            [HEAD_TOPIC], self.on_event
        )
        self.state = ServiceState.SUBSCRIBED
        self.log.info("Subscribed to head events")

    async def stop(self) -> None:
        """Stop following the head; abandons handlers still in flight."""
        if self.events_provider is not None and self._subscription is not None:
            await self.events_provider.stop_events()
            self._subscription = None

        pending = [task for task in self._handlers if not task.done()]
        if pending:
            self.log.warning(f"Abandoning {len(pending)} head update(s) in progress")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        self.state = ServiceState.STOPPED
        self.log.info("Stopped")

    async def join(self) -> None:
        """Wait for the head updates currently being handled to finish."""
        while self._handlers:
            await asyncio.gather(*list(self._handlers), return_exceptions=True)

    async def on_event(self, event_type: str, data: Any) -> None:
        """Feed callback: validate the notification and hand it off."""
        if self.state == ServiceState.SUBSCRIBED:
            self.state = ServiceState.RUNNING
        if self.state != ServiceState.RUNNING:
            self.log.debug(f"Ignoring {event_type} event in state {self.state.value}")
            return

        try:
            if event_type != HEAD_TOPIC:
                raise EventTypeError(f"Unexpected event type {event_type!r}")
            head = HeadEvent.from_dict(data)
        except EventTypeError as e:
            self.log.error(f"Event data is not from a head event; cannot process: {e}")
            return

        task = asyncio.create_task(self.on_head_updated(head.slot, head.block))
        self._handlers.add(task)
        task.add_done_callback(self._handlers.discard)

    async def on_head_updated(self, slot: int, block_root: str) -> list[SlashingEvent]:
        """Fetch the head block and report its slashings.

        A block that cannot be fetched is logged and dropped; the next head
        update supersedes it.
        """
        try:
            block = await self.client.fetch_block(block_root)
        except FetchError as e:
            self.log.error(f"Failed to obtain block: {e} (slot={slot})")
            return []
        self.log.debug(f"Obtained block: slot={block.slot} block_root={block_root}")

        return await self.process_block(block, block_root)

    async def process_block(self, block: BeaconBlock, block_root: str) -> list[SlashingEvent]:
        detection = self.detector.scan(block)

        for error in detection.malformed:
            self.log.error(f"Skipping slashing: {error} (slot={block.slot} block_root={block_root})")

        if not detection.events:
            self.log.debug(f"No slashings (slot={block.slot})")

        for event in detection.events:
            await self.notifier.notify(event, slot=block.slot, block_root=block_root)

        if self.metrics is not None:
            self.metrics.record_block_processed()

        return detection.events

    async def replay(self, block_id: str) -> list[SlashingEvent]:
        """Run detection and notification once against a given block.

        No subscription is made. Used to check configured scripts against a
        known block.

        Raises:
            FetchError: if the block cannot be obtained.
        """
        if self.state != ServiceState.UNINITIALIZED:
            raise ConfigError(f"Cannot replay from state {self.state.value}")

        self.state = ServiceState.REPLAY_ONCE
        try:
            block = await self.client.fetch_block(block_id)
            self.log.info(f"Replaying block {block_id} (slot={block.slot})")
            return await self.process_block(block, block_id)
        finally:
            self.state = ServiceState.STOPPED
