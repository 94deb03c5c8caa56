"""Tests for the head slashings service."""

import asyncio
import logging

import pytest

from slashoor.exceptions import ConfigError, FetchError
from slashoor.slashings import (
    HeadSlashingService,
    Notifier,
    ServiceState,
    SlashingEvent,
    SlashingKind,
)

from conftest import (
    BlockOnlyClient,
    FakeBeaconClient,
    attester_slashing,
    blocks_processed,
    make_block,
    proposer_slashing,
    root,
    script_calls,
    slashings_count,
)


def head(slot: int, block_root: str) -> dict:
    return {
        "slot": str(slot),
        "block": block_root,
        "state": root(999),
        "epoch_transition": False,
        "execution_optimistic": False,
    }


class TestConstruction:
    def test_no_client(self):
        with pytest.raises(ConfigError):
            HeadSlashingService(None)

    def test_client_without_blocks(self):
        with pytest.raises(ConfigError):
            HeadSlashingService(object())

    def test_start_without_events(self):
        service = HeadSlashingService(BlockOnlyClient())

        with pytest.raises(ConfigError):
            asyncio.run(service.start())
        assert service.state == ServiceState.UNINITIALIZED


class TestHeadUpdates:
    def test_subscribes_to_head(self):
        client = FakeBeaconClient()
        service = HeadSlashingService(client)

        async def scenario():
            await service.start()
            assert service.state == ServiceState.SUBSCRIBED
            await service.stop()

        asyncio.run(scenario())

        assert client.subscriptions == [["head"]]
        assert client.stopped
        assert service.state == ServiceState.STOPPED

    def test_empty_block_counted(self, metrics, registry):
        client = FakeBeaconClient({root(1): make_block(slot=1)})
        service = HeadSlashingService(client, metrics=metrics)

        async def scenario():
            await service.start()
            await client.emit("head", head(1, root(1)))
            await service.join()
            assert service.state == ServiceState.RUNNING
            await service.stop()

        asyncio.run(scenario())

        assert client.fetched == [root(1)]
        assert blocks_processed(registry) == 1

    def test_slashings_notified(self, metrics, registry, make_script):
        script = make_script("attester.sh")
        block = make_block(
            slot=5,
            attester_slashings=[attester_slashing([11, 12], [12, 11])],
            proposer_slashings=[proposer_slashing(42)],
        )
        client = FakeBeaconClient({root(5): block})
        notifier = Notifier(attester_slashed_script=script, metrics=metrics)
        service = HeadSlashingService(client, notifier=notifier, metrics=metrics)

        async def scenario():
            await service.start()
            await client.emit("head", head(5, root(5)))
            await service.join()
            await service.stop()

        asyncio.run(scenario())

        assert script_calls(script) == ["11", "12"]
        for index in (11, 12, 42):
            assert slashings_count(registry, index) == 1
        assert blocks_processed(registry) == 1

    def test_script_failure_isolated(self, metrics, registry, make_script):
        script = make_script("fail.sh", "exit 1")
        block = make_block(
            attester_slashings=[attester_slashing([1], [1]), attester_slashing([2], [2])],
        )
        client = FakeBeaconClient({root(1): block})
        notifier = Notifier(attester_slashed_script=script, metrics=metrics)
        service = HeadSlashingService(client, notifier=notifier, metrics=metrics)

        events = asyncio.run(service.on_head_updated(1, root(1)))

        assert [e.validator_index for e in events] == [1, 2]
        assert script_calls(script) == ["1", "2"]
        assert slashings_count(registry, 1) == 1
        assert slashings_count(registry, 2) == 1

    def test_fetch_failure_discarded(self, metrics, registry, caplog):
        client = FakeBeaconClient({root(2): make_block(slot=2)})
        service = HeadSlashingService(client, metrics=metrics)

        async def scenario():
            await service.start()
            await client.emit("head", head(1, root(1)))
            await service.join()
            assert service.state == ServiceState.RUNNING
            await client.emit("head", head(2, root(2)))
            await service.join()
            await service.stop()

        with caplog.at_level(logging.ERROR):
            asyncio.run(scenario())

        assert client.fetched == [root(1), root(2)]
        assert blocks_processed(registry) == 1
        assert "Failed to obtain block" in caplog.text
        assert root(1) in caplog.text

    @pytest.mark.parametrize(
        "event_type,data",
        [
            ("block", head(1, root(1))),
            ("head", {"slot": "1"}),
            ("head", {"slot": "x", "block": root(1)}),
            ("head", ["not", "a", "dict"]),
            ("head", {"slot": "1", "block": ""}),
        ],
    )
    def test_bad_event_discarded(self, event_type, data, caplog):
        client = FakeBeaconClient({root(1): make_block(slot=1)})
        service = HeadSlashingService(client)

        async def scenario():
            await service.start()
            await client.emit(event_type, data)
            await service.join()
            assert service.state == ServiceState.RUNNING
            await service.stop()

        with caplog.at_level(logging.ERROR):
            asyncio.run(scenario())

        assert client.fetched == []
        assert "cannot process" in caplog.text

    def test_malformed_record_logged(self, metrics, registry, caplog):
        block = make_block(
            proposer_slashings=[proposer_slashing(42, other_index=43), proposer_slashing(9)],
        )
        client = FakeBeaconClient({root(1): block})
        service = HeadSlashingService(client, metrics=metrics)

        with caplog.at_level(logging.ERROR):
            events = asyncio.run(service.on_head_updated(100, root(1)))

        assert events == [SlashingEvent(SlashingKind.PROPOSER, 9)]
        assert "Skipping slashing" in caplog.text
        assert slashings_count(registry, 42) == 0
        assert blocks_processed(registry) == 1

    def test_head_updates_handled_concurrently(self, metrics, registry):
        client = FakeBeaconClient({
            root(1): make_block(slot=1, proposer_slashings=[proposer_slashing(1)]),
            root(2): make_block(slot=2, proposer_slashings=[proposer_slashing(2)]),
        })
        service = HeadSlashingService(client, metrics=metrics)

        async def scenario():
            gate = asyncio.Event()
            client.gates[root(1)] = gate
            await service.start()

            await client.emit("head", head(1, root(1)))
            await client.emit("head", head(2, root(2)))
            for _ in range(20):
                await asyncio.sleep(0)

            # The second head is done while the first is still waiting on its fetch.
            assert slashings_count(registry, 2) == 1
            assert slashings_count(registry, 1) == 0

            gate.set()
            await service.join()
            await service.stop()

        asyncio.run(scenario())

        assert slashings_count(registry, 1) == 1
        assert blocks_processed(registry) == 2

    def test_stop_abandons_in_flight(self, metrics, registry):
        client = FakeBeaconClient({root(1): make_block(slot=1)})
        client.gates[root(1)] = asyncio.Event()
        service = HeadSlashingService(client, metrics=metrics)

        async def scenario():
            await service.start()
            await client.emit("head", head(1, root(1)))
            await asyncio.sleep(0)
            await service.stop()

        asyncio.run(scenario())

        assert service.state == ServiceState.STOPPED
        assert blocks_processed(registry) == 0


class TestReplay:
    def test_replay_known_block(self, metrics, registry):
        block = make_block(
            slot=3,
            attester_slashings=[attester_slashing([5, 6], [5, 8])],
            proposer_slashings=[proposer_slashing(42)],
        )
        client = FakeBeaconClient({"3": block})
        service = HeadSlashingService(client, metrics=metrics)

        events = asyncio.run(service.replay("3"))

        assert events == [
            SlashingEvent(SlashingKind.ATTESTER, 5),
            SlashingEvent(SlashingKind.PROPOSER, 42),
        ]
        assert client.subscriptions == []
        assert service.state == ServiceState.STOPPED
        assert blocks_processed(registry) == 1

    def test_replay_with_block_only_client(self):
        client = BlockOnlyClient({"head": make_block(proposer_slashings=[proposer_slashing(1)])})

        events = asyncio.run(HeadSlashingService(client).replay("head"))

        assert events == [SlashingEvent(SlashingKind.PROPOSER, 1)]

    def test_replay_fetch_failure(self):
        service = HeadSlashingService(BlockOnlyClient())

        with pytest.raises(FetchError):
            asyncio.run(service.replay("missing"))
        assert service.state == ServiceState.STOPPED

    def test_replay_once_only(self):
        client = BlockOnlyClient({"1": make_block()})
        service = HeadSlashingService(client)
        asyncio.run(service.replay("1"))

        with pytest.raises(ConfigError):
            asyncio.run(service.replay("1"))
