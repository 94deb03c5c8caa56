"""Shared fixtures and builders for slashoor tests."""

import asyncio
import os
import stat
from pathlib import Path
from typing import Callable, Optional

import pytest
from prometheus_client import CollectorRegistry

from slashoor.beacon import BeaconBlock, BlockNotFoundError
from slashoor.metrics import SlashingMetrics

ZERO_ROOT = "0x" + "00" * 32
SIGNATURE = "0x" + "00" * 96


def root(n: int) -> str:
    """Return a distinct 32-byte hex root for n."""
    return "0x" + f"{n:064x}"


def indexed_attestation(indices) -> dict:
    return {
        "attesting_indices": [str(i) for i in indices],
        "data": {
            "slot": "1",
            "index": "0",
            "beacon_block_root": ZERO_ROOT,
            "source": {"epoch": "0", "root": ZERO_ROOT},
            "target": {"epoch": "1", "root": ZERO_ROOT},
        },
        "signature": SIGNATURE,
    }


def attester_slashing(indices_1, indices_2) -> dict:
    return {
        "attestation_1": indexed_attestation(indices_1),
        "attestation_2": indexed_attestation(indices_2),
    }


def signed_header(slot: int, proposer_index: int, body_root: str = ZERO_ROOT) -> dict:
    return {
        "message": {
            "slot": str(slot),
            "proposer_index": str(proposer_index),
            "parent_root": ZERO_ROOT,
            "state_root": ZERO_ROOT,
            "body_root": body_root,
        },
        "signature": SIGNATURE,
    }


def proposer_slashing(proposer_index: int, other_index: Optional[int] = None, slot: int = 10) -> dict:
    if other_index is None:
        other_index = proposer_index
    return {
        "signed_header_1": signed_header(slot, proposer_index, root(1)),
        "signed_header_2": signed_header(slot, other_index, root(2)),
    }


def block_response(slot: int = 100, attester_slashings=(), proposer_slashings=()) -> dict:
    """Build a /eth/v2/beacon/blocks response body."""
    return {
        "version": "electra",
        "execution_optimistic": False,
        "finalized": False,
        "data": {
            "message": {
                "slot": str(slot),
                "proposer_index": "7",
                "parent_root": ZERO_ROOT,
                "state_root": ZERO_ROOT,
                "body": {
                    "randao_reveal": SIGNATURE,
                    "graffiti": ZERO_ROOT,
                    "attester_slashings": list(attester_slashings),
                    "proposer_slashings": list(proposer_slashings),
                    "attestations": [],
                    "deposits": [],
                    "voluntary_exits": [],
                },
            },
            "signature": SIGNATURE,
        },
    }


def make_block(slot: int = 100, attester_slashings=(), proposer_slashings=()) -> BeaconBlock:
    return BeaconBlock.from_response(
        block_response(slot, attester_slashings, proposer_slashings)
    )


class BlockOnlyClient:
    """Beacon client that can serve blocks but not events."""

    def __init__(self, blocks: Optional[dict] = None):
        self.blocks = blocks or {}
        self.fetched: list[str] = []
        self.gates: dict[str, asyncio.Event] = {}

    async def fetch_block(self, block_id: str) -> BeaconBlock:
        self.fetched.append(block_id)
        gate = self.gates.get(block_id)
        if gate is not None:
            await gate.wait()
        if block_id not in self.blocks:
            raise BlockNotFoundError(block_id)
        return self.blocks[block_id]


class FakeBeaconClient(BlockOnlyClient):
    """Beacon client serving canned blocks and a manually driven event feed."""

    def __init__(self, blocks: Optional[dict] = None):
        super().__init__(blocks)
        self.subscriptions: list[list[str]] = []
        self.callback = None
        self.stopped = False
        self._task: Optional[asyncio.Task] = None

    async def subscribe_to_events(self, topics, callback) -> asyncio.Task:
        self.subscriptions.append(list(topics))
        self.callback = callback
        self._task = asyncio.create_task(asyncio.Event().wait())
        return self._task

    async def stop_events(self) -> None:
        self.stopped = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def emit(self, event_type: str, data) -> None:
        await self.callback(event_type, data)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry) -> SlashingMetrics:
    return SlashingMetrics(registry)


def slashings_count(registry: CollectorRegistry, index: int) -> float:
    value = registry.get_sample_value("slashoor_slashings_total", {"index": str(index)})
    return value or 0.0


def blocks_processed(registry: CollectorRegistry) -> float:
    return registry.get_sample_value("slashoor_blocks_processed_total") or 0.0


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[..., str]:
    """Write an executable shell script and return its path.

    The script appends its first argument to `<name>.calls` in tmp_path before
    running `body`.
    """

    def _make(name: str, body: str = "exit 0") -> str:
        path = tmp_path / name
        calls = tmp_path / f"{name}.calls"
        path.write_text(f'#!/bin/sh\necho "$1" >> "{calls}"\n{body}\n')
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


def script_calls(script: str) -> list[str]:
    calls = Path(f"{script}.calls")
    if not calls.exists():
        return []
    return calls.read_text().split()


@pytest.fixture
def non_executable_file(tmp_path: Path) -> str:
    path = tmp_path / "not-a-script"
    path.write_text("echo hi\n")
    os.chmod(path, 0o644)
    return str(path)
