"""Slashing detection over a single beacon block."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from ..beacon.types import AttesterSlashing, BeaconBlock, ProposerSlashing
from ..exceptions import MalformedSlashingError


class SlashingKind(str, Enum):
    ATTESTER = "attester"
    PROPOSER = "proposer"


@dataclass(frozen=True)
class SlashingEvent:
    """A single validator found to be slashable in a block."""

    kind: SlashingKind
    validator_index: int


@dataclass
class Detection:
    """Events found in a block, plus the records that had to be skipped."""

    events: list[SlashingEvent] = field(default_factory=list)
    malformed: list[MalformedSlashingError] = field(default_factory=list)


def intersection(set1: Iterable[int], set2: Iterable[int]) -> list[int]:
    """Return the distinct values common to both collections, ascending.

    Inputs may be unsorted and may contain duplicates; they are not modified.
    A value repeated in either input appears once in the result.
    """
    a = sorted(set1)
    b = sorted(set2)
    res: list[int] = []

    i = 0
    j = 0
    while i < len(a) and j < len(b):
        if a[i] < b[j]:
            i += 1
        elif b[j] < a[i]:
            j += 1
        else:
            value = a[i]
            res.append(value)
            while i < len(a) and a[i] == value:
                i += 1
            while j < len(b) and b[j] == value:
                j += 1

    return res


class SlashingDetector:
    """Finds slashed validators in a block's attester and proposer slashings.

    Stateless: the same block always yields the same events, in the same order
    (attester events first, then proposer events).
    """

    def detect(self, block: BeaconBlock) -> list[SlashingEvent]:
        return self.scan(block).events

    def scan(self, block: BeaconBlock) -> Detection:
        detection = Detection()

        for position, raw in enumerate(block.attester_slashings):
            try:
                slashing = AttesterSlashing.from_dict(raw)
            except ValueError as e:
                detection.malformed.append(
                    MalformedSlashingError(SlashingKind.ATTESTER.value, position, str(e))
                )
                continue
            for index in self.attester_slashed_indices(slashing):
                detection.events.append(SlashingEvent(SlashingKind.ATTESTER, index))

        for position, raw in enumerate(block.proposer_slashings):
            try:
                slashing = ProposerSlashing.from_dict(raw)
                index = self.proposer_slashed_index(slashing)
            except ValueError as e:
                detection.malformed.append(
                    MalformedSlashingError(SlashingKind.PROPOSER.value, position, str(e))
                )
                continue
            detection.events.append(SlashingEvent(SlashingKind.PROPOSER, index))

        return detection

    @staticmethod
    def attester_slashed_indices(slashing: AttesterSlashing) -> list[int]:
        return intersection(
            slashing.attestation_1.attesting_indices,
            slashing.attestation_2.attesting_indices,
        )

    @staticmethod
    def proposer_slashed_index(slashing: ProposerSlashing) -> int:
        """Return the proposer index shared by both headers.

        Raises:
            ValueError: if the headers name different proposers.
        """
        index_1 = slashing.signed_header_1.message.proposer_index
        index_2 = slashing.signed_header_2.message.proposer_index
        if index_1 != index_2:
            raise ValueError(f"headers disagree on proposer index ({index_1} != {index_2})")
        return index_1
