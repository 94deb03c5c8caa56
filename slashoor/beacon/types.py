"""Beacon API data types read by the slashing detector.

Only the fields needed to find slashings are decoded. Values arrive as JSON
strings (the Beacon API encodes uint64 as decimal strings) and are converted
to ints here.
"""

from dataclasses import dataclass, field
from typing import Any

from ..exceptions import EventTypeError


def _uint(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} is not an integer: {value!r}")
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} is not an integer: {value!r}") from None
    if result < 0:
        raise ValueError(f"{name} is negative: {result}")
    return result


def _field(data: Any, name: str) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"expected object containing {name}, got {type(data).__name__}")
    if name not in data:
        raise ValueError(f"missing {name}")
    return data[name]


@dataclass(frozen=True)
class IndexedAttestation:
    """Attestation with its attesting validator indices expanded."""

    attesting_indices: tuple[int, ...]

    @classmethod
    def from_dict(cls, data: dict) -> "IndexedAttestation":
        indices = _field(data, "attesting_indices")
        if not isinstance(indices, list):
            raise ValueError("attesting_indices is not a list")
        return cls(
            attesting_indices=tuple(_uint(i, "attesting index") for i in indices),
        )


@dataclass(frozen=True)
class AttesterSlashing:
    """Two conflicting attestations."""

    attestation_1: IndexedAttestation
    attestation_2: IndexedAttestation

    @classmethod
    def from_dict(cls, data: dict) -> "AttesterSlashing":
        return cls(
            attestation_1=IndexedAttestation.from_dict(_field(data, "attestation_1")),
            attestation_2=IndexedAttestation.from_dict(_field(data, "attestation_2")),
        )


@dataclass(frozen=True)
class BeaconBlockHeader:
    slot: int
    proposer_index: int

    @classmethod
    def from_dict(cls, data: dict) -> "BeaconBlockHeader":
        return cls(
            slot=_uint(_field(data, "slot"), "slot"),
            proposer_index=_uint(_field(data, "proposer_index"), "proposer_index"),
        )


@dataclass(frozen=True)
class SignedBeaconBlockHeader:
    message: BeaconBlockHeader

    @classmethod
    def from_dict(cls, data: dict) -> "SignedBeaconBlockHeader":
        return cls(message=BeaconBlockHeader.from_dict(_field(data, "message")))


@dataclass(frozen=True)
class ProposerSlashing:
    """Two conflicting signed block headers."""

    signed_header_1: SignedBeaconBlockHeader
    signed_header_2: SignedBeaconBlockHeader

    @classmethod
    def from_dict(cls, data: dict) -> "ProposerSlashing":
        return cls(
            signed_header_1=SignedBeaconBlockHeader.from_dict(_field(data, "signed_header_1")),
            signed_header_2=SignedBeaconBlockHeader.from_dict(_field(data, "signed_header_2")),
        )


@dataclass
class BeaconBlock:
    """A beacon block as returned by /eth/v2/beacon/blocks/{block_id}.

    The slashing lists are kept as delivered so that each record can be
    decoded, and rejected, on its own.
    """

    slot: int
    proposer_index: int
    attester_slashings: list[dict] = field(default_factory=list)
    proposer_slashings: list[dict] = field(default_factory=list)
    version: str = ""

    @classmethod
    def from_response(cls, response: dict) -> "BeaconBlock":
        """Build a block from a full Beacon API response (version + data)."""
        data = _field(response, "data")
        block = cls.from_dict(_field(data, "message"))
        block.version = str(response.get("version", ""))
        return block

    @classmethod
    def from_dict(cls, message: dict) -> "BeaconBlock":
        body = _field(message, "body")
        if not isinstance(body, dict):
            raise ValueError("body is not an object")
        attester_slashings = body.get("attester_slashings", [])
        proposer_slashings = body.get("proposer_slashings", [])
        if not isinstance(attester_slashings, list) or not isinstance(proposer_slashings, list):
            raise ValueError("slashing lists are not lists")
        return cls(
            slot=_uint(_field(message, "slot"), "slot"),
            proposer_index=_uint(_field(message, "proposer_index"), "proposer_index"),
            attester_slashings=attester_slashings,
            proposer_slashings=proposer_slashings,
        )


@dataclass(frozen=True)
class HeadEvent:
    """Payload of the `head` event topic."""

    slot: int
    block: str

    @classmethod
    def from_dict(cls, data: Any) -> "HeadEvent":
        try:
            slot = _uint(_field(data, "slot"), "slot")
            block = _field(data, "block")
        except ValueError as e:
            raise EventTypeError(f"Not a head event: {e}") from e
        if not isinstance(block, str) or not block:
            raise EventTypeError(f"Not a head event: bad block root {block!r}")
        return cls(slot=slot, block=block)
