"""Beacon API access: block retrieval and the head event feed."""

from .exceptions import BeaconAPIError, BlockNotFoundError
from .client import RemoteBeaconClient
from .types import (
    AttesterSlashing,
    BeaconBlock,
    BeaconBlockHeader,
    HeadEvent,
    IndexedAttestation,
    ProposerSlashing,
    SignedBeaconBlockHeader,
)

__all__ = [
    "RemoteBeaconClient",
    "BeaconAPIError",
    "BlockNotFoundError",
    "AttesterSlashing",
    "BeaconBlock",
    "BeaconBlockHeader",
    "HeadEvent",
    "IndexedAttestation",
    "ProposerSlashing",
    "SignedBeaconBlockHeader",
]
