"""Exceptions for the beacon module."""

from ..exceptions import FetchError


class BeaconAPIError(FetchError):
    """Error from Beacon API."""

    def __init__(self, block_id: str, status: int, message: str):
        self.status = status
        super().__init__(block_id, f"Beacon API error {status}: {message}")


class BlockNotFoundError(BeaconAPIError):
    """Block not found error."""

    def __init__(self, block_id: str):
        super().__init__(block_id, 404, f"Block not found: {block_id}")
