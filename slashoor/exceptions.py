"""Exceptions for slashoor."""

from typing import Optional


class SlashoorError(Exception):
    """Base class for slashoor errors."""


class ConfigError(SlashoorError):
    """Invalid or missing configuration."""


class FetchError(SlashoorError):
    """A block could not be obtained from the beacon node."""

    def __init__(self, block_id: str, message: str):
        self.block_id = block_id
        self.message = message
        super().__init__(f"Failed to fetch block {block_id}: {message}")


class SubscriptionError(SlashoorError):
    """The beacon node event feed could not be subscribed to."""


class EventTypeError(SlashoorError):
    """An event feed notification did not have the expected shape."""


class ScriptError(SlashoorError):
    """An external script failed to run or exited non-zero."""

    def __init__(self, script: str, message: str, output: str = "", returncode: Optional[int] = None):
        self.script = script
        self.output = output
        self.returncode = returncode
        super().__init__(f"Script {script} failed: {message}")


class MalformedSlashingError(SlashoorError):
    """A slashing record in a block could not be interpreted."""

    def __init__(self, kind: str, position: int, message: str):
        self.kind = kind
        self.position = position
        super().__init__(f"Malformed {kind} slashing #{position}: {message}")
