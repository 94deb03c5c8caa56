"""Reactions to detected slashings: external scripts and metrics."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..exceptions import ScriptError
from ..metrics import SlashingMetrics
from .detector import SlashingEvent, SlashingKind

logger = logging.getLogger(__name__)


@dataclass
class NotificationOutcome:
    """What happened when a slashing event was notified."""

    event: SlashingEvent
    script_ran: bool = False
    script_error: Optional[ScriptError] = None
    counted: bool = False

    @property
    def ok(self) -> bool:
        return self.script_error is None


class Notifier:
    """Runs the configured script and bumps the slashings counter per event.

    Both reactions are optional and independent: a failing script does not
    stop the counter being incremented, and neither failure escapes notify().
    """

    def __init__(
        self,
        attester_slashed_script: str = "",
        proposer_slashed_script: str = "",
        metrics: Optional[SlashingMetrics] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.scripts = {
            SlashingKind.ATTESTER: attester_slashed_script,
            SlashingKind.PROPOSER: proposer_slashed_script,
        }
        self.metrics = metrics
        self.log = log or logger

    async def notify(
        self,
        event: SlashingEvent,
        slot: Optional[int] = None,
        block_root: str = "",
    ) -> NotificationOutcome:
        outcome = NotificationOutcome(event=event)
        context = f"validator_index={event.validator_index} slot={slot} block_root={block_root}"
        self.log.info(f"Validator slashed ({event.kind.value}): {context}")

        script = self.scripts.get(event.kind)
        if script:
            outcome.script_ran = True
            try:
                await self.run_script(script, event.validator_index)
            except ScriptError as e:
                outcome.script_error = e
                self.log.error(f"Failed to run script: {e} ({context})")
                if e.output:
                    self.log.warning(f"Script output: {e.output}")

        if self.metrics is not None:
            try:
                self.metrics.record_slashing(event.validator_index)
                outcome.counted = True
            except Exception as e:
                self.log.error(f"Failed to record slashing metric: {e} ({context})")

        return outcome

    async def on_attester_slashed(self, index: int) -> str:
        """Run the attester slashing script for a validator, if configured."""
        return await self._run_for(SlashingKind.ATTESTER, index)

    async def on_proposer_slashed(self, index: int) -> str:
        """Run the proposer slashing script for a validator, if configured."""
        return await self._run_for(SlashingKind.PROPOSER, index)

    async def _run_for(self, kind: SlashingKind, index: int) -> str:
        script = self.scripts.get(kind)
        if not script:
            return ""
        return await self.run_script(script, index)

    async def run_script(self, script: str, index: int) -> str:
        """Run a script with the validator index as its only argument.

        Returns:
            Combined stdout and stderr of the script.

        Raises:
            ScriptError: if the script cannot be started or exits non-zero.
        """
        self.log.debug(f"Calling script {script} for validator {index}")
        try:
            proc = await asyncio.create_subprocess_exec(
                script,
                str(index),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ScriptError(script, str(e)) from e

        stdout, _ = await proc.communicate()
        output = stdout.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            raise ScriptError(
                script,
                f"exit status {proc.returncode}",
                output=output,
                returncode=proc.returncode,
            )
        return output
