"""Studio session: the director's console around turns and playback.

Holds the current scene on the client side, runs at most one turn at a time,
plays each turn's lines, and in auto-continue mode issues a synthetic
"continue" command after playback finishes. A manual command or a stop
always supersedes a pending auto-continue (last writer wins): every command
bumps a generation counter, and stale work checks it before acting.
"""

import asyncio
import logging
from typing import Callable, Optional

from ..core.enums import PlaybackState
from ..core.scene_state import SceneState
from ..core.turn_orchestrator import TurnError, TurnOrchestrator, TurnResult
from .sequencer import CancellationToken, PlaybackResult, PlaybackSequencer

logger = logging.getLogger(__name__)

CONTINUE_COMMAND = (
    "Continue the conversation naturally. Have the actors respond to each other "
    "and keep the dialogue going."
)
STOP_KEYWORDS = ("stop", "end", "pause")
TURN_FAILED_NOTICE = "Failed to send direction. Please try again."


def is_stop_command(command: str) -> bool:
    lowered = command.lower()
    return any(keyword in lowered for keyword in STOP_KEYWORDS)


class StudioSession:
    """Drives turns and playback for one scene."""

    def __init__(
        self,
        orchestrator: TurnOrchestrator,
        sequencer: PlaybackSequencer,
        auto_continue: bool = True,
        auto_continue_delay_s: float = 2.0,
        on_notice: Optional[Callable[[str], None]] = None,
    ):
        self.orchestrator = orchestrator
        self.sequencer = sequencer
        self.auto_continue = auto_continue
        self.auto_continue_delay_s = auto_continue_delay_s
        self.on_notice = on_notice

        self.scene: Optional[SceneState] = None
        self.is_loading = False
        self.last_playback: Optional[PlaybackResult] = None

        self._turn_lock = asyncio.Lock()
        self._token = CancellationToken()
        self._generation = 0
        self._playback_task: Optional[asyncio.Task] = None
        self._auto_continue_task: Optional[asyncio.Task] = None

    @property
    def is_playing(self) -> bool:
        return self.sequencer.snapshot.state is PlaybackState.PLAYING

    @property
    def status_text(self) -> str:
        if self.is_loading:
            return "Director is thinking…"
        if self.is_playing:
            return "Actors performing…"
        return ""

    @property
    def auto_continue_pending(self) -> bool:
        return self._auto_continue_task is not None and not self._auto_continue_task.done()

    def _notify(self, message: str) -> None:
        if self.on_notice:
            self.on_notice(message)

    def _cancel_auto_continue(self) -> None:
        task = self._auto_continue_task
        if task is None or task is asyncio.current_task():
            return
        self._auto_continue_task = None
        if not task.done():
            task.cancel()

    async def _abort_playback(self) -> None:
        self._token.cancel()
        self.sequencer.stop_active()
        task = self._playback_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    def stop(self) -> None:
        """Halt playback now and turn auto-continue off."""
        self._generation += 1
        self.auto_continue = False
        self._cancel_auto_continue()
        self._token.cancel()
        self.sequencer.stop_active()
        logger.info("Playback stopped by director")

    def toggle_auto_continue(self) -> bool:
        """Flip auto-continue; any pending continuation is dropped."""
        self.auto_continue = not self.auto_continue
        self._cancel_auto_continue()
        return self.auto_continue

    async def send_direction(self, command: str) -> Optional[TurnResult]:
        """Handle one director command.

        Stop keywords halt playback. Anything else aborts current playback,
        runs a turn and starts playing its lines.

        Returns:
            The TurnResult, or None for stop commands, failed or superseded turns
        """
        if is_stop_command(command):
            self.stop()
            return None

        self._generation += 1
        generation = self._generation

        # Manual commands take priority over anything already queued
        self._cancel_auto_continue()
        await self._abort_playback()

        async with self._turn_lock:
            if generation != self._generation:
                logger.debug(f"Command superseded before it ran: {command[:50]!r}")
                return None

            self.is_loading = True
            try:
                result = await self.orchestrator.process_turn(self.scene, command)
            except TurnError as e:
                logger.error(f"Error sending direction: {e}")
                self._notify(TURN_FAILED_NOTICE)
                return None
            finally:
                self.is_loading = False

            self.scene = result.scene_state

        if generation != self._generation:
            return result

        self._token = CancellationToken()
        self._playback_task = asyncio.create_task(
            self._run_playback(result, self._token, generation)
        )
        return result

    async def _run_playback(self, result: TurnResult, token: CancellationToken, generation: int) -> PlaybackResult:
        playback = await self.sequencer.play(result.new_lines, token)
        self.last_playback = playback

        if playback.completed and self.auto_continue and generation == self._generation:
            self._auto_continue_task = asyncio.create_task(self._auto_continue_after_pause(generation))
        return playback

    async def _auto_continue_after_pause(self, generation: int) -> None:
        await asyncio.sleep(self.auto_continue_delay_s)

        if (
            self.auto_continue
            and generation == self._generation
            and self.scene is not None
            and not self.is_loading
        ):
            logger.info("Auto-continue: triggering next turn")
            await self.send_direction(CONTINUE_COMMAND)
        else:
            logger.debug("Auto-continue skipped - superseded or disabled")

    async def wait_until_idle(self) -> None:
        """Wait for playback and any auto-continue chain to settle."""
        while True:
            pending = [
                task
                for task in (self._playback_task, self._auto_continue_task)
                if task is not None and not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        self.stop()
        await self.wait_until_idle()
