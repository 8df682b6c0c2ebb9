"""Playback Sequencer: plays a turn's lines one at a time, in order.

    IDLE ──play()──→ PLAYING ──all lines visited──→ IDLE
                        └──────token cancelled─────→ ABORTED

Each line either plays to completion, times out, fails, or (when it has no
usable audio) is highlighted for a fixed dwell. A failure never blocks the
next line. The cancellation token is checked before every line and raced
against every wait (decoding included), and the in-flight audio handle is
stopped on abort.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, List, Optional, Sequence

from ..core.enums import PlaybackState
from ..core.scene_state import Line
from .players import AudioHandle, AudioPlayer, is_playable_audio

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot abort signal shared by a playback run and its owner."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Observable sequencer state after a transition."""

    state: PlaybackState = PlaybackState.IDLE
    current_line_id: Optional[str] = None
    degraded: bool = False  # Current line is shown without sound
    position: int = 0
    total: int = 0


@dataclass
class PlaybackResult:
    """What happened during one ``play()`` run."""

    state: PlaybackState = PlaybackState.IDLE
    visited: List[str] = field(default_factory=list)
    degraded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.state is PlaybackState.IDLE


class PlaybackSequencer:
    """Sequential player for one turn's lines.

    Owns the single "currently playing" audio handle; it is replaced per
    line and released before ``play()`` returns.
    """

    def __init__(
        self,
        player: AudioPlayer,
        degraded_dwell_s: float = 1.5,
        timeout_s: float = 30.0,
        on_change: Optional[Callable[[PlaybackSnapshot], None]] = None,
    ):
        """Initialize the sequencer.

        Args:
            player: Audio player producing awaitable handles
            degraded_dwell_s: How long a line without audio (or whose audio
                failed) stays highlighted before advancing
            timeout_s: Upper bound on one line's playback
            on_change: Called with every new snapshot
        """
        self.player = player
        self.degraded_dwell_s = degraded_dwell_s
        self.timeout_s = timeout_s
        self.on_change = on_change

        self._snapshot = PlaybackSnapshot()
        self._active_handle: Optional[AudioHandle] = None

    @property
    def snapshot(self) -> PlaybackSnapshot:
        return self._snapshot

    @property
    def active_handle(self) -> Optional[AudioHandle]:
        return self._active_handle

    def _transition(self, **changes) -> PlaybackSnapshot:
        self._snapshot = replace(self._snapshot, **changes)
        if self.on_change:
            self.on_change(self._snapshot)
        return self._snapshot

    def stop_active(self) -> None:
        """Stop and release the in-flight audio, if any."""
        handle, self._active_handle = self._active_handle, None
        if handle is not None:
            handle.stop()

    async def _race(self, awaitable: Awaitable, token: CancellationToken, timeout: Optional[float]) -> str:
        """Wait for ``awaitable``, the token or the timeout, whichever is first.

        Returns:
            "done", "cancelled" or "timeout"

        Raises:
            Whatever ``awaitable`` raised, if it finished first
        """
        work = asyncio.ensure_future(awaitable)
        abort = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({work, abort}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (work, abort):
                if not task.done():
                    task.cancel()
            await asyncio.gather(work, abort, return_exceptions=True)

        if work in done:
            work.result()
            return "done"
        if abort in done:
            return "cancelled"
        return "timeout"

    async def _dwell(self, token: CancellationToken) -> bool:
        """Hold the current line for the degraded dwell. False if aborted."""
        return await self._race(asyncio.sleep(self.degraded_dwell_s), token, None) == "done"

    async def _play_line(self, line: Line, token: CancellationToken) -> str:
        starting = asyncio.ensure_future(self.player.start(line.audio_url))
        try:
            outcome = await self._race(starting, token, self.timeout_s)
        except Exception as e:
            logger.error(f"Could not start audio for line {line.id}: {e}")
            return "error"
        if outcome != "done":
            # start() can finish in the same tick the wait was abandoned
            if starting.done() and not starting.cancelled() and starting.exception() is None:
                starting.result().stop()
            return outcome

        self._active_handle = starting.result()
        try:
            return await self._race(self._active_handle.wait(), token, self.timeout_s)
        except Exception as e:
            logger.error(f"Audio playback error for line {line.id}: {e}")
            return "error"
        finally:
            self.stop_active()

    async def play(self, lines: Sequence[Line], token: CancellationToken) -> PlaybackResult:
        """Play ``lines`` in order until done or aborted.

        Args:
            lines: Lines from one turn, in creation order
            token: Abort signal; cancelling it halts playback immediately

        Returns:
            PlaybackResult; ``state`` is IDLE after a full run, ABORTED otherwise
        """
        if self._snapshot.state is PlaybackState.PLAYING:
            raise RuntimeError("Playback already in progress")

        result = PlaybackResult()
        self._transition(state=PlaybackState.PLAYING, current_line_id=None, position=0, total=len(lines))

        try:
            for position, line in enumerate(lines):
                if token.cancelled:
                    break

                playable = is_playable_audio(line.audio_url)
                self._transition(current_line_id=line.id, degraded=not playable, position=position)
                result.visited.append(line.id)

                if not playable:
                    logger.warning(f"No playable audio for line {line.id} - text: {line.text[:50]!r}")
                    result.degraded.append(line.id)
                    if not await self._dwell(token):
                        break
                    continue

                outcome = await self._play_line(line, token)
                if outcome == "cancelled":
                    break
                if outcome in ("timeout", "error"):
                    if outcome == "timeout":
                        logger.error(f"Timeout waiting for audio to play: {line.id}")
                    result.failed.append(line.id)
                    # Leave the text up briefly before moving on
                    self._transition(degraded=True)
                    if not await self._dwell(token):
                        break
        finally:
            self.stop_active()
            final_state = PlaybackState.ABORTED if token.cancelled else PlaybackState.IDLE
            self._transition(state=final_state, current_line_id=None, degraded=False)
            result.state = final_state

        logger.debug(
            f"Playback {result.state.value}: {len(result.visited)}/{len(lines)} lines, "
            f"{len(result.degraded)} degraded, {len(result.failed)} failed"
        )
        return result
