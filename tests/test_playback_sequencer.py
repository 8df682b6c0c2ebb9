"""Tests for the playback sequencer."""

import asyncio
import os
import time

import pytest

from conftest import FAKE_AUDIO_URL
from manchai.core.enums import PlaybackState
from manchai.core.scene_state import Line
from manchai.playback import players
from manchai.playback.players import (
    HeadlessAudioPlayer,
    PlaybackError,
    PydubAudioPlayer,
    TimedHandle,
    decode_data_url,
    is_playable_audio,
)
from manchai.playback.sequencer import CancellationToken, PlaybackSequencer


class FakeHandle:
    def __init__(self, mode: str):
        self.mode = mode
        self.stopped = False
        self._stop_event = asyncio.Event()

    async def wait(self):
        if self.mode == "ok":
            await asyncio.sleep(0.01)
        elif self.mode == "error":
            raise PlaybackError("decoder blew up")
        else:
            await self._stop_event.wait()

    def stop(self):
        self.stopped = True
        self._stop_event.set()


class FakePlayer:
    """Hands out handles whose behaviour follows ``modes`` in order."""

    def __init__(self, *modes: str):
        self.modes = list(modes)
        self.handles = []

    async def start(self, audio_url):
        mode = self.modes.pop(0) if self.modes else "ok"
        if mode == "start_error":
            raise PlaybackError("unsupported format")
        if mode == "start_crash":
            raise RuntimeError("encoder missing")
        if mode == "slow_start":
            await asyncio.sleep(5.0)
        handle = FakeHandle(mode)
        self.handles.append(handle)
        return handle


def make_lines(*audio_urls):
    return [
        Line(f"line-{i}", "actor-1", f"Text {i}", 1000 + i, 1, audio_url=url)
        for i, url in enumerate(audio_urls)
    ]


def make_sequencer(player, changes=None):
    return PlaybackSequencer(
        player,
        degraded_dwell_s=0.01,
        timeout_s=0.1,
        on_change=changes.append if changes is not None else None,
    )


async def wait_for_handle(player, count=1):
    while len(player.handles) < count:
        await asyncio.sleep(0.005)


class TestPlayableAudio:
    def test_empty_is_not_playable(self):
        assert not is_playable_audio("")

    def test_short_payload_is_not_playable(self):
        assert not is_playable_audio("data:audio/mpeg;base64,AAAA")

    def test_remote_url_is_not_playable(self):
        assert not is_playable_audio("https://example.com/line.mp3")

    def test_inlined_audio_is_playable(self):
        assert is_playable_audio(FAKE_AUDIO_URL)


class TestSequencer:
    """Tests for PlaybackSequencer.play."""

    @pytest.mark.asyncio
    async def test_line_without_audio_does_not_block(self):
        """Test that a silent middle line is shown and playback continues."""
        changes = []
        player = FakePlayer("ok", "ok")
        sequencer = make_sequencer(player, changes)
        lines = make_lines(FAKE_AUDIO_URL, "", FAKE_AUDIO_URL)

        result = await sequencer.play(lines, CancellationToken())

        assert result.visited == ["line-0", "line-1", "line-2"]
        assert result.degraded == ["line-1"]
        assert result.failed == []
        assert result.completed
        assert sequencer.snapshot.state is PlaybackState.IDLE
        assert sequencer.snapshot.current_line_id is None
        assert sequencer.active_handle is None
        assert len(player.handles) == 2

        shown = [c.current_line_id for c in changes if c.current_line_id]
        assert shown == ["line-0", "line-1", "line-2"]
        assert [c.degraded for c in changes if c.current_line_id == "line-1"] == [True]

    @pytest.mark.asyncio
    async def test_lines_play_in_order_one_at_a_time(self):
        player = FakePlayer("ok", "ok", "ok")
        sequencer = make_sequencer(player)
        playing = []

        original_start = player.start

        async def tracking_start(audio_url):
            playing.append(sequencer.snapshot.current_line_id)
            # The previous handle must already be released
            assert sequencer.active_handle is None
            return await original_start(audio_url)

        player.start = tracking_start
        await sequencer.play(make_lines(FAKE_AUDIO_URL, FAKE_AUDIO_URL, FAKE_AUDIO_URL), CancellationToken())

        assert playing == ["line-0", "line-1", "line-2"]

    @pytest.mark.asyncio
    async def test_abort_mid_sequence(self):
        player = FakePlayer("hang", "ok", "ok")
        sequencer = make_sequencer(player)
        token = CancellationToken()

        task = asyncio.create_task(
            sequencer.play(make_lines(FAKE_AUDIO_URL, FAKE_AUDIO_URL, FAKE_AUDIO_URL), token)
        )
        await wait_for_handle(player)
        assert sequencer.snapshot.state is PlaybackState.PLAYING

        token.cancel()
        result = await task

        assert result.state is PlaybackState.ABORTED
        assert not result.completed
        assert result.visited == ["line-0"]
        assert player.handles[0].stopped
        assert sequencer.active_handle is None
        assert sequencer.snapshot.state is PlaybackState.ABORTED

    @pytest.mark.asyncio
    async def test_abort_during_dwell(self):
        sequencer = PlaybackSequencer(FakePlayer(), degraded_dwell_s=5.0, timeout_s=0.1)
        token = CancellationToken()

        task = asyncio.create_task(sequencer.play(make_lines("", ""), token))
        await asyncio.sleep(0.02)
        token.cancel()
        result = await asyncio.wait_for(task, timeout=1.0)

        assert result.visited == ["line-0"]
        assert result.state is PlaybackState.ABORTED

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        sequencer = make_sequencer(FakePlayer())
        token = CancellationToken()
        token.cancel()

        result = await sequencer.play(make_lines(FAKE_AUDIO_URL), token)

        assert result.visited == []
        assert result.state is PlaybackState.ABORTED

    @pytest.mark.asyncio
    async def test_timeout_advances(self):
        player = FakePlayer("hang", "ok")
        sequencer = make_sequencer(player)

        result = await sequencer.play(make_lines(FAKE_AUDIO_URL, FAKE_AUDIO_URL), CancellationToken())

        assert result.failed == ["line-0"]
        assert result.visited == ["line-0", "line-1"]
        assert result.completed
        assert player.handles[0].stopped

    @pytest.mark.asyncio
    async def test_playback_error_advances(self):
        player = FakePlayer("error", "ok")
        sequencer = make_sequencer(player)

        result = await sequencer.play(make_lines(FAKE_AUDIO_URL, FAKE_AUDIO_URL), CancellationToken())

        assert result.failed == ["line-0"]
        assert result.completed

    @pytest.mark.asyncio
    async def test_start_error_advances(self):
        player = FakePlayer("start_error", "ok")
        sequencer = make_sequencer(player)

        result = await sequencer.play(make_lines(FAKE_AUDIO_URL, FAKE_AUDIO_URL), CancellationToken())

        assert result.failed == ["line-0"]
        assert result.visited == ["line-0", "line-1"]
        assert len(player.handles) == 1

    @pytest.mark.asyncio
    async def test_unexpected_start_failure_advances(self):
        player = FakePlayer("start_crash", "ok")
        sequencer = make_sequencer(player)

        result = await sequencer.play(make_lines(FAKE_AUDIO_URL, FAKE_AUDIO_URL), CancellationToken())

        assert result.failed == ["line-0"]
        assert result.visited == ["line-0", "line-1"]
        assert result.completed

    @pytest.mark.asyncio
    async def test_abort_while_audio_is_starting(self):
        player = FakePlayer("slow_start", "ok")
        sequencer = PlaybackSequencer(player, degraded_dwell_s=0.01, timeout_s=10.0)
        token = CancellationToken()

        task = asyncio.create_task(sequencer.play(make_lines(FAKE_AUDIO_URL, FAKE_AUDIO_URL), token))
        await asyncio.sleep(0.05)
        token.cancel()
        result = await asyncio.wait_for(task, timeout=1.0)

        assert result.state is PlaybackState.ABORTED
        assert result.visited == ["line-0"]
        assert player.handles == []
        assert sequencer.active_handle is None

    @pytest.mark.asyncio
    async def test_silent_line_dwells_for_degraded_duration(self):
        shown_at = {}

        def record(snapshot):
            if snapshot.current_line_id and snapshot.current_line_id not in shown_at:
                shown_at[snapshot.current_line_id] = time.monotonic()

        sequencer = PlaybackSequencer(
            FakePlayer("ok", "ok"), degraded_dwell_s=0.2, timeout_s=1.0, on_change=record
        )

        result = await sequencer.play(make_lines(FAKE_AUDIO_URL, "", FAKE_AUDIO_URL), CancellationToken())

        assert result.degraded == ["line-1"]
        # Small tolerance for the event loop's clock resolution
        assert 0.19 <= shown_at["line-2"] - shown_at["line-1"] < 1.0
        assert shown_at["line-1"] - shown_at["line-0"] < 0.19

    @pytest.mark.asyncio
    async def test_all_silent_lines_complete(self):
        sequencer = make_sequencer(FakePlayer())

        result = await sequencer.play(make_lines("", "", ""), CancellationToken())

        assert result.degraded == ["line-0", "line-1", "line-2"]
        assert result.completed

    @pytest.mark.asyncio
    async def test_concurrent_play_rejected(self):
        player = FakePlayer("hang")
        sequencer = make_sequencer(player)
        token = CancellationToken()

        task = asyncio.create_task(sequencer.play(make_lines(FAKE_AUDIO_URL), token))
        await wait_for_handle(player)

        with pytest.raises(RuntimeError):
            await sequencer.play(make_lines(FAKE_AUDIO_URL), CancellationToken())

        token.cancel()
        await task

    @pytest.mark.asyncio
    async def test_stop_active_releases_handle(self):
        player = FakePlayer("hang")
        sequencer = PlaybackSequencer(player, degraded_dwell_s=0.01, timeout_s=5.0)
        token = CancellationToken()

        task = asyncio.create_task(sequencer.play(make_lines(FAKE_AUDIO_URL), token))
        await wait_for_handle(player)

        sequencer.stop_active()
        assert sequencer.active_handle is None
        assert player.handles[0].stopped

        result = await asyncio.wait_for(task, timeout=1.0)
        assert result.visited == ["line-0"]


class TestDecodeDataUrl:
    def test_decode_mpeg(self):
        audio_format, data = decode_data_url(FAKE_AUDIO_URL)

        assert audio_format == "mp3"
        assert data[:4] == b"\xff\xfb\x90\x00"

    def test_decode_rejects_remote_url(self):
        with pytest.raises(PlaybackError):
            decode_data_url("https://example.com/a.mp3")

    def test_decode_rejects_bad_base64(self):
        with pytest.raises(PlaybackError):
            decode_data_url("data:audio/wav;base64,@@@@")

    @pytest.mark.asyncio
    async def test_headless_player_rejects_garbage(self):
        with pytest.raises(PlaybackError):
            await HeadlessAudioPlayer().start("not audio")

    @pytest.mark.asyncio
    async def test_timed_handle_stops_early(self):
        handle = TimedHandle(5.0)
        handle.stop()

        await asyncio.wait_for(handle.wait(), timeout=1.0)


class ExportFailingSegment:
    """Decoded audio whose WAV export fails, as with a missing encoder."""

    def __init__(self):
        self.paths = []

    def export(self, path, format):
        self.paths.append(path)
        raise RuntimeError("encoder missing")

    def __len__(self):
        return 1000


class TestPydubAudioPlayer:
    @pytest.fixture
    def failing_segment(self, monkeypatch):
        segment = ExportFailingSegment()

        async def fake_load_segment(audio_url):
            return segment

        monkeypatch.setattr(players, "load_segment", fake_load_segment)
        return segment

    @pytest.mark.asyncio
    async def test_export_failure_removes_temp_file(self, failing_segment):
        with pytest.raises(PlaybackError, match="encoder missing"):
            await PydubAudioPlayer(player_name="ffplay").start(FAKE_AUDIO_URL)

        assert len(failing_segment.paths) == 1
        assert not os.path.exists(failing_segment.paths[0])

    @pytest.mark.asyncio
    async def test_export_failure_does_not_stop_sequence(self, failing_segment):
        sequencer = make_sequencer(PydubAudioPlayer(player_name="ffplay"))

        result = await sequencer.play(make_lines(FAKE_AUDIO_URL, ""), CancellationToken())

        assert result.visited == ["line-0", "line-1"]
        assert result.failed == ["line-0"]
        assert result.degraded == ["line-1"]
        assert result.completed
