"""Audio players for inlined line audio.

A player turns a ``data:audio/...;base64,...`` reference into an
``AudioHandle``: ``await handle.wait()`` resolves when playback ends
naturally (or raises ``PlaybackError``), and ``handle.stop()`` halts it.
Both players decode with pydub, so a line that cannot be decoded fails
before anything is played.
"""

import asyncio
import base64
import binascii
import io
import logging
import os
import re
import tempfile
from typing import Optional, Protocol, Tuple

from pydub import AudioSegment
from pydub.utils import get_player_name

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:audio/([\w.+-]+);base64,(.+)$", re.DOTALL)
MIN_BASE64_LENGTH = 100

# data URL subtype -> pydub/ffmpeg format name
PYDUB_FORMATS = {
    "mpeg": "mp3",
    "mp3": "mp3",
    "wav": "wav",
    "x-wav": "wav",
    "ogg": "ogg",
    "webm": "webm",
    "aac": "aac",
    "flac": "flac",
}


class PlaybackError(Exception):
    """A line's audio could not be decoded or played."""


def is_playable_audio(audio_url: str) -> bool:
    """Whether ``audio_url`` is an inlined audio reference worth attempting."""
    if not audio_url or not audio_url.startswith("data:audio/"):
        return False
    match = DATA_URL_PATTERN.match(audio_url)
    return bool(match) and len(match.group(2)) >= MIN_BASE64_LENGTH


def decode_data_url(audio_url: str) -> Tuple[str, bytes]:
    """Split a data URL into (pydub format, raw bytes).

    Raises:
        PlaybackError: If the URL is not base64 inlined audio
    """
    match = DATA_URL_PATTERN.match(audio_url or "")
    if not match:
        raise PlaybackError(f"Invalid audio URL format: {(audio_url or '')[:30]}")
    subtype, payload = match.groups()
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PlaybackError(f"Invalid base64 audio payload: {e}") from e
    return PYDUB_FORMATS.get(subtype.lower(), subtype.lower()), data


async def load_segment(audio_url: str) -> AudioSegment:
    """Decode a data URL into a pydub ``AudioSegment`` off the event loop."""
    audio_format, data = decode_data_url(audio_url)
    try:
        return await asyncio.to_thread(AudioSegment.from_file, io.BytesIO(data), format=audio_format)
    except Exception as e:
        raise PlaybackError(f"Could not decode {audio_format} audio: {e}") from e


def remove_file(path: str) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


class AudioHandle(Protocol):
    async def wait(self) -> None:
        ...

    def stop(self) -> None:
        ...


class AudioPlayer(Protocol):
    async def start(self, audio_url: str) -> AudioHandle:
        ...


# ============================================================================
# Speaker output via ffplay
# ============================================================================


class FfplayHandle:
    """Playback of one temporary WAV file in an ffplay subprocess."""

    def __init__(self, process: asyncio.subprocess.Process, path: str):
        self._process = process
        self._path = path
        self._stopped = False

    async def wait(self) -> None:
        try:
            returncode = await self._process.wait()
        finally:
            remove_file(self._path)
        if returncode != 0 and not self._stopped:
            raise PlaybackError(f"Audio player exited with code {returncode}")

    def stop(self) -> None:
        self._stopped = True
        if self._process.returncode is None:
            self._process.terminate()


class PydubAudioPlayer:
    """Plays audio through the speakers with the ffplay binary pydub finds."""

    def __init__(self, player_name: Optional[str] = None):
        self.player_name = player_name or get_player_name()

    async def start(self, audio_url: str) -> FfplayHandle:
        segment = await load_segment(audio_url)

        with tempfile.NamedTemporaryFile("w+b", suffix=".wav", delete=False) as f:
            path = f.name

        try:
            await asyncio.to_thread(segment.export, path, format="wav")
            process = await asyncio.create_subprocess_exec(
                self.player_name,
                "-nodisp",
                "-autoexit",
                "-hide_banner",
                "-loglevel",
                "quiet",
                path,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except asyncio.CancelledError:
            remove_file(path)
            raise
        except Exception as e:
            remove_file(path)
            raise PlaybackError(f"Could not play audio via {self.player_name}: {e}") from e

        logger.debug(f"Playing {len(segment) / 1000:.1f}s of audio via {self.player_name}")
        return FfplayHandle(process, path)


# ============================================================================
# Headless playback (servers, CI, dry runs)
# ============================================================================


class TimedHandle:
    """Completes after a fixed duration unless stopped first."""

    def __init__(self, duration_s: float):
        self.duration_s = duration_s
        self._stopped = asyncio.Event()

    async def wait(self) -> None:
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.duration_s)
        except asyncio.TimeoutError:
            pass

    def stop(self) -> None:
        self._stopped.set()


class HeadlessAudioPlayer:
    """Decodes audio and waits out its duration without producing sound."""

    def __init__(self, speed: float = 1.0):
        self.speed = speed

    async def start(self, audio_url: str) -> TimedHandle:
        segment = await load_segment(audio_url)
        return TimedHandle(len(segment) / 1000 / self.speed)
