"""Client-side playback: audio players, the line sequencer and the studio session."""

from .players import HeadlessAudioPlayer, PlaybackError, PydubAudioPlayer, is_playable_audio
from .sequencer import CancellationToken, PlaybackResult, PlaybackSequencer, PlaybackSnapshot
from .studio import StudioSession

__all__ = [
    "HeadlessAudioPlayer",
    "PlaybackError",
    "PydubAudioPlayer",
    "is_playable_audio",
    "CancellationToken",
    "PlaybackResult",
    "PlaybackSequencer",
    "PlaybackSnapshot",
    "StudioSession",
]
