"""Enumerations for scene data and playback states."""

from enum import Enum


class ActorRole(Enum):
    """Dramatic function an actor plays in the scene."""

    PROTAGONIST = "protagonist"
    ANTAGONIST = "antagonist"
    SUPPORTING = "supporting"
    NARRATOR = "narrator"
    ENSEMBLE = "ensemble"


class LanguageCode(Enum):
    """Language an actor speaks (``mixed`` is code-mixed Hinglish)."""

    EN = "en"
    ES = "es"
    FR = "fr"
    DE = "de"
    IT = "it"
    JA = "ja"
    ZH = "zh"
    KO = "ko"
    HI = "hi"
    MIXED = "mixed"


class PlaybackState(Enum):
    """Playback sequencer states."""

    IDLE = "idle"
    PLAYING = "playing"
    ABORTED = "aborted"
