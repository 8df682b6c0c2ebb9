"""ManchAI Voice Module.

Speech synthesis for scene lines using the ElevenLabs API.

Usage:
    from manchai.voice import ElevenLabsClient, SpeechSynthesizer

    synthesizer = SpeechSynthesizer(ElevenLabsClient(dry_run=True))
    audio_url = await synthesizer.synthesize_line(
        "We need to talk.", "21m00Tcm4TlvDq8ikWAM", LanguageCode.EN
    )
"""

# ElevenLabs client
from .elevenlabs_client import (
    ElevenLabsClient,
    ElevenLabsAPIError,
    ElevenLabsConfigurationError,
    SynthesisResult,
    UsageStats,
)

# Line synthesis
from .speech_synthesizer import (
    SpeechSynthesizer,
    map_language_code,
    to_data_url,
)

__all__ = [
    "ElevenLabsClient",
    "ElevenLabsAPIError",
    "ElevenLabsConfigurationError",
    "SynthesisResult",
    "UsageStats",
    "SpeechSynthesizer",
    "map_language_code",
    "to_data_url",
]
