"""Speech Synthesizer: turns a line of text into a playable audio reference.

The result is a ``data:`` URL with the audio inlined as base64, so the client
can play it without any further network access.
"""

import base64
import logging
from typing import Dict

from ..core.enums import LanguageCode
from .elevenlabs_client import ElevenLabsClient, SynthesisResult

logger = logging.getLogger(__name__)

# Hindi and Hinglish text go through the multilingual model with an English hint
ELEVENLABS_LANGUAGE_CODES: Dict[LanguageCode, str] = {
    LanguageCode.EN: "en",
    LanguageCode.ES: "es",
    LanguageCode.FR: "fr",
    LanguageCode.DE: "de",
    LanguageCode.IT: "it",
    LanguageCode.JA: "ja",
    LanguageCode.ZH: "zh",
    LanguageCode.KO: "ko",
    LanguageCode.HI: "en",
    LanguageCode.MIXED: "en",
}


def map_language_code(language: LanguageCode) -> str:
    """ElevenLabs language hint for a studio language."""
    return ELEVENLABS_LANGUAGE_CODES.get(language, "en")


def audio_format_from_content_type(content_type: str) -> str:
    """Subtype used in the data URL (``audio/mpeg`` and mp3 variants → ``mpeg``)."""
    content_type = (content_type or "audio/mpeg").split(";")[0].strip().lower()
    if "mp3" in content_type or "mpeg" in content_type:
        return "mpeg"
    _, _, subtype = content_type.partition("/")
    return subtype or "mpeg"


def to_data_url(result: SynthesisResult) -> str:
    """Inline synthesized audio as ``data:audio/<fmt>;base64,<payload>``."""
    audio_format = audio_format_from_content_type(result.content_type)
    payload = base64.b64encode(result.audio_data).decode("ascii")
    return f"data:audio/{audio_format};base64,{payload}"


class SpeechSynthesizer:
    """Synthesizes one line at a time through ElevenLabs.

    No retries: a failure propagates to the caller, which treats it as
    "no audio for this line".
    """

    def __init__(self, client: ElevenLabsClient):
        self.client = client

    async def synthesize_line(self, text: str, voice_id: str, language: LanguageCode) -> str:
        """Synthesize ``text`` in ``voice_id`` and return a data URL.

        Raises:
            ElevenLabsConfigurationError: Missing or placeholder API key
            ElevenLabsAPIError: The API rejected the request
            aiohttp.ClientError: Transport failure
        """
        result = await self.client.text_to_speech(
            text=text,
            voice_id=voice_id,
            language_code=map_language_code(language),
        )
        data_url = to_data_url(result)
        logger.debug(f"Synthesized {len(result.audio_data)} bytes for voice {voice_id} ({len(data_url)} char URL)")
        return data_url

    async def close(self):
        await self.client.close()
