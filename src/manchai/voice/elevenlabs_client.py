"""ElevenLabs API client for ManchAI voice synthesis.

Thin async wrapper around the ElevenLabs Text-to-Speech endpoint. One call
per line, one voice per call, with a language hint for the multilingual
model. Dry-run mode returns silent MP3 frames so the studio can be driven
end to end without credentials.

Usage:
    from manchai.voice import ElevenLabsClient

    client = ElevenLabsClient(api_key="your-key")
    result = await client.text_to_speech(
        text="We need to talk.",
        voice_id="21m00Tcm4TlvDq8ikWAM",
        language_code="en",
    )
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from ..core.config import is_placeholder_key

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "eleven_multilingual_v2"
DEFAULT_OUTPUT_FORMAT = "mp3_44100_128"

# Pro plan list price, one credit per character on the multilingual model
USD_PER_CHARACTER = 99 / 500_000


@dataclass
class SynthesisResult:
    """Audio returned for one line."""
    audio_data: bytes
    content_type: str               # e.g. "audio/mpeg"
    character_count: int
    voice_id: str
    latency_ms: Optional[float]     # None for dry runs
    is_dry_run: bool = False


@dataclass
class UsageStats:
    """Characters sent and requests made since the client was created."""
    total_characters: int = 0
    requests_made: int = 0
    requests_failed: int = 0

    def record_request(self, characters: int):
        self.total_characters += characters
        self.requests_made += 1

    def record_failure(self):
        self.requests_failed += 1

    @property
    def estimated_cost_usd(self) -> float:
        return self.total_characters * USD_PER_CHARACTER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_characters": self.total_characters,
            "requests_made": self.requests_made,
            "requests_failed": self.requests_failed,
            "estimated_cost_usd": round(self.estimated_cost_usd, 4),
        }


class ElevenLabsAPIError(Exception):
    """The TTS endpoint answered with a non-200 status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"ElevenLabs API error {status_code}: {message}")


class ElevenLabsConfigurationError(Exception):
    """ElevenLabs credentials are missing or a template placeholder."""


class ElevenLabsClient:
    """Client for the ElevenLabs Text-to-Speech API."""

    BASE_URL = "https://api.elevenlabs.io/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        dry_run: bool = False,
        default_model: str = DEFAULT_MODEL,
        output_format: str = DEFAULT_OUTPUT_FORMAT,
        timeout_s: float = 60.0,
    ):
        """Initialize the ElevenLabs client.

        Args:
            api_key: ElevenLabs API key. If None, will check ELEVENLABS_API_KEY env var.
            dry_run: If True, return silent audio without calling the API.
            default_model: ElevenLabs model id used for every request.
            output_format: Audio format requested from the API.
            timeout_s: Total request timeout in seconds.
        """
        self.api_key = api_key or os.environ.get("ELEVENLABS_API_KEY")
        self.dry_run = dry_run
        self.default_model = default_model
        self.output_format = output_format
        self.timeout_s = timeout_s
        self.usage_stats = UsageStats()

        self._session: Optional[aiohttp.ClientSession] = None

        if not self.api_key and not self.dry_run:
            logger.warning(
                "No ElevenLabs API key provided. Set ELEVENLABS_API_KEY or "
                "pass api_key parameter. Lines will have no audio."
            )

    @property
    def is_configured(self) -> bool:
        """Whether requests can be made (real key or dry-run)."""
        if self.dry_run:
            return True
        return bool(self.api_key) and not is_placeholder_key(self.api_key)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"xi-api-key": self.api_key},
                timeout=aiohttp.ClientTimeout(total=self.timeout_s),
            )
        return self._session

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def text_to_speech(
        self,
        text: str,
        voice_id: str,
        language_code: Optional[str] = None,
    ) -> SynthesisResult:
        """Synthesize ``text`` with one voice.

        Args:
            text: Line text
            voice_id: ElevenLabs voice ID
            language_code: ISO 639-1 hint for the multilingual model

        Returns:
            SynthesisResult with the raw audio and its content type

        Raises:
            ElevenLabsConfigurationError: Missing or placeholder API key
            ElevenLabsAPIError: Non-200 response
        """
        logger.info(
            f"TTS request: {len(text)} chars, voice={voice_id}, "
            f"model={self.default_model}, language={language_code}"
        )

        if self.dry_run:
            self.usage_stats.record_request(len(text))
            return SynthesisResult(
                audio_data=silent_mp3(spoken_duration_s(text)),
                content_type="audio/mpeg",
                character_count=len(text),
                voice_id=voice_id,
                latency_ms=None,
                is_dry_run=True,
            )

        if not self.api_key:
            raise ElevenLabsConfigurationError("ELEVENLABS_API_KEY environment variable is not set")
        if is_placeholder_key(self.api_key):
            raise ElevenLabsConfigurationError("ELEVENLABS_API_KEY is a placeholder value")

        session = await self._get_session()

        url = f"{self.BASE_URL}/text-to-speech/{voice_id}"
        payload: Dict[str, Any] = {"text": text, "model_id": self.default_model}
        if language_code:
            payload["language_code"] = language_code

        start_time = time.time()

        try:
            async with session.post(url, json=payload, params={"output_format": self.output_format}) as response:
                latency_ms = (time.time() - start_time) * 1000

                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"ElevenLabs API error: {response.status} - {error_text}")
                    self.usage_stats.record_failure()
                    raise ElevenLabsAPIError(response.status, error_text)

                audio_data = await response.read()
                content_type = response.headers.get("Content-Type", "audio/mpeg")
        except (aiohttp.ClientError, asyncio.TimeoutError):
            self.usage_stats.record_failure()
            raise

        self.usage_stats.record_request(len(text))
        logger.debug(f"Received {len(audio_data)} bytes ({content_type}) in {latency_ms:.0f}ms")

        return SynthesisResult(
            audio_data=audio_data,
            content_type=content_type,
            character_count=len(text),
            voice_id=voice_id,
            latency_ms=latency_ms,
        )

    def get_usage_stats(self) -> Dict[str, Any]:
        return self.usage_stats.to_dict()


def spoken_duration_s(text: str) -> float:
    """Rough speaking time for ``text`` at about 750 characters a minute."""
    return len(text) * 60 / 750


def silent_mp3(duration_s: float) -> bytes:
    """Zero-filled MPEG-1 Layer III frames (128kbps, 44.1kHz, ~26ms each)."""
    frame = bytes([0xFF, 0xFB, 0x90, 0x00]) + b"\x00" * 413
    return frame * max(1, int(duration_s * 1000 / 26))
