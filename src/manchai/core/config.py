"""Studio configuration dataclass.

Values default to the behaviour of the hosted studio; ``from_env`` reads the
credentials and model overrides from the environment (call ``load_dotenv()``
first to pick up a ``.env`` file).
"""

import os
from dataclasses import dataclass
from typing import Optional

# Fragments that only appear in template credentials (".env.example" values).
PLACEHOLDER_MARKERS = ("placeholder", "your_", "your-", "changeme", "xxxx", "<", "sk-...")


def is_placeholder_key(value: Optional[str]) -> bool:
    """Return True if ``value`` looks like a template credential, not a real key."""
    if value is None:
        return False
    lowered = value.strip().lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class StudioConfig:
    """Configuration for the improv studio."""

    # ===========================================
    # DIRECTOR AGENT (chat completions)
    # ===========================================
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    director_temperature: float = 0.8
    director_timeout_s: float = 60.0
    # Primary responses longer than this are truncated
    max_lines_per_turn: int = 6

    # ===========================================
    # SPEECH SYNTHESIS (ElevenLabs)
    # ===========================================
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_model: str = "eleven_multilingual_v2"
    elevenlabs_output_format: str = "mp3_44100_128"
    # Dry-run returns silent mock MP3 instead of calling the API
    tts_dry_run: bool = False

    # ===========================================
    # PLAYBACK
    # ===========================================
    degraded_dwell_s: float = 1.5  # Highlight time for lines without audio
    playback_timeout_s: float = 30.0
    auto_continue: bool = True
    auto_continue_delay_s: float = 2.0

    # ===========================================
    # SERVER
    # ===========================================
    host: str = "127.0.0.1"
    port: int = 8000

    # ===========================================
    # LOGGING
    # ===========================================
    verbose: bool = False
    save_logs: bool = False

    @property
    def director_enabled(self) -> bool:
        """Whether a Director Agent key was supplied at all."""
        return bool(self.openai_api_key)

    @property
    def tts_enabled(self) -> bool:
        return bool(self.elevenlabs_api_key) or self.tts_dry_run

    @classmethod
    def from_env(cls, **overrides) -> "StudioConfig":
        """Build a config from environment variables.

        Args:
            **overrides: Field values that take precedence over the environment

        Returns:
            StudioConfig
        """
        values = dict(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", cls.openai_model),
            openai_base_url=os.getenv("OPENAI_BASE_URL", cls.openai_base_url),
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY") or None,
            elevenlabs_model=os.getenv("ELEVENLABS_MODEL", cls.elevenlabs_model),
            tts_dry_run=_env_flag("MANCHAI_TTS_DRY_RUN"),
            auto_continue=_env_flag("MANCHAI_AUTO_CONTINUE", cls.auto_continue),
            verbose=_env_flag("MANCHAI_VERBOSE"),
        )
        values.update(overrides)
        return cls(**values)
