"""Director Agent backed by an OpenAI-compatible Chat Completions API.

Given the current scene and a director command, asks the model for the next
beat of dialogue as JSON, validates the reply against an explicit schema and
converts it to a typed ``DirectorOutput``. One attempt per turn: any failure
raises ``DirectorAgentError`` and the orchestrator decides what to do next.

Usage:
    agent = DirectorAgent(api_key="sk-...")
    try:
        output = await agent.generate(scene, "Make it horror")
    finally:
        await agent.close()
"""

import asyncio
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import BaseModel, Field, ValidationError

from ..core.config import is_placeholder_key
from ..core.enums import LanguageCode
from ..core.scene_state import SceneState
from .models import ActorUpdate, DirectorOutput, LineDirective, SceneMetadata
from .prompts.director_templates import DirectorPrompts, build_director_input

logger = logging.getLogger(__name__)

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")


class DirectorAgentError(Exception):
    """The Director Agent could not produce a usable response."""


class DirectorConfigurationError(DirectorAgentError):
    """The Director Agent credentials are missing or a template placeholder."""


# =============================================================================
# RESPONSE SCHEMA
# =============================================================================


class SceneMetadataSchema(BaseModel):
    title: str
    genre: str
    setting: str
    logline: str


class ActorUpdateSchema(BaseModel):
    id: str
    language: LanguageCode
    style: str = ""


class LineDirectiveSchema(BaseModel):
    actorId: str
    text: str = Field(min_length=1)
    language: Optional[LanguageCode] = None
    beatDelta: int = Field(default=0, ge=0, le=1)


class DirectorResponseSchema(BaseModel):
    """Shape the model is instructed to return."""

    sceneMetadata: SceneMetadataSchema
    updatedActors: List[ActorUpdateSchema] = Field(default_factory=list)
    newLines: List[LineDirectiveSchema]

    def to_output(self) -> DirectorOutput:
        """Convert to the internal typed form."""
        meta = self.sceneMetadata
        return DirectorOutput(
            scene_metadata=SceneMetadata(
                title=meta.title,
                genre=meta.genre,
                setting=meta.setting,
                logline=meta.logline,
            ),
            updated_actors=[
                ActorUpdate(id=u.id, language=u.language, style=u.style)
                for u in self.updatedActors
            ],
            new_lines=[
                LineDirective(
                    actor_id=line.actorId,
                    text=line.text,
                    beat_delta=line.beatDelta,
                    language=line.language,
                )
                for line in self.newLines
            ],
        )


def extract_json(content: str) -> Dict[str, Any]:
    """Parse the model's reply, unwrapping a ```json fenced block if needed.

    Raises:
        DirectorAgentError: If no JSON object can be recovered
    """
    if not isinstance(content, str):
        raise DirectorAgentError(f"Expected text content, got {type(content).__name__}")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        match = CODE_FENCE_PATTERN.search(content)
        if not match:
            raise DirectorAgentError(f"Failed to parse JSON response: {content[:500]}") from e
        logger.debug("Found JSON in code block")
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError as inner:
            raise DirectorAgentError(f"Failed to parse fenced JSON: {inner}") from inner

    if not isinstance(data, dict):
        raise DirectorAgentError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def parse_director_response(content: str) -> DirectorOutput:
    """Turn raw model content into a validated ``DirectorOutput``.

    Raises:
        DirectorAgentError: On unparseable JSON or a schema mismatch
    """
    data = extract_json(content)
    try:
        response = DirectorResponseSchema.model_validate(data)
    except ValidationError as e:
        raise DirectorAgentError(f"Invalid response structure from Director Agent: {e}") from e

    output = response.to_output()

    line_count = len(output.new_lines)
    if line_count < 3 or line_count > 6:
        logger.warning(f"Director Agent returned {line_count} lines (expected 3-6)")

    speakers = {line.actor_id for line in output.new_lines}
    if len(speakers) < 2 and line_count >= 3:
        logger.warning(
            f"Only {len(speakers)} actor(s) speaking in {line_count} lines - "
            "expected dialogue between multiple actors"
        )

    return output


class DirectorAgent:
    """Client for the chat-completions Director Agent."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.8,
        timeout_s: float = 60.0,
    ):
        """Initialize the Director Agent.

        Args:
            api_key: API key. If None, will check OPENAI_API_KEY env var.
            model: Chat model name.
            base_url: API root (anything speaking the Chat Completions protocol).
            temperature: Sampling temperature.
            timeout_s: Total request timeout in seconds.
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.timeout_s = timeout_s

        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=aiohttp.ClientTimeout(total=self.timeout_s),
            )
        return self._session

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def _check_credentials(self) -> None:
        if not self.api_key:
            raise DirectorConfigurationError("OPENAI_API_KEY environment variable is not set")
        if is_placeholder_key(self.api_key):
            raise DirectorConfigurationError("OPENAI_API_KEY is a placeholder value")

    async def _request_completion(self, messages: List[Dict[str, str]]) -> str:
        """POST one chat completion and return the message content."""
        session = await self._get_session()
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }

        try:
            async with session.post(url, json=payload) as response:
                logger.debug(f"Director Agent response status: {response.status}")
                if response.status != 200:
                    error_text = await response.text()
                    raise DirectorAgentError(f"Chat API error {response.status}: {error_text[:500]}")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DirectorAgentError(f"Chat API request failed: {e}") from e
        except ValueError as e:
            raise DirectorAgentError(f"Chat API returned invalid JSON: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise DirectorAgentError("No content in chat completion response") from e
        if not content:
            raise DirectorAgentError("No content in chat completion response")
        if not isinstance(content, str):
            raise DirectorAgentError(f"Expected text content, got {type(content).__name__}")
        return content

    async def generate(self, scene: Optional[SceneState], command: str) -> DirectorOutput:
        """Ask for the next beat of the scene.

        Args:
            scene: Current scene, or None when starting fresh
            command: Director command from the user

        Returns:
            Validated DirectorOutput

        Raises:
            DirectorConfigurationError: Missing or placeholder API key
            DirectorAgentError: Transport, HTTP, parse or schema failure
        """
        self._check_credentials()

        user_prompt = build_director_input(scene, command)
        logger.info(f"Director Agent request: model={self.model}, command={command!r}")
        logger.debug(f"User prompt ({len(user_prompt)} chars): {user_prompt[:200]}...")

        content = await self._request_completion(
            [
                {"role": "system", "content": DirectorPrompts.SYSTEM},
                {"role": "user", "content": user_prompt},
            ]
        )
        logger.debug(f"Director Agent content ({len(content)} chars): {content[:300]}...")

        return parse_director_response(content)
