"""Core scene data structures.

A ``SceneState`` is the complete snapshot passed between the client and the
turn orchestrator on every request. All three types are frozen: a turn never
edits a scene in place, it builds the next one with ``dataclasses.replace``.
"""

import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from .enums import ActorRole, LanguageCode


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Actor:
    """A cast member with a fixed voice."""

    id: str  # e.g., "actor-1"
    name: str  # e.g., "Alex"
    role: ActorRole
    language: LanguageCode
    voice_id: str  # ElevenLabs voice identifier
    style: str  # e.g., "dramatic", "comedic", "neutral"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "language": self.language.value,
            "voiceId": self.voice_id,
            "style": self.style,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Actor":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            role=ActorRole(data["role"]),
            language=LanguageCode(data["language"]),
            voice_id=str(data["voiceId"]),
            style=str(data.get("style", "")),
        )


@dataclass(frozen=True)
class Line:
    """A single utterance.

    ``audio_url`` is empty until synthesis succeeds and is then a
    self-contained ``data:audio/...;base64,...`` reference.
    """

    id: str  # e.g., "line-1718000000000-0"
    actor_id: str
    text: str
    timestamp: int  # Unix milliseconds
    beat_index: int
    audio_url: str = ""

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_url)

    def with_audio(self, audio_url: str) -> "Line":
        """Return a copy carrying synthesized audio."""
        return replace(self, audio_url=audio_url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "actorId": self.actor_id,
            "text": self.text,
            "timestamp": self.timestamp,
            "beatIndex": self.beat_index,
            "audioUrl": self.audio_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Line":
        beat_index = int(data["beatIndex"])
        if beat_index < 0:
            raise ValueError(f"Negative beatIndex on line {data.get('id')}")
        return cls(
            id=str(data["id"]),
            actor_id=str(data["actorId"]),
            text=str(data["text"]),
            timestamp=int(data["timestamp"]),
            beat_index=beat_index,
            audio_url=str(data.get("audioUrl") or ""),
        )


@dataclass(frozen=True)
class SceneState:
    """Aggregate root for a scene: metadata, cast and the append-only script."""

    id: str
    title: str
    genre: str
    setting: str
    logline: str
    summary: str
    actors: Tuple[Actor, ...] = ()
    lines: Tuple[Line, ...] = ()
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    @property
    def current_beat(self) -> int:
        """Highest beat index reached so far (0 for an empty script)."""
        return max([line.beat_index for line in self.lines] + [0])

    def get_actor(self, actor_id: str) -> Optional[Actor]:
        for actor in self.actors:
            if actor.id == actor_id:
                return actor
        return None

    def actor_map(self) -> Dict[str, Actor]:
        return {actor.id: actor for actor in self.actors}

    def validate(self) -> None:
        """Check scene invariants.

        Raises:
            ValueError: On duplicate actor ids, lines referencing unknown
                actors, or a decreasing beat sequence.
        """
        actor_ids = [actor.id for actor in self.actors]
        if len(set(actor_ids)) != len(actor_ids):
            raise ValueError(f"Duplicate actor ids in scene {self.id}")

        known = set(actor_ids)
        previous_beat = 0
        for line in self.lines:
            if line.actor_id not in known:
                raise ValueError(f"Line {line.id} references unknown actor {line.actor_id}")
            if line.beat_index < previous_beat:
                raise ValueError(f"Line {line.id} moves beat backwards ({line.beat_index} < {previous_beat})")
            previous_beat = line.beat_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "genre": self.genre,
            "setting": self.setting,
            "logline": self.logline,
            "summary": self.summary,
            "actors": [actor.to_dict() for actor in self.actors],
            "lines": [line.to_dict() for line in self.lines],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SceneState":
        """Build a validated scene from its JSON form.

        Raises:
            ValueError: If fields are missing or malformed, or invariants fail.
        """
        try:
            scene = cls(
                id=str(data["id"]),
                title=str(data.get("title", "")),
                genre=str(data.get("genre", "")),
                setting=str(data.get("setting", "")),
                logline=str(data.get("logline", "")),
                summary=str(data.get("summary", "")),
                actors=tuple(Actor.from_dict(a) for a in data.get("actors", [])),
                lines=tuple(Line.from_dict(ld) for ld in data.get("lines", [])),
                created_at=int(data["createdAt"]),
                updated_at=int(data["updatedAt"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed scene state: {e}") from e

        scene.validate()
        return scene


# ============================================================================
# Default roster
# ============================================================================

# ElevenLabs premade voices: Rachel, Adam, Bella
DEFAULT_ACTORS: Tuple[Actor, ...] = (
    Actor(
        id="actor-1",
        name="Alex",
        role=ActorRole.PROTAGONIST,
        language=LanguageCode.EN,
        voice_id="21m00Tcm4TlvDq8ikWAM",
        style="dramatic",
    ),
    Actor(
        id="actor-2",
        name="Sam",
        role=ActorRole.ANTAGONIST,
        language=LanguageCode.EN,
        voice_id="pNInz6obpgDQGcFmaJgB",
        style="neutral",
    ),
    Actor(
        id="actor-3",
        name="Jordan",
        role=ActorRole.SUPPORTING,
        language=LanguageCode.EN,
        voice_id="EXAVITQu4vr4xnSDxMaL",
        style="comedic",
    ),
)


def create_default_scene(now: Optional[int] = None) -> SceneState:
    """Create a fresh scene with the default three-actor roster and no lines."""
    now = now if now is not None else now_ms()
    return SceneState(
        id=f"scene-{now}",
        title="Untitled Scene",
        genre="drama",
        setting="A neutral location",
        logline="A scene begins.",
        summary="Initial scene setup. Ready for dialogue.",
        actors=DEFAULT_ACTORS,
        lines=(),
        created_at=now,
        updated_at=now,
    )
