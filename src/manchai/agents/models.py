"""Typed director output.

Whatever produces dialogue (the remote Director Agent or the local fallback)
hands the orchestrator a ``DirectorOutput``. Raw JSON never travels further
than the agent that parsed it.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..core.enums import LanguageCode


@dataclass(frozen=True)
class SceneMetadata:
    """Replacement title/genre/setting/logline for the scene."""

    title: str
    genre: str
    setting: str
    logline: str


@dataclass(frozen=True)
class ActorUpdate:
    """Patch for an existing actor; ids not in the roster are ignored."""

    id: str
    language: LanguageCode
    style: str


@dataclass(frozen=True)
class LineDirective:
    """Instruction to create one line.

    ``beat_delta`` is 1 when this line opens a new beat, else 0.
    ``language`` is the language the line is written in; None means the
    actor's own language.
    """

    actor_id: str
    text: str
    beat_delta: int = 0
    language: Optional[LanguageCode] = None


@dataclass
class DirectorOutput:
    """Everything a generator returns for one turn."""

    scene_metadata: Optional[SceneMetadata] = None
    updated_actors: List[ActorUpdate] = field(default_factory=list)
    new_lines: List[LineDirective] = field(default_factory=list)
    is_fallback: bool = False
