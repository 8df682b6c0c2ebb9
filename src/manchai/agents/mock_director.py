"""Fallback director used when the Director Agent cannot answer.

Produces short, deterministic placeholder dialogue so a turn always has
something to say. Never raises.
"""

from typing import List, Optional

from ..core.scene_state import SceneState
from .models import DirectorOutput, LineDirective, SceneMetadata

GENRES = ("drama", "comedy", "thriller", "sci-fi", "horror", "romance")

MIN_LINES = 2
MAX_LINES = 4

# (keywords, opening line, reply line); first match wins
MOOD_PAIRS = (
    (("angry", "mad"), "I'm really upset about this!", "You have no right to be angry!"),
    (("happy", "excited"), "This is amazing news!", "I'm so happy to hear that!"),
    (("sad",), "I can't believe this happened...", "I'm sorry you feel that way."),
)


def detect_genre(command: str) -> Optional[str]:
    """Return the first known genre named in ``command``."""
    lowered = command.lower()
    for genre in GENRES:
        if genre in lowered:
            return genre
    return None


def _mood_pair(command: str) -> Optional[tuple]:
    lowered = command.lower()
    for keywords, opening, reply in MOOD_PAIRS:
        if any(keyword in lowered for keyword in keywords):
            return opening, reply
    return None


def _conversation_text(index: int, previous_name: str, listener_name: str) -> str:
    if index == 0:
        return f"Hey, {listener_name}, we need to talk."
    if index == 1:
        return f"What's on your mind, {previous_name}?"
    if index == 2:
        return "I've been thinking about what you said earlier."
    return "Go on, I'm listening."


def _fallback_metadata(scene: SceneState, command: str) -> Optional[SceneMetadata]:
    genre = detect_genre(command)
    if genre is None or genre == scene.genre:
        return None
    return SceneMetadata(
        title=f"{genre.capitalize()} Scene",
        genre=genre,
        setting=scene.setting,
        logline=scene.logline,
    )


def generate_fallback(scene: SceneState, command: str) -> DirectorOutput:
    """Fabricate a short exchange among the scene's actors.

    Args:
        scene: Current scene (its roster decides who speaks)
        command: Director command; mood and genre keywords bias the output

    Returns:
        DirectorOutput with 2-4 line directives (none if the scene has no
        actors). The first directive opens a new beat.
    """
    actors = list(scene.actors)
    output = DirectorOutput(scene_metadata=_fallback_metadata(scene, command), is_fallback=True)

    if not actors:
        return output

    mood = _mood_pair(command)
    num_lines = MIN_LINES if mood else max(MIN_LINES, min(MAX_LINES, len(actors) + 1))

    directives: List[LineDirective] = []
    for i in range(num_lines):
        actor = actors[i % len(actors)]
        previous = actors[(i - 1) % len(actors)]
        listener = actors[(i + 1) % len(actors)]

        if mood:
            text = mood[0] if i == 0 else mood[1]
        else:
            text = _conversation_text(i, previous.name, listener.name)

        directives.append(
            LineDirective(
                actor_id=actor.id,
                text=text,
                beat_delta=1 if i == 0 else 0,
                language=actor.language,
            )
        )

    output.new_lines = directives
    return output
