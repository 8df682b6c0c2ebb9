"""Prompt templates for the Director Agent."""

from typing import Dict, List, Optional

from ...core.scene_state import Line, SceneState

PROMPT_LINE_WINDOW = 10


class DirectorPrompts:
    """Prompt templates for the chat-completions Director Agent."""

    SYSTEM = """You are ManchAI's Director Agent, responsible for writing the next beat of a fictional scene as a multi-character dialogue.

You are given:
- A short summary of the story so far.
- Current scene metadata (title, setting, genre, logline).
- A list of actors. Each actor has an id, name, role, language (en, hi, mixed, ...) and acting style.
- The last ~10 lines of dialogue.
- A new director command from the human.

WRITE A CONVERSATION, not exposition.
- Produce 3 to 6 lines per turn.
- At least two different actors must speak unless the user explicitly requests a monologue.
- Each line must respond to the previous one. When continuing, react to the LAST lines spoken.
- Never end the conversation abruptly; always leave room for continuation.

OBEY ACTORS STRICTLY.
- Actors speak only in their assigned language: en = English only, hi = Hindi only, mixed = Hinglish (natural code-mixing).
- Follow each actor's role, personality and style.

OBEY USER COMMANDS IMMEDIATELY.
- "Switch the detective to Hindi" -> update that actor's language
- "Make it horror" -> shift tone immediately
- "Change setting to a running train" -> update metadata

MAINTAIN STORY CONTINUITY.
- Use the summary and last lines; do not contradict established facts.
- Do not invent new actors. Only use actor ids from the roster.

Return EXACTLY this JSON structure:
{
  "sceneMetadata": {"title": "string", "genre": "string", "setting": "string", "logline": "string"},
  "updatedActors": [{"id": "string", "language": "en | hi | mixed", "style": "string"}],
  "newLines": [{"actorId": "string", "language": "en | hi | mixed", "text": "string", "beatDelta": 0}]
}

beatDelta = 1 if the line starts a new beat, otherwise 0."""

    @staticmethod
    def new_scene(command: str) -> str:
        """Prompt for the very first turn, before any scene exists."""
        return f"""You are creating a new scene. User direction: "{command}"

Create a scene with 3 actors (protagonist, antagonist, supporting) and generate initial dialogue.
IMPORTANT: Start with actors having a conversation - have them speak and respond to each other, not just make independent statements."""

    @staticmethod
    def format_recent_lines(scene: SceneState, window: int = PROMPT_LINE_WINDOW) -> str:
        """Render the last ``window`` lines grouped under ``Beat N:`` headers."""
        recent = list(scene.lines[-window:])
        if not recent:
            return "No dialogue yet."

        by_beat: Dict[int, List[Line]] = {}
        for line in recent:
            by_beat.setdefault(line.beat_index, []).append(line)

        actors = scene.actor_map()
        formatted: List[str] = []
        for beat_index in sorted(by_beat):
            formatted.append(f"Beat {beat_index}:")
            for line in by_beat[beat_index]:
                actor = actors.get(line.actor_id)
                name = actor.name if actor else "Unknown"
                language = actor.language.value if actor else "en"
                formatted.append(f'{name} [{language}]: "{line.text}"')
            formatted.append("")

        return "\n".join(formatted).strip()

    @staticmethod
    def format_roster(scene: SceneState) -> str:
        return "\n".join(
            f"- {a.name} (id: {a.id}, role: {a.role.value}, language: {a.language.value}, style: {a.style})"
            for a in scene.actors
        )

    @staticmethod
    def next_beat(scene: SceneState, command: str) -> str:
        """Prompt for a turn on an existing scene."""
        return f"""STORY SUMMARY:
{scene.summary}

SCENE METADATA:
Title: {scene.title}
Genre: {scene.genre}
Setting: {scene.setting}
Logline: {scene.logline}

ACTOR ROSTER:
{DirectorPrompts.format_roster(scene)}

LAST 10 DIALOGUE LINES:
{DirectorPrompts.format_recent_lines(scene)}

User Command: "{command}"

CRITICAL INSTRUCTIONS:
- Generate the next beat of dialogue following the user's command.
- Write a conversation where actors respond to each other naturally.
- If the user says "continue" or similar, KEEP THE CONVERSATION GOING by having actors respond to the last lines spoken.
- DO NOT end the conversation - keep it alive and dynamic."""


def build_director_input(scene: Optional[SceneState], command: str) -> str:
    """User prompt for one Director Agent call."""
    if scene is None:
        return DirectorPrompts.new_scene(command)
    return DirectorPrompts.next_beat(scene, command)
