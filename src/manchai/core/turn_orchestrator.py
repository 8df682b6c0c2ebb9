"""Turn orchestration: one director command in, new lines and scene out.

    command → Director Agent ──(failure)──→ fallback director
                    ↓
            typed directives → lines (beat indices assigned)
                    ↓
            Speech Synthesizer × K (concurrent, failures isolated per line)
                    ↓
            append + summarize → new SceneState

The orchestrator never mutates the scene it is given. A turn either returns
a new scene whose lines extend the old ones, or raises ``TurnError``.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from ..agents.director_agent import DirectorAgentError, DirectorConfigurationError
from ..agents.mock_director import generate_fallback
from ..agents.models import ActorUpdate, DirectorOutput, LineDirective, SceneMetadata
from .enums import LanguageCode
from .scene_state import Actor, Line, SceneState, create_default_scene, now_ms
from .summarizer import summarize_scene

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINES = 6


class TurnError(Exception):
    """A turn could not be completed; the scene is unchanged."""


class DialogueGenerator(Protocol):
    async def generate(self, scene: Optional[SceneState], command: str) -> DirectorOutput:
        ...


class LineSynthesizer(Protocol):
    async def synthesize_line(self, text: str, voice_id: str, language: LanguageCode) -> str:
        ...


@dataclass(frozen=True)
class TurnResult:
    """Outcome of a successful turn."""

    scene_state: SceneState
    new_lines: Tuple[Line, ...]
    used_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sceneState": self.scene_state.to_dict(),
            "newLines": [line.to_dict() for line in self.new_lines],
        }


def apply_metadata(scene: SceneState, metadata: Optional[SceneMetadata]) -> SceneState:
    if metadata is None:
        return scene
    return replace(
        scene,
        title=metadata.title,
        genre=metadata.genre,
        setting=metadata.setting,
        logline=metadata.logline,
    )


def apply_actor_updates(scene: SceneState, updates: List[ActorUpdate]) -> SceneState:
    """Patch language/style of existing actors. Unknown ids are ignored."""
    if not updates:
        return scene

    by_id = {update.id: update for update in updates}
    unknown = set(by_id) - {actor.id for actor in scene.actors}
    if unknown:
        logger.warning(f"Ignoring updates for unknown actors: {sorted(unknown)}")

    actors = tuple(
        replace(actor, language=by_id[actor.id].language, style=by_id[actor.id].style)
        if actor.id in by_id
        else actor
        for actor in scene.actors
    )
    return replace(scene, actors=actors)


def build_lines(
    directives: List[LineDirective],
    actors: Dict[str, Actor],
    start_beat: int,
    now: int,
    first_position: int = 0,
) -> List[Line]:
    """Create lines from directives, assigning running beat indices.

    ``beat_delta`` is applied before assignment, so a directive with
    ``beat_delta=1`` opens a new beat for itself and the lines after it.
    Ids carry the line's position in the scene, so they stay unique even
    when two turns share a clock tick.

    Raises:
        TurnError: If a directive names an actor that is not in the roster
    """
    running_beat = start_beat
    lines = []
    for index, directive in enumerate(directives):
        if directive.actor_id not in actors:
            raise TurnError(
                f"Invalid actorId in director response: {directive.actor_id}. "
                f"Available actors: {', '.join(actors)}"
            )
        if directive.beat_delta == 1:
            running_beat += 1

        lines.append(
            Line(
                id=f"line-{now}-{first_position + index}",
                actor_id=directive.actor_id,
                text=directive.text,
                timestamp=now + index * 1000,
                beat_index=running_beat,
            )
        )
    return lines


class TurnOrchestrator:
    """Runs one scene turn end to end.

    Callers serialize turns: at most one ``process_turn`` per scene should be
    in flight at a time.
    """

    def __init__(
        self,
        director: Optional[DialogueGenerator] = None,
        synthesizer: Optional[LineSynthesizer] = None,
        max_lines: int = DEFAULT_MAX_LINES,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the orchestrator.

        Args:
            director: Primary dialogue generator. None runs every turn on the
                fallback director (offline mode).
            synthesizer: Speech synthesizer. None leaves every line silent.
            max_lines: Cap on lines taken from one primary response.
            clock: Millisecond clock for ids and timestamps.
        """
        self.director = director
        self.synthesizer = synthesizer
        self.max_lines = max_lines
        self.clock = clock

        if director is None:
            logger.warning("No Director Agent configured. Dialogue will come from the fallback director.")
        if synthesizer is None:
            logger.warning("No speech synthesizer configured. Lines will have no audio.")

    async def _direct(self, scene: SceneState, command: str) -> DirectorOutput:
        """Ask the primary director, falling back locally on failure."""
        if self.director is None:
            return generate_fallback(scene, command)

        try:
            return await self.director.generate(scene, command)
        except DirectorConfigurationError as e:
            logger.error(f"Director Agent is misconfigured: {e}")
            raise TurnError("Director Agent is not configured") from e
        except DirectorAgentError as e:
            logger.error(f"Director Agent failed, falling back to mock director: {e}")
            return generate_fallback(scene, command)

    def _primary_directives(self, output: DirectorOutput) -> List[LineDirective]:
        directives = list(output.new_lines)
        if not directives:
            raise TurnError("Director Agent returned no dialogue lines")
        if len(directives) > self.max_lines:
            logger.warning(
                f"Director Agent returned {len(directives)} lines, using first {self.max_lines}"
            )
            directives = directives[: self.max_lines]
        return directives

    async def _synthesize(self, line: Line, actor: Actor, language: LanguageCode) -> Line:
        if self.synthesizer is None:
            return line
        try:
            audio_url = await self.synthesizer.synthesize_line(line.text, actor.voice_id, language)
        except Exception as e:
            logger.error(
                f"Failed to synthesize audio for line {line.id} "
                f"(actor: {actor.name}, voiceId: {actor.voice_id}): {e}"
            )
            return line
        return line.with_audio(audio_url)

    async def process_turn(self, prior_state: Optional[SceneState], command: str) -> TurnResult:
        """Run one turn.

        Args:
            prior_state: Scene so far, or None to start a new default scene
            command: Director command

        Returns:
            TurnResult with the new scene and exactly the lines appended

        Raises:
            TurnError: Misconfigured director, unknown actor reference or a
                primary response with no lines. Nothing is committed.
        """
        now = self.clock()
        scene = prior_state if prior_state is not None else create_default_scene(now)
        start_beat = scene.current_beat

        logger.info(f"Processing turn: command={command!r}, lines so far={len(scene.lines)}")

        output = await self._direct(scene, command)

        scene = apply_metadata(scene, output.scene_metadata)
        scene = apply_actor_updates(scene, output.updated_actors)

        # An empty roster gives an empty fallback turn, which still commits
        directives = output.new_lines if output.is_fallback else self._primary_directives(output)
        actors = scene.actor_map()
        lines = build_lines(directives, actors, start_beat, now, first_position=len(scene.lines))

        # Language travels with the directive; the actor's own is the default
        languages = [d.language or actors[d.actor_id].language for d in directives]
        lines_with_audio = await asyncio.gather(
            *[
                self._synthesize(line, actors[line.actor_id], language)
                for line, language in zip(lines, languages)
            ]
        )

        voiced = sum(1 for line in lines_with_audio if line.has_audio)
        logger.info(
            f"Turn produced {len(lines_with_audio)} lines ({voiced} with audio)"
            f"{' via fallback' if output.is_fallback else ''}"
        )

        all_lines = scene.lines + tuple(lines_with_audio)
        next_scene = replace(
            scene,
            lines=all_lines,
            summary=summarize_scene(scene.summary, all_lines, scene.actors),
            updated_at=self.clock(),
        )

        return TurnResult(
            scene_state=next_scene,
            new_lines=tuple(lines_with_audio),
            used_fallback=output.is_fallback,
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def create_orchestrator(config) -> TurnOrchestrator:
    """Build an orchestrator wired to the configured remote services.

    Without an OpenAI key the orchestrator runs offline on the fallback
    director; without an ElevenLabs key (and no dry-run) lines stay silent.

    Args:
        config: StudioConfig

    Returns:
        Configured TurnOrchestrator
    """
    from ..agents.director_agent import DirectorAgent
    from ..voice.elevenlabs_client import ElevenLabsClient
    from ..voice.speech_synthesizer import SpeechSynthesizer

    director = None
    if config.director_enabled:
        director = DirectorAgent(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
            temperature=config.director_temperature,
            timeout_s=config.director_timeout_s,
        )

    synthesizer = None
    if config.tts_enabled:
        synthesizer = SpeechSynthesizer(
            ElevenLabsClient(
                api_key=config.elevenlabs_api_key,
                dry_run=config.tts_dry_run,
                default_model=config.elevenlabs_model,
                output_format=config.elevenlabs_output_format,
            )
        )

    return TurnOrchestrator(
        director=director,
        synthesizer=synthesizer,
        max_lines=config.max_lines_per_turn,
    )


async def close_orchestrator(orchestrator: TurnOrchestrator) -> None:
    """Close the HTTP sessions held by the orchestrator's collaborators."""
    for collaborator in (orchestrator.director, orchestrator.synthesizer):
        close = getattr(collaborator, "close", None)
        if close is not None:
            await close()
