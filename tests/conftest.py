"""Pytest configuration and fixtures."""

import base64
from typing import List, Optional, Set

import pytest

from manchai.agents.models import DirectorOutput, LineDirective, SceneMetadata
from manchai.core.enums import LanguageCode
from manchai.core.scene_state import Line, SceneState, create_default_scene

FIXED_NOW = 1_700_000_000_000

# Long enough to count as playable inlined audio
FAKE_AUDIO_URL = "data:audio/mpeg;base64," + base64.b64encode(b"\xff\xfb\x90\x00" * 64).decode("ascii")


class FakeDirector:
    """Director that returns a canned output or raises."""

    def __init__(self, output: Optional[DirectorOutput] = None, error: Optional[Exception] = None):
        self.output = output
        self.error = error
        self.calls: List[tuple] = []

    async def generate(self, scene, command):
        self.calls.append((scene, command))
        if self.error is not None:
            raise self.error
        return self.output


class FakeSynthesizer:
    """Synthesizer that returns a fixed data URL, failing for chosen texts."""

    def __init__(self, fail_texts: Optional[Set[str]] = None):
        self.fail_texts = fail_texts or set()
        self.calls: List[tuple] = []

    async def synthesize_line(self, text, voice_id, language):
        self.calls.append((text, voice_id, language))
        if text in self.fail_texts:
            raise RuntimeError("synthesis failed")
        return FAKE_AUDIO_URL


def make_output(*directives: LineDirective, metadata: Optional[SceneMetadata] = None, updates=None) -> DirectorOutput:
    """Primary director output with the default actors' ids."""
    return DirectorOutput(
        scene_metadata=metadata
        or SceneMetadata(
            title="The Last Train",
            genre="thriller",
            setting="A night train to Delhi",
            logline="Three strangers share a compartment.",
        ),
        updated_actors=list(updates or []),
        new_lines=list(directives),
    )


@pytest.fixture
def fixed_clock():
    """Millisecond clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def default_scene() -> SceneState:
    """Fresh default scene with three actors and no lines."""
    return create_default_scene(FIXED_NOW)


@pytest.fixture
def scene_with_lines(default_scene) -> SceneState:
    """Default scene with two beats of dialogue."""
    lines = (
        Line("line-1-0", "actor-1", "Where were you last night?", FIXED_NOW - 5000, 1),
        Line("line-1-1", "actor-2", "That is none of your business.", FIXED_NOW - 4000, 1),
        Line("line-2-0", "actor-3", "Can we all calm down?", FIXED_NOW - 3000, 2),
    )
    return SceneState(
        id=default_scene.id,
        title=default_scene.title,
        genre=default_scene.genre,
        setting=default_scene.setting,
        logline=default_scene.logline,
        summary=default_scene.summary,
        actors=default_scene.actors,
        lines=lines,
        created_at=default_scene.created_at,
        updated_at=default_scene.updated_at,
    )


@pytest.fixture
def three_line_output() -> DirectorOutput:
    return make_output(
        LineDirective("actor-1", "We should not be here.", beat_delta=1),
        LineDirective("actor-2", "Too late for that.", language=LanguageCode.HI),
        LineDirective("actor-3", "Did anyone hear that?"),
    )


@pytest.fixture
def fake_synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()
