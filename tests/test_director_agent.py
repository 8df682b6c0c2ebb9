"""Tests for the Director Agent response handling and prompts."""

import asyncio
import json

import pytest

from manchai.agents.director_agent import (
    DirectorAgent,
    DirectorAgentError,
    DirectorConfigurationError,
    extract_json,
    parse_director_response,
)
from manchai.agents.prompts.director_templates import DirectorPrompts, build_director_input
from manchai.core.enums import LanguageCode


def response_payload(**overrides):
    payload = {
        "sceneMetadata": {
            "title": "Night Shift",
            "genre": "horror",
            "setting": "An empty hospital",
            "logline": "Something walks the corridors.",
        },
        "updatedActors": [{"id": "actor-2", "language": "hi", "style": "menacing"}],
        "newLines": [
            {"actorId": "actor-1", "language": "en", "text": "Did you hear that?", "beatDelta": 1},
            {"actorId": "actor-2", "language": "hi", "text": "Kuch nahi hai.", "beatDelta": 0},
            {"actorId": "actor-3", "text": "Then why are the lights flickering?"},
        ],
    }
    payload.update(overrides)
    return payload


class TestParseResponse:
    """Tests for parse_director_response."""

    def test_valid_response(self):
        output = parse_director_response(json.dumps(response_payload()))

        assert output.scene_metadata.genre == "horror"
        assert output.updated_actors[0].language is LanguageCode.HI
        assert output.updated_actors[0].style == "menacing"
        assert [d.actor_id for d in output.new_lines] == ["actor-1", "actor-2", "actor-3"]
        assert [d.beat_delta for d in output.new_lines] == [1, 0, 0]
        assert output.new_lines[1].language is LanguageCode.HI
        assert output.new_lines[2].language is None
        assert not output.is_fallback

    def test_updated_actors_optional(self):
        payload = response_payload()
        del payload["updatedActors"]

        assert parse_director_response(json.dumps(payload)).updated_actors == []

    def test_fenced_json(self):
        content = "Here you go:\n```json\n" + json.dumps(response_payload()) + "\n```"

        output = parse_director_response(content)
        assert len(output.new_lines) == 3

    def test_unparseable_content(self):
        with pytest.raises(DirectorAgentError, match="Failed to parse"):
            parse_director_response("The actors look at each other.")

    def test_non_object_rejected(self):
        with pytest.raises(DirectorAgentError, match="JSON object"):
            extract_json("[1, 2, 3]")

    @pytest.mark.parametrize("content", [None, [{"type": "text", "text": "{}"}], {"text": "{}"}])
    def test_non_text_content_rejected(self, content):
        with pytest.raises(DirectorAgentError, match="text content"):
            extract_json(content)

    def test_missing_new_lines(self):
        payload = response_payload()
        del payload["newLines"]

        with pytest.raises(DirectorAgentError, match="Invalid response structure"):
            parse_director_response(json.dumps(payload))

    def test_missing_metadata(self):
        payload = response_payload()
        del payload["sceneMetadata"]

        with pytest.raises(DirectorAgentError):
            parse_director_response(json.dumps(payload))

    @pytest.mark.parametrize(
        "line",
        [
            {"actorId": "actor-1", "text": ""},
            {"actorId": "actor-1", "text": "Hi", "beatDelta": 2},
            {"actorId": "actor-1", "text": "Hi", "language": "klingon"},
            {"text": "Hi"},
        ],
    )
    def test_bad_line_rejected(self, line):
        payload = response_payload(newLines=[line])

        with pytest.raises(DirectorAgentError):
            parse_director_response(json.dumps(payload))

    def test_empty_lines_pass_schema(self):
        """Empty dialogue is a shape the orchestrator rejects, not the parser."""
        output = parse_director_response(json.dumps(response_payload(newLines=[])))
        assert output.new_lines == []


class TestPrompts:
    """Tests for Director Agent prompt construction."""

    def test_new_scene_prompt(self):
        prompt = build_director_input(None, "A heist in Mumbai")

        assert 'User direction: "A heist in Mumbai"' in prompt
        assert "3 actors" in prompt

    def test_next_beat_prompt(self, scene_with_lines):
        prompt = build_director_input(scene_with_lines, "Make it horror")

        assert 'User Command: "Make it horror"' in prompt
        assert "Title: Untitled Scene" in prompt
        assert "- Alex (id: actor-1, role: protagonist, language: en, style: dramatic)" in prompt
        assert scene_with_lines.summary in prompt

    def test_recent_lines_grouped_by_beat(self, scene_with_lines):
        text = DirectorPrompts.format_recent_lines(scene_with_lines)

        assert text.splitlines() == [
            "Beat 1:",
            'Alex [en]: "Where were you last night?"',
            'Sam [en]: "That is none of your business."',
            "",
            "Beat 2:",
            'Jordan [en]: "Can we all calm down?"',
        ]

    def test_no_dialogue_yet(self, default_scene):
        assert DirectorPrompts.format_recent_lines(default_scene) == "No dialogue yet."

    def test_system_prompt_describes_schema(self):
        for key in ("sceneMetadata", "updatedActors", "newLines", "beatDelta"):
            assert key in DirectorPrompts.SYSTEM


class TestDirectorAgent:
    """Tests for credential checks and the generate flow."""

    def test_missing_key(self, monkeypatch, default_scene):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        agent = DirectorAgent(api_key=None)

        with pytest.raises(DirectorConfigurationError):
            asyncio.run(agent.generate(default_scene, "Continue"))

    def test_placeholder_key(self, default_scene):
        agent = DirectorAgent(api_key="your_openai_api_key_here")

        with pytest.raises(DirectorConfigurationError, match="placeholder"):
            asyncio.run(agent.generate(default_scene, "Continue"))

    def test_configuration_error_is_agent_error(self):
        assert issubclass(DirectorConfigurationError, DirectorAgentError)

    def test_generate_sends_system_and_user_prompt(self, default_scene):
        agent = DirectorAgent(api_key="sk-test-123", base_url="https://llm.example/v1/")
        sent = []

        async def fake_completion(messages):
            sent.extend(messages)
            return json.dumps(response_payload())

        agent._request_completion = fake_completion
        output = asyncio.run(agent.generate(default_scene, "Make it horror"))

        assert agent.base_url == "https://llm.example/v1"
        assert [m["role"] for m in sent] == ["system", "user"]
        assert sent[0]["content"] == DirectorPrompts.SYSTEM
        assert 'User Command: "Make it horror"' in sent[1]["content"]
        assert output.scene_metadata.title == "Night Shift"

    def test_bad_content_raises(self, default_scene):
        agent = DirectorAgent(api_key="sk-test-123")

        async def fake_completion(messages):
            return "not json at all"

        agent._request_completion = fake_completion

        with pytest.raises(DirectorAgentError):
            asyncio.run(agent.generate(default_scene, "Continue"))

    def test_content_parts_fall_back(self, default_scene):
        """A list of content parts is a malformed reply, so the turn uses the fallback."""
        from manchai.core.turn_orchestrator import TurnOrchestrator

        agent = DirectorAgent(api_key="sk-test-123")

        async def fake_completion(messages):
            return [{"type": "text", "text": "{}"}]

        agent._request_completion = fake_completion
        result = asyncio.run(TurnOrchestrator(agent).process_turn(None, "Continue"))

        assert result.used_fallback
        assert 2 <= len(result.new_lines) <= 4

    @pytest.mark.parametrize("content", [[{"type": "text", "text": "{}"}], {"text": "{}"}])
    def test_non_text_completion_content_rejected(self, content):
        agent = DirectorAgent(api_key="sk-test-123")

        class Response:
            status = 200

            async def json(self):
                return {"choices": [{"message": {"role": "assistant", "content": content}}]}

            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc):
                return False

        class Session:
            def post(self, url, json):
                return Response()

        async def fake_session():
            return Session()

        agent._get_session = fake_session

        with pytest.raises(DirectorAgentError, match="text content"):
            asyncio.run(agent._request_completion([{"role": "user", "content": "Go"}]))
