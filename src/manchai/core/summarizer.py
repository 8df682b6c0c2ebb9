"""Rolling scene summary.

Keeps long-term context for the Director Agent by folding the most recent
dialogue into a short digest. The approach is heuristic keyword matching,
so it is lossy but deterministic: the same inputs always give the same text.
"""

import re
from typing import Dict, List, Optional, Sequence

from .scene_state import Actor, Line

RECENT_LINE_WINDOW = 10
MAX_SPEAKERS = 3
MAX_KEY_PHRASES = 2
KEY_PHRASE_LENGTH = 80
TOPICS_LENGTH = 120
PREVIOUS_CONTEXT_LENGTH = 100
MAX_SENTENCES = 5
MIN_FRESH_LENGTH_FOR_PREFIX = 50
SUMMARY_MAX_LENGTH = 800

BEGINNING_SUMMARY = "Scene is beginning."
PROGRESSING_SUMMARY = "Scene dialogue is progressing."

# Checked in order; the first matching class wins.
TONE_PATTERNS = (
    ("tense", re.compile(r"\b(angry|mad|furious|rage|hate)\b")),
    ("positive", re.compile(r"\b(happy|joy|excited|great|wonderful)\b")),
    ("somber", re.compile(r"\b(sad|sorry|regret|disappointed|worried)\b")),
    ("inquisitive", re.compile(r"\b(question|why|what|how|confused)\b")),
)

TONE_SENTENCES: Dict[str, str] = {
    "tense": "The conversation has become tense.",
    "positive": "The mood is positive.",
    "somber": "The atmosphere is somber.",
    "inquisitive": "Questions are being raised.",
}

INTENT_PATTERN = re.compile(
    r"\b(will|must|should|need|want|going|decided|think|believe)\b", re.IGNORECASE
)
SENTENCE_SPLIT = re.compile(r"[.!?]+")


def classify_tone(lines: Sequence[Line]) -> str:
    """Return the dominant tone label for ``lines`` (``neutral`` if none)."""
    all_text = " ".join(line.text for line in lines).lower()
    for tone, pattern in TONE_PATTERNS:
        if pattern.search(all_text):
            return tone
    return "neutral"


def _main_speakers(lines: Sequence[Line], actors: Sequence[Actor]) -> List[str]:
    names = {actor.id: actor.name for actor in actors}

    counts: Dict[str, int] = {}
    for line in lines:
        counts[line.actor_id] = counts.get(line.actor_id, 0) + 1

    # sorted() is stable, so ties keep first-appearance order
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [names.get(actor_id, "Unknown") for actor_id, _ in ranked[:MAX_SPEAKERS]]


def _speaker_sentence(speakers: List[str]) -> Optional[str]:
    if not speakers:
        return None
    if len(speakers) == 1:
        return f"{speakers[0]} has been speaking."
    if len(speakers) == 2:
        return f"{speakers[0]} and {speakers[1]} have been in dialogue."
    return f"{speakers[0]}, {speakers[1]}, and {speakers[2]} have been conversing."


def extract_key_phrases(lines: Sequence[Line]) -> List[str]:
    """Pick out questions, statements of intent and long lines."""
    phrases = []
    for line in lines:
        text = line.text
        if "?" in text or INTENT_PATTERN.search(text) or len(text) > 50:
            phrases.append(text[:KEY_PHRASE_LENGTH])
    return phrases


def summarize_scene(prev_summary: str, lines: Sequence[Line], actors: Sequence[Actor]) -> str:
    """Fold the last ten lines (and the previous summary) into a new summary.

    Args:
        prev_summary: Summary from the previous turn (may be empty)
        lines: Full line sequence of the scene, oldest first
        actors: Current actor roster

    Returns:
        Summary text of at most ``SUMMARY_MAX_LENGTH`` characters
    """
    recent = list(lines[-RECENT_LINE_WINDOW:])
    has_previous = bool(prev_summary and prev_summary.strip())

    if not recent:
        return (prev_summary or BEGINNING_SUMMARY)[:SUMMARY_MAX_LENGTH]

    parts: List[str] = []

    speaker_sentence = _speaker_sentence(_main_speakers(recent, actors))
    if speaker_sentence:
        parts.append(speaker_sentence)

    key_phrases = extract_key_phrases(recent)
    if key_phrases:
        topics = " ".join(key_phrases[:MAX_KEY_PHRASES])[:TOPICS_LENGTH]
        parts.append(f"Recent topics include: {topics}...")

    tone = classify_tone(recent)
    if tone != "neutral":
        parts.append(TONE_SENTENCES[tone])

    beat_count = len({line.beat_index for line in recent})
    if beat_count > 1:
        parts.append(f"The conversation has progressed through {beat_count} beats.")

    if has_previous:
        prev_sentences = [s for s in SENTENCE_SPLIT.split(prev_summary) if s.strip()]
        if prev_sentences:
            prev_context = prev_sentences[0][:PREVIOUS_CONTEXT_LENGTH]
            parts.append(f"Building on previous context: {prev_context}...")

    fresh = " ".join([p for p in parts if p.strip()][:MAX_SENTENCES])

    if has_previous and len(fresh) > MIN_FRESH_LENGTH_FOR_PREFIX:
        return f"{prev_summary} {fresh}"[:SUMMARY_MAX_LENGTH]

    return (fresh or PROGRESSING_SUMMARY)[:SUMMARY_MAX_LENGTH]
