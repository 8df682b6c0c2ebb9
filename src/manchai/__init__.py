"""ManchAI: a real-time scriptwriting and multi-voice improv studio."""

__version__ = "0.1.0"
