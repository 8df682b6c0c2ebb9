"""Dialogue generators: the remote Director Agent and the local fallback."""
