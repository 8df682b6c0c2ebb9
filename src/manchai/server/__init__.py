"""HTTP API for scene turns."""
