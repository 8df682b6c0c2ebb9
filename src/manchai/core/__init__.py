"""Scene data, summarization, configuration and turn orchestration."""
