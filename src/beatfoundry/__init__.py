"""BeatFoundry backend: track generation and thinking-event streaming."""
