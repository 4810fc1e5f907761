"""Queue-backed execution engine for AI generation jobs."""

__version__ = "0.1.0"
