"""Session usage accounting and prompt variant comparison for LLM A/B tests."""

__version__ = "0.1.0"
