"""Multi-provider AI resume enhancement: prompts, provider calls, review and usage tracking."""

__version__ = "0.1.0"
