"""chatrelay - a streaming relay between a chat client and a completions API."""

__version__ = "0.1.0"
