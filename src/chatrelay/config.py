"""Deployment configuration, read from the environment once at import."""

import os
from dataclasses import dataclass
from pathlib import Path

import httpx

# Identity service (Supabase GoTrue)
SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")

# Completion provider
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")

# Optional replacement for the built-in system directive
_prompt_path = os.environ.get("SYSTEM_PROMPT_PATH")
SYSTEM_PROMPT_PATH = Path(_prompt_path) if _prompt_path else None

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8080"))

# Long read timeout for LLM responses; the provider may pause between tokens
PROVIDER_TIMEOUT = httpx.Timeout(300.0, connect=10.0)
IDENTITY_TIMEOUT = httpx.Timeout(10.0)


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters sent with every completion request.

    These are constants of the deployment. Clients cannot override them.
    """

    model: str = "gpt-4o-mini"
    max_tokens: int = 250
    temperature: float = 0.9
    presence_penalty: float = 0.5
    frequency_penalty: float = 0.9

    def as_payload(self) -> dict:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "presence_penalty": self.presence_penalty,
            "frequency_penalty": self.frequency_penalty,
        }


STREAM_PARAMS = GenerationParams()

SINGLE_SHOT_PARAMS = GenerationParams(
    model="gpt-4",
    max_tokens=500,
    temperature=0.7,
    presence_penalty=0.6,
    frequency_penalty=0.6,
)
