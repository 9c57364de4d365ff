from __future__ import annotations

"""Runtime configuration for the generation pipeline.

Env vars:
- GOOGLE_API_KEY (required to build the AI client)
- AI_BASE_URL (OpenAI-compatible endpoint; defaults to Gemini's)
- AI_MODEL (default model id)
- AI_MAX_TOKENS / AI_CHAT_MAX_TOKENS
- STUDIO_MANUAL_EDIT_MODE ("version" or "in_place")
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-2.0-flash-lite"
DEFAULT_MAX_TOKENS = 4096
DEFAULT_CHAT_MAX_TOKENS = 1024

GENERATE_TEMPERATURE = 0.7
CHAT_TEMPERATURE = 0.8

# Context windows
HISTORY_FETCH_WINDOW = 10
CHAT_FETCH_WINDOW = 5
PROMPT_HISTORY_WINDOW = 3
PRIOR_ARTIFACT_WINDOW = 3

MANUAL_EDIT_MODES = ("version", "in_place")


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except ValueError:
        return default


@dataclass(frozen=True)
class StudioConfig:
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    default_model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    chat_max_tokens: int = DEFAULT_CHAT_MAX_TOKENS
    manual_edit_mode: str = "version"

    @staticmethod
    def from_env() -> "StudioConfig":
        mode = (os.getenv("STUDIO_MANUAL_EDIT_MODE") or "version").strip().lower()
        if mode not in MANUAL_EDIT_MODES:
            mode = "version"
        return StudioConfig(
            api_key=os.getenv("GOOGLE_API_KEY") or None,
            base_url=os.getenv("AI_BASE_URL", DEFAULT_BASE_URL),
            default_model=os.getenv("AI_MODEL") or DEFAULT_MODEL,
            max_tokens=env_int("AI_MAX_TOKENS", DEFAULT_MAX_TOKENS),
            chat_max_tokens=env_int("AI_CHAT_MAX_TOKENS", DEFAULT_CHAT_MAX_TOKENS),
            manual_edit_mode=mode,
        )


_config: StudioConfig | None = None


def get_config() -> StudioConfig:
    global _config
    if _config is None:
        _config = StudioConfig.from_env()
    return _config
