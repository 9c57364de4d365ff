from __future__ import annotations

"""Generation orchestrator: calls the AI provider and normalizes results.

The provider client is built once at process start (see ``build_orchestrator``)
and injected; tests pass any object exposing ``invoke(messages, **params)``.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import openai
from langchain_openai import ChatOpenAI

from ..core.config import CHAT_TEMPERATURE, GENERATE_TEMPERATURE, StudioConfig
from ..domain.errors import (
    GenerationError,
    ProviderConfigError,
    ProviderCredentialError,
    ProviderQuotaError,
)
from ..domain.session_models import Artifact, GenerationMetadata
from ..observability.metrics import track_generation
from .artifact_extractor import extract_artifact
from .prompt_composer import compose_chat_prompt, compose_generate_prompt, compose_refine_prompt


LOG = logging.getLogger("studio.llm")

MODEL_CATALOG: List[Dict[str, str]] = [
    {
        "id": "gemini-2.0-flash-lite",
        "name": "Gemini 2.0 Flash Lite",
        "description": "Lightweight and fast multimodal model",
    },
    {
        "id": "gemini-1.5-flash",
        "name": "Gemini 1.5 Flash",
        "description": "Fast and versatile multimodal model",
    },
    {
        "id": "gemini-1.5-pro",
        "name": "Gemini 1.5 Pro",
        "description": "High-performance multimodal model",
    },
    {
        "id": "gemini-pro",
        "name": "Gemini Pro",
        "description": "Standard Gemini model",
    },
]

_OPERATION_LABELS = {
    "generate": "AI Service",
    "refine": "AI Refinement",
    "chat": "AI Chat",
}


def estimate_tokens(text: str) -> int:
    # Roughly 4 characters per token for English text
    return math.ceil(len(text) / 4)


def classify_provider_error(exc: Exception, operation: str = "generate") -> GenerationError:
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)) or "api key" in lowered:
        return ProviderCredentialError("Invalid Google API key")
    if isinstance(exc, openai.RateLimitError) or "quota" in lowered:
        return ProviderQuotaError("Google API quota exceeded")
    label = _OPERATION_LABELS.get(operation, "AI Service")
    return GenerationError(f"{label} Error: {message}")


@dataclass
class PromptContext:
    """Session context for a generate call, already windowed by the caller."""

    chat_history: List[Dict[str, Any]] = field(default_factory=list)
    previous_components: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class GenerationResult:
    success: bool
    data: Any
    metadata: GenerationMetadata


class GenerationOrchestrator:
    def __init__(self, llm: Any, config: StudioConfig) -> None:
        self._llm = llm
        self._config = config

    @property
    def default_model(self) -> str:
        return self._config.default_model

    def _invoke(self, operation: str, prompt: str, model: Optional[str], temperature: float, max_tokens: int) -> GenerationResult:
        model_id = model or self._config.default_model
        started_at = int(time.time() * 1000)
        start = time.perf_counter()
        LOG.debug("llm_invoke", extra={"operation": operation, "model": model_id, "prompt_chars": len(prompt)})
        try:
            with track_generation(operation):
                res = self._llm.invoke(
                    [{"role": "user", "content": prompt}],
                    model=model_id,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
        except Exception as exc:
            LOG.warning("llm_failed", extra={"operation": operation, "model": model_id, "err": str(exc)})
            raise classify_provider_error(exc, operation) from exc
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        text = res.content if hasattr(res, "content") else str(res)
        if not isinstance(text, str):
            text = str(text)
        metadata = GenerationMetadata(
            model=model_id,
            tokens=estimate_tokens(prompt + text),
            started_at=started_at,
            processing_time=elapsed_ms,
        )
        LOG.info("llm_success", extra={"operation": operation, "model": model_id, "tokens": metadata.tokens})
        return GenerationResult(success=True, data=text, metadata=metadata)

    def generate_component(
        self,
        prompt: str,
        model: Optional[str] = None,
        context: Optional[PromptContext] = None,
    ) -> GenerationResult:
        context = context or PromptContext()
        full_prompt = compose_generate_prompt(
            prompt,
            previous_components=context.previous_components,
            chat_history=context.chat_history,
        )
        raw = self._invoke("generate", full_prompt, model, GENERATE_TEMPERATURE, self._config.max_tokens)
        raw.data = extract_artifact(raw.data)
        return raw

    def refine_component(self, original: Artifact, prompt: str, model: Optional[str] = None) -> GenerationResult:
        full_prompt = compose_refine_prompt(original.jsx, original.css, prompt)
        raw = self._invoke("refine", full_prompt, model, GENERATE_TEMPERATURE, self._config.max_tokens)
        raw.data = extract_artifact(raw.data, fallback=original)
        return raw

    def chat_response(
        self,
        message: str,
        history: Optional[Sequence[Mapping[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> GenerationResult:
        full_prompt = compose_chat_prompt(message, history)
        return self._invoke("chat", full_prompt, model, CHAT_TEMPERATURE, self._config.chat_max_tokens)

    def available_models(self) -> List[Dict[str, str]]:
        return [dict(entry) for entry in MODEL_CATALOG]


def build_orchestrator(config: StudioConfig) -> GenerationOrchestrator:
    if not config.api_key:
        raise ProviderConfigError("GOOGLE_API_KEY is required")
    llm = ChatOpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        model=config.default_model,
        temperature=GENERATE_TEMPERATURE,
        max_tokens=config.max_tokens,
        max_retries=0,
    )
    LOG.info("AI client ready base_url=%s default_model=%s", config.base_url, config.default_model)
    return GenerationOrchestrator(llm, config)
