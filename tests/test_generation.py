from __future__ import annotations

import httpx
import openai
import pytest

from src.studio.core.config import CHAT_TEMPERATURE, GENERATE_TEMPERATURE, StudioConfig
from src.studio.domain.errors import (
    GenerationError,
    ProviderConfigError,
    ProviderCredentialError,
    ProviderQuotaError,
)
from src.studio.domain.session_models import Artifact
from src.studio.services import generation as gen
from .utils import BUTTON_REPLY, FakeLLM


def _status_error(cls, code: int, message: str):
    request = httpx.Request("POST", "https://provider.test/chat/completions")
    return cls(message, response=httpx.Response(code, request=request), body=None)


def _orchestrator(*responses, **config):
    llm = FakeLLM(list(responses))
    return gen.GenerationOrchestrator(llm, StudioConfig(api_key="k", **config)), llm


def test_estimate_tokens_rounds_up():
    assert gen.estimate_tokens("") == 0
    assert gen.estimate_tokens("abcd" * 3) == 3
    assert gen.estimate_tokens("abcde") == 2


def test_generate_component_parses_and_reports_metadata():
    orch, llm = _orchestrator(BUTTON_REPLY)
    res = orch.generate_component("A button please")
    assert res.success is True
    assert isinstance(res.data, Artifact)
    assert res.data.component_name == "Button"
    assert res.metadata.model == "gemini-2.0-flash-lite"
    assert res.metadata.tokens == gen.estimate_tokens(llm.last_prompt + BUTTON_REPLY)
    assert res.metadata.processing_time >= 0
    assert res.metadata.started_at > 0

    call = llm.calls[0]
    assert call["temperature"] == GENERATE_TEMPERATURE
    assert call["max_tokens"] == 4096
    assert llm.last_prompt.endswith("User Request: A button please")


def test_generate_component_passes_context_and_model():
    orch, llm = _orchestrator(BUTTON_REPLY)
    ctx = gen.PromptContext(
        chat_history=[{"role": "user", "content": "earlier ask"}],
        previous_components=[{"version": 1, "jsx": "const Prev = () => null;"}],
    )
    res = orch.generate_component("Another one", model="gemini-1.5-pro", context=ctx)
    assert res.metadata.model == "gemini-1.5-pro"
    assert llm.calls[0]["model"] == "gemini-1.5-pro"
    assert "earlier ask" in llm.last_prompt
    assert "const Prev" in llm.last_prompt


def test_refine_component_falls_back_to_original():
    orch, llm = _orchestrator("I am not able to help with that.")
    original = Artifact(jsx="const Old = () => null;", css=".old{}", component_name="Old")
    res = orch.refine_component(original, "Make it pop")
    assert res.data.jsx == original.jsx
    assert res.data.description == "Component refinement failed, returned original"
    assert "JSX: const Old = () => null;" in llm.last_prompt


def test_chat_response_uses_chat_parameters():
    orch, llm = _orchestrator("Hooks let you use state in function components.")
    res = orch.chat_response("What are hooks?", history=[{"role": "user", "content": "hi"}])
    assert res.data == "Hooks let you use state in function components."
    assert llm.calls[0]["temperature"] == CHAT_TEMPERATURE
    assert llm.calls[0]["max_tokens"] == 1024
    assert llm.last_prompt.endswith("User: What are hooks?")


def test_provider_errors_are_classified():
    orch, _ = _orchestrator(_status_error(openai.AuthenticationError, 401, "bad key"))
    with pytest.raises(ProviderCredentialError) as exc:
        orch.generate_component("A button please")
    assert exc.value.message == "Invalid Google API key"

    orch, _ = _orchestrator(_status_error(openai.RateLimitError, 429, "slow down"))
    with pytest.raises(ProviderQuotaError) as exc:
        orch.chat_response("hello")
    assert exc.value.message == "Google API quota exceeded"


def test_message_based_classification():
    assert isinstance(gen.classify_provider_error(RuntimeError("API key not valid")), ProviderCredentialError)
    assert isinstance(gen.classify_provider_error(RuntimeError("Quota exhausted")), ProviderQuotaError)
    err = gen.classify_provider_error(RuntimeError("boom"), "refine")
    assert type(err) is GenerationError
    assert err.message == "AI Refinement Error: boom"
    assert gen.classify_provider_error(RuntimeError("x"), "chat").message == "AI Chat Error: x"
    assert gen.classify_provider_error(RuntimeError("x")).message == "AI Service Error: x"


def test_available_models_returns_copies():
    orch, _ = _orchestrator()
    models = orch.available_models()
    assert [m["id"] for m in models][0] == "gemini-2.0-flash-lite"
    models[0]["id"] = "changed"
    assert orch.available_models()[0]["id"] == "gemini-2.0-flash-lite"


def test_build_orchestrator_requires_api_key():
    with pytest.raises(ProviderConfigError):
        gen.build_orchestrator(StudioConfig(api_key=None))


def test_build_orchestrator_with_key():
    orch = gen.build_orchestrator(StudioConfig(api_key="test-key", default_model="gemini-1.5-flash"))
    assert orch.default_model == "gemini-1.5-flash"
