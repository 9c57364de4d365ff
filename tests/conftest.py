import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from .utils import FakeLLM  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_state(monkeypatch):
    """Isolate the in-memory store, users, OTPs and rate-limit counters per test."""
    from src.studio.infrastructure import session_store
    from src.studio.security import auth, rate_limit

    monkeypatch.setattr(session_store, "_store", session_store.InMemorySessionStore())
    monkeypatch.setattr(auth, "_directory", auth.UserDirectory(auth.DEMO_USERS))
    monkeypatch.setattr(auth, "_passcodes", auth.PasscodeBook())
    rate_limit.reset_rate_limits()
    yield
    rate_limit.reset_rate_limits()


@pytest.fixture(autouse=True)
def fake_llm():
    """Route API calls to an orchestrator backed by a scripted client."""
    from src.studio.api.deps import get_orchestrator
    from src.studio.api.main import app
    from src.studio.core.config import StudioConfig
    from src.studio.services.generation import GenerationOrchestrator

    llm = FakeLLM()
    orchestrator = GenerationOrchestrator(llm, StudioConfig(api_key="test-key"))
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield llm
    app.dependency_overrides.pop(get_orchestrator, None)
