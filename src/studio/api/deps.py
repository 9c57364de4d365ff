from __future__ import annotations

from fastapi import Depends, Request

from ..core.config import StudioConfig, get_config
from ..infrastructure.session_store import SessionStore, get_session_store
from ..services.generation import GenerationOrchestrator
from ..services.ledger import SessionLedger


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    """The orchestrator built by the app lifespan at start-up."""
    return request.app.state.orchestrator


def get_store() -> SessionStore:
    return get_session_store()


def get_ledger(
    store: SessionStore = Depends(get_store),
    config: StudioConfig = Depends(get_config),
) -> SessionLedger:
    return SessionLedger(store, manual_edit_mode=config.manual_edit_mode)
