from __future__ import annotations

from fastapi import APIRouter, Depends

from ...core.config import CHAT_FETCH_WINDOW
from ...domain.api_models import ChatRequest, GenerateRequest, RefineRequest
from ...security.auth import User, get_current_user
from ...services.generation import GenerationOrchestrator
from ...services.ledger import SessionLedger
from ..deps import get_ledger, get_orchestrator
from ..envelope import ok


router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/generate")
def generate(
    req: GenerateRequest,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> dict:
    session = ledger.load(req.session_id, user.email)
    result = orchestrator.generate_component(
        req.prompt,
        model=req.model or session.settings.model,
        context=ledger.generation_context(session),
    )
    session, component = ledger.append_generation(req.session_id, user.email, req.prompt, result)
    return ok(
        {
            "component": result.data,
            "version": component.version,
            "sessionId": session.session_id,
        },
        message="Component generated successfully",
        metadata=result.metadata,
    )


@router.post("/refine")
def refine(
    req: RefineRequest,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> dict:
    session = ledger.load(req.session_id, user.email)
    original = ledger.resolve_refinement_target(session, req.component_version)
    result = orchestrator.refine_component(
        original.as_artifact(),
        req.prompt,
        model=req.model or session.settings.model,
    )
    session, component = ledger.append_refinement(
        req.session_id,
        user.email,
        req.prompt,
        result,
        target_version=original.version,
    )
    return ok(
        {
            "component": result.data,
            "version": component.version,
            "sessionId": session.session_id,
        },
        message="Component refined successfully",
        metadata=result.metadata,
    )


@router.post("/chat")
def chat(
    req: ChatRequest,
    user: User = Depends(get_current_user),
    ledger: SessionLedger = Depends(get_ledger),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> dict:
    session = None
    history = None
    if req.session_id:
        # Unknown sessions are ignored: chat still answers, nothing is recorded
        session = ledger.find(req.session_id, user.email)
        if session is not None:
            history = [{"role": m.role, "content": m.content} for m in session.messages[-CHAT_FETCH_WINDOW:]]

    result = orchestrator.chat_response(req.message, history=history, model=req.model)

    if session is not None:
        ledger.append_chat_exchange(session.session_id, user.email, req.message, result.data, result.metadata)

    return ok(
        {
            "message": result.data,
            "sessionId": session.session_id if session else None,
        },
        metadata=result.metadata,
    )


@router.get("/models")
def list_models(
    user: User = Depends(get_current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> dict:
    return ok({"models": orchestrator.available_models(), "default": orchestrator.default_model})
