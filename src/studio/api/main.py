from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
import os
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from ..core.config import get_config
from ..infrastructure.session_store import get_session_store
from ..observability.metrics import metrics_middleware_factory
from ..security.rate_limit import rate_limit_middleware_factory
from ..services.generation import build_orchestrator
from .errors import install_error_handlers
from .routers.ai import router as ai_router
from .routers.auth import router as auth_router
from .routers.components import router as components_router
from .routers.sessions import router as sessions_router

load_dotenv()  # GOOGLE_API_KEY, JWT_SECRET, MONGO_URL, ...

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("studio.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Missing provider credentials abort start-up
    app.state.orchestrator = build_orchestrator(get_config())
    logger.info("Session store: %s", type(get_session_store()).__name__)
    yield


app = FastAPI(title="Component Studio API", version="0.1.0", lifespan=lifespan)

app.middleware("http")(rate_limit_middleware_factory())
app.middleware("http")(metrics_middleware_factory())

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL", "http://localhost:3000")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api")
app.include_router(ai_router, prefix="/api")
app.include_router(sessions_router, prefix="/api")
app.include_router(components_router, prefix="/api")

install_error_handlers(app)


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "store": type(get_session_store()).__name__,
        },
    }


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
