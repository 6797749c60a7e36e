"""Main FastAPI application for the voice-gated command controller."""

from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from synapvoice import __version__
from synapvoice.config import settings
from synapvoice.api.controller import router as controller_router
from synapvoice.clients import (
    QueueingSynthesizer,
    RecordingRouter,
    VoiceBackendClient,
    WebSocketAudioRecorder,
    create_state_store
)
from synapvoice.middleware import SessionAuditMiddleware
from synapvoice.models.api_models import HealthResponse
from synapvoice.services.controller import VoiceController
from synapvoice.services.registry import CredentialRegistry


# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


def build_controller() -> VoiceController:
    """Wire the controller from settings: state store, backend client, microphone bridge."""
    registry = CredentialRegistry(create_state_store(settings))
    return VoiceController(
        registry=registry,
        backend=VoiceBackendClient(config=settings),
        recorder=WebSocketAudioRecorder(config=settings),
        synthesizer=QueueingSynthesizer(),
        router=RecordingRouter(),
        config=settings
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting voice controller",
                port=settings.port,
                host=settings.host,
                voice_backend=settings.voice_backend_url,
                state_backend=settings.state_backend)

    controller = build_controller()
    ready = await controller.start()
    if not ready:
        logger.warning("Voice backend not ready, enrollment disabled until it recovers")
    app.state.controller = controller

    yield

    logger.info("Shutting down voice controller")
    await controller.backend.aclose()


# Create FastAPI application
app = FastAPI(
    title="SynapVoice Controller",
    description="Voice-gated command controller with enrollment, challenge-response verification and speaker identification",
    version=__version__,
    lifespan=lifespan
)

# Add middleware (order matters - last added is executed first)
app.add_middleware(SessionAuditMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(controller_router)


@app.get("/healthz", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow(),
        version=__version__
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "synapvoice.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False
    )
