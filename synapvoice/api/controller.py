"""
Controller API endpoints: command dispatch, enrollment, verification and
profile administration.

Capture-bearing actions are started as background tasks; callers poll
``GET /session`` for progress.
"""

from datetime import datetime
from typing import Any, Dict

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from synapvoice.clients.state_store import StateStoreError
from synapvoice.models.api_models import (
    CommandRequest,
    EnrollRequest,
    ErrorResponse,
    ProfileListResponse,
    ProfileRequest,
    SessionResponse
)
from synapvoice.models.internal_models import Intent
from synapvoice.services.controller import VoiceController
from synapvoice.services.registry import CredentialError, InputValidationError, RegistryError
from synapvoice.utils.audio_utils import AudioProcessingError, decode_audio_payload

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1", tags=["controller"])


def get_controller(request: Request) -> VoiceController:
    """Controller created by the application lifespan."""
    return request.app.state.controller


def http_error(status_code: int, error_type: str, message: str, correlation_id: str) -> HTTPException:
    """Build an HTTPException carrying the standard error body."""
    error_response = ErrorResponse(
        error=error_type,
        message=message,
        correlation_id=correlation_id,
        timestamp=datetime.utcnow()
    )
    return HTTPException(status_code=status_code, detail=error_response.model_dump(mode="json"))


def registry_http_error(error: Exception, correlation_id: str) -> HTTPException:
    if isinstance(error, StateStoreError):
        return http_error(503, "StateStoreError", str(error), correlation_id)
    if isinstance(error, CredentialError):
        return http_error(403, "CredentialError", str(error), correlation_id)
    if isinstance(error, InputValidationError):
        return http_error(422, "InputValidationError", str(error), correlation_id)
    return http_error(400, "RegistryError", str(error), correlation_id)


def ensure_idle(controller: VoiceController, correlation_id: str) -> None:
    if controller.busy:
        logger.warning("Request refused, controller busy", correlation_id=correlation_id)
        raise http_error(409, "ControllerBusy", "Another voice operation is in progress", correlation_id)


def snapshot(controller: VoiceController) -> SessionResponse:
    return SessionResponse(**controller.snapshot())


@router.get("/session", response_model=SessionResponse)
async def get_session(controller: VoiceController = Depends(get_controller)) -> SessionResponse:
    """Current session status; queued utterances and the pending route are delivered once."""
    return snapshot(controller)


@router.post("/commands", response_model=SessionResponse)
async def post_command(
    request: CommandRequest,
    http_request: Request,
    background_tasks: BackgroundTasks,
    controller: VoiceController = Depends(get_controller)
) -> SessionResponse:
    """
    Dispatch a recognized command transcript.

    Enrollment and verification continue in the background; everything else
    completes before the response is returned.

    Args:
        request: Transcript plus optional base64 audio and admin PIN
        http_request: HTTP request for correlation ID extraction

    Returns:
        SessionResponse after dispatch (or after scheduling)

    Raises:
        HTTPException: 409 when busy, 422 for bad audio or PIN, 403 for a wrong PIN
    """
    correlation_id = http_request.headers.get("X-Call-ID", "unknown")
    ensure_idle(controller, correlation_id)

    try:
        audio = decode_audio_payload(request.audio)
    except AudioProcessingError as e:
        raise http_error(422, "AudioProcessingError", str(e), correlation_id)

    command = controller.interpreter.classify(request.transcript)
    logger.info(
        "Command received",
        intent=command.intent.value,
        transcript=command.transcript,
        audio_bytes=audio.size if audio else 0,
        correlation_id=correlation_id
    )

    if command.intent is Intent.ENROLL and request.pin is not None:
        try:
            profile = controller.admit_enrollment(command.target, request.pin, request.confirm_pin)
        except (RegistryError, StateStoreError) as e:
            logger.warning("Enrollment gate rejected", error=str(e), correlation_id=correlation_id)
            raise registry_http_error(e, correlation_id)
        if profile is not None:
            background_tasks.add_task(controller.run_enrollment, profile)
    elif command.intent is Intent.AUTHENTICATE:
        background_tasks.add_task(controller.verify)
    else:
        await controller.dispatch(request.transcript, audio, request.pin, request.confirm_pin)

    return snapshot(controller)


@router.post("/listen", response_model=SessionResponse)
async def listen(
    http_request: Request,
    background_tasks: BackgroundTasks,
    controller: VoiceController = Depends(get_controller)
) -> SessionResponse:
    """Capture one spoken command from the microphone and dispatch it."""
    correlation_id = http_request.headers.get("X-Call-ID", "unknown")
    ensure_idle(controller, correlation_id)
    background_tasks.add_task(controller.listen)
    logger.info("Listening scheduled", correlation_id=correlation_id)
    return snapshot(controller)


@router.post("/enroll", response_model=SessionResponse)
async def enroll(
    request: EnrollRequest,
    http_request: Request,
    background_tasks: BackgroundTasks,
    controller: VoiceController = Depends(get_controller)
) -> SessionResponse:
    """
    Start a PIN-gated enrollment.

    With no PIN set yet, ``pin`` and ``confirm_pin`` create it.
    """
    correlation_id = http_request.headers.get("X-Call-ID", "unknown")
    ensure_idle(controller, correlation_id)

    try:
        profile = controller.admit_enrollment(request.profile, request.pin, request.confirm_pin)
    except (RegistryError, StateStoreError) as e:
        logger.warning("Enrollment gate rejected", error=str(e), correlation_id=correlation_id)
        raise registry_http_error(e, correlation_id)

    if profile is not None:
        logger.info("Enrollment scheduled", profile=profile, correlation_id=correlation_id)
        background_tasks.add_task(controller.run_enrollment, profile)
    return snapshot(controller)


@router.post("/verify", response_model=SessionResponse)
async def verify(
    http_request: Request,
    background_tasks: BackgroundTasks,
    controller: VoiceController = Depends(get_controller)
) -> SessionResponse:
    """Start challenge-response verification."""
    correlation_id = http_request.headers.get("X-Call-ID", "unknown")
    ensure_idle(controller, correlation_id)
    background_tasks.add_task(controller.verify)
    logger.info("Verification scheduled", correlation_id=correlation_id)
    return snapshot(controller)


@router.post("/sign-out", response_model=SessionResponse)
async def sign_out(controller: VoiceController = Depends(get_controller)) -> SessionResponse:
    controller.sign_out()
    return snapshot(controller)


@router.post("/reset", response_model=SessionResponse)
async def reset(http_request: Request, controller: VoiceController = Depends(get_controller)) -> SessionResponse:
    """Forget the PIN, every added profile and all voiceprint registrations."""
    correlation_id = http_request.headers.get("X-Call-ID", "unknown")
    ensure_idle(controller, correlation_id)
    await controller.reset_all()
    logger.info("System reset", correlation_id=correlation_id)
    return snapshot(controller)


def profile_list(controller: VoiceController) -> ProfileListResponse:
    return ProfileListResponse(
        profiles=controller.registry.list_profiles(),
        enrolled=controller.registry.list_enrolled(),
        default=controller.registry.default_profile
    )


@router.get("/profiles", response_model=ProfileListResponse)
async def list_profiles(controller: VoiceController = Depends(get_controller)) -> ProfileListResponse:
    return profile_list(controller)


@router.post("/profiles", response_model=ProfileListResponse)
async def add_profile(
    request: ProfileRequest,
    http_request: Request,
    controller: VoiceController = Depends(get_controller)
) -> ProfileListResponse:
    """Add a profile behind the admin PIN; adding an existing name is a no-op."""
    correlation_id = http_request.headers.get("X-Call-ID", "unknown")
    try:
        added = controller.add_profile(request.name, request.pin, request.confirm_pin)
    except (RegistryError, StateStoreError) as e:
        logger.warning("Profile add rejected", name=request.name, error=str(e), correlation_id=correlation_id)
        raise registry_http_error(e, correlation_id)

    logger.info("Profile add", name=request.name, added=added, correlation_id=correlation_id)
    return profile_list(controller)


@router.delete("/profiles/{name}", response_model=ProfileListResponse)
async def remove_profile(
    name: str,
    http_request: Request,
    controller: VoiceController = Depends(get_controller)
) -> ProfileListResponse:
    correlation_id = http_request.headers.get("X-Call-ID", "unknown")
    if name == controller.registry.default_profile:
        raise http_error(422, "InputValidationError", "DEFAULT PROFILE CANNOT BE REMOVED", correlation_id)
    if not controller.remove_profile(name):
        raise http_error(404, "ProfileNotFound", f"Profile {name} does not exist", correlation_id)

    logger.info("Profile removed", name=name, correlation_id=correlation_id)
    return profile_list(controller)


@router.get("/health", response_model=Dict[str, Any])
async def controller_health_check(controller: VoiceController = Depends(get_controller)) -> Dict[str, Any]:
    """
    Health check for the controller and its voice backend.

    Returns:
        Dict with overall status and component checks
    """
    backend_ready = await controller.start()
    return {
        "status": "healthy" if backend_ready else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "components": {
            "voice_backend": {
                "status": "healthy" if backend_ready else "unhealthy",
                "details": controller.backend.base_url
            },
            "registry": {
                "status": "healthy",
                "details": {
                    "profiles": len(controller.registry.list_profiles()),
                    "enrolled": len(controller.registry.list_enrolled()),
                    "pin_set": controller.registry.has_pin()
                }
            }
        }
    }
