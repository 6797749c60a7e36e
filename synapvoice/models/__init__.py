"""Data models for the voice-gated command controller."""

from .api_models import (
    AuthenticateResult,
    BackendHealth,
    ChallengeIssued,
    ChallengeVerdict,
    CommandRequest,
    EnrollRequest,
    EnrollResult,
    ErrorResponse,
    HealthResponse,
    ProfileListResponse,
    ProfileRequest,
    SessionResponse
)
from .internal_models import (
    NOT_ENROLLED,
    AudioSample,
    CaptureMode,
    CaptureResult,
    ChallengeRun,
    ChallengeState,
    Command,
    EnrollmentRun,
    EnrollmentState,
    IdentificationResult,
    Intent,
    Profile,
    SessionStatus
)

__all__ = [
    "AuthenticateResult",
    "BackendHealth",
    "ChallengeIssued",
    "ChallengeVerdict",
    "CommandRequest",
    "EnrollRequest",
    "EnrollResult",
    "ErrorResponse",
    "HealthResponse",
    "ProfileListResponse",
    "ProfileRequest",
    "SessionResponse",
    "NOT_ENROLLED",
    "AudioSample",
    "CaptureMode",
    "CaptureResult",
    "ChallengeRun",
    "ChallengeState",
    "Command",
    "EnrollmentRun",
    "EnrollmentState",
    "IdentificationResult",
    "Intent",
    "Profile",
    "SessionStatus"
]
