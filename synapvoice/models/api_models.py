"""Pydantic models for voice backend payloads and the controller HTTP API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Voice backend responses
# ---------------------------------------------------------------------------

class BackendHealth(BaseModel):
    """Response of the backend health operation."""

    ready: bool = False


class EnrollResult(BaseModel):
    """Response of the backend enroll operation."""

    success: bool
    message: Optional[str] = None


class AuthenticateResult(BaseModel):
    """Response of the backend per-profile authenticate operation."""

    authenticated: bool = False
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    decision: str = ""


class ChallengeIssued(BaseModel):
    """Response of the backend start-challenge operation."""

    success: bool
    phrase: str = ""
    session_id: str = ""
    message: Optional[str] = None


class ChallengeVerdict(BaseModel):
    """Response of the backend verify-challenge operation."""

    success: bool
    speaker_match: bool = False
    phrase_match: bool = False
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Controller HTTP API
# ---------------------------------------------------------------------------

class CommandRequest(BaseModel):
    """Request model for dispatching a transcript."""

    transcript: str = Field(..., min_length=1, max_length=500, description="Recognized command text")
    audio: Optional[str] = Field(None, description="Base64 audio captured alongside the transcript")
    pin: Optional[str] = Field(None, description="Admin PIN, required for enrollment commands")
    confirm_pin: Optional[str] = Field(None, description="PIN confirmation when no PIN exists yet")

    @field_validator('transcript')
    @classmethod
    def validate_transcript(cls, v):
        """Reject whitespace-only transcripts."""
        if not v.strip():
            raise ValueError('Transcript must not be blank')
        return v


class EnrollRequest(BaseModel):
    """Request model for starting an enrollment."""

    profile: Optional[str] = Field(None, max_length=64, description="Profile to enroll (default profile if omitted)")
    pin: str = Field(..., description="Admin PIN")
    confirm_pin: Optional[str] = Field(None, description="PIN confirmation when no PIN exists yet")


class ProfileRequest(BaseModel):
    """Request model for adding a profile."""

    name: str = Field(..., min_length=1, max_length=64)
    pin: str = Field(..., description="Admin PIN")
    confirm_pin: Optional[str] = None


class ProfileListResponse(BaseModel):
    """Known profiles and the enrolled subset."""

    profiles: List[str]
    enrolled: List[str]
    default: str


class SessionResponse(BaseModel):
    """Snapshot of the controller session."""

    status: str = Field(..., description="Transient session status")
    message: str = Field("", description="Status message")
    verified: bool
    current_user: Optional[str] = None
    live_transcript: str = ""
    backend_ready: bool
    enrolled: List[str] = Field(default_factory=list)
    enrolling: bool = False
    utterances: List[str] = Field(default_factory=list, description="Text the UI should speak, oldest first")
    route: Optional[str] = Field(None, description="Pending navigation path for the UI router")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "verified",
                "message": "✓ AUTHENTICATED",
                "verified": True,
                "current_user": "owner",
                "live_transcript": "",
                "backend_ready": True,
                "enrolled": ["owner"],
                "enrolling": False,
                "utterances": ["Identity verified. You can now use voice commands."],
                "route": None
            }
        }


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Service version")


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    correlation_id: str = Field(..., description="Request correlation ID for tracing")
    timestamp: datetime = Field(..., description="Error timestamp")
