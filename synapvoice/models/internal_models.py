"""Internal data models for the voice-gated command controller."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..config import NavigationDestination


class SessionStatus(str, Enum):
    """Transient status shown to the user while the controller works."""

    IDLE = "idle"
    LISTENING = "listening"
    RECORDING = "recording"
    PROCESSING = "processing"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    SUCCESS = "success"
    ERROR = "error"
    DENIED = "denied"
    LOCKED = "locked"
    CHALLENGE = "challenge"
    INFO = "info"
    ENROLLING = "enrolling"
    PIN_REQUIRED = "pin_required"


class CaptureMode(str, Enum):
    """Completion discipline of a speech capture."""

    FIXED = "fixed"            # the recording timer governs completion
    OPEN_ENDED = "open_ended"  # the recognizer's end-of-speech governs completion


class EnrollmentState(str, Enum):
    INIT = "init"
    PROMPT = "prompt"
    RECORD = "record"
    BUILD = "build"
    DONE = "done"
    FAILED = "failed"


class ChallengeState(str, Enum):
    IDLE = "idle"
    STARTED = "started"
    PROMPT = "prompt"
    LISTEN = "listen"
    ANALYZE = "analyze"
    VERIFIED = "verified"
    DENIED = "denied"
    ERROR = "error"


class Intent(str, Enum):
    ENROLL = "enroll"
    AUTHENTICATE = "authenticate"
    HELP = "help"
    RESET = "reset"
    NAVIGATE = "navigate"
    UNMATCHED = "unmatched"


# Backend decision category for a profile without a voiceprint
NOT_ENROLLED = "NOT_ENROLLED"


@dataclass
class Profile:
    """A named identity that may hold a voiceprint."""

    name: str
    enrolled: bool = False


@dataclass
class AudioSample:
    """Opaque recorded audio payload."""

    data: bytes
    content_type: str = "audio/wav"

    @property
    def size(self) -> int:
        return len(self.data)

    def is_usable(self, min_bytes: int) -> bool:
        return self.size >= min_bytes


@dataclass
class CaptureResult:
    """Joined outcome of a recording and its transcription."""

    audio: AudioSample
    transcript: str = ""


@dataclass
class EnrollmentRun:
    """One pass through the enrollment protocol for a single profile."""

    profile: str
    phrases: List[str]
    step: int = 0
    samples: List[AudioSample] = field(default_factory=list)
    state: EnrollmentState = EnrollmentState.INIT
    message: str = ""

    @property
    def current_phrase(self) -> Optional[str]:
        if 1 <= self.step <= len(self.phrases):
            return self.phrases[self.step - 1]
        return None


@dataclass
class ChallengeRun:
    """A backend-issued challenge and its verdict."""

    profile: Optional[str] = None
    session_id: Optional[str] = None
    phrase: Optional[str] = None
    spoken_text: str = ""
    state: ChallengeState = ChallengeState.IDLE
    speaker_match: bool = False
    phrase_match: bool = False
    message: str = ""


@dataclass
class IdentificationResult:
    """Best match of one audio sample against the enrolled profiles."""

    identified: bool
    score: float
    profile: Optional[str] = None
    decision: str = ""
    error: Optional[str] = None

    def __post_init__(self):
        """Validate score range after initialization."""
        if not (0.0 <= self.score <= 1.0):
            raise ValueError(f"Score must be between 0.0 and 1.0, got {self.score}")


@dataclass
class Command:
    """A classified transcript."""

    intent: Intent
    transcript: str
    target: Optional[str] = None
    destination: Optional[NavigationDestination] = None
