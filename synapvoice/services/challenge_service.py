"""
Challenge-response verification.

Issues a one-time phrase for the target profile, captures the spoken
response and asks the backend to check speaker and phrase together:

    IDLE -> STARTED -> PROMPT -> LISTEN -> ANALYZE -> VERIFIED | DENIED | ERROR

The target is the first enrolled profile. VERIFIED binds the session and is
the only outcome whose status does not revert to idle.
"""

import logging
from typing import Optional

from ..clients.voice_backend_client import BackendUnavailable, VoiceBackendClient
from ..config import settings, Settings
from ..models.internal_models import (
    CaptureMode,
    ChallengeRun,
    ChallengeState,
    SessionStatus
)
from .capture_service import CaptureError, SpeechCaptureCoordinator
from .registry import CredentialRegistry
from .session import Session

logger = logging.getLogger(__name__)


class ChallengeError(Exception):
    """Raised when a challenge cannot be carried through to a verdict."""
    pass


class DecisionError(ChallengeError):
    """Raised when the backend rejects the speaker, the phrase, or both."""

    def __init__(self, speaker_match: bool, phrase_match: bool):
        self.speaker_match = speaker_match
        self.phrase_match = phrase_match
        super().__init__(self.describe())

    def describe(self) -> str:
        voice = "✓" if self.speaker_match else "✗"
        phrase = "✓" if self.phrase_match else "✗"
        return f"VOICE: {voice}\nPHRASE: {phrase}"


class NoAudioError(ChallengeError):
    """Raised when the challenge response recording is absent or too short."""
    pass


class ChallengeService:
    """Runs one challenge-response verification at a time."""

    def __init__(
        self,
        registry: CredentialRegistry,
        backend: VoiceBackendClient,
        capture: SpeechCaptureCoordinator,
        session: Session,
        config: Optional[Settings] = None
    ):
        config = config or settings
        self.registry = registry
        self.backend = backend
        self.capture = capture
        self.session = session

        self.settle_delay_ms = config.challenge_settle_delay_ms
        self.capture_ms = config.challenge_capture_ms
        self.min_audio_bytes = config.min_audio_bytes
        self.revert_ms = config.result_revert_ms

    async def verify(self) -> ChallengeRun:
        """
        Run a full challenge against the first enrolled profile.

        Returns:
            The finished ChallengeRun (VERIFIED, DENIED or ERROR)
        """
        run = ChallengeRun()
        enrolled = self.registry.list_enrolled()
        if not enrolled:
            run.state = ChallengeState.ERROR
            run.message = "NO VOICEPRINT"
            self.session.update(SessionStatus.ERROR, run.message, self.revert_ms)
            await self.session.speak("Please create a voiceprint first")
            return run

        run.profile = enrolled[0]

        try:
            await self._drive(run)
        except DecisionError as e:
            run.state = ChallengeState.DENIED
            run.message = e.describe()
            logger.info(f"Challenge denied for {run.profile}: speaker={e.speaker_match}, phrase={e.phrase_match}")
            self.session.update(SessionStatus.DENIED, run.message, self.revert_ms)
            await self.session.speak("Authentication failed. Please try again.")
        except NoAudioError as e:
            self._error(run, e)
            await self.session.speak("No audio detected. Please try again.")
        except (ChallengeError, CaptureError, BackendUnavailable) as e:
            self._error(run, e)
        return run

    def _error(self, run: ChallengeRun, error: Exception) -> None:
        run.state = ChallengeState.ERROR
        run.message = str(error)
        logger.error(f"Challenge for {run.profile} failed: {error}")
        self.session.update(SessionStatus.ERROR, run.message, self.revert_ms)

    async def _drive(self, run: ChallengeRun) -> None:
        run.state = ChallengeState.STARTED
        self.session.update(SessionStatus.VERIFYING, "STARTING...")
        issued = await self.backend.start_challenge(self.registry.profile_id(run.profile))
        if not issued.success or not issued.session_id:
            raise ChallengeError(issued.message or "CHALLENGE UNAVAILABLE")
        run.session_id = issued.session_id
        run.phrase = issued.phrase
        logger.info(f"Challenge {run.session_id} issued for {run.profile}")

        run.state = ChallengeState.PROMPT
        self.session.update(SessionStatus.CHALLENGE, f'SAY: "{run.phrase}"')
        await self.session.speak(run.phrase)
        # Keep the prompt audio out of the response recording
        await self.session.pause(self.settle_delay_ms)

        run.state = ChallengeState.LISTEN
        self.session.update(SessionStatus.LISTENING, "SPEAK NOW")
        result = await self.capture.capture(self.capture_ms, CaptureMode.OPEN_ENDED)

        run.state = ChallengeState.ANALYZE
        self.session.update(SessionStatus.PROCESSING, "ANALYZING...")

        # Identity rests on the voice match, so a missing transcript falls back to the issued phrase
        run.spoken_text = result.transcript or run.phrase
        if not result.audio.is_usable(self.min_audio_bytes):
            logger.warning(f"Challenge response too short: {result.audio.size} bytes")
            raise NoAudioError("NO AUDIO DETECTED")

        verdict = await self.backend.verify_challenge(run.session_id, result.audio, run.spoken_text)
        run.speaker_match = verdict.speaker_match
        run.phrase_match = verdict.phrase_match
        if not (verdict.success and verdict.speaker_match and verdict.phrase_match):
            raise DecisionError(verdict.speaker_match, verdict.phrase_match)

        run.state = ChallengeState.VERIFIED
        run.message = "✓ AUTHENTICATED"
        self.session.bind_user(run.profile)
        self.session.update(SessionStatus.VERIFIED, run.message)
        await self.session.speak("Identity verified. You can now use voice commands.")
        logger.info(f"Challenge {run.session_id} verified for {run.profile}")
