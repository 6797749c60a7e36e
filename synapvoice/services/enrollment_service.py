"""
Enrollment protocol.

Drives the fixed three-phrase capture sequence and submits the samples to the
voice backend to build a voiceprint:

    INIT -> (PROMPT[i] -> RECORD[i]) x 3 -> BUILD -> DONE | FAILED

Only one enrollment may run in the process at a time; a second attempt while
one is active is ignored without touching any state.
"""

import logging
from typing import Optional

from ..clients.state_store import StateStoreError
from ..clients.voice_backend_client import BackendUnavailable, VoiceBackendClient
from ..config import settings, Settings
from ..models.internal_models import (
    CaptureMode,
    EnrollmentRun,
    EnrollmentState,
    SessionStatus
)
from .capture_service import CaptureError, SpeechCaptureCoordinator
from .registry import CredentialRegistry
from .session import Session

logger = logging.getLogger(__name__)

INTRO_UTTERANCE = "Voice enrollment started. Repeat each phrase after me."
DONE_UTTERANCE = "Voiceprint created successfully."


class EnrollmentService:
    """Runs enrollment passes; holds the process-wide enrollment guard."""

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

        self.phrases = list(config.enrollment_phrases)
        self.capture_ms = config.enrollment_capture_ms
        self.intro_delay_ms = config.enrollment_intro_delay_ms
        self.settle_delay_ms = config.enrollment_settle_delay_ms
        self.sample_pause_ms = config.enrollment_sample_pause_ms
        self.revert_ms = config.result_revert_ms

        self._active: Optional[EnrollmentRun] = None

    @property
    def in_progress(self) -> bool:
        return self._active is not None

    @property
    def active_run(self) -> Optional[EnrollmentRun]:
        return self._active

    def admit(self, pin: Optional[str], confirm: Optional[str] = None) -> bool:
        """
        Entry checks ahead of a run.

        Returns False when the run must not start: another enrollment is
        active (ignored silently) or the backend is offline.

        Raises:
            InputValidationError: Malformed PIN or setup confirmation mismatch
            CredentialError: Wrong PIN
        """
        if self.in_progress:
            logger.debug("Enrollment already running, ignoring new request")
            return False
        if not self.session.backend_ready:
            logger.warning("Enrollment refused: voice backend offline")
            self.session.update(SessionStatus.ERROR, "OFFLINE", self.revert_ms)
            return False
        self.registry.check_gate(pin, confirm)
        return True

    async def enroll(self, profile: str, pin: Optional[str], confirm: Optional[str] = None) -> Optional[EnrollmentRun]:
        """Gate, then run enrollment for ``profile``; None when refused."""
        if not self.admit(pin, confirm):
            return None
        return await self.run(profile)

    async def run(self, profile: str) -> Optional[EnrollmentRun]:
        """
        Capture the enrollment phrases for ``profile`` and build its voiceprint.

        The caller is expected to have passed the credential gate.

        Returns:
            The finished EnrollmentRun (DONE or FAILED), or None if another
            enrollment was already active
        """
        if self._active is not None:
            logger.debug("Enrollment already running, ignoring new request")
            return None

        run = EnrollmentRun(profile=profile, phrases=list(self.phrases))
        self._active = run
        try:
            await self._drive(run)
        finally:
            self._active = None

        self.session.update(
            SessionStatus.SUCCESS if run.state is EnrollmentState.DONE else SessionStatus.ERROR,
            run.message,
            self.revert_ms
        )
        if run.state is EnrollmentState.DONE:
            await self.session.speak(DONE_UTTERANCE)
        return run

    def _fail(self, run: EnrollmentRun, message: str) -> None:
        run.state = EnrollmentState.FAILED
        run.message = message
        logger.error(f"Enrollment for {run.profile} failed at step {run.step} ({run.current_phrase!r}): {message}")

    async def _drive(self, run: EnrollmentRun) -> None:
        logger.info(f"Starting enrollment for profile {run.profile}")
        self.session.update(SessionStatus.ENROLLING, f"INITIALIZING {run.profile.upper()}")
        await self.session.speak(INTRO_UTTERANCE)
        await self.session.pause(self.intro_delay_ms)

        total = len(run.phrases)
        for index, phrase in enumerate(run.phrases, start=1):
            run.step = index
            run.state = EnrollmentState.PROMPT
            self.session.update(SessionStatus.ENROLLING, f'SAY: "{phrase}"')
            await self.session.speak(phrase)
            # Let the prompt finish so the recording does not pick it up
            await self.session.pause(self.settle_delay_ms)

            run.state = EnrollmentState.RECORD
            self.session.update(SessionStatus.RECORDING, "RECORDING...")
            try:
                result = await self.capture.capture(self.capture_ms, CaptureMode.FIXED)
            except CaptureError as e:
                self._fail(run, str(e))
                return

            run.samples.append(result.audio)
            self.session.update(SessionStatus.PROCESSING, f"SAMPLE {index}/{total} ✓")
            await self.session.pause(self.sample_pause_ms)

        run.state = EnrollmentState.BUILD
        self.session.update(SessionStatus.PROCESSING, "CREATING VOICEPRINT...")

        try:
            result = await self.backend.enroll(self.registry.profile_id(run.profile), run.samples)
        except BackendUnavailable as e:
            self._fail(run, str(e))
            return

        if not result.success:
            self._fail(run, result.message or "ENROLLMENT FAILED")
            return

        try:
            self.registry.mark_enrolled(run.profile)
        except StateStoreError as e:
            self._fail(run, f"FAILED TO SAVE PROFILE: {e}")
            return

        run.state = EnrollmentState.DONE
        run.message = "VOICEPRINT CREATED"
        logger.info(f"Enrollment completed for profile {run.profile}")
