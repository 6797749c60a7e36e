"""
Voice command controller.

Owns the session and wires the registry, capture coordinator and the
enrollment, identification and challenge protocols behind a single
``dispatch`` entry point. Navigation is gated on a verified session and,
when a voiceprint exists, on identifying the speaker of the command audio.
"""

import logging
from typing import Any, Dict, Optional

from ..clients.capabilities import (
    AudioRecorder,
    Clock,
    QueueingSynthesizer,
    RecordingRouter,
    Router,
    SpeechRecognizer,
    SpeechSynthesizer
)
from ..clients.state_store import StateStoreError
from ..clients.voice_backend_client import BackendUnavailable, VoiceBackendClient
from ..config import settings, Settings
from ..models.internal_models import (
    AudioSample,
    CaptureMode,
    ChallengeRun,
    Command,
    EnrollmentRun,
    Intent,
    SessionStatus
)
from .capture_service import CaptureError, SpeechCaptureCoordinator
from .challenge_service import ChallengeService
from .command_service import CommandInterpreter
from .enrollment_service import EnrollmentService
from .identification_service import IdentificationService
from .registry import CredentialRegistry, RegistryError
from .session import Session

logger = logging.getLogger(__name__)


class VoiceController:
    """Session-scoped voice gate in front of navigation and admin commands."""

    def __init__(
        self,
        registry: CredentialRegistry,
        backend: VoiceBackendClient,
        recorder: AudioRecorder,
        recognizer: Optional[SpeechRecognizer] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
        router: Optional[Router] = None,
        clock: Optional[Clock] = None,
        config: Optional[Settings] = None
    ):
        config = config or settings
        self.config = config
        self.registry = registry
        self.backend = backend
        self.synthesizer = synthesizer
        self.router = router if router is not None else RecordingRouter()

        self.session = Session(clock=clock, synthesizer=synthesizer)
        self.capture = SpeechCaptureCoordinator(
            recorder,
            recognizer,
            clock=self.session.clock,
            on_partial=self.session.set_live_transcript,
            config=config
        )
        self.enrollment = EnrollmentService(registry, backend, self.capture, self.session, config)
        self.identification = IdentificationService(backend, registry, config)
        self.challenge = ChallengeService(registry, backend, self.capture, self.session, config)
        self.interpreter = CommandInterpreter(config=config)

        self._verifying = False

    @property
    def busy(self) -> bool:
        """True while an enrollment, a challenge or a capture is in flight."""
        return self.enrollment.in_progress or self._verifying or self.capture.capturing

    async def start(self) -> bool:
        """Probe the voice backend and record whether it is ready; never raises."""
        try:
            health = await self.backend.health()
            self.session.backend_ready = health.ready
        except BackendUnavailable as e:
            logger.warning(f"Voice backend health check failed: {e}")
            self.session.backend_ready = False
        logger.info(f"Voice backend ready: {self.session.backend_ready}")
        return self.session.backend_ready

    # -- listening ----------------------------------------------------------

    async def listen(self) -> Optional[Command]:
        """
        Capture one spoken command and dispatch it.

        Returns:
            The dispatched Command, or None if nothing was dispatched
        """
        if self.busy:
            logger.debug("Listen refused: controller busy")
            return None

        self.session.update(SessionStatus.LISTENING, "LISTENING...")
        try:
            result = await self.capture.capture(self.config.command_capture_ms, CaptureMode.OPEN_ENDED)
        except CaptureError as e:
            logger.error(f"Command capture failed: {e}")
            self.session.update(SessionStatus.ERROR, str(e), self.config.result_revert_ms)
            return None

        if not result.transcript:
            self.session.update(SessionStatus.IDLE, "")
            return None

        logger.info(f"Heard command: {result.transcript!r} ({result.audio.size} bytes of audio)")
        return await self.dispatch(result.transcript, result.audio)

    # -- dispatch -----------------------------------------------------------

    async def dispatch(
        self,
        transcript: str,
        audio: Optional[AudioSample] = None,
        pin: Optional[str] = None,
        confirm_pin: Optional[str] = None
    ) -> Command:
        """
        Classify ``transcript`` and carry out the matching action.

        Returns:
            The classified Command

        Raises:
            InputValidationError: Enroll command with a malformed PIN
            CredentialError: Enroll command with a wrong PIN
        """
        command = self.interpreter.classify(transcript)
        logger.info(f"Dispatching {command.intent.value}: {command.transcript!r}")

        if command.intent is Intent.ENROLL:
            await self._dispatch_enroll(command, pin, confirm_pin)
        elif command.intent is Intent.AUTHENTICATE:
            await self.verify()
        elif command.intent is Intent.HELP:
            self.session.update(SessionStatus.INFO, self.interpreter.help_summary(), self.config.help_revert_ms)
            await self.session.speak(self.interpreter.help_utterance())
        elif command.intent is Intent.RESET:
            await self.reset_all()
        elif command.intent is Intent.NAVIGATE:
            await self._navigate(command, audio)
        else:
            self.session.update(SessionStatus.IDLE, "SAY 'HELP'", self.config.unmatched_revert_ms)
        return command

    async def _dispatch_enroll(self, command: Command, pin: Optional[str], confirm_pin: Optional[str]) -> None:
        if self.enrollment.in_progress:
            logger.debug("Enrollment already running, ignoring enroll command")
            return
        if pin is None:
            message = "ENTER PIN" if self.registry.has_pin() else "CREATE PIN"
            self.session.update(SessionStatus.PIN_REQUIRED, message, self.config.result_revert_ms)
            return
        await self.start_enrollment(command.target, pin, confirm_pin)

    async def _navigate(self, command: Command, audio: Optional[AudioSample]) -> None:
        destination = command.destination
        if not self.session.verified:
            self.session.update(SessionStatus.LOCKED, "SAY 'UNLOCK' FIRST", self.config.locked_revert_ms)
            await self.session.speak("Please say unlock to authenticate.")
            return

        enrolled = self.registry.list_enrolled()
        if enrolled and audio is not None and audio.is_usable(self.config.min_audio_bytes):
            self.session.update(SessionStatus.VERIFYING, "VERIFYING VOICE...")
            try:
                result = await self.identification.identify(audio, enrolled)
            except BackendUnavailable as e:
                # Errors outside the per-profile scan do not block a verified session
                logger.warning(f"Speaker identification unavailable, allowing navigation: {e}")
            else:
                if not result.identified:
                    score = round(result.score * 100)
                    self.session.update(
                        SessionStatus.DENIED,
                        f"ACCESS DENIED\nConfidence: {score}%",
                        self.config.result_revert_ms
                    )
                    await self.session.speak("Access denied. Voice not recognized.")
                    return
                if result.profile is not None:
                    self.session.current_user = result.profile

        self.router.navigate(destination.path)
        self.session.update(SessionStatus.SUCCESS, f"→ {destination.name.upper()}", self.config.navigation_revert_ms)
        await self.session.speak(destination.name)

    # -- direct actions -----------------------------------------------------

    def admit_enrollment(self, name: Optional[str], pin: Optional[str], confirm_pin: Optional[str] = None) -> Optional[str]:
        """
        Pass the enrollment entry checks and register the target profile.

        Returns:
            The profile to enroll, or None when enrollment must not start

        Raises:
            InputValidationError: Malformed PIN or confirmation mismatch
            CredentialError: Wrong PIN
            StateStoreError: The registry could not be persisted
        """
        if self._verifying or self.capture.capturing:
            logger.debug("Enrollment refused: verification or capture in flight")
            return None

        name = (name or "").strip() or self.registry.default_profile
        try:
            if not self.enrollment.admit(pin, confirm_pin):
                return None
            self.registry.add_profile(name)
        except (RegistryError, StateStoreError) as e:
            self.session.update(SessionStatus.ERROR, str(e), self.config.result_revert_ms)
            raise
        return name

    async def run_enrollment(self, name: str) -> Optional[EnrollmentRun]:
        """Run an already admitted enrollment."""
        return await self.enrollment.run(name)

    async def start_enrollment(
        self,
        name: Optional[str],
        pin: Optional[str],
        confirm_pin: Optional[str] = None
    ) -> Optional[EnrollmentRun]:
        profile = self.admit_enrollment(name, pin, confirm_pin)
        if profile is None:
            return None
        return await self.run_enrollment(profile)

    async def verify(self) -> Optional[ChallengeRun]:
        """Run a challenge-response verification; None while another action is running."""
        if self.busy:
            logger.debug("Verification refused: controller busy")
            return None
        self._verifying = True
        try:
            return await self.challenge.verify()
        finally:
            self._verifying = False

    def add_profile(self, name: str, pin: Optional[str], confirm_pin: Optional[str] = None) -> bool:
        """
        PIN-gated profile creation.

        Returns:
            True if the profile was added, False if it already existed
        """
        self.registry.check_gate(pin, confirm_pin)
        return self.registry.add_profile(name)

    def remove_profile(self, name: str) -> bool:
        return self.registry.remove_profile(name)

    def sign_out(self) -> None:
        self.session.sign_out()
        self.session.update(SessionStatus.IDLE, "")

    async def reset_all(self) -> None:
        """Forget every credential and profile and sign the session out."""
        self.registry.reset_all()
        self.session.sign_out()
        self.session.update(SessionStatus.SUCCESS, "SYSTEM RESET", self.config.reset_revert_ms)
        await self.session.speak("System has been reset.")

    def snapshot(self) -> Dict[str, Any]:
        """Session view for the UI; queued utterances and the pending route are handed over once."""
        utterances = self.synthesizer.drain() if isinstance(self.synthesizer, QueueingSynthesizer) else []
        route = self.router.take_pending() if isinstance(self.router, RecordingRouter) else None
        return {
            "status": self.session.status.value,
            "message": self.session.message,
            "verified": self.session.verified,
            "current_user": self.session.current_user,
            "live_transcript": self.session.live_transcript,
            "backend_ready": self.session.backend_ready,
            "enrolled": self.registry.list_enrolled(),
            "enrolling": self.enrollment.in_progress,
            "utterances": utterances,
            "route": route
        }
