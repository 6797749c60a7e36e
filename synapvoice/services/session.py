"""Session state: status, identity binding and the self-clearing status timer."""

import logging
from typing import Any, Optional

from ..clients.capabilities import Clock, SpeechSynthesizer
from ..models.internal_models import SessionStatus

logger = logging.getLogger(__name__)


class Session:
    """
    Per-controller session.

    ``status``/``message`` are transient and revert to idle on a timer;
    ``verified``/``current_user`` persist until sign-out or reset.
    """

    def __init__(self, clock: Optional[Clock] = None, synthesizer: Optional[SpeechSynthesizer] = None):
        self.clock = clock or Clock()
        self.synthesizer = synthesizer

        self.status = SessionStatus.IDLE
        self.message = ""
        self.verified = False
        self.current_user: Optional[str] = None
        self.live_transcript = ""
        self.backend_ready = False

        self._revert_handle: Optional[Any] = None

    def update(self, status: SessionStatus, message: str = "", revert_after_ms: Optional[int] = None) -> None:
        """
        Set the status and message.

        A pending revert is cancelled so it cannot clobber the newer status;
        with ``revert_after_ms`` a fresh one is scheduled.
        """
        if self._revert_handle is not None:
            self._revert_handle.cancel()
            self._revert_handle = None

        self.status = status
        self.message = message
        logger.debug(f"Session status -> {status.value}: {message!r}")

        if revert_after_ms is not None:
            self._revert_handle = self.clock.call_later(revert_after_ms / 1000.0, self._revert)

    def _revert(self) -> None:
        self._revert_handle = None
        self.status = SessionStatus.IDLE
        self.message = ""

    async def speak(self, text: str) -> None:
        if self.synthesizer is None:
            logger.info(f"(no synthesizer) would say: {text}")
            return
        await self.synthesizer.speak(text)

    async def pause(self, delay_ms: int) -> None:
        await self.clock.sleep(delay_ms / 1000.0)

    def set_live_transcript(self, text: str) -> None:
        self.live_transcript = text

    def bind_user(self, profile: Optional[str]) -> None:
        self.verified = True
        self.current_user = profile
        logger.info(f"Session verified for {profile}")

    def sign_out(self) -> None:
        self.verified = False
        self.current_user = None
        logger.info("Session signed out")
