"""Best-match speaker identification across all enrolled profiles."""

import logging
from typing import List, Optional

from ..clients.voice_backend_client import BackendUnavailable, VoiceBackendClient
from ..config import settings, Settings
from ..models.internal_models import NOT_ENROLLED, AudioSample, IdentificationResult
from .registry import CredentialRegistry

logger = logging.getLogger(__name__)


class IdentificationService:
    """Scores one sample against every enrolled voiceprint and keeps the best."""

    def __init__(self, backend: VoiceBackendClient, registry: CredentialRegistry, config: Optional[Settings] = None):
        config = config or settings
        self.backend = backend
        self.min_audio_bytes = config.min_audio_bytes
        self.registry = registry

    @staticmethod
    def _beats(authenticated: bool, confidence: float, best: Optional[IdentificationResult]) -> bool:
        """Authenticated beats unauthenticated; otherwise higher confidence wins."""
        if best is None:
            return True
        if authenticated != best.identified:
            return authenticated
        return confidence > best.score

    async def identify(self, sample: Optional[AudioSample], enrolled: List[str]) -> IdentificationResult:
        """
        Identify the speaker of ``sample``.

        Per-profile backend failures are logged and skipped. Profiles the
        backend reports as having no voiceprint are excluded from comparison.
        If no candidate could be scored at all the result is a non-match.

        Returns:
            IdentificationResult for the best candidate
        """
        if not enrolled:
            logger.info("No enrolled profiles, identification open")
            return IdentificationResult(identified=True, score=1.0)

        if sample is None or not sample.is_usable(self.min_audio_bytes):
            size = sample.size if sample is not None else 0
            logger.warning(f"Identification skipped, audio too short: {size} bytes")
            return IdentificationResult(identified=False, score=0.0, error="no audio")

        best: Optional[IdentificationResult] = None
        failures = 0

        for name in enrolled:
            try:
                result = await self.backend.authenticate(self.registry.profile_id(name), sample)
            except BackendUnavailable as e:
                failures += 1
                logger.error(f"Authentication against {name} failed: {e}")
                continue

            logger.info(
                f"Candidate {name}: authenticated={result.authenticated}, "
                f"confidence={result.confidence:.2f}, decision={result.decision}"
            )
            if result.decision == NOT_ENROLLED:
                continue

            if self._beats(result.authenticated, result.confidence, best):
                best = IdentificationResult(
                    identified=result.authenticated,
                    score=result.confidence,
                    profile=name,
                    decision=result.decision
                )

        if failures == len(enrolled):
            logger.error(f"Identification failed for all {failures} enrolled profiles")
            return IdentificationResult(identified=False, score=0.0, error="backend unavailable")

        if best is None:
            logger.info("No comparable voiceprint among enrolled profiles")
            return IdentificationResult(identified=False, score=0.0)

        logger.info(f"Best match: {best.profile} (authenticated={best.identified}, score={best.score:.2f})")
        return best
