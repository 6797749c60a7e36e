"""
HTTP client for the voice-recognition backend.

Wraps the five backend operations the controller consumes:
- health
- enroll (three samples build one voiceprint)
- authenticate (one sample against one profile)
- start_challenge / verify_challenge (liveness check)
"""

import logging
from typing import List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import settings, Settings
from ..models.api_models import (
    AuthenticateResult,
    BackendHealth,
    ChallengeIssued,
    ChallengeVerdict,
    EnrollResult
)
from ..models.internal_models import AudioSample

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class BackendUnavailable(Exception):
    """Raised when the voice backend cannot be reached or answers garbage."""
    pass


class VoiceBackendClient:
    """
    Async client for the voice backend.

    Backend calls carry no timeout unless ``voice_backend_timeout`` is set;
    a silent backend leaves the caller waiting.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        config: Optional[Settings] = None
    ):
        config = config or settings
        self.base_url = (base_url or config.voice_backend_url).rstrip("/")
        self.timeout = timeout if timeout is not None else config.voice_backend_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(f"Voice backend client initialized for {self.base_url}")

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the underlying httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, operation: str, model: Type[ResponseModel], method: str, path: str, **kwargs) -> ResponseModel:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling backend {operation}: {e}")
            raise BackendUnavailable(f"{operation} timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error calling backend {operation}: {e}")
            raise BackendUnavailable(f"{operation} failed with status {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error(f"Network error calling backend {operation}: {e}")
            raise BackendUnavailable(f"{operation} failed: {e}")
        except ValueError as e:
            logger.error(f"Backend {operation} returned non-JSON body: {e}")
            raise BackendUnavailable(f"{operation} returned an unreadable response")

        try:
            return model.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Backend {operation} returned malformed payload: {e}")
            raise BackendUnavailable(f"{operation} returned a malformed response")

    @staticmethod
    def _audio_file(field: str, sample: AudioSample, index: int = 0):
        return (field, (f"{field}_{index}.wav", sample.data, sample.content_type))

    async def health(self) -> BackendHealth:
        return await self._request("health", BackendHealth, "GET", "/health")

    async def enroll(self, profile_id: str, samples: List[AudioSample]) -> EnrollResult:
        """Submit enrollment samples to build a voiceprint for ``profile_id``."""
        logger.info(f"Submitting {len(samples)} enrollment samples for {profile_id}")
        files = [self._audio_file("samples", sample, i) for i, sample in enumerate(samples)]
        return await self._request(
            "enroll", EnrollResult, "POST", "/enroll",
            data={"user_id": profile_id},
            files=files
        )

    async def authenticate(self, profile_id: str, sample: AudioSample) -> AuthenticateResult:
        """Score ``sample`` against the voiceprint of ``profile_id``."""
        return await self._request(
            "authenticate", AuthenticateResult, "POST", "/authenticate",
            data={"user_id": profile_id},
            files=[self._audio_file("audio", sample)]
        )

    async def start_challenge(self, profile_id: str) -> ChallengeIssued:
        return await self._request(
            "start_challenge", ChallengeIssued, "POST", "/challenge/start",
            json={"user_id": profile_id}
        )

    async def verify_challenge(self, session_id: str, sample: AudioSample, spoken_text: str) -> ChallengeVerdict:
        """Check speaker and phrase of a challenge response."""
        return await self._request(
            "verify_challenge", ChallengeVerdict, "POST", "/challenge/verify",
            data={"session_id": session_id, "spoken_text": spoken_text},
            files=[self._audio_file("audio", sample)]
        )
