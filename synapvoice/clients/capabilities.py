"""
Collaborator interfaces the controller drives.

The recorder, recognizer, synthesizer and router are supplied by the host;
the queueing synthesizer and recording router below serve the HTTP surface,
where the UI speaks and navigates on the controller's behalf.
"""

import asyncio
import logging
from collections import deque
from typing import Callable, Deque, List, Optional, Protocol, runtime_checkable

from ..models.internal_models import AudioSample

logger = logging.getLogger(__name__)

PartialCallback = Callable[[str], None]


@runtime_checkable
class AudioRecorder(Protocol):
    async def record(self, duration_ms: int) -> AudioSample:
        """Record for ``duration_ms`` and return the clip; raise on microphone failure."""
        ...


@runtime_checkable
class SpeechRecognizer(Protocol):
    async def listen(self, on_partial: PartialCallback) -> str:
        """Transcribe until end of speech (or ``stop``) and return the final text."""
        ...

    def stop(self) -> None:
        ...


@runtime_checkable
class SpeechSynthesizer(Protocol):
    async def speak(self, text: str) -> None:
        ...


@runtime_checkable
class Router(Protocol):
    def navigate(self, path: str) -> None:
        ...


class Clock:
    """Event-loop time source. Tests substitute a simulated clock."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def call_later(self, seconds: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(seconds, callback)


class QueueingSynthesizer:
    """Queues utterances for a remote UI to speak."""

    def __init__(self, max_pending: int = 20):
        self._pending: Deque[str] = deque(maxlen=max_pending)

    async def speak(self, text: str) -> None:
        logger.debug(f"Queueing utterance: {text}")
        self._pending.append(text)

    def drain(self) -> List[str]:
        utterances = list(self._pending)
        self._pending.clear()
        return utterances


class RecordingRouter:
    """Remembers the latest navigation request until the UI collects it."""

    def __init__(self):
        self.history: List[str] = []
        self._pending: Optional[str] = None

    def navigate(self, path: str) -> None:
        logger.info(f"Navigation requested: {path}")
        self.history.append(path)
        self._pending = path

    def take_pending(self) -> Optional[str]:
        path, self._pending = self._pending, None
        return path
