"""
Shared fixtures: a simulated clock and scripted capture collaborators.
"""

import asyncio
from typing import Callable, List, Optional

import pytest

from synapvoice.clients.capabilities import QueueingSynthesizer, RecordingRouter
from synapvoice.clients.state_store import MemoryStore
from synapvoice.config import Settings
from synapvoice.models.internal_models import AudioSample
from synapvoice.services.registry import CredentialRegistry
from synapvoice.services.session import Session


class FakeHandle:
    """Cancellable timer handle returned by FakeClock.call_later."""

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """
    Simulated clock. ``sleep`` advances simulated time (firing due timers)
    and yields to the loop without waiting in real time.
    """

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []
        self.handles: List[FakeHandle] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        for _ in range(5):
            await asyncio.sleep(0)

    def call_later(self, seconds: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(self.now + seconds, callback)
        self.handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for handle in sorted(self.handles, key=lambda h: h.when):
            if handle.cancelled or handle.when > self.now:
                continue
            self.handles.remove(handle)
            handle.callback()

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled]


class FakeRecorder:
    """Returns scripted clips; an exception in the script is raised instead."""

    def __init__(self, clips: Optional[list] = None, default_size: int = 4000):
        self.clips = list(clips or [])
        self.default_size = default_size
        self.durations: List[int] = []

    async def record(self, duration_ms: int) -> AudioSample:
        self.durations.append(duration_ms)
        await asyncio.sleep(0)
        clip = self.clips.pop(0) if self.clips else AudioSample(data=b"\x01" * self.default_size)
        if isinstance(clip, Exception):
            raise clip
        return clip


class FakeRecognizer:
    """
    Scripted speech-to-text.

    With ``wait_for_stop`` the final text is delivered only after ``stop``
    (a FIXED-mode recognizer); otherwise it ends on its own (end of speech).
    ``hang`` never finishes until cancelled.
    """

    def __init__(
        self,
        transcript: str = "",
        partials: tuple = (),
        error: Optional[Exception] = None,
        wait_for_stop: bool = True,
        hang: bool = False
    ):
        self.transcript = transcript
        self.partials = partials
        self.error = error
        self.wait_for_stop = wait_for_stop
        self.hang = hang
        self.stopped = False
        self.listen_calls = 0
        self.stop_calls = 0

    async def listen(self, on_partial) -> str:
        self.listen_calls += 1
        for partial in self.partials:
            on_partial(partial)
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()
        if self.wait_for_stop:
            while not self.stopped:
                await asyncio.sleep(0)
        return self.transcript

    def stop(self) -> None:
        self.stopped = True
        self.stop_calls += 1


def wav(size: int = 4000) -> AudioSample:
    return AudioSample(data=b"\x01" * size)


@pytest.fixture
def config():
    """Settings with a volatile state store."""
    return Settings(state_backend="memory")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def registry(store, config):
    return CredentialRegistry(store, config)


@pytest.fixture
def synthesizer():
    return QueueingSynthesizer()


@pytest.fixture
def router():
    return RecordingRouter()


@pytest.fixture
def session(clock, synthesizer):
    session = Session(clock=clock, synthesizer=synthesizer)
    session.backend_ready = True
    return session
