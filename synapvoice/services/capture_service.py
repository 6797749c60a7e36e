"""
Speech capture coordinator.

Joins a timed audio recording with an independent speech-to-text stream into
one capture result. Two completion disciplines are supported:

- FIXED: the recording timer governs completion; the transcript is
  best-effort and whatever the recognizer has finalised shortly after the
  timer fires is used.
- OPEN_ENDED: the recognizer's end-of-speech governs completion; the
  recording is still capped at the requested duration.

A recognizer failure degrades to audio-only with an empty transcript. A
recorder failure aborts the capture with ``CaptureError``.
"""

import asyncio
import logging
from typing import Callable, Optional

from ..clients.capabilities import AudioRecorder, Clock, SpeechRecognizer
from ..config import settings, Settings
from ..models.internal_models import AudioSample, CaptureMode, CaptureResult

logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Raised when the recorder fails; the current protocol step is aborted."""
    pass


async def _discard(task: asyncio.Future) -> None:
    """Cancel a task and swallow its outcome."""
    if not task.done():
        task.cancel()
    await asyncio.gather(task, return_exceptions=True)


class SpeechCaptureCoordinator:
    """Runs one recording plus (optionally) one transcription per capture."""

    def __init__(
        self,
        recorder: AudioRecorder,
        recognizer: Optional[SpeechRecognizer] = None,
        clock: Optional[Clock] = None,
        on_partial: Optional[Callable[[str], None]] = None,
        config: Optional[Settings] = None
    ):
        config = config or settings
        self.recorder = recorder
        self.recognizer = recognizer
        self.clock = clock or Clock()
        self.on_partial = on_partial
        self.start_offset_ms = config.stt_start_offset_ms
        self.stop_grace_ms = config.stt_stop_grace_ms

        self.live_transcript = ""
        self._capturing = False

    @property
    def capturing(self) -> bool:
        return self._capturing

    def _set_live(self, text: str) -> None:
        self.live_transcript = text
        if self.on_partial is not None:
            self.on_partial(text)

    async def capture(self, duration_ms: int, mode: CaptureMode = CaptureMode.FIXED) -> CaptureResult:
        """
        Record for up to ``duration_ms`` while transcribing.

        Returns:
            CaptureResult with the audio sample and the (possibly empty) transcript

        Raises:
            CaptureError: If a capture is already running or the recorder fails
        """
        if self._capturing:
            raise CaptureError("CAPTURE IN PROGRESS")

        self._capturing = True
        try:
            logger.info(f"Starting {mode.value} capture ({duration_ms}ms)")
            record_task = asyncio.ensure_future(self.recorder.record(duration_ms))

            stt_task = None
            if self.recognizer is not None:
                await self.clock.sleep(self.start_offset_ms / 1000.0)
                stt_task = asyncio.ensure_future(self.recognizer.listen(self._set_live))

            if stt_task is None:
                audio = await self._await_recording(record_task)
                return CaptureResult(audio=audio, transcript="")

            if mode is CaptureMode.OPEN_ENDED:
                return await self._join_open_ended(record_task, stt_task)
            return await self._join_fixed(record_task, stt_task)
        finally:
            self._capturing = False
            self._set_live("")

    async def _await_recording(self, record_task: asyncio.Future) -> AudioSample:
        try:
            audio = await record_task
        except Exception as e:
            logger.error(f"Recording failed: {e}")
            raise CaptureError(str(e) or type(e).__name__)
        logger.info(f"Recording finished: {audio.size} bytes")
        return audio

    async def _abort(self, stt_task: asyncio.Future) -> None:
        self.recognizer.stop()
        await _discard(stt_task)

    def _transcript_of(self, stt_task: asyncio.Future) -> str:
        if stt_task.cancelled():
            return ""
        error = stt_task.exception()
        if error is not None:
            logger.warning(f"Transcription failed, continuing audio-only: {error}")
            return ""
        return (stt_task.result() or "").strip()

    async def _join_fixed(self, record_task: asyncio.Future, stt_task: asyncio.Future) -> CaptureResult:
        try:
            audio = await self._await_recording(record_task)
        except CaptureError:
            await self._abort(stt_task)
            raise

        # Timer fired: ask the recognizer to finalise and give it a short grace window
        self.recognizer.stop()
        if not stt_task.done():
            await self.clock.sleep(self.stop_grace_ms / 1000.0)

        if stt_task.done():
            transcript = self._transcript_of(stt_task)
        else:
            logger.debug("Recognizer did not finalise within grace window")
            await _discard(stt_task)
            transcript = ""

        return CaptureResult(audio=audio, transcript=transcript)

    async def _join_open_ended(self, record_task: asyncio.Future, stt_task: asyncio.Future) -> CaptureResult:
        pending = {record_task, stt_task}
        while stt_task in pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            if record_task in done and record_task.exception() is not None:
                # Recorder died mid-utterance; nothing useful can come of the transcript
                await self._abort(stt_task)
                break

        if stt_task.done():
            transcript = self._transcript_of(stt_task)
        else:
            transcript = ""
        audio = await self._await_recording(record_task)
        return CaptureResult(audio=audio, transcript=transcript)
