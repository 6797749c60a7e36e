"""
Microphone bridge WebSocket client for timed audio recording.

The bridge streams 16-bit mono PCM either as binary frames or as JSON text
frames carrying base64 audio (``{"audio": "..."}``). A recording collects
frames for a fixed duration and returns them as one WAV sample.
"""

import asyncio
import base64
import binascii
import json
import logging
import time
from typing import List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import settings, Settings
from ..models.internal_models import AudioSample
from ..utils.audio_utils import AudioProcessingError, get_audio_duration, pcm_to_wav

logger = logging.getLogger(__name__)


class AudioStreamConnectionError(Exception):
    """Raised when the microphone bridge connection fails."""
    pass


class AudioStreamError(Exception):
    """Raised when no usable audio could be recorded."""
    pass


class WebSocketAudioRecorder:
    """
    Records fixed-duration clips from the microphone bridge.

    Each ``record`` call opens its own connection so an aborted recording
    never leaves a half-read stream behind for the next one.
    """

    def __init__(
        self,
        listen_url: Optional[str] = None,
        sample_rate: Optional[int] = None,
        channels: int = 1,
        sample_width: int = 2,
        connection_timeout: Optional[float] = None,
        config: Optional[Settings] = None
    ):
        config = config or settings
        self.listen_url = listen_url or config.audio_listen_url
        self.sample_rate = sample_rate or config.audio_sample_rate
        self.channels = channels
        self.sample_width = sample_width
        self.connection_timeout = connection_timeout or config.audio_connection_timeout

        self.audio_buffer: List[bytes] = []
        self.websocket = None
        self.is_connected = False
        self.is_recording = False

        logger.info(f"Initialized audio recorder for URL: {self.listen_url}")

    async def connect(self) -> None:
        """
        Establish WebSocket connection to the microphone bridge.

        Raises:
            AudioStreamConnectionError: If connection fails
        """
        try:
            logger.info(f"Connecting to microphone bridge: {self.listen_url}")
            self.websocket = await asyncio.wait_for(
                websockets.connect(
                    self.listen_url,
                    ping_interval=20,
                    ping_timeout=10,
                    close_timeout=10
                ),
                timeout=self.connection_timeout
            )
            self.is_connected = True
        except asyncio.TimeoutError:
            logger.error(f"Timeout connecting to microphone bridge: {self.listen_url}")
            raise AudioStreamConnectionError(f"Connection timeout after {self.connection_timeout}s")
        except WebSocketException as e:
            logger.error(f"WebSocket error connecting to microphone bridge: {e}")
            raise AudioStreamConnectionError(f"WebSocket connection failed: {e}")
        except OSError as e:
            logger.error(f"Unable to reach microphone bridge: {e}")
            raise AudioStreamConnectionError(f"Connection failed: {e}")

    async def disconnect(self) -> None:
        """Close WebSocket connection gracefully."""
        if self.websocket and self.is_connected:
            try:
                await self.websocket.close()
            except WebSocketException as e:
                logger.warning(f"Error closing WebSocket connection: {e}")
            finally:
                self.is_connected = False
                self.websocket = None

    def _extract_pcm(self, message: Union[str, bytes]) -> Optional[bytes]:
        """
        Pull the PCM payload out of one bridge frame.

        Returns:
            PCM bytes, or None for control/empty/undecodable frames
        """
        if isinstance(message, (bytes, bytearray)):
            return bytes(message) or None

        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse bridge message as JSON: {e}")
            return None

        if not isinstance(data, dict) or 'audio' not in data:
            logger.debug("Received message without audio data")
            return None

        try:
            chunk = base64.b64decode(data['audio'])
        except (binascii.Error, ValueError, TypeError) as e:
            logger.warning(f"Failed to decode audio frame: {e}")
            return None
        return chunk or None

    async def _collect(self, duration_s: float) -> None:
        deadline = time.monotonic() + duration_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                message = await asyncio.wait_for(self.websocket.recv(), timeout=remaining)
            except asyncio.TimeoutError:
                break
            chunk = self._extract_pcm(message)
            if chunk:
                self.audio_buffer.append(chunk)

    async def record(self, duration_ms: int) -> AudioSample:
        """
        Record ``duration_ms`` of audio from the bridge.

        Returns:
            The recording as a WAV AudioSample

        Raises:
            AudioStreamConnectionError: If the bridge is unreachable or drops
            AudioStreamError: If nothing was recorded
        """
        await self.connect()
        try:
            self.audio_buffer.clear()
            self.is_recording = True
            started = time.monotonic()

            await self._collect(duration_ms / 1000.0)

            if not self.audio_buffer:
                raise AudioStreamError("No audio data captured")

            combined_pcm = b''.join(self.audio_buffer)
            logger.info(f"Recorded {len(combined_pcm)} bytes in {time.monotonic() - started:.1f}s")

            wav_data = pcm_to_wav(
                combined_pcm,
                sample_rate=self.sample_rate,
                channels=self.channels,
                sample_width=self.sample_width
            )
            logger.debug(f"Recording holds {get_audio_duration(wav_data):.2f}s of audio")
            return AudioSample(data=wav_data)

        except ConnectionClosed as e:
            logger.error(f"Microphone bridge closed during recording: {e}")
            raise AudioStreamConnectionError(f"Connection closed during recording: {e}")
        except AudioProcessingError as e:
            raise AudioStreamError(f"Recording could not be encoded: {e}")
        finally:
            self.is_recording = False
            await self.disconnect()
