"""
Audio helpers for the capture pipeline.

This module provides functions for:
- PCM to WAV conversion of microphone bridge frames
- WAV header validation and duration
- Decoding base64 audio posted alongside a transcript
"""

import base64
import binascii
import logging
import struct
from typing import Optional, Tuple

from ..models.internal_models import AudioSample

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44


class AudioProcessingError(Exception):
    """Raised when audio processing operations fail."""
    pass


def pcm_to_wav(pcm_data: bytes, sample_rate: int = 16000, channels: int = 1,
               sample_width: int = 2) -> bytes:
    """
    Convert PCM audio data to WAV format.

    Args:
        pcm_data: Raw PCM audio data
        sample_rate: Sample rate in Hz (default: 16000)
        channels: Number of audio channels (default: 1 for mono)
        sample_width: Sample width in bytes (default: 2 for 16-bit)

    Returns:
        WAV formatted audio data as bytes

    Raises:
        AudioProcessingError: If conversion fails
    """
    if not pcm_data:
        raise AudioProcessingError("PCM data is empty")

    try:
        data_size = len(pcm_data)
        file_size = data_size + 36  # 44 byte header - 8 bytes
        byte_rate = sample_rate * channels * sample_width
        block_align = channels * sample_width

        wav_header = struct.pack(
            '<4sI4s4sIHHIIHH4sI',
            b'RIFF',           # Chunk ID
            file_size,         # Chunk size
            b'WAVE',           # Format
            b'fmt ',           # Subchunk1 ID
            16,                # Subchunk1 size (PCM)
            1,                 # Audio format (PCM)
            channels,          # Number of channels
            sample_rate,       # Sample rate
            byte_rate,         # Byte rate
            block_align,       # Block align
            sample_width * 8,  # Bits per sample
            b'data',           # Subchunk2 ID
            data_size          # Subchunk2 size
        )
    except struct.error as e:
        logger.error(f"Error creating WAV header: {e}")
        raise AudioProcessingError(f"Failed to create WAV header: {e}")

    wav_data = wav_header + pcm_data
    logger.debug(f"Converted {len(pcm_data)} bytes PCM to {len(wav_data)} bytes WAV")
    return wav_data


def validate_audio_format(audio_data: bytes, sample_rate: int = 16000) -> Tuple[bool, str]:
    """
    Validate that audio data is a mono 16-bit PCM WAV at the expected rate.

    Returns:
        Tuple of (is_valid, description)
    """
    if len(audio_data) < WAV_HEADER_SIZE:
        return False, "Audio data too short to contain WAV header"

    if audio_data[:4] != b'RIFF' or audio_data[8:12] != b'WAVE':
        return False, "Not a valid WAV file"

    try:
        channels = struct.unpack('<H', audio_data[22:24])[0]
        rate = struct.unpack('<I', audio_data[24:28])[0]
        bits_per_sample = struct.unpack('<H', audio_data[34:36])[0]
    except struct.error as e:
        return False, f"Error parsing WAV header: {e}"

    if channels != 1:
        return False, f"Expected mono (1 channel), got {channels} channels"
    if rate != sample_rate:
        return False, f"Expected {sample_rate}Hz sample rate, got {rate}Hz"
    if bits_per_sample != 16:
        return False, f"Expected 16-bit samples, got {bits_per_sample}-bit"

    return True, f"Valid {sample_rate // 1000}kHz mono WAV format"


def get_audio_duration(audio_data: bytes) -> float:
    """
    Get duration of WAV audio data in seconds.

    Raises:
        AudioProcessingError: If unable to determine duration
    """
    if len(audio_data) < WAV_HEADER_SIZE:
        raise AudioProcessingError("Audio data too short to contain WAV header")

    try:
        channels = struct.unpack('<H', audio_data[22:24])[0]
        sample_rate = struct.unpack('<I', audio_data[24:28])[0]
        bits_per_sample = struct.unpack('<H', audio_data[34:36])[0]

        data_size = len(audio_data) - WAV_HEADER_SIZE
        bytes_per_second = sample_rate * channels * (bits_per_sample // 8)
        return data_size / bytes_per_second
    except (struct.error, ZeroDivisionError) as e:
        logger.error(f"Error calculating audio duration: {e}")
        raise AudioProcessingError(f"Failed to calculate audio duration: {e}")


def decode_audio_payload(encoded: Optional[str]) -> Optional[AudioSample]:
    """
    Decode base64 audio posted by a client.

    Returns:
        AudioSample, or None when no payload was sent

    Raises:
        AudioProcessingError: If the payload is not valid base64
    """
    if not encoded:
        return None
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioProcessingError(f"Audio payload is not valid base64: {e}")
    if data[:4] != b'RIFF':
        # Browser recorders post webm/ogg
        return AudioSample(data=data, content_type="application/octet-stream")

    is_valid, description = validate_audio_format(data)
    if not is_valid:
        logger.warning(f"Posted WAV audio is not in the expected format: {description}")
    return AudioSample(data=data)
