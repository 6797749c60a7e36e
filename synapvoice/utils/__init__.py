# Utilities module

from .audio_utils import (
    AudioProcessingError,
    decode_audio_payload,
    get_audio_duration,
    pcm_to_wav,
    validate_audio_format,
)

__all__ = [
    "AudioProcessingError",
    "decode_audio_payload",
    "get_audio_duration",
    "pcm_to_wav",
    "validate_audio_format",
]
