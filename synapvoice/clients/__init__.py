"""Client modules for external service integrations."""

from synapvoice.clients.audio_stream_client import (
    AudioStreamConnectionError,
    AudioStreamError,
    WebSocketAudioRecorder
)

from synapvoice.clients.capabilities import (
    AudioRecorder,
    Clock,
    QueueingSynthesizer,
    RecordingRouter,
    Router,
    SpeechRecognizer,
    SpeechSynthesizer
)

from synapvoice.clients.state_store import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    StateStoreError,
    SupabaseStore,
    create_state_store
)

from synapvoice.clients.voice_backend_client import (
    BackendUnavailable,
    VoiceBackendClient
)

__all__ = [
    "AudioStreamConnectionError",
    "AudioStreamError",
    "WebSocketAudioRecorder",
    "AudioRecorder",
    "Clock",
    "QueueingSynthesizer",
    "RecordingRouter",
    "Router",
    "SpeechRecognizer",
    "SpeechSynthesizer",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "StateStoreError",
    "SupabaseStore",
    "create_state_store",
    "BackendUnavailable",
    "VoiceBackendClient"
]
