"""Configuration management for the voice-gated command controller."""

from typing import List, Optional

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# The voice backend builds a voiceprint from exactly this many samples
ENROLLMENT_SAMPLE_COUNT = 3


class NavigationDestination(BaseModel):
    """One row of the navigation table: keyword group, router path, spoken name."""

    keywords: List[str]
    path: str
    name: str
    label: Optional[str] = None  # help menu entry, defaults to name


DEFAULT_DESTINATIONS = [
    NavigationDestination(keywords=["home", "dashboard", "main", "start"], path="/", name="Dashboard",
                          label="Home / Dashboard"),
    NavigationDestination(keywords=["vibration", "sensor", "signal", "piezo"], path="/vibrations", name="Vibrations",
                          label="Vibrations / Sensors"),
    NavigationDestination(keywords=["notification", "alert", "message"], path="/notifications", name="Notifications"),
    NavigationDestination(keywords=["profile", "account"], path="/profile", name="Profile"),
    NavigationDestination(keywords=["setting", "config", "option"], path="/settings", name="Settings"),
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables
    )

    # Server configuration
    port: int = 8000
    host: str = "0.0.0.0"

    # Voice backend
    voice_backend_url: str = "http://127.0.0.1:5001"
    voice_backend_timeout: Optional[float] = None

    # Microphone bridge (PCM frames over WebSocket)
    audio_listen_url: str = "ws://127.0.0.1:8765/listen"
    audio_sample_rate: int = 16000
    audio_connection_timeout: float = 10.0

    # Durable credential/profile state
    state_backend: str = "file"
    state_file: str = "~/.synapvoice/state.json"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_state_table: str = "voice_gate_state"

    # Profiles and credentials
    default_profile: str = "owner"
    profile_id_prefix: str = "voice_"
    pin_length: int = 4
    min_audio_bytes: int = 1000

    enrollment_phrases: List[str] = [
        "My voice is my password",
        "SynapSense keeps me safe",
        "Home sweet home",
    ]
    enroll_stop_words: List[str] = ["my", "voice", "me"]
    navigation_destinations: List[NavigationDestination] = DEFAULT_DESTINATIONS

    # Capture windows (milliseconds)
    enrollment_capture_ms: int = 4000
    challenge_capture_ms: int = 5000
    command_capture_ms: int = 4000
    stt_start_offset_ms: int = 100
    stt_stop_grace_ms: int = 500

    # Speech/listen choreography (milliseconds)
    enrollment_intro_delay_ms: int = 3500
    enrollment_settle_delay_ms: int = 3500
    enrollment_sample_pause_ms: int = 1000
    challenge_settle_delay_ms: int = 3000

    # Transient status lifetimes (milliseconds)
    result_revert_ms: int = 3000
    help_revert_ms: int = 5000
    navigation_revert_ms: int = 2000
    reset_revert_ms: int = 2000
    unmatched_revert_ms: int = 2000
    locked_revert_ms: int = 3000

    # Logging configuration
    log_level: str = "INFO"

    @field_validator('pin_length')
    @classmethod
    def validate_pin_length(cls, v):
        if v < 1:
            raise ValueError('PIN_LENGTH must be positive')
        return v

    @field_validator('min_audio_bytes')
    @classmethod
    def validate_min_audio_bytes(cls, v):
        if v < 0:
            raise ValueError('MIN_AUDIO_BYTES must not be negative')
        return v

    @field_validator('enrollment_phrases')
    @classmethod
    def validate_enrollment_phrases(cls, v):
        if len(v) != ENROLLMENT_SAMPLE_COUNT or any(not phrase.strip() for phrase in v):
            raise ValueError(f'ENROLLMENT_PHRASES must hold exactly {ENROLLMENT_SAMPLE_COUNT} non-empty phrases')
        return v

    @field_validator('state_backend')
    @classmethod
    def validate_state_backend(cls, v):
        v = v.lower()
        if v not in ("file", "memory", "supabase"):
            raise ValueError('STATE_BACKEND must be one of: file, memory, supabase')
        return v

    @model_validator(mode='after')
    def validate_supabase_credentials(self):
        if self.state_backend == "supabase" and not (self.supabase_url and self.supabase_anon_key):
            raise ValueError('SUPABASE_URL and SUPABASE_ANON_KEY are required for the supabase state backend')
        return self


# Global settings instance
settings = Settings()
