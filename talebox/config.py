"""
Application configuration management using Pydantic Settings.

Environment-backed settings live on ``AppConfig``. The pipeline components do
not read them directly: they receive explicit ``AudioSettings`` and
``JobSettings`` objects built from the global config at construction time.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_STALE_SECONDS = 30 * 60
MIN_STALE_SECONDS = 60
MAX_STALE_SECONDS = 60 * 60
STALE_AUDIO_BUFFER_SECONDS = 2 * 60
MIN_AUDIO_TIMEOUT_SECONDS = 60


class AudioSettings(BaseModel):
    """Settings consumed by the speech task client and the audio service."""

    api_key: Optional[str] = None
    api_base_url: str = "https://genaipro.vn/api/v1"
    default_voice_id: Optional[str] = None
    max_chars: int = 10000
    timeout_seconds: float = 900.0
    poll_interval_seconds: float = 2.0
    request_timeout_seconds: float = 60.0
    bucket: str = "audios"
    public_bucket: bool = True
    signed_url_ttl_seconds: int = 60 * 60 * 24 * 7
    model_id: str = "eleven_turbo_v2_5"
    style: Optional[float] = None
    speed: Optional[float] = None
    similarity: Optional[float] = None
    stability: Optional[float] = None
    use_speaker_boost: Optional[bool] = None

    def model_params(self) -> Dict[str, Any]:
        """Provider task parameters; optional voice-style knobs are only sent when set."""
        params: Dict[str, Any] = {"model_id": self.model_id}
        for name in ("style", "speed", "similarity", "stability", "use_speaker_boost"):
            value = getattr(self, name)
            if value is not None:
                params[name] = value
        return params


class JobSettings(BaseModel):
    """Settings consumed by the job queue and the job processor."""

    stale_after_seconds: float = DEFAULT_STALE_SECONDS
    heartbeat_interval_seconds: float = 30.0
    default_batch_size: int = 5
    max_batch_size: int = 20

    @classmethod
    def build(
        cls,
        audio_timeout_seconds: float,
        stale_seconds: Optional[float] = None,
        **kwargs
    ) -> "JobSettings":
        """
        Resolve the stale-job threshold.

        A processing job is only reclaimable once it is older than the audio
        timeout plus a buffer, so a job waiting on a long external task is
        never taken away from its own worker.
        """
        minimum_for_audio = max(MIN_AUDIO_TIMEOUT_SECONDS, audio_timeout_seconds) + STALE_AUDIO_BUFFER_SECONDS

        if stale_seconds is None:
            resolved = max(DEFAULT_STALE_SECONDS, minimum_for_audio)
        else:
            clamped = max(MIN_STALE_SECONDS, min(MAX_STALE_SECONDS, stale_seconds))
            resolved = max(clamped, minimum_for_audio)

        return cls(stale_after_seconds=resolved, **kwargs)


class AppConfig(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All settings can be overridden via .env file or environment variables.
    Settings are validated at startup using Pydantic.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===== Supabase Configuration =====
    SUPABASE_URL: str | None = Field(
        default=None,
        description="Supabase project URL"
    )

    SUPABASE_ANON_KEY: str | None = Field(
        default=None,
        description="Supabase anon/public key (used to verify user sessions)"
    )

    SUPABASE_SERVICE_KEY: str | None = Field(
        default=None,
        description="Supabase service role key (for the worker, bypasses RLS)"
    )

    # ===== Story Generation (LLM) =====
    ANTHROPIC_API_KEY: str | None = Field(
        default=None,
        description="Anthropic API key for Claude (story text generation)"
    )

    STORY_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model that writes the story"
    )

    STORY_TIMEOUT_SECONDS: float = Field(
        default=180.0,
        gt=0.0,
        description="Timeout for one story generation request"
    )

    STORY_MAX_TOKENS: int = Field(
        default=4000,
        ge=200,
        le=16000,
        description="Maximum tokens for one generated story"
    )

    STORY_TEMPERATURE: float = Field(
        default=0.8,
        ge=0.0,
        le=2.0,
        description="LLM temperature for story generation"
    )

    STORY_SYSTEM_PROMPT: str = Field(
        default=(
            "You write short children's stories. Answer with the title on the first line, "
            "then a blank line, then the story. Do not add anything else."
        ),
        description="System prompt sent with every story request"
    )

    # ===== Text-to-Speech Task Provider =====
    TTS_API_KEY: str | None = Field(
        default=None,
        description="Bearer token for the speech task provider"
    )

    TTS_API_BASE_URL: str = Field(
        default="https://genaipro.vn/api/v1",
        description="Base URL of the speech task API"
    )

    TTS_DEFAULT_VOICE_ID: str | None = Field(
        default=None,
        description="Voice used when a story does not choose one"
    )

    TTS_MAX_CHARS: int = Field(
        default=10000,
        ge=1,
        description="Maximum characters (title line included) sent for narration"
    )

    TTS_TIMEOUT_SECONDS: float = Field(
        default=900.0,
        ge=MIN_AUDIO_TIMEOUT_SECONDS,
        description="Overall deadline for one speech task, measured from the audio row creation"
    )

    TTS_POLL_INTERVAL_SECONDS: float = Field(
        default=2.0,
        ge=0.0,
        le=60.0,
        description="Sleep between status polls in the in-process waiting loop"
    )

    TTS_REQUEST_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        gt=0.0,
        description="Timeout for a single HTTP request to the provider"
    )

    TTS_MODEL_ID: str = Field(
        default="eleven_turbo_v2_5",
        description="Provider model id"
    )

    TTS_STYLE: float | None = Field(default=None, description="Voice style exaggeration")
    TTS_SPEED: float | None = Field(default=None, description="Speech speed")
    TTS_SIMILARITY: float | None = Field(default=None, description="Voice similarity boost")
    TTS_STABILITY: float | None = Field(default=None, description="Voice stability")
    TTS_USE_SPEAKER_BOOST: bool | None = Field(default=None, description="Speaker boost toggle")

    @field_validator(
        'TTS_STYLE', 'TTS_SPEED', 'TTS_SIMILARITY', 'TTS_STABILITY', 'TTS_USE_SPEAKER_BOOST',
        mode='before'
    )
    @classmethod
    def blank_as_unset(cls, v):
        """Treat empty env values as unset (Railway exports blank strings)."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    AUDIO_BUCKET: str = Field(
        default="audios",
        description="Supabase Storage bucket for narrations"
    )

    AUDIO_BUCKET_PUBLIC: bool = Field(
        default=True,
        description="Serve narrations by public URL; when false, issue signed URLs instead"
    )

    AUDIO_SIGNED_URL_TTL_SECONDS: int = Field(
        default=60 * 60 * 24 * 7,
        ge=60,
        description="Lifetime of signed URLs when the bucket is not public"
    )

    # ===== Job Queue =====
    STORY_JOB_STALE_SECONDS: float | None = Field(
        default=None,
        description="Age after which a processing job is considered abandoned"
    )

    STORY_JOB_HEARTBEAT_SECONDS: float = Field(
        default=30.0,
        gt=0.0,
        description="Heartbeat interval while a job is being processed"
    )

    STORY_WORKER_SECRET: str | None = Field(
        default=None,
        description="Shared secret for the worker endpoint"
    )

    CRON_SECRET: str | None = Field(
        default=None,
        description="Fallback worker secret (set by the cron provider)"
    )

    DAILY_STORY_LIMIT: int = Field(
        default=1,
        ge=0,
        description="Stories a user may start per UTC day (0 = unlimited)"
    )

    # ===== Application Settings =====
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment mode: development or production"
    )

    DEV_MODE: bool = Field(
        default=True,
        description="Allow unauthenticated requests as a fixed dev user"
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for all (dev only)."
    )

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins."""
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    # ===== Computed Properties =====

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase is properly configured."""
        return (
            self.SUPABASE_URL is not None
            and self.SUPABASE_ANON_KEY is not None
            and self.SUPABASE_SERVICE_KEY is not None
        )

    @property
    def llm_configured(self) -> bool:
        return bool(self.ANTHROPIC_API_KEY and self.ANTHROPIC_API_KEY.strip())

    @property
    def tts_configured(self) -> bool:
        return bool(self.TTS_API_KEY and self.TTS_API_KEY.strip())

    @property
    def worker_secret(self) -> str | None:
        """Worker secret, falling back to the cron provider's secret."""
        for value in (self.STORY_WORKER_SECRET, self.CRON_SECRET):
            if value and value.strip():
                return value.strip()
        return None

    def audio_settings(self) -> AudioSettings:
        return AudioSettings(
            api_key=self.TTS_API_KEY.strip() if self.tts_configured else None,
            api_base_url=self.TTS_API_BASE_URL.rstrip("/"),
            default_voice_id=(self.TTS_DEFAULT_VOICE_ID or "").strip() or None,
            max_chars=self.TTS_MAX_CHARS,
            timeout_seconds=self.TTS_TIMEOUT_SECONDS,
            poll_interval_seconds=self.TTS_POLL_INTERVAL_SECONDS,
            request_timeout_seconds=self.TTS_REQUEST_TIMEOUT_SECONDS,
            bucket=self.AUDIO_BUCKET,
            public_bucket=self.AUDIO_BUCKET_PUBLIC,
            signed_url_ttl_seconds=self.AUDIO_SIGNED_URL_TTL_SECONDS,
            model_id=self.TTS_MODEL_ID,
            style=self.TTS_STYLE,
            speed=self.TTS_SPEED,
            similarity=self.TTS_SIMILARITY,
            stability=self.TTS_STABILITY,
            use_speaker_boost=self.TTS_USE_SPEAKER_BOOST,
        )

    def job_settings(self) -> JobSettings:
        return JobSettings.build(
            audio_timeout_seconds=self.TTS_TIMEOUT_SECONDS,
            stale_seconds=self.STORY_JOB_STALE_SECONDS,
            heartbeat_interval_seconds=self.STORY_JOB_HEARTBEAT_SECONDS,
        )


# Global configuration instance
# Import this in other modules: from talebox.config import config
config = AppConfig()


# Validation on startup
if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Story model: {config.STORY_MODEL}")
    print(f"Anthropic: {'✓' if config.llm_configured else '✗'}")
    print(f"Speech provider: {'✓' if config.tts_configured else '✗'}")
    print(f"Supabase: {'✓' if config.supabase_configured else '✗'}")
    print(f"Worker secret: {'✓' if config.worker_secret else '✗'}")
    print(f"Stale job threshold: {config.job_settings().stale_after_seconds:.0f}s")
