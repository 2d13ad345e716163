"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from wa_operator.utils.helpers import get_data_path


def _default_snapshot_path() -> str:
    return str(get_data_path() / "state" / "store.json")


class PersonaConfig(BaseModel):
    """Who the bot is and who it answers for."""
    bot_name: str = "Friday"
    owner_name: str = "Owner"
    owner_jid: str = ""  # e.g. 977xxxxxxxxxx@s.whatsapp.net
    default_language: str = "en"


class SafetyConfig(BaseModel):
    """Rate limiting, loop halting and staleness thresholds."""
    rate_limit_max: int = 15
    rate_limit_window_ms: int = 60_000
    loop_detect_threshold: int = 3
    loop_window_size: int = 6
    loop_similarity_threshold: float = 0.8
    loop_tolerance: int = 1  # compared messages allowed to fall under the threshold
    halt_duration_ms: int = 600_000
    old_message_threshold_s: int = 60
    bot_confidence_threshold: float = 0.7
    rate_gc_interval_s: int = 600


class SessionsConfig(BaseModel):
    """Per-contact AI session cache."""
    max_sessions: int = 200
    ttl_ms: int = 30 * 60 * 1000
    sweep_interval_s: int = 300


class OfflineConfig(BaseModel):
    """Owner-activity cooldowns."""
    cooldown_ms: int = 3 * 60 * 1000
    typing_pause_ms: int = 60 * 1000
    resume_interval_s: int = 30


class MemoryConfig(BaseModel):
    """Conversation compression."""
    compress_threshold: int = 50
    keep_recent: int = 20
    summary_retention: int = 5
    compress_interval_s: int = 24 * 60 * 60


class FollowUpsConfig(BaseModel):
    """Promise tracking."""
    default_due_hours: float = 24
    max_reminders: int = 3
    check_interval_s: int = 30 * 60
    schedule_check_interval_s: int = 5 * 60


class SummaryConfig(BaseModel):
    """Periodic owner briefing."""
    enabled: bool = True
    interval_hours: float = 4


class ProviderConfig(BaseModel):
    """LLM provider configuration. Several keys form a rotating pool."""
    model: str = "groq/openai/gpt-oss-120b"
    api_keys: list[str] = Field(default_factory=list)
    api_base: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1024
    timeout_s: float = 30.0
    max_retries: int = 2
    key_cooldown_s: float = 60.0


class WhatsAppConfig(BaseModel):
    """WhatsApp channel configuration."""
    enabled: bool = False
    bridge_url: str = "ws://localhost:3001"
    bridge_token: str = ""


class ChannelsConfig(BaseModel):
    """Configuration for chat channels."""
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)


class IntegrationsConfig(BaseModel):
    """Optional integrations."""
    webhook_url: str = ""  # receives every processed message (n8n, Zapier, ...)
    webhook_timeout_s: float = 10.0


class StorageConfig(BaseModel):
    """Where the in-memory store is snapshotted."""
    snapshot_path: str = Field(default_factory=_default_snapshot_path)
    snapshot_interval_s: int = 300


class LoggingConfig(BaseModel):
    """Log sink configuration."""
    level: str = "INFO"
    file: str = ""


class Config(BaseSettings):
    """Root configuration for wa-operator."""
    persona: PersonaConfig = Field(default_factory=PersonaConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    offline: OfflineConfig = Field(default_factory=OfflineConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    follow_ups: FollowUpsConfig = Field(default_factory=FollowUpsConfig)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    integrations: IntegrationsConfig = Field(default_factory=IntegrationsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def snapshot_path(self) -> Path:
        """Get expanded snapshot path."""
        return Path(self.storage.snapshot_path).expanduser()

    @property
    def metrics_path(self) -> Path:
        return self.snapshot_path.parent / "metrics" / "events.jsonl"

    model_config = SettingsConfigDict(
        env_prefix="WA_OPERATOR_",
        env_nested_delimiter="__",
    )
