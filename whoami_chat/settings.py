"""Settings for the whoami chat client with observability configuration."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    api_base_url: str = _env_field("http://localhost:8080/api/v1", "API_BASE_URL")
    # Socket.IO lives on the API host without the versioned prefix
    socket_url: Optional[str] = _env_field(None, "SOCKET_URL")
    request_timeout_seconds: float = _env_field(10.0, "REQUEST_TIMEOUT_SECONDS")
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")

    unread_key_prefix: str = _env_field("whoami.unreadCounts.", "UNREAD_KEY_PREFIX")
    notification_log_key: str = "whoami.notifications.log"
    notification_prefs_key: str = "whoami.notifications.prefs"
    notification_log_limit: int = 50
    notification_body_max_chars: int = 120

    # Outbound "stop typing" fires after this much input inactivity
    typing_idle_seconds: float = _env_field(1.2, "TYPING_IDLE_SECONDS")
    # Inbound typing indicators expire locally if the peer never sends "stopped"; 0 disables
    typing_indicator_ttl_seconds: float = 3.0
    seen_message_cache_size: int = 2000

    match_reveal_interval_seconds: float = _env_field(4.5, "MATCH_REVEAL_INTERVAL_SECONDS")
    match_age_min: int = 13
    match_age_max: int = 99

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    service_name: str = _env_field("whoami-chat", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _derive_socket_url(self) -> "Settings":
        if not self.socket_url:
            base = self.api_base_url.rstrip("/")
            if base.endswith("/api/v1"):
                base = base[: -len("/api/v1")]
            self.socket_url = base
        return self


settings = Settings()
