"""Configuration schema using Pydantic."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BOT_NICKNAME = "HR BOT"
DEFAULT_PREFIX = "/"
DEFAULT_WELCOME_MESSAGE = "Hello! I keep this group's name, nicknames and photo in order."


class BridgeConfig(BaseModel):
    """Messaging bridge connection settings."""

    model_config = ConfigDict(extra="ignore")

    url: str = "ws://127.0.0.1:3100"
    token: str = ""
    max_payload_bytes: int = 4 * 1024 * 1024
    request_timeout_seconds: float = Field(default=20.0, gt=0)
    login_timeout_seconds: float = Field(default=60.0, gt=0)


class DashboardConfig(BaseModel):
    """HTTP dashboard settings."""

    model_config = ConfigDict(extra="ignore")

    host: str = "0.0.0.0"
    port: int = 20868
    log_backlog: int = Field(default=200, ge=0)


class TimingsConfig(BaseModel):
    """Wall-clock delays used by the session lifecycle."""

    model_config = ConfigDict(extra="ignore")

    login_retry_seconds: float = Field(default=10.0, ge=0)
    settle_seconds: float = Field(default=5.0, ge=0)
    listener_retry_seconds: float = Field(default=5.0, ge=0)
    max_listener_restarts: int = Field(default=5, ge=0)
    credential_save_interval_seconds: float = Field(default=600.0, ge=0)  # 0 disables the timer
    fanout_spacing_seconds: float = Field(default=0.5, ge=0)


class Config(BaseSettings):
    """Root configuration for lockbot."""

    model_config = SettingsConfigDict(extra="ignore", env_prefix="LOCKBOT_", env_nested_delimiter="__")

    bot_nickname: str = DEFAULT_BOT_NICKNAME
    cookies: list[Any] = Field(default_factory=list)  # opaque session state
    prefix: str = DEFAULT_PREFIX
    admin_id: str = ""
    startup_notice: str = ""
    welcome_message: str = DEFAULT_WELCOME_MESSAGE
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    timings: TimingsConfig = Field(default_factory=TimingsConfig)

    @property
    def has_credentials(self) -> bool:
        return len(self.cookies) > 0
