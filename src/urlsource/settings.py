# src/urlsource/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="URLSOURCE_")

    # HTTP transport (None disables the timeout)
    http_timeout_seconds: float | None = None
    http_follow_redirects: bool = True
    http_use_caches: bool = True
    http_user_agent: str = "urlsource"

    # Reuse of a closed handle: False raises HandleClosedError,
    # True reconnects from the locator
    reopen_after_close: bool = False


def get_settings() -> SourceSettings:
    """Create a settings instance from environment variables."""
    return SourceSettings()
