"""Configuration and environment loading for the HomeSwift auth service."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Supabase
    supabase_url: str
    supabase_key: str

    # Signs the intended-role token carried through the OAuth redirect
    intent_signing_secret: str
    intent_max_age: int = 600  # Seconds

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    app_base_url: str = "http://localhost:8000"
    oauth_provider: str = "google"
    cors_origins: list[str] = ["http://localhost:5173"]
    event_cleanup_interval: int = 60  # Seconds between auth event history sweeps

    # Session retrieval after the OAuth redirect
    session_retry_attempts: int = 3
    session_retry_delay: float = 1.0  # Seconds between attempts
    failure_redirect_delay: int = 3  # Seconds before bouncing to sign-in

    # Redirect targets
    landlord_dashboard_path: str = "/landlord/dashboard"
    renter_home_path: str = "/chat"
    profile_fallback_path: str = "/profile"
    login_path: str = "/login"

    # Client cache cookies
    cookie_secure: bool = True
    cookie_max_age: int = 60 * 60 * 24 * 30


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
