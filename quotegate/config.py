from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Get the directory where this config.py file is located
_config_dir = Path(__file__).parent
_env_file = _config_dir.parent / ".env"  # repo root .env


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_env_file),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 4000
    log_level: str = "INFO"

    # Upstream endpoints
    base_url: str = "https://query1.finance.yahoo.com/"
    market_time_url: str = "https://finance.yahoo.com/_finance_doubledown/api/resource/finance.market-time"
    stream_url: str = "wss://streamer.finance.yahoo.com/?version=2"

    # Session acquisition (cookie + crumb handshake)
    cookie_url: str = "https://fc.yahoo.com"
    crumb_url: str = "https://query1.finance.yahoo.com/v1/test/getcrumb"

    user_agent: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
    )
    request_timeout: float = 10.0

    # Auth retry policy (None = retry until the upstream accepts the session)
    max_auth_retries: int | None = None
    auth_retry_backoff: float = 0.0

    # Lookup
    lookup_max_results: int = 500

    # Streaming
    stream_reconnect_attempts: int = 5
    stream_max_retry_delay: float = 60.0


def get_settings() -> Settings:
    return Settings()
