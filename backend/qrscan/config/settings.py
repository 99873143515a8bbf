"""
Scan station settings.

Everything is read from the environment (prefix ``QRSCAN_``) or a local
``.env`` file.  Secrets use SecretStr so they stay masked in logs.
"""
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the scan station."""

    # === Token service ===
    token_service_url: str = Field(
        "http://localhost:8000",
        description="Base URL of the QR token service",
    )
    token_service_api_key: Optional[SecretStr] = Field(
        None, description="Bearer token for the token service"
    )
    token_verify_path: str = Field(
        "/qr-tokens/verify", description="Verify-and-consume endpoint path"
    )
    token_request_timeout: float = Field(
        10.0, gt=0, description="HTTP timeout for token service calls (seconds)"
    )

    # === Session behaviour ===
    verify_timeout_seconds: Optional[float] = Field(
        None,
        gt=0,
        description="Give up on a verification after this long (unset = wait forever)",
    )
    success_delay_seconds: float = Field(
        0.5, ge=0, description="Pause between accepting a code and delivering it"
    )

    # === Camera ===
    camera_source: str = Field("0", description="Device index or stream URL")
    camera_fps: int = Field(10, ge=1, le=60)
    camera_frame_width: int = Field(640, ge=1)
    camera_frame_height: int = Field(480, ge=1)

    # === Consumed-token ledger ===
    ledger_backend: Literal["none", "memory", "redis"] = "none"
    redis_host: str = "localhost"
    redis_port: int = 6379
    ledger_redis_db: int = 3
    ledger_ttl_seconds: int = Field(86400, ge=60)
    ledger_key_prefix: str = "qrscan:consumed:"

    # === Logging ===
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="QRSCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings instance."""
    return Settings()


settings = get_settings()
