import os

from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the legacy Socket environment variable name for the Bungee key."""

        super().model_post_init(__context)

        if not self.bungee_api_key:
            fallback = os.getenv("SOCKET_API_KEY") or os.getenv("VITE_SOCKET_API_KEY")
            if fallback:
                object.__setattr__(self, "bungee_api_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    environment: str = Field(default="development", description="Deployment environment name")

    # Backends
    relay_base_url: str = Field(
        default="",
        description="Override the default Relay API base URL",
    )
    bungee_api_key: str = Field(
        default="",
        description="Bungee (Socket) API key sent in the API-KEY header",
        validation_alias=AliasChoices("bungee_api_key", "BUNGEE_API_KEY"),
    )
    bungee_base_url: str = Field(
        default="",
        description="Override the default Bungee (Socket) API base URL",
    )
    rpc_url: str = Field(
        default="https://mainnet.base.org",
        description="JSON-RPC endpoint used for gas pricing and allowance reads",
    )
    request_timeout_seconds: int = Field(default=20, description="HTTP request timeout")

    # Fallback orchestration
    bridge_fallback_enabled: bool = Field(
        default=True,
        description="Allow switching to the next provider when the current one has no route",
        validation_alias=AliasChoices("bridge_fallback_enabled", "VITE_BRIDGE_FALLBACK_ENABLED"),
    )
    max_providers_to_try: int = Field(default=3, description="Upper bound on providers attempted per operation")

    # Cache Settings
    request_dedup_ttl_seconds: float = Field(
        default=5.0,
        description="How long an in-flight price/quote request is shared with identical callers",
    )
    quote_cache_ttl_seconds: float = Field(default=30.0, description="Completed quote reuse window")
    max_quote_cache_size: int = Field(default=50, description="Maximum completed quotes kept in memory")

    # Status polling
    status_poll_max_attempts: int = Field(default=60, description="Maximum status polls per request")
    status_poll_initial_interval_seconds: float = Field(default=3.0, description="First polling delay")
    status_poll_backoff_multiplier: float = Field(default=1.5, description="Polling delay growth factor")
    status_poll_max_interval_seconds: float = Field(default=30.0, description="Polling delay ceiling")
    bridge_monitor_timeout_seconds: float = Field(
        default=300.0,
        description="Absolute wall-clock limit for monitoring a single bridge transfer",
    )
    user_op_timeout_seconds: float = Field(
        default=120.0,
        description="How long to wait for a smart-account user operation receipt",
    )

    # Send flow
    min_bridge_amount_usd: float = Field(
        default=0.01,
        description="Smallest USDC amount accepted for a bridged send (0.10 in production)",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def effective_min_bridge_amount_usd(self) -> float:
        if self.is_production:
            return max(self.min_bridge_amount_usd, 0.10)
        return self.min_bridge_amount_usd


# Global settings instance
settings = Settings()
