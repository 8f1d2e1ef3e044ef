import os

from decimal import Decimal
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
        """Admin endpoints fall back to the cron secret when no admin secret is set."""

        super().model_post_init(__context)

        if not self.admin_secret:
            fallback = self.cron_secret or os.getenv("CRON_SECRET")
            if fallback:
                object.__setattr__(self, "admin_secret", fallback)

    # Server Settings
    environment: str = Field(
        default="development",
        description="Deployment environment (development, production)",
        validation_alias=AliasChoices("environment", "ENVIRONMENT", "NODE_ENV"),
    )
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    request_timeout_seconds: int = Field(default=30, description="Outbound HTTP request timeout")

    # Persistence
    database_url: str = Field(
        default="",
        description="SQLAlchemy async URL for the session store (e.g. postgresql+asyncpg://...)",
    )
    store_list_limit: int = Field(
        default=1000,
        ge=1,
        description="Upper bound on sessions returned by full-table scans",
    )

    # Movement network
    movement_rpc_url: str = Field(
        default="https://mainnet.movementnetwork.xyz/v1",
        description="Movement fullnode REST endpoint",
    )
    explorer_url: str = Field(
        default="https://explorer.movementnetwork.xyz/txn",
        description="Block explorer transaction URL prefix",
    )
    explorer_network: str = Field(default="mainnet", description="Explorer network query parameter")
    tx_wait_timeout_seconds: int = Field(
        default=30,
        ge=1,
        description="Max seconds to wait for a submitted transaction to commit",
    )
    max_gas_amount: int = Field(default=200_000, description="Max gas units per executor transaction")
    tx_expiration_seconds: int = Field(default=60, description="Transaction expiration window")

    # Executor wallet
    executor_private_key: str = Field(default="", description="Ed25519 private key of the executor wallet")

    # Assets (single input/output pair per deployment)
    usdc_asset_address: str = Field(
        default="0x83121c9f9b0527d1f056e21a950d6bf3b9e9e2e8353d0e95ccea726713cbea39",
        description="USDC fungible asset metadata address",
    )
    move_asset_address: str = Field(default="0xa", description="Native MOVE asset address")
    move_coin_type: str = Field(default="0x1::aptos_coin::AptosCoin", description="Native coin type")
    usdc_decimals: int = Field(default=6, description="USDC decimals")
    move_decimals: int = Field(default=8, description="MOVE decimals")

    # Mosaic (swap routing)
    mosaic_api_url: str = Field(default="https://api.mosaic.ag/v1", description="Mosaic API base URL")
    mosaic_api_key: str = Field(default="", description="Mosaic API key")

    # Shinami Gas Station (sponsorship)
    shinami_gas_station_api_key: str = Field(default="", description="Shinami Gas Station access key")
    shinami_gas_station_url: str = Field(
        default="https://api.us1.shinami.com/movement/gas/v1",
        description="Shinami Gas Station JSON-RPC endpoint",
    )

    # Scheduler trigger
    cron_secret: str = Field(default="", description="Bearer secret accepted by the scheduler trigger")
    admin_secret: str = Field(default="", description="Bearer secret for admin endpoints")
    scheduler_trigger_header: str = Field(
        default="x-vercel-cron",
        description="Header set by the hosting platform on internal cron invocations",
    )
    scheduler_min_interval_seconds: int = Field(
        default=30,
        ge=0,
        description="Minimum spacing between scheduler passes",
    )
    scheduler_max_concurrency: int = Field(
        default=1,
        ge=1,
        description="Max sessions traded concurrently within one scheduler pass",
    )

    # Session limits
    min_total_amount: Decimal = Field(default=Decimal("1"), description="Min USDC per session")
    max_total_amount: Decimal = Field(default=Decimal("100000"), description="Max USDC per session")
    max_num_trades: int = Field(default=1000, description="Max trades per session")
    min_interval_minutes: int = Field(default=1, description="Min minutes between trades")
    max_interval_minutes: int = Field(default=525_600, description="Max minutes between trades (one year)")
    max_slippage_bps: int = Field(default=500, description="Max slippage tolerance in bps")
    default_slippage_bps: int = Field(default=100, description="Slippage used when none is supplied")
    session_expiry_buffer_minutes: int = Field(
        default=30,
        description="Grace added to the planned schedule length before a session expires",
    )
    transfer_safety_margin_bps: int = Field(
        default=10,
        ge=0,
        le=10_000,
        description="Share of quoted output kept by the executor to absorb rounding (10 = 0.1%)",
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def has_executor_key(self) -> bool:
        return bool(self.executor_private_key)

    @property
    def has_mosaic_key(self) -> bool:
        return bool(self.mosaic_api_key)

    @property
    def has_gas_station_key(self) -> bool:
        return bool(self.shinami_gas_station_api_key)

    @property
    def has_database(self) -> bool:
        return bool(self.database_url)

    def explorer_link(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/{tx_hash}?network={self.explorer_network}"


# Global settings instance
settings = Settings()
