"""Application configuration using pydantic-settings.

Holds custody addresses, signing material locations and indexer endpoints for
the two swap networks (Cardano and Ethereum) plus coordinator tuning.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/swapgate.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=3001, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    dry_run: bool = Field(
        default=True, description="Use simulated observers and executors (no chain access)"
    )

    # ======================
    # Admin
    # ======================
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")
    allow_test_deposits: bool = Field(
        default=True, description="Expose the manual deposit confirmation endpoint"
    )

    # ======================
    # Orders
    # ======================
    exchange_rate: Decimal = Field(
        default=Decimal("0.0005"), description="ETH received per 1 ADA"
    )
    order_expiry_seconds: int = Field(default=1800, description="Order lifetime (30 minutes)")
    ada_tolerance: Decimal = Field(
        default=Decimal("0.1"), description="Deposit amount tolerance for ADA"
    )
    eth_tolerance: Decimal = Field(
        default=Decimal("0.001"), description="Deposit amount tolerance for ETH"
    )

    # ======================
    # Coordinator
    # ======================
    coordinator_enabled: bool = Field(
        default=True, description="Run the swap coordinator inside the API process"
    )
    coordinator_interval: float = Field(default=10.0, description="Seconds between ticks")
    coordinator_overlap: str = Field(
        default="skip", description="Tick overlap policy: skip or allow"
    )
    max_concurrency: int = Field(default=8, description="Orders processed in parallel per tick")
    indexer_timeout: float = Field(default=30.0, description="Indexer request timeout (seconds)")
    send_timeout: float = Field(default=120.0, description="Settlement send timeout (seconds)")
    stuck_after_seconds: int = Field(
        default=900, description="Processing orders older than this need attention"
    )

    # ======================
    # Ethereum (Sepolia)
    # ======================
    eth_rpc_url: str = Field(
        default="https://rpc.sepolia.org", description="Ethereum JSON-RPC URL"
    )
    eth_private_key: Optional[str] = Field(
        default=None, description="Hex private key of the ETH custody wallet"
    )
    eth_custody_address: Optional[str] = Field(
        default=None, description="ETH custody address (derived from the key when unset)"
    )
    eth_chain_id: int = Field(default=11155111, description="EVM chain id (Sepolia)")
    etherscan_api_key: str = Field(default="", description="Etherscan API key")
    etherscan_api_url: str = Field(
        default="https://api.etherscan.io/v2/api", description="Etherscan API v2 endpoint"
    )
    eth_min_confirmations: int = Field(default=1, description="Confirmations for ETH deposits")

    # ======================
    # Cardano (PreProd)
    # ======================
    blockfrost_api_key: str = Field(default="", description="Blockfrost project id")
    blockfrost_url: str = Field(
        default="https://cardano-preprod.blockfrost.io/api/v0",
        description="Blockfrost API base URL",
    )
    ada_custody_address: Optional[str] = Field(
        default=None, description="Cardano custody address (bech32)"
    )
    ada_signing_key_path: Optional[str] = Field(
        default=None, description="cardano-cli payment.skey file for the custody wallet"
    )
    ada_network: str = Field(default="testnet", description="Cardano network: testnet or mainnet")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "orders": {
                "exchange_rate": str(self.exchange_rate),
                "expiry_seconds": self.order_expiry_seconds,
                "tolerance": {"ADA": str(self.ada_tolerance), "ETH": str(self.eth_tolerance)},
            },
            "coordinator": {
                "enabled": self.coordinator_enabled,
                "interval": self.coordinator_interval,
                "overlap": self.coordinator_overlap,
                "max_concurrency": self.max_concurrency,
            },
            "chains": {
                "ETH": {
                    "rpc": self.eth_rpc_url,
                    "chain_id": self.eth_chain_id,
                    "custody_address": self.eth_custody_address or "(derived)",
                    "private_key": "***" if self.eth_private_key else "(not set)",
                    "api_key": "***" if self.etherscan_api_key else "(not set)",
                },
                "ADA": {
                    "blockfrost": self.blockfrost_url,
                    "custody_address": self.ada_custody_address or "(not set)",
                    "signing_key": "***" if self.ada_signing_key_path else "(not set)",
                    "api_key": "***" if self.blockfrost_api_key else "(not set)",
                },
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
