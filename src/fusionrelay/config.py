"""Application configuration using pydantic-settings.

Holds the EVM resolver addresses, the Cosmos escrow factory and the
signing material for both legs.
"""

import re
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
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=3001, description="API server port")
    allowed_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        description="Comma-separated list of CORS origins",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ======================
    # EVM leg
    # ======================
    eth_chain_id: int = Field(default=42161, description="Chain id of the EVM resolver")
    eth_rpc_url: str = Field(default="https://arb1.arbitrum.io/rpc", description="EVM RPC URL")
    eth_private_key: Optional[str] = Field(default=None, description="Resolver signer private key")
    eth_resolver: str = Field(default="", description="Resolver contract address")
    eth_escrow_factory: str = Field(default="", description="Escrow factory address")
    eth_limit_order: str = Field(default="", description="Limit order protocol address")
    eth_dst_asset: str = Field(
        default="0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        description="Token locked in destination escrows for Cosmos->EVM swaps",
    )
    force_gas_limit: Optional[int] = Field(
        default=None, description="Gas limit applied to deploy transactions"
    )

    # ======================
    # Cosmos leg
    # ======================
    cosmos_rpc_endpoint: str = Field(
        default="grpc+https://grpc.osmosis.zone:443", description="Cosmos gRPC/REST endpoint"
    )
    cosmos_chain_id: str = Field(default="osmosis-1", description="Cosmos chain id")
    cosmos_chain_numeric_id: int = Field(
        default=999, description="Numeric id intents use for the Cosmos chain"
    )
    cosmos_prefix: str = Field(default="osmo", description="Bech32 address prefix")
    cosmos_mnemonic: Optional[str] = Field(default=None, description="Resolver Cosmos mnemonic")
    cosmos_gas_price: str = Field(default="0.025uosmo", description="Minimum gas price")
    cosmos_escrow_factory_address: Optional[str] = Field(
        default=None, description="HTLC escrow factory contract"
    )
    cosmos_ibc_contract_address: Optional[str] = Field(
        default=None, description="IBC hub contract"
    )

    # ======================
    # Timeouts
    # ======================
    rpc_timeout: float = Field(default=30.0, description="Per-request RPC timeout (seconds)")
    confirmation_timeout: float = Field(
        default=180.0, description="Maximum wait for a transaction receipt (seconds)"
    )
    execution_lock_timeout: float = Field(
        default=300.0, description="Maximum wait for an order's execution lock (seconds)"
    )
    default_dst_cancellation_delay: int = Field(
        default=600, description="Default source cancellation deadline offset for Cosmos->EVM"
    )

    @property
    def origins(self) -> list[str]:
        """Parse allowed CORS origins into a list."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_evm_signer(self) -> bool:
        return bool(self.eth_private_key)

    @property
    def has_cosmos_signer(self) -> bool:
        """Check if a Cosmos mnemonic is configured."""
        return bool(self.cosmos_mnemonic and len(self.cosmos_mnemonic.split()) >= 12)

    def cosmos_gas_price_parts(self) -> tuple[Decimal, str]:
        """Split a gas price like ``0.025uosmo`` into amount and denom."""
        match = re.fullmatch(r"\s*([0-9]*\.?[0-9]+)\s*([a-zA-Z][a-zA-Z0-9/]*)\s*", self.cosmos_gas_price)
        if not match:
            raise ValueError(f"Invalid gas price: {self.cosmos_gas_price!r}")
        return Decimal(match.group(1)), match.group(2)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "evm": {
                "chain_id": self.eth_chain_id,
                "rpc": self.eth_rpc_url,
                "resolver": self.eth_resolver or "(not set)",
                "escrow_factory": self.eth_escrow_factory or "(not set)",
                "limit_order": self.eth_limit_order or "(not set)",
                "private_key": "***" if self.eth_private_key else "(not set)",
            },
            "cosmos": {
                "chain_id": self.cosmos_chain_id,
                "rpc": self.cosmos_rpc_endpoint,
                "prefix": self.cosmos_prefix,
                "escrow_factory": self.cosmos_escrow_factory_address or "(not set)",
                "ibc_contract": self.cosmos_ibc_contract_address or "(not set)",
                "mnemonic": "***" if self.cosmos_mnemonic else "(not set)",
            },
            "timeouts": {
                "rpc": self.rpc_timeout,
                "confirmation": self.confirmation_timeout,
                "execution_lock": self.execution_lock_timeout,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
