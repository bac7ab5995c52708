"""Application configuration using pydantic-settings.

Settings are loaded once at process start and passed explicitly to the
chain context and the orchestrator. RPC and coordinator URLs default to a
local development setup (Anvil fork + local MEE node); in production these
defaults are rejected by ``validate_for_run``.
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from supertx.errors import ConfigurationError

DEFAULT_LOCAL_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_MEE_NODE_URL = "http://localhost:3000/v3"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")

    # ======================
    # Chain
    # ======================
    chain_id: int = Field(default=1, description="Target EVM chain id")
    local_rpc_url: str = Field(
        default=DEFAULT_LOCAL_RPC_URL, description="RPC URL used for reads and writes"
    )
    mainnet_rpc_url: Optional[str] = Field(
        default=None, description="Upstream mainnet RPC (only needed to start a fork)"
    )

    # ======================
    # Execution coordinator (MEE)
    # ======================
    mee_node_url: str = Field(default=DEFAULT_MEE_NODE_URL, description="MEE node base URL")
    mee_api_key: Optional[str] = Field(default=None, description="MEE node API key")
    http_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP request timeout")
    receipt_timeout_seconds: float = Field(
        default=600.0, gt=0, description="Maximum wait for a supertransaction receipt"
    )
    receipt_poll_interval: float = Field(
        default=2.0, gt=0, description="Seconds between receipt polls"
    )

    # ======================
    # Signer / companion account
    # ======================
    private_key: Optional[str] = Field(default=None, description="Owner EOA private key (hex)")
    nexus_factory_address: Optional[str] = Field(
        default=None, description="Nexus account factory used to derive the companion"
    )
    nexus_account_index: int = Field(default=0, ge=0, description="Companion account index")
    nexus_account_id_prefix: str = Field(
        default="biconomy.nexus.", description="Expected accountId() prefix of a deployed companion"
    )

    # ======================
    # Amounts / sandbox funding
    # ======================
    usdc_whale: Optional[str] = Field(
        default=None, description="USDC holder impersonated to fund the owner on a fork"
    )
    usdc_top_up_amount: Decimal = Field(
        default=Decimal("1000000"), ge=0, description="USDC sent to the owner on a fork"
    )
    aave_supply_amount_usdc: Decimal = Field(
        default=Decimal("100"), gt=0, description="USDC supplied into Aave"
    )
    read_retries: int = Field(default=3, ge=1, description="Attempts for chain reads")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_signer(self) -> bool:
        """Check if signer key material is configured."""
        return bool(self.private_key and self.private_key.strip())

    def validate_for_run(self) -> None:
        """Fail fast on configuration a supertransaction run cannot work without.

        Raises:
            ConfigurationError: If the signer is missing, or if production
                settings rely on development defaults.
        """
        if not self.has_signer:
            raise ConfigurationError("Missing PRIVATE_KEY: signer key material is required")

        if self.is_production:
            defaulted = [
                name
                for name in ("local_rpc_url", "mee_node_url")
                if name not in self.model_fields_set
            ]
            if defaulted:
                raise ConfigurationError(
                    f"Production runs require explicit {', '.join(n.upper() for n in defaulted)}"
                )
            if not self.nexus_factory_address:
                raise ConfigurationError("Production runs require NEXUS_FACTORY_ADDRESS")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "chain_id": self.chain_id,
            "local_rpc_url": self.local_rpc_url,
            "mainnet_rpc_url": self.mainnet_rpc_url or "(not set)",
            "mee_node_url": self.mee_node_url,
            "mee_api_key": "***" if self.mee_api_key else "(not set)",
            "private_key": "***" if self.has_signer else "(not set)",
            "nexus_factory_address": self.nexus_factory_address or "(not set)",
            "usdc_whale": self.usdc_whale or "(not set)",
            "usdc_top_up_amount": str(self.usdc_top_up_amount),
            "aave_supply_amount_usdc": str(self.aave_supply_amount_usdc),
            "receipt_timeout_seconds": self.receipt_timeout_seconds,
        }


def load_settings(**overrides) -> Settings:
    """Build the settings object once at startup.

    Raises:
        ConfigurationError: If environment values fail validation.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
