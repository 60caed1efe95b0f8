from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_SOLVER_URLS: Dict[str, str] = {
    "mainnet": "https://solver.mainnet.omni.network/api/v1",
    "testnet": "https://solver.omega.omni.network/api/v1",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Network selection (replaces the UI's mainnet/testnet toggle)
    network: Literal["mainnet", "testnet"] = Field(
        default="mainnet",
        description="Which chain set and solver deployment to use",
    )
    solver_base_url: str = Field(
        default="",
        description="Override the solver API base URL for the selected network",
    )
    use_remote_token_list: bool = Field(
        default=False,
        description="Load supported assets from the solver instead of the static registry",
    )

    # Remote calls
    request_timeout_seconds: int = Field(default=20, description="HTTP timeout for solver/explorer calls")
    abi_cache_ttl_seconds: int = Field(default=600, description="How long fetched ABIs are reused")
    max_cache_size: int = Field(default=500, description="Maximum cached ABI entries")

    # Block explorer API keys
    etherscan_api_key: str = Field(default="", description="Etherscan (and Sepolia/Holesky) API key")
    basescan_api_key: str = Field(
        default="",
        description="Basescan API key",
        validation_alias=AliasChoices("basescan_api_key", "BASESCAN_API_KEY", "BASE_API_KEY"),
    )
    optimism_api_key: str = Field(default="", description="Optimistic Etherscan API key")
    arbiscan_api_key: str = Field(default="", description="Arbiscan API key")

    @property
    def resolved_solver_url(self) -> str:
        return (self.solver_base_url or DEFAULT_SOLVER_URLS[self.network]).rstrip("/")

    def explorer_api_key(self, key_name: str) -> Optional[str]:
        value = getattr(self, key_name, "")
        return value or None


# Global settings instance
settings = Settings()
