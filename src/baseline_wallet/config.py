"""
Configuration management for the Baseline light wallet.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from baseline_wallet.wallet.storage import DEFAULT_ITERATIONS


def default_wallet_file() -> Path:
    return Path.home() / ".baseline-light" / "wallet.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BASELINE_", env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    rpc_url: str = "http://127.0.0.1:8832"
    rpc_user: str = ""
    rpc_password: str = ""
    rpc_timeout: float = 15.0

    fee_target: int = Field(default=6, ge=1)

    wallet_file: Path = Field(default_factory=default_wallet_file)
    kdf_iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1)

    utxo_page_size: int = Field(default=500, ge=1)

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()
