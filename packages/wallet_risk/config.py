"""Configuration for the wallet-risk engines loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Risk engine and optimizer defaults.

    Every field can be overridden with a ``WALLET_RISK_``-prefixed environment
    variable (or a ``.env`` file).  Explicit function arguments always win over
    these values.
    """

    RISK_FREE_RATE: float = 0.04  # annual, e.g. T-bills
    TRADING_DAYS: int = 252
    MARKET_VOLATILITY: float = 0.15  # assumed annual market vol for systematic risk
    MIN_VAR_OBSERVATIONS: int = 30
    MC_SIMULATIONS: int = 10_000
    MC_DAYS: int = 252
    MC_CHUNK_SIZE: int = 1_000
    OPTIMIZER_SAMPLES: int = 10_000
    REBALANCE_THRESHOLD: float = 0.05
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_prefix": "WALLET_RISK_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
