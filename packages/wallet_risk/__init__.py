"""
Wallet Risk

Risk Model Engine and Portfolio Optimizer for crypto-wallet portfolios.

Subpackages:
- risk: VaR/CVaR, Monte Carlo, stress tests, decomposition and scoring
- optimization: Allocation search, efficient frontier and rebalancing

Shared modules:
- models: Pydantic input and result models
- stats: Statistics primitives and the covariance kernel
- config: Settings loaded from ``WALLET_RISK_*`` environment variables
- log_config: structlog setup
"""

from .exceptions import (
    WalletRiskError,
    InsufficientDataError,
    SingularMatrixError,
    InvalidConstraintError,
    SimulationCancelledError,
)
from .models import Asset, OptimizationConstraints

__version__ = "0.1.0"

__all__ = [
    'WalletRiskError',
    'InsufficientDataError',
    'SingularMatrixError',
    'InvalidConstraintError',
    'SimulationCancelledError',
    'Asset',
    'OptimizationConstraints',
]
