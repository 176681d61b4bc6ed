"""Expected return, volatility and Sharpe ratio of an allocation."""

import math
from typing import Dict, Optional, Sequence

import numpy as np

from ..config import get_settings
from ..models import Allocation, Asset
from ..stats import check_unique_symbols, correlation_matrix, portfolio_variance


def allocation_vector(assets: Sequence[Asset], allocation: Allocation) -> np.ndarray:
    """Weights aligned to asset order; symbols missing from the allocation get 0."""
    return np.array([allocation.get(a.symbol, 0.0) for a in assets], dtype=float)


def current_allocation(assets: Sequence[Asset]) -> Dict[str, float]:
    """Current weights from asset values (all 0 for an empty portfolio)."""
    check_unique_symbols(assets)
    total = sum(a.value for a in assets)
    if total <= 0:
        return {a.symbol: 0.0 for a in assets}
    return {a.symbol: a.value / total for a in assets}


def portfolio_return(assets: Sequence[Asset], allocation: Allocation) -> float:
    weights = allocation_vector(assets, allocation)
    returns = np.array([a.expected_return for a in assets], dtype=float)
    return float(weights @ returns)


def portfolio_volatility(assets: Sequence[Asset], allocation: Allocation) -> float:
    """sqrt(sum_ij w_i w_j sigma_i sigma_j rho_ij), rho from the assets' maps."""
    weights = allocation_vector(assets, allocation)
    vols = np.array([a.volatility for a in assets], dtype=float)
    return math.sqrt(portfolio_variance(weights, vols, correlation_matrix(assets)))


def sharpe_ratio(
    expected_return: float,
    volatility: float,
    risk_free_rate: Optional[float] = None,
) -> float:
    """(return - risk-free) / volatility; 0 for a riskless portfolio."""
    if risk_free_rate is None:
        risk_free_rate = get_settings().RISK_FREE_RATE
    if volatility == 0:
        return 0.0
    return (expected_return - risk_free_rate) / volatility
