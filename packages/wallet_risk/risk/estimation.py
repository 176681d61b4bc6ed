"""
Asset Estimation Module

Builds the ``Asset`` inputs of both engines from a history of period returns:
annualized drift and volatility, market beta, and a correlation map taken
from a sample, Ledoit-Wolf or EWMA (RiskMetrics) covariance estimate.
"""

import math
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import structlog
from sklearn.covariance import LedoitWolf

from ..config import get_settings
from ..exceptions import InsufficientDataError
from ..models import Asset
from ..stats import multiple_regression

logger = structlog.get_logger(__name__)


def _check_returns_frame(returns: pd.DataFrame, caller: str) -> np.ndarray:
    if returns.empty:
        raise InsufficientDataError(f"{caller}: empty returns DataFrame", required=2, available=0)

    if len(returns) < 2:
        raise InsufficientDataError(
            f"{caller}: need at least 2 observations, got {len(returns)}",
            required=2,
            available=len(returns),
        )

    returns_array = returns.values.astype(float)
    if np.isnan(returns_array).any():
        nan_counts = np.isnan(returns_array).sum(axis=0)
        affected_symbols = [
            returns.columns[i]
            for i, count in enumerate(nan_counts)
            if count > 0
        ]
        logger.error(f"{caller}: NaN values in returns", affected_symbols=affected_symbols)
        raise ValueError(f"NaN values detected in returns for symbols: {affected_symbols}")

    return returns_array


def _ewma_cov(returns_array: np.ndarray, lambd: float) -> np.ndarray:
    """RiskMetrics recursion sigma_t = lambda * sigma_{t-1} + (1 - lambda) * r_t r_t'."""
    T, N = returns_array.shape

    # Seed with the sample covariance of the first 10 observations
    init_window = min(10, T)
    cov = np.atleast_2d(np.cov(returns_array[:init_window].T, ddof=1))

    for t in range(init_window, T):
        r_t = returns_array[t].reshape(-1, 1)
        cov = lambd * cov + (1 - lambd) * (r_t @ r_t.T)

    return (cov + cov.T) / 2


def estimate_covariance(
    returns: pd.DataFrame,
    method: str = 'sample',
    ewma_lambda: float = 0.94,
) -> np.ndarray:
    """Covariance matrix of period returns.

    Args:
        returns: DataFrame of returns (T x N)
        method: 'sample', 'lw' (Ledoit-Wolf shrinkage) or 'ewma'
        ewma_lambda: Decay factor for EWMA

    Returns:
        N x N covariance matrix
    """
    returns_array = _check_returns_frame(returns, "estimate_covariance")
    method = method.lower()

    if method == 'sample':
        cov = np.atleast_2d(np.cov(returns_array.T, ddof=1))
    elif method == 'lw':
        lw = LedoitWolf()
        cov = lw.fit(returns_array).covariance_
        logger.info("estimate_covariance: Ledoit-Wolf shrinkage", shrinkage=float(lw.shrinkage_))
    elif method == 'ewma':
        if not 0 < ewma_lambda < 1:
            raise ValueError(f"Lambda must be between 0 and 1, got {ewma_lambda}")
        cov = _ewma_cov(returns_array, ewma_lambda)
    else:
        raise ValueError(f"Unknown covariance estimation method: {method}. Use 'sample', 'lw' or 'ewma'")

    logger.info(
        "estimate_covariance: covariance estimated",
        method=method,
        num_assets=cov.shape[0],
        num_observations=len(returns),
    )

    return cov


def estimate_correlation(
    returns: pd.DataFrame,
    method: str = 'sample',
    ewma_lambda: float = 0.94,
) -> pd.DataFrame:
    """Correlation matrix with symbol labels on both axes.

    Assets with zero variance get zero correlation with everything else.
    """
    cov = estimate_covariance(returns, method=method, ewma_lambda=ewma_lambda)
    std = np.sqrt(np.clip(np.diag(cov), 0.0, None))

    denom = np.outer(std, std)
    with np.errstate(divide='ignore', invalid='ignore'):
        corr = np.where(denom > 0, cov / denom, 0.0)
    corr = np.clip(corr, -1.0, 1.0)
    np.fill_diagonal(corr, 1.0)

    return pd.DataFrame(corr, index=returns.columns, columns=returns.columns)


def estimate_beta(asset_returns, market_returns) -> float:
    """Market beta from an OLS regression of asset on market returns.

    pandas Series are aligned on their common index first.  A flat market
    series has no defined beta and yields 0.0.
    """
    if isinstance(asset_returns, pd.Series) and isinstance(market_returns, pd.Series):
        common = asset_returns.index.intersection(market_returns.index)
        asset_returns = asset_returns.loc[common]
        market_returns = market_returns.loc[common]

    y = np.asarray(asset_returns, dtype=float)
    x = np.asarray(market_returns, dtype=float)

    if x.size < 3:
        raise InsufficientDataError(
            f"Need at least 3 overlapping observations for beta, got {x.size}",
            required=3,
            available=int(x.size),
        )

    if np.var(x, ddof=1) == 0:
        logger.warning("estimate_beta: flat market returns, beta undefined")
        return 0.0

    fit = multiple_regression(x, y)
    return float(fit['coefficients'][1])


def build_assets(
    returns: pd.DataFrame,
    values: Dict[str, float],
    market_returns: Optional[pd.Series] = None,
    periods_per_year: Optional[int] = None,
    method: str = 'sample',
) -> List[Asset]:
    """Assets annualized from a return history.

    Args:
        returns: DataFrame of period returns, one column per symbol
        values: {symbol: current USD value}; columns without a value are skipped
        market_returns: Optional market factor series for beta (else beta 1.0)
        periods_per_year: Annualization factor (default: trading days)
        method: Correlation estimator, see ``estimate_covariance``

    Returns:
        List of Asset in column order
    """
    if periods_per_year is None:
        periods_per_year = get_settings().TRADING_DAYS

    symbols = [s for s in returns.columns if s in values]
    missing = [s for s in values if s not in returns.columns]
    if missing:
        logger.warning("build_assets: symbols without return history", symbols=missing)
    if not symbols:
        raise InsufficientDataError("No symbol has both a value and a return history")

    frame = returns[symbols]
    corr = estimate_correlation(frame, method=method)

    assets = []
    for symbol in symbols:
        series = frame[symbol]
        beta = 1.0 if market_returns is None else estimate_beta(series, market_returns)
        assets.append(Asset(
            symbol=symbol,
            value=float(values[symbol]),
            expected_return=float(series.mean() * periods_per_year),
            volatility=float(series.std(ddof=1) * math.sqrt(periods_per_year)),
            beta=beta,
            correlations={
                other: float(corr.loc[symbol, other])
                for other in symbols
                if other != symbol
            },
        ))

    logger.info(
        "build_assets: assets built",
        num_assets=len(assets),
        num_observations=len(frame),
        method=method,
    )

    return assets


def portfolio_returns(returns: pd.DataFrame, weights: Dict[str, float]) -> pd.Series:
    """Weighted portfolio return per period, for historical VaR."""
    symbols = [s for s in weights if s in returns.columns]
    if not symbols:
        raise ValueError("None of the weighted symbols appear in the returns DataFrame")

    w = pd.Series({s: weights[s] for s in symbols})
    return returns[symbols].fillna(0.0) @ w
