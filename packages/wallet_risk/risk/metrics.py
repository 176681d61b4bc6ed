"""
Risk Metrics Module

Historical VaR / CVaR, concentration, correlation and liquidity scoring,
risk decomposition, hedge ratios and tail-risk indices.  Pure computation
functions over ``Asset`` lists, return series and correlation matrices.
"""

import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..config import get_settings
from ..exceptions import InsufficientDataError, InvalidConstraintError
from ..models import Asset, HedgeRecommendation, RiskDecomposition, TailRisk
from ..stats import normal_pdf, portfolio_variance, z_score

logger = structlog.get_logger(__name__)

# Liquidity tiers: (threshold, penalty), checked highest first
VOLUME_TIERS = [(0.5, 40.0), (0.2, 20.0), (0.1, 10.0)]
DEPTH_TIERS = [(0.05, 30.0), (0.01, 15.0)]

TAIL_FRACTION = 0.05


def _weights(assets: Sequence[Asset]) -> np.ndarray:
    """Value weights; all zeros when the portfolio is empty."""
    values = np.array([a.value for a in assets], dtype=float)
    total = values.sum()
    if total <= 0:
        return np.zeros_like(values)
    return values / total


def _check_returns(returns: Sequence[float], caller: str) -> np.ndarray:
    arr = np.asarray(returns, dtype=float).ravel()
    required = get_settings().MIN_VAR_OBSERVATIONS

    if arr.size < required:
        logger.error(f"{caller}: insufficient data", required=required, available=int(arr.size))
        raise InsufficientDataError(
            f"Insufficient data for {caller} (need at least {required} data points, got {arr.size})",
            required=required,
            available=int(arr.size),
        )

    if np.isnan(arr).any():
        raise ValueError(f"NaN values detected in returns ({int(np.isnan(arr).sum())} points)")

    return arr


def historical_var(
    returns: Sequence[float],
    portfolio_value: float,
    confidence: float = 0.95,
    horizon: int = 1,
) -> Tuple[float, float]:
    """Value-at-Risk and Conditional VaR by historical simulation.

    VaR return = sorted_returns[floor((1 - confidence) * n)]
    CVaR return = mean of all returns at or below that index

    Both are scaled by portfolio_value * sqrt(horizon) and reported as
    positive loss amounts.  A quantile that is a gain is a zero loss.

    Args:
        returns: Historical period returns (decimal), at least 30 points
        portfolio_value: Current portfolio value in USD
        confidence: Confidence level (e.g., 0.95)
        horizon: Time horizon in periods

    Returns:
        (var, cvar) in USD

    Raises:
        InsufficientDataError: Fewer than the minimum number of returns
        ValueError: Invalid confidence, horizon or portfolio value
    """
    if not 0 < confidence < 1:
        raise ValueError(f"Confidence must be between 0 and 1, got {confidence}")

    if horizon < 1:
        raise ValueError(f"Horizon must be >= 1, got {horizon}")

    if portfolio_value < 0:
        raise ValueError(f"Portfolio value must be non-negative, got {portfolio_value}")

    arr = _check_returns(returns, "historical_var")
    sorted_returns = np.sort(arr)

    var_index = int(math.floor((1 - confidence) * sorted_returns.size))
    var_return = sorted_returns[var_index]
    tail_return = sorted_returns[:var_index + 1].mean()

    scale = portfolio_value * math.sqrt(horizon)
    var = max(0.0, -var_return * scale)
    # Tail mean never exceeds the quantile; guard rounding in the mean
    cvar = max(var, -tail_return * scale)

    return float(var), float(cvar)


def parametric_var(
    portfolio_value: float,
    expected_return: float,
    volatility: float,
    confidence: float = 0.95,
    horizon: int = 1,
) -> float:
    """Normal-approximation VaR.

    VaR = |value * (mu * h - z * sigma * sqrt(h))|
    """
    if not 0 < confidence < 1:
        raise ValueError(f"Confidence must be between 0 and 1, got {confidence}")
    z = z_score(confidence)
    growth = expected_return * horizon
    scaled_vol = volatility * math.sqrt(horizon)
    return float(abs(portfolio_value * (growth - z * scaled_vol)))


def parametric_cvar(
    portfolio_value: float,
    expected_return: float,
    volatility: float,
    confidence: float = 0.95,
    horizon: int = 1,
) -> float:
    """Normal-approximation CVaR.

    CVaR = |value * (mu * h - phi(z) / (1 - c) * sigma * sqrt(h))|
    """
    if not 0 < confidence < 1:
        raise ValueError(f"Confidence must be between 0 and 1, got {confidence}")

    z = z_score(confidence)
    growth = expected_return * horizon
    scaled_vol = volatility * math.sqrt(horizon)
    phi = normal_pdf(z)
    return float(abs(portfolio_value * (growth - phi / (1 - confidence) * scaled_vol)))


def concentration_risk(assets: Sequence[Asset]) -> float:
    """Herfindahl-Hirschman Index of value weights on a 0-100 scale.

    A single holding scores 100; N equal holdings score 100 / N.
    """
    weights = _weights(assets)
    hhi = float(np.sum(weights ** 2))
    return hhi * 100


def correlation_risk(corr) -> float:
    """Average absolute off-diagonal correlation on a 0-100 scale."""
    corr = np.asarray(corr, dtype=float)
    if corr.size == 0 or corr.shape[0] < 2:
        return 0.0

    if corr.ndim != 2 or corr.shape[0] != corr.shape[1]:
        raise ValueError(f"Correlation matrix must be square, got shape {corr.shape}")

    upper = corr[np.triu_indices_from(corr, k=1)]
    return float(np.mean(np.abs(upper)) * 100)


def _tier_penalty(ratio: float, tiers: List[Tuple[float, float]]) -> float:
    for threshold, penalty in tiers:
        if ratio > threshold:
            return penalty
    return 0.0


def liquidity_risk(
    assets: Sequence[Asset],
    volumes: Optional[Dict[str, float]] = None,
    market_caps: Optional[Dict[str, float]] = None,
) -> float:
    """Weighted illiquidity penalty, capped at 100.

    Per asset:
      position / daily volume  > 0.5: +40, > 0.2: +20, > 0.1: +10
      position / market cap    > 0.05: +30, > 0.01: +15

    A missing or zero volume (or market cap) counts as the worst tier.
    """
    volumes = volumes or {}
    market_caps = market_caps or {}
    weights = _weights(assets)

    risk = 0.0
    for weight, asset in zip(weights, assets):
        if asset.value <= 0:
            continue

        volume = volumes.get(asset.symbol, 0.0)
        market_cap = market_caps.get(asset.symbol, 0.0)

        volume_ratio = asset.value / volume if volume > 0 else math.inf
        depth_ratio = asset.value / market_cap if market_cap > 0 else math.inf

        asset_risk = _tier_penalty(volume_ratio, VOLUME_TIERS) + _tier_penalty(depth_ratio, DEPTH_TIERS)
        risk += weight * asset_risk

    return float(min(100.0, risk))


def portfolio_beta(assets: Sequence[Asset]) -> float:
    weights = _weights(assets)
    return float(sum(w * a.beta for w, a in zip(weights, assets)))


def decompose_risk(
    assets: Sequence[Asset],
    corr,
    market_volatility: Optional[float] = None,
) -> RiskDecomposition:
    """Split portfolio risk into systematic and specific parts.

    systematic   = portfolio beta * market volatility
    specific     = sqrt(sum (w_i * sigma_i * sqrt(1 - beta_i^2))^2)
    portfolio    = sqrt(w' Sigma w)
    benefit      = sum(w_i * sigma_i) - portfolio
    marginal_i   = sigma_i * (sum_j w_j sigma_j rho_ij) / portfolio
    component_i  = w_i * marginal_i  (sums to portfolio)

    Args:
        assets: Holdings, aligned with the matrix rows
        corr: Correlation matrix (N x N, diagonal 1)
        market_volatility: Annual market vol (default from settings, 0.15)
    """
    if market_volatility is None:
        market_volatility = get_settings().MARKET_VOLATILITY

    corr = np.asarray(corr, dtype=float)
    n = len(assets)
    if corr.shape != (n, n):
        raise ValueError(f"Correlation matrix shape {corr.shape} doesn't match {n} assets")

    weights = _weights(assets)
    vols = np.array([a.volatility for a in assets], dtype=float)
    betas = np.array([a.beta for a in assets], dtype=float)

    systematic = float(weights @ betas) * market_volatility

    # beta above 1 leaves no idiosyncratic share
    specific_vols = vols * np.sqrt(np.maximum(0.0, 1 - betas ** 2))
    specific = float(np.sqrt(np.sum((weights * specific_vols) ** 2)))

    port_risk = math.sqrt(portfolio_variance(weights, vols, corr))

    undiversified = float(np.sum(weights * vols))
    # Clamp rounding noise when every correlation is 1
    benefit = max(0.0, undiversified - port_risk)

    if port_risk == 0:
        logger.warning("decompose_risk: zero portfolio risk")
        marginal = np.zeros(n)
    else:
        marginal = vols * (corr @ (weights * vols)) / port_risk

    component = weights * marginal
    symbols = [a.symbol for a in assets]

    logger.info(
        "decompose_risk: risk decomposed",
        num_assets=n,
        portfolio_risk=port_risk,
        systematic_risk=systematic,
        diversification_benefit=benefit,
    )

    return RiskDecomposition(
        systematic_risk=systematic,
        specific_risk=specific,
        portfolio_risk=port_risk,
        diversification_benefit=benefit,
        marginal_risk={s: float(m) for s, m in zip(symbols, marginal)},
        component_risk={s: float(c) for s, c in zip(symbols, component)},
    )


def hedge_ratio(
    portfolio_beta: float,
    portfolio_value: float,
    hedge_instrument_beta: float = -1.0,
) -> HedgeRecommendation:
    """Hedge sizing that neutralises market beta.

    ratio = -beta_portfolio / beta_hedge, e.g. an inverse ETF with beta -1.
    """
    if hedge_instrument_beta == 0:
        raise InvalidConstraintError("Hedge instrument beta must be non-zero")

    ratio = -portfolio_beta / hedge_instrument_beta
    amount = portfolio_value * abs(ratio)
    effective_beta = portfolio_beta + ratio * hedge_instrument_beta

    if portfolio_beta == 0:
        protection = 0.0
    else:
        protection = (1 - abs(effective_beta / portfolio_beta)) * 100

    return HedgeRecommendation(
        hedge_ratio=float(ratio),
        hedge_amount=float(amount),
        effective_beta=float(effective_beta),
        protection_level=float(protection),
    )


def _hill_estimator(magnitudes: np.ndarray) -> float:
    """Hill tail index from tail magnitudes, smallest one as threshold.

    Returns 1.0 for fewer than two points and 0.0 when the tail is flat.
    """
    tail = np.sort(magnitudes[magnitudes > 0])[::-1]
    if tail.size < 2:
        return 1.0

    log_excess = np.log(tail[:-1] / tail[-1])
    total = float(np.sum(log_excess))
    if total == 0:
        return 0.0
    return (tail.size - 1) / total


def tail_risk(returns: Sequence[float]) -> TailRisk:
    """Tail indices of the worst and best 5% of returns and their ratio.

    tail_ratio = mean |left tail| / mean |right tail|; above 1 means the
    downside tail is heavier than the upside.
    """
    arr = _check_returns(returns, "tail_risk")
    sorted_returns = np.sort(arr)
    n = sorted_returns.size
    k = max(1, int(math.floor(n * TAIL_FRACTION)))

    left = sorted_returns[:k]
    right = sorted_returns[n - k:]

    left_index = _hill_estimator(np.abs(left))
    right_index = _hill_estimator(np.abs(right))

    avg_left = float(np.abs(left.mean()))
    avg_right = float(np.abs(right.mean()))
    ratio = avg_left / avg_right if avg_right > 0 else 0.0

    return TailRisk(
        left_tail_index=float(left_index),
        right_tail_index=float(right_index),
        tail_ratio=ratio,
    )
