"""Composite portfolio risk analysis built from the individual risk metrics."""

from typing import Dict, Optional, Sequence

import structlog

from ..models import Asset, PortfolioRisk, ValueAtRisk
from .metrics import concentration_risk, correlation_risk, historical_var, liquidity_risk
from .stress import stress_test

logger = structlog.get_logger(__name__)

# Overall score weights
VAR_WEIGHT = 0.30
CORRELATION_WEIGHT = 0.20
CONCENTRATION_WEIGHT = 0.25
LIQUIDITY_WEIGHT = 0.25


def overall_risk_score(
    var95: float,
    portfolio_value: float,
    correlation: float,
    concentration: float,
    liquidity: float,
) -> float:
    """Weighted 0-100 composite of VaR (as % of value) and the three scores."""
    var_pct = var95 / portfolio_value * 100 if portfolio_value > 0 else 0.0
    score = (
        var_pct * VAR_WEIGHT
        + correlation * CORRELATION_WEIGHT
        + concentration * CONCENTRATION_WEIGHT
        + liquidity * LIQUIDITY_WEIGHT
    )
    return float(min(100.0, score))


def analyze_portfolio_risk(
    assets: Sequence[Asset],
    portfolio_value: float,
    historical_returns: Sequence[float],
    corr,
    volumes: Optional[Dict[str, float]] = None,
    market_caps: Optional[Dict[str, float]] = None,
) -> PortfolioRisk:
    """Full risk picture for one portfolio.

    Args:
        assets: Holdings
        portfolio_value: Total portfolio value in USD
        historical_returns: Portfolio period returns (at least 30 points)
        corr: Correlation matrix aligned with ``assets``
        volumes: Optional {symbol: daily USD volume}
        market_caps: Optional {symbol: USD market cap}

    Returns:
        PortfolioRisk
    """
    var95, cvar95 = historical_var(historical_returns, portfolio_value, confidence=0.95)
    var99, cvar99 = historical_var(historical_returns, portfolio_value, confidence=0.99)

    stress = stress_test(assets, portfolio_value)

    correlation = correlation_risk(corr)
    concentration = concentration_risk(assets)
    liquidity = liquidity_risk(assets, volumes, market_caps)

    score = overall_risk_score(var95, portfolio_value, correlation, concentration, liquidity)

    result = PortfolioRisk(
        value_at_risk=ValueAtRisk(var95=var95, var99=var99, cvar95=cvar95, cvar99=cvar99),
        stress_test=stress,
        correlation_risk=correlation,
        concentration_risk=concentration,
        liquidity_risk=liquidity,
        overall_risk_score=score,
    )

    logger.info(
        "analyze_portfolio_risk: analysis built",
        num_assets=len(assets),
        var95=var95,
        correlation_risk=correlation,
        concentration_risk=concentration,
        liquidity_risk=liquidity,
        overall_risk_score=score,
    )

    return result
