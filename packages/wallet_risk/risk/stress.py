"""
Stress Testing Module

Fixed crypto-market shock scenarios applied through each asset's beta.
The per-asset loss is

    loss_i = shock * beta_i + shock * (1 - beta_i) * 0.5

and the portfolio loss is the value-weighted sum.  Volatility multiplier,
correlation shift and liquidity drying describe the regime of each scenario;
they feed the stressed-volatility figure of the detailed report only and do
not enter the loss formula.
"""

import math
from typing import Dict, List, Sequence

import numpy as np
import structlog

from ..models import (
    Asset,
    ScenarioOutcome,
    StressContributor,
    StressScenario,
    StressTestResult,
)
from ..stats import correlation_matrix, portfolio_variance

logger = structlog.get_logger(__name__)

SPECIFIC_SHOCK_SHARE = 0.5

# Scenario key -> parameters; keys match StressTestResult fields
STRESS_SCENARIOS: Dict[str, StressScenario] = {
    'market_crash': StressScenario(
        name='Market Crash',
        market_shock=-0.50,
        volatility_multiplier=3.0,
        correlation_shift=0.3,
        liquidity_drying=0.5,
    ),
    'crypto_winter': StressScenario(
        name='Crypto Winter',
        market_shock=-0.80,
        volatility_multiplier=4.0,
        correlation_shift=0.5,
        liquidity_drying=0.7,
    ),
    'defi_collapse': StressScenario(
        name='DeFi Collapse',
        market_shock=-0.90,
        volatility_multiplier=5.0,
        correlation_shift=0.7,
        liquidity_drying=0.9,
    ),
    'flash_crash': StressScenario(
        name='Flash Crash',
        market_shock=-0.30,
        volatility_multiplier=10.0,
        correlation_shift=0.2,
        liquidity_drying=0.3,
    ),
}


def asset_shock(market_shock: float, beta: float) -> float:
    """Return of one asset under a market shock."""
    market_component = market_shock * beta
    specific_component = market_shock * (1 - beta) * SPECIFIC_SHOCK_SHARE
    return market_component + specific_component


def _portfolio_return(assets: Sequence[Asset], portfolio_value: float, market_shock: float) -> float:
    total = 0.0
    for asset in assets:
        weight = asset.value / portfolio_value
        total += weight * asset_shock(market_shock, asset.beta)
    return total


def stress_test(assets: Sequence[Asset], portfolio_value: float) -> StressTestResult:
    """USD loss of the portfolio under each fixed scenario.

    Args:
        assets: Holdings; weight_i = asset.value / portfolio_value
        portfolio_value: Total portfolio value in USD

    Returns:
        StressTestResult with a positive loss per scenario
    """
    if portfolio_value <= 0:
        raise ValueError(f"Portfolio value must be positive, got {portfolio_value}")

    losses = {}
    for key, scenario in STRESS_SCENARIOS.items():
        portfolio_return = _portfolio_return(assets, portfolio_value, scenario.market_shock)
        losses[key] = abs(portfolio_return * portfolio_value)

    logger.info("stress_test: complete", num_assets=len(assets), **losses)

    return StressTestResult(**losses)


def _stressed_volatility(assets: Sequence[Asset], portfolio_value: float, scenario: StressScenario) -> float:
    """Portfolio vol with vols scaled and correlations pushed toward 1."""
    if not assets:
        return 0.0

    weights = np.array([a.value for a in assets], dtype=float) / portfolio_value
    vols = np.array([a.volatility for a in assets], dtype=float) * scenario.volatility_multiplier

    corr = correlation_matrix(assets)
    off_diagonal = ~np.eye(len(assets), dtype=bool)
    corr[off_diagonal] = corr[off_diagonal] + scenario.correlation_shift * (1 - corr[off_diagonal])

    return math.sqrt(portfolio_variance(weights, vols, corr))


def run_stress_scenario(
    assets: Sequence[Asset],
    portfolio_value: float,
    scenario_key: str,
    top_n: int = 10,
) -> ScenarioOutcome:
    """Detailed report for one scenario.

    Args:
        assets: Holdings
        portfolio_value: Total portfolio value in USD
        scenario_key: Key in STRESS_SCENARIOS
        top_n: Number of contributors to keep

    Returns:
        ScenarioOutcome with contributors sorted by |loss contribution|
    """
    if scenario_key not in STRESS_SCENARIOS:
        raise ValueError(f"Unknown scenario: {scenario_key}")

    if portfolio_value <= 0:
        raise ValueError(f"Portfolio value must be positive, got {portfolio_value}")

    scenario = STRESS_SCENARIOS[scenario_key]

    contributors: List[StressContributor] = []
    portfolio_return = 0.0
    for asset in assets:
        weight = asset.value / portfolio_value
        shock = asset_shock(scenario.market_shock, asset.beta)
        portfolio_return += weight * shock
        contributors.append(StressContributor(
            symbol=asset.symbol,
            weight_pct=float(weight * 100),
            return_pct=float(shock * 100),
            loss_contribution=float(abs(weight * shock * portfolio_value)),
        ))

    contributors.sort(key=lambda c: abs(c.loss_contribution), reverse=True)

    outcome = ScenarioOutcome(
        scenario=scenario.name,
        market_shock=scenario.market_shock,
        portfolio_return_pct=float(portfolio_return * 100),
        portfolio_loss=float(abs(portfolio_return * portfolio_value)),
        stressed_volatility=_stressed_volatility(assets, portfolio_value, scenario),
        top_contributors=contributors[:top_n],
    )

    logger.info(
        "run_stress_scenario: complete",
        scenario=scenario.name,
        portfolio_return_pct=outcome.portfolio_return_pct,
        portfolio_loss=outcome.portfolio_loss,
        positions_tested=len(contributors),
    )

    return outcome


def run_all_stress_scenarios(
    assets: Sequence[Asset],
    portfolio_value: float,
) -> Dict[str, ScenarioOutcome]:
    """Detailed report for every scenario, keyed like STRESS_SCENARIOS."""
    logger.info("run_all_stress_scenarios: starting all scenarios")

    results = {
        key: run_stress_scenario(assets, portfolio_value, key)
        for key in STRESS_SCENARIOS
    }

    logger.info("run_all_stress_scenarios: complete", scenarios=len(results))
    return results
