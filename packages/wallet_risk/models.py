"""Pydantic models for the risk engine and optimizer.

Inputs (``Asset``, ``OptimizationConstraints``) are validated on construction.
Every result object is frozen: it is created once per call and owned by the
caller.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Allocation = Dict[str, float]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Asset(_Frozen):
    """One portfolio holding.

    ``correlations`` maps other symbols to a Pearson correlation.  The
    self-correlation is never stored; consumers treat it as 1.0 and treat a
    missing pair as 0.0.
    """

    symbol: str = Field(min_length=1)
    value: float = Field(ge=0.0)  # current USD allocation
    expected_return: float  # annualized, decimal
    volatility: float = Field(ge=0.0)  # annualized std-dev, decimal
    beta: float = 1.0
    correlations: Dict[str, float] = Field(default_factory=dict)

    @field_validator("correlations")
    @classmethod
    def _check_correlations(cls, value: Dict[str, float]) -> Dict[str, float]:
        for other, rho in value.items():
            if not -1.0 <= rho <= 1.0:
                raise ValueError(f"Correlation with {other} must be in [-1, 1], got {rho}")
        return value


# ---------------------------------------------------------------------------
# Risk engine results
# ---------------------------------------------------------------------------


class ValueAtRisk(_Frozen):
    var95: float
    var99: float
    cvar95: float
    cvar99: float


class StressTestResult(_Frozen):
    """USD loss magnitude per named scenario."""

    market_crash: float
    crypto_winter: float
    defi_collapse: float
    flash_crash: float


class PortfolioRisk(_Frozen):
    value_at_risk: ValueAtRisk
    stress_test: StressTestResult
    correlation_risk: float
    concentration_risk: float
    liquidity_risk: float
    overall_risk_score: float


class Scenario(_Frozen):
    final_value: float
    returns: float
    path: Tuple[float, ...]


class MonteCarloStatistics(_Frozen):
    mean: float
    median: float
    std_dev: float
    skewness: float
    kurtosis: float  # excess


class Percentiles(_Frozen):
    p1: float
    p5: float
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float
    p95: float
    p99: float


class MonteCarloResult(_Frozen):
    """Outcome of a Monte Carlo run.

    ``paths`` holds every simulated value path as a read-only array of shape
    ``(simulations, days + 1)``; column 0 is the starting value.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    simulations: int
    days: int
    initial_value: float
    paths: np.ndarray
    statistics: MonteCarloStatistics
    percentiles: Percentiles
    probability_of_loss: float
    expected_shortfall: float
    correlated: bool = False

    @property
    def final_values(self) -> np.ndarray:
        return self.paths[:, -1]

    @property
    def scenarios(self) -> List[Scenario]:
        """Per-path view: final value, total return and the full path."""
        initial = self.initial_value
        out = []
        for row in self.paths:
            final = float(row[-1])
            ret = (final - initial) / initial if initial else 0.0
            out.append(Scenario(final_value=final, returns=ret, path=tuple(row.tolist())))
        return out


class StressScenario(_Frozen):
    name: str
    market_shock: float
    volatility_multiplier: float
    correlation_shift: float
    liquidity_drying: float


class StressContributor(_Frozen):
    symbol: str
    weight_pct: float
    return_pct: float
    loss_contribution: float


class ScenarioOutcome(_Frozen):
    scenario: str
    market_shock: float
    portfolio_return_pct: float
    portfolio_loss: float
    stressed_volatility: float
    top_contributors: List[StressContributor]


class RiskDecomposition(_Frozen):
    systematic_risk: float
    specific_risk: float
    portfolio_risk: float
    diversification_benefit: float
    marginal_risk: Dict[str, float]
    component_risk: Dict[str, float]


class HedgeRecommendation(_Frozen):
    hedge_ratio: float
    hedge_amount: float
    effective_beta: float
    protection_level: float


class TailRisk(_Frozen):
    left_tail_index: float
    right_tail_index: float
    tail_ratio: float


# ---------------------------------------------------------------------------
# Optimizer inputs and results
# ---------------------------------------------------------------------------


class OptimizationConstraints(_Frozen):
    """Per-asset bounds and optional filters for the allocation search."""

    min_allocation: float = Field(default=0.0, ge=0.0, le=1.0)
    max_allocation: float = Field(default=1.0, ge=0.0, le=1.0)
    target_return: Optional[float] = None  # reject candidates below
    max_risk: Optional[float] = Field(default=None, ge=0.0)  # reject candidates above
    rebalance_threshold: float = Field(default=0.05, ge=0.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "OptimizationConstraints":
        if self.min_allocation > self.max_allocation:
            raise ValueError(
                f"min_allocation {self.min_allocation} exceeds max_allocation {self.max_allocation}"
            )
        return self


class AllocationChange(_Frozen):
    symbol: str
    current_allocation: float
    target_allocation: float
    action: Literal["buy", "sell", "hold"]
    amount: float


class ImprovementMetrics(_Frozen):
    return_improvement: float
    risk_reduction: float
    sharpe_improvement: float


class OptimizationResult(_Frozen):
    strategy: str
    target_allocation: Allocation
    expected_return: float
    expected_volatility: float
    sharpe_ratio: float
    changes: List[AllocationChange]
    improvement_metrics: ImprovementMetrics
    candidates_evaluated: int = 0


class FrontierPoint(_Frozen):
    expected_return: float = Field(serialization_alias="return")
    risk: float
    sharpe: float


class RebalanceSchedule(_Frozen):
    days: int
    reason: str
