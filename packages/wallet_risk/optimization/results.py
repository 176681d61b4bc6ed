"""
Optimization Result Builder

Turns a chosen target allocation into the trades needed to reach it from
the current holdings, and measures the improvement over the current
allocation with the same return / volatility / Sharpe formulas.
"""

from typing import List, Optional, Sequence

import structlog

from ..models import (
    Allocation,
    AllocationChange,
    Asset,
    ImprovementMetrics,
    OptimizationResult,
)
from .performance import current_allocation, portfolio_return, portfolio_volatility, sharpe_ratio

logger = structlog.get_logger(__name__)


def build_changes(
    assets: Sequence[Asset],
    target_allocation: Allocation,
    rebalance_threshold: float,
) -> List[AllocationChange]:
    """Per-asset delta against current weights, holds included.

    A delta larger than ``rebalance_threshold`` (absolute weight) is a buy or
    a sell; anything smaller is a hold.  ``amount`` is the USD size of the
    delta.
    """
    total_value = sum(a.value for a in assets)
    current = current_allocation(assets)

    changes = []
    for asset in assets:
        current_weight = current[asset.symbol]
        target_weight = target_allocation.get(asset.symbol, 0.0)
        difference = target_weight - current_weight

        action = 'hold'
        if abs(difference) > rebalance_threshold:
            action = 'buy' if difference > 0 else 'sell'

        changes.append(AllocationChange(
            symbol=asset.symbol,
            current_allocation=current_weight,
            target_allocation=target_weight,
            action=action,
            amount=abs(difference * total_value),
        ))

    return changes


def build_optimization_result(
    assets: Sequence[Asset],
    strategy: str,
    target_allocation: Allocation,
    expected_return: float,
    expected_volatility: float,
    sharpe: float,
    rebalance_threshold: float,
    risk_free_rate: Optional[float] = None,
    candidates_evaluated: int = 0,
) -> OptimizationResult:
    """Package an allocation with its trades and improvement metrics."""
    changes = build_changes(assets, target_allocation, rebalance_threshold)
    actionable = [c for c in changes if c.action != 'hold']

    current = current_allocation(assets)
    current_return = portfolio_return(assets, current)
    current_volatility = portfolio_volatility(assets, current)
    current_sharpe = sharpe_ratio(current_return, current_volatility, risk_free_rate)

    result = OptimizationResult(
        strategy=strategy,
        target_allocation=target_allocation,
        expected_return=expected_return,
        expected_volatility=expected_volatility,
        sharpe_ratio=sharpe,
        changes=actionable,
        improvement_metrics=ImprovementMetrics(
            return_improvement=expected_return - current_return,
            risk_reduction=current_volatility - expected_volatility,
            sharpe_improvement=sharpe - current_sharpe,
        ),
        candidates_evaluated=candidates_evaluated,
    )

    logger.info(
        "build_optimization_result: result built",
        strategy=strategy,
        expected_return=expected_return,
        expected_volatility=expected_volatility,
        sharpe_ratio=sharpe,
        num_changes=len(actionable),
    )

    return result
