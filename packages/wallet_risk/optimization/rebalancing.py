"""
Rebalancing Heuristics

How often to rebalance, and whether live weights have drifted far enough
from a target to act on.
"""

from typing import Optional

import structlog

from ..config import get_settings
from ..models import Allocation, RebalanceSchedule

logger = structlog.get_logger(__name__)

BASE_DAYS = 90  # quarterly at the reference volatility
REFERENCE_VOLATILITY = 0.20
MIN_DAYS = 7
MAX_DAYS = 365


def optimal_rebalance_frequency(
    volatility: float,
    transaction_cost: float,
    portfolio_value: float,
) -> RebalanceSchedule:
    """Rebalance interval in days.

    Shorter for volatile portfolios, longer when trading costs are large
    relative to the portfolio: ``90 / (vol / 0.20) * (1 + 10 * cost / value)``,
    rounded and clamped to [7, 365].

    Args:
        volatility: Annualized portfolio volatility (decimal)
        transaction_cost: USD cost of one rebalance
        portfolio_value: Total portfolio value in USD

    Returns:
        RebalanceSchedule with days and a human-readable reason

    Raises:
        ValueError: If portfolio_value <= 0 or volatility / cost is negative
    """
    if portfolio_value <= 0:
        raise ValueError(f"Portfolio value must be positive, got {portfolio_value}")
    if volatility < 0:
        raise ValueError(f"Volatility must be non-negative, got {volatility}")
    if transaction_cost < 0:
        raise ValueError(f"Transaction cost must be non-negative, got {transaction_cost}")

    if volatility == 0:
        days = MAX_DAYS
    else:
        volatility_factor = volatility / REFERENCE_VOLATILITY
        cost_factor = transaction_cost / portfolio_value
        adjusted = BASE_DAYS / volatility_factor * (1 + cost_factor * 10)
        days = max(MIN_DAYS, min(MAX_DAYS, round(adjusted)))

    if days <= 30:
        reason = 'High volatility requires frequent monitoring'
    elif days <= 90:
        reason = 'Quarterly rebalancing recommended for optimal balance'
    else:
        reason = 'Low volatility and high costs favor infrequent rebalancing'

    logger.debug(
        "optimal_rebalance_frequency: computed",
        volatility=volatility,
        transaction_cost=transaction_cost,
        days=days,
    )

    return RebalanceSchedule(days=days, reason=reason)


def should_rebalance(
    current: Allocation,
    target: Allocation,
    threshold_type: str = 'absolute',
    threshold: Optional[float] = None,
) -> bool:
    """True when any symbol drifts past the threshold.

    'absolute' compares |current - target| in weight units; 'relative'
    compares |current - target| / target and ignores symbols targeted at 0.
    Symbols present on only one side count as weight 0 on the other.
    """
    if threshold_type not in ('absolute', 'relative'):
        raise ValueError(f"Unknown threshold type: '{threshold_type}'. Use 'absolute' or 'relative'")
    if threshold is None:
        threshold = get_settings().REBALANCE_THRESHOLD
    if threshold < 0:
        raise ValueError(f"Threshold must be non-negative, got {threshold}")

    for symbol in sorted(set(current) | set(target)):
        current_weight = current.get(symbol, 0.0)
        target_weight = target.get(symbol, 0.0)
        difference = abs(current_weight - target_weight)

        if threshold_type == 'absolute':
            drifted = difference > threshold
        else:
            drifted = target_weight > 0 and difference / target_weight > threshold

        if drifted:
            logger.info(
                "should_rebalance: drift exceeds threshold",
                symbol=symbol,
                current=current_weight,
                target=target_weight,
                threshold_type=threshold_type,
                threshold=threshold,
            )
            return True

    return False
