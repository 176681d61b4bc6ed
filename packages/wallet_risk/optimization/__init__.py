"""
Portfolio Optimizer

Allocation search over the same ``Asset`` model as the risk engine.

Modules:
- performance: Expected return, volatility and Sharpe ratio of an allocation
- portfolio: Max-Sharpe, min-volatility, risk parity, max-return-for-risk,
  mean-variance and the efficient frontier
- results: Trade list and improvement metrics for a target allocation
- rebalancing: Rebalance interval and drift checks
"""

from .performance import (
    current_allocation,
    portfolio_return,
    portfolio_volatility,
    sharpe_ratio,
)

from .portfolio import (
    optimize,
    optimize_max_sharpe,
    optimize_min_volatility,
    optimize_risk_parity,
    optimize_max_return_for_risk,
    optimize_mean_variance,
    generate_efficient_frontier,
    apply_bounds,
    STRATEGIES,
)

from .rebalancing import optimal_rebalance_frequency, should_rebalance

__all__ = [
    # Performance
    'current_allocation',
    'portfolio_return',
    'portfolio_volatility',
    'sharpe_ratio',
    # Optimization
    'optimize',
    'optimize_max_sharpe',
    'optimize_min_volatility',
    'optimize_risk_parity',
    'optimize_max_return_for_risk',
    'optimize_mean_variance',
    'generate_efficient_frontier',
    'apply_bounds',
    'STRATEGIES',
    # Rebalancing
    'optimal_rebalance_frequency',
    'should_rebalance',
]
