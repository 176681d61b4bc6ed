"""
Risk Model Engine

Portfolio risk analytics for multi-asset wallets.
Pure computation modules operating on ``Asset`` lists and numpy arrays.

Modules:
- estimation: Asset inputs from return history (sample, Ledoit-Wolf, EWMA)
- metrics: VaR/CVaR, concentration, correlation, liquidity, decomposition,
  hedge ratio, tail risk
- monte_carlo: Monte Carlo path simulation
- stress: Fixed market-shock stress scenarios
- engine: Composite PortfolioRisk analysis
"""

# Estimation module
from .estimation import (
    estimate_covariance,
    estimate_correlation,
    estimate_beta,
    build_assets,
    portfolio_returns,
)

# Metrics module
from .metrics import (
    historical_var,
    parametric_var,
    parametric_cvar,
    concentration_risk,
    correlation_risk,
    liquidity_risk,
    portfolio_beta,
    decompose_risk,
    hedge_ratio,
    tail_risk,
)

# Monte Carlo module
from .monte_carlo import monte_carlo_simulation

# Stress testing module
from .stress import (
    stress_test,
    run_stress_scenario,
    run_all_stress_scenarios,
    STRESS_SCENARIOS,
)

# Composite analysis
from .engine import analyze_portfolio_risk, overall_risk_score

__all__ = [
    # Estimation
    'estimate_covariance',
    'estimate_correlation',
    'estimate_beta',
    'build_assets',
    'portfolio_returns',
    # Metrics
    'historical_var',
    'parametric_var',
    'parametric_cvar',
    'concentration_risk',
    'correlation_risk',
    'liquidity_risk',
    'portfolio_beta',
    'decompose_risk',
    'hedge_ratio',
    'tail_risk',
    # Monte Carlo
    'monte_carlo_simulation',
    # Stress testing
    'stress_test',
    'run_stress_scenario',
    'run_all_stress_scenarios',
    'STRESS_SCENARIOS',
    # Composite
    'analyze_portfolio_risk',
    'overall_risk_score',
]
