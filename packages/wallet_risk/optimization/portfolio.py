"""
Portfolio Optimization Module

Modern-portfolio-theory allocation search over a list of ``Asset``.

Max-Sharpe, min-volatility, max-return-for-risk and mean-variance use
randomized search: uniform weight vectors normalized to 1 are projected onto
the per-asset bounds and scored, and the best candidate wins.  The
equal-weight and single-asset portfolios are always among the candidates.
The result is best-of-N, not a global optimum.  Risk parity is solved in
closed form (weights proportional to 1 / volatility).

Every returned allocation sums to 1 and honors the [min, max] bounds.
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from ..config import get_settings
from ..exceptions import InvalidConstraintError
from ..models import Asset, FrontierPoint, OptimizationConstraints, OptimizationResult
from ..stats import correlation_matrix, portfolio_variance
from .performance import sharpe_ratio
from .results import build_optimization_result

logger = structlog.get_logger(__name__)

RISK_TOLERANCE = 0.10  # max-return-for-risk accepts vol within +/-10% of target
FEASIBILITY_EPS = 1e-12


# ── Candidate generation ─────────────────────────────────────────────────────


def _rng(seed: Optional[int], rng: Optional[np.random.Generator]) -> np.random.Generator:
    if seed is not None:
        return np.random.default_rng(seed)
    return rng if rng is not None else np.random.default_rng()


def check_feasible(n_assets: int, constraints: OptimizationConstraints) -> None:
    """Raise InvalidConstraintError when no weight vector fits the bounds."""
    if n_assets == 0:
        raise ValueError("Cannot optimize an empty portfolio")

    lo, hi = constraints.min_allocation, constraints.max_allocation
    if n_assets * lo > 1 + FEASIBILITY_EPS:
        raise InvalidConstraintError(
            f"min_allocation {lo} across {n_assets} assets sums to {n_assets * lo:.4f} > 1"
        )
    if n_assets * hi < 1 - FEASIBILITY_EPS:
        raise InvalidConstraintError(
            f"max_allocation {hi} across {n_assets} assets sums to {n_assets * hi:.4f} < 1"
        )


def apply_bounds(weights: np.ndarray, min_allocation: float, max_allocation: float) -> np.ndarray:
    """Clip rows to [min, max] and redistribute so each row sums to 1.

    After clipping, a shortfall is spread over the assets in proportion to
    their headroom below ``max_allocation`` and an excess in proportion to
    their room above ``min_allocation``; one pass restores the unit sum
    without leaving the bounds whenever the bounds are feasible.
    """
    w = np.atleast_2d(np.asarray(weights, dtype=float))
    w = w / w.sum(axis=1, keepdims=True)
    w = np.clip(w, min_allocation, max_allocation)

    residual = 1.0 - w.sum(axis=1, keepdims=True)

    headroom = max_allocation - w
    room = w - min_allocation
    headroom_total = headroom.sum(axis=1, keepdims=True)
    room_total = room.sum(axis=1, keepdims=True)

    with np.errstate(divide='ignore', invalid='ignore'):
        up = np.where(headroom_total > 0, residual * headroom / headroom_total, 0.0)
        down = np.where(room_total > 0, residual * room / room_total, 0.0)

    w = w + np.where(residual > 0, up, down)
    return np.clip(w, min_allocation, max_allocation)


def sample_allocations(
    n_assets: int,
    samples: int,
    constraints: OptimizationConstraints,
    rng: np.random.Generator,
) -> np.ndarray:
    """Candidate weight vectors (rows), bounded and summing to 1.

    The first ``n_assets + 1`` rows are the equal-weight portfolio and each
    single-asset portfolio; the rest are uniform draws.
    """
    anchors = np.vstack([np.full(n_assets, 1.0 / n_assets), np.eye(n_assets)])
    draws = rng.random((samples, n_assets))
    # Guard the (measure-zero) all-zero draw
    draws[draws.sum(axis=1) == 0] = 1.0
    candidates = np.vstack([anchors, draws])
    return apply_bounds(candidates, constraints.min_allocation, constraints.max_allocation)


def _evaluate(assets: Sequence[Asset], weights: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    mu = np.array([a.expected_return for a in assets], dtype=float)
    vols = np.array([a.volatility for a in assets], dtype=float)
    returns = weights @ mu
    volatility = np.sqrt(portfolio_variance(weights, vols, correlation_matrix(assets)))
    return returns, volatility


def _sharpe_array(returns: np.ndarray, volatility: np.ndarray, risk_free_rate: float) -> np.ndarray:
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.where(volatility > 0, (returns - risk_free_rate) / volatility, 0.0)


def _search(
    assets: Sequence[Asset],
    strategy: str,
    objective: Callable[[np.ndarray, np.ndarray], np.ndarray],
    constraints: Optional[OptimizationConstraints],
    samples: Optional[int],
    seed: Optional[int],
    rng: Optional[np.random.Generator],
    risk_free_rate: Optional[float],
    extra_filter: Optional[Callable[[np.ndarray, np.ndarray], np.ndarray]] = None,
) -> OptimizationResult:
    """Best-of-N allocation under ``objective`` (higher is better)."""
    settings = get_settings()
    constraints = constraints or OptimizationConstraints()
    samples = settings.OPTIMIZER_SAMPLES if samples is None else samples
    risk_free_rate = settings.RISK_FREE_RATE if risk_free_rate is None else risk_free_rate

    if samples < 0:
        raise ValueError(f"Samples must be >= 0, got {samples}")

    check_feasible(len(assets), constraints)

    candidates = sample_allocations(len(assets), samples, constraints, _rng(seed, rng))
    returns, volatility = _evaluate(assets, candidates)

    feasible = np.ones(len(candidates), dtype=bool)
    if constraints.target_return is not None:
        feasible &= returns >= constraints.target_return - FEASIBILITY_EPS
    if constraints.max_risk is not None:
        feasible &= volatility <= constraints.max_risk + FEASIBILITY_EPS
    if extra_filter is not None:
        feasible &= extra_filter(returns, volatility)

    if not feasible.any():
        logger.warning(
            f"{strategy}: no candidate satisfies constraints",
            candidates=len(candidates),
            target_return=constraints.target_return,
            max_risk=constraints.max_risk,
        )
        raise InvalidConstraintError(
            f"No sampled allocation satisfies the constraints for {strategy}"
        )

    scores = np.where(feasible, objective(returns, volatility), -np.inf)
    best = int(np.argmax(scores))

    best_return = float(returns[best])
    best_volatility = float(volatility[best])
    allocation = {a.symbol: float(w) for a, w in zip(assets, candidates[best])}

    logger.info(
        f"{strategy}: best candidate selected",
        candidates=len(candidates),
        feasible=int(feasible.sum()),
        objective=float(scores[best]),
    )

    return build_optimization_result(
        assets,
        strategy,
        allocation,
        best_return,
        best_volatility,
        sharpe_ratio(best_return, best_volatility, risk_free_rate),
        constraints.rebalance_threshold,
        risk_free_rate=risk_free_rate,
        candidates_evaluated=len(candidates),
    )


# ── Optimization ──────────────────────────────────────────────────────────────


def optimize_max_sharpe(
    assets: Sequence[Asset],
    constraints: Optional[OptimizationConstraints] = None,
    *,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    risk_free_rate: Optional[float] = None,
) -> OptimizationResult:
    """Allocation with the highest Sharpe ratio among the candidates."""
    rf = get_settings().RISK_FREE_RATE if risk_free_rate is None else risk_free_rate
    return _search(
        assets,
        'max_sharpe',
        lambda r, v: _sharpe_array(r, v, rf),
        constraints,
        samples,
        seed,
        rng,
        rf,
    )


def optimize_min_volatility(
    assets: Sequence[Asset],
    constraints: Optional[OptimizationConstraints] = None,
    *,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    risk_free_rate: Optional[float] = None,
) -> OptimizationResult:
    """Lowest-volatility allocation; honors ``target_return`` as a floor."""
    return _search(
        assets,
        'min_volatility',
        lambda r, v: -v,
        constraints,
        samples,
        seed,
        rng,
        risk_free_rate,
    )


def optimize_max_return_for_risk(
    assets: Sequence[Asset],
    target_risk: float,
    constraints: Optional[OptimizationConstraints] = None,
    *,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    risk_free_rate: Optional[float] = None,
) -> OptimizationResult:
    """Highest-return allocation whose volatility is within 10% of ``target_risk``."""
    if target_risk <= 0:
        raise ValueError(f"Target risk must be positive, got {target_risk}")

    tolerance = target_risk * RISK_TOLERANCE
    return _search(
        assets,
        'max_return_for_risk',
        lambda r, v: r,
        constraints,
        samples,
        seed,
        rng,
        risk_free_rate,
        extra_filter=lambda r, v: np.abs(v - target_risk) <= tolerance,
    )


def optimize_mean_variance(
    assets: Sequence[Asset],
    risk_aversion: float = 2.0,
    constraints: Optional[OptimizationConstraints] = None,
    *,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    risk_free_rate: Optional[float] = None,
) -> OptimizationResult:
    """Maximize utility = return - risk_aversion * variance / 2."""
    if risk_aversion < 0:
        raise ValueError(f"Risk aversion must be non-negative, got {risk_aversion}")

    return _search(
        assets,
        'mean_variance',
        lambda r, v: r - risk_aversion * v ** 2 / 2,
        constraints,
        samples,
        seed,
        rng,
        risk_free_rate,
    )


def optimize_risk_parity(
    assets: Sequence[Asset],
    constraints: Optional[OptimizationConstraints] = None,
    *,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    risk_free_rate: Optional[float] = None,
) -> OptimizationResult:
    """Inverse-volatility weights, projected onto the bounds.

    Closed form: ``samples``, ``seed`` and ``rng`` are accepted so every
    strategy shares one call signature, and are ignored.

    Raises:
        InvalidConstraintError: An asset has zero volatility
    """
    constraints = constraints or OptimizationConstraints()
    check_feasible(len(assets), constraints)

    vols = np.array([a.volatility for a in assets], dtype=float)
    if np.any(vols <= 0):
        zero_vol = [a.symbol for a, v in zip(assets, vols) if v <= 0]
        raise InvalidConstraintError(
            f"Risk parity needs positive volatility for every asset; zero for {zero_vol}"
        )

    inverse_vol = 1.0 / vols
    weights = apply_bounds(inverse_vol, constraints.min_allocation, constraints.max_allocation)[0]
    allocation = {a.symbol: float(w) for a, w in zip(assets, weights)}

    returns, volatility = _evaluate(assets, weights.reshape(1, -1))
    ret, vol = float(returns[0]), float(volatility[0])

    return build_optimization_result(
        assets,
        'risk_parity',
        allocation,
        ret,
        vol,
        sharpe_ratio(ret, vol, risk_free_rate),
        constraints.rebalance_threshold,
        risk_free_rate=risk_free_rate,
        candidates_evaluated=1,
    )


# ── Efficient frontier ────────────────────────────────────────────────────────


def generate_efficient_frontier(
    assets: Sequence[Asset],
    points: int = 50,
    constraints: Optional[OptimizationConstraints] = None,
    *,
    samples: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    risk_free_rate: Optional[float] = None,
) -> List[FrontierPoint]:
    """Min-volatility portfolios for target returns swept across the assets.

    Sweeps linearly from the lowest to the highest single-asset expected
    return, solving min-volatility with that return as a floor.  Targets no
    candidate reaches are skipped, so fewer than ``points`` entries may come
    back.  Points are sorted by risk ascending.
    """
    if points < 1:
        raise ValueError(f"Points must be >= 1, got {points}")
    if not assets:
        raise ValueError("Cannot build a frontier for an empty portfolio")

    base = constraints or OptimizationConstraints()
    generator = _rng(seed, rng)

    expected = [a.expected_return for a in assets]
    targets = np.linspace(min(expected), max(expected), points)

    frontier: List[FrontierPoint] = []
    skipped = 0
    for target in targets:
        try:
            result = optimize_min_volatility(
                assets,
                base.model_copy(update={'target_return': float(target)}),
                samples=samples,
                rng=generator,
                risk_free_rate=risk_free_rate,
            )
        except InvalidConstraintError:
            skipped += 1
            continue

        frontier.append(FrontierPoint(
            expected_return=result.expected_return,
            risk=result.expected_volatility,
            sharpe=result.sharpe_ratio,
        ))

    frontier.sort(key=lambda p: p.risk)

    logger.info(
        "generate_efficient_frontier: frontier built",
        requested_points=points,
        points=len(frontier),
        skipped=skipped,
    )

    return frontier


def optimize(
    assets: Sequence[Asset],
    strategy: str,
    constraints: Optional[OptimizationConstraints] = None,
    **kwargs,
) -> OptimizationResult:
    """Dispatch to one of the strategies by name.

    ``strategy`` is one of ``STRATEGIES``; keyword arguments are passed
    through (e.g. ``target_risk``, ``risk_aversion``, ``seed``).
    """
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown optimization strategy: '{strategy}'. Use one of {sorted(STRATEGIES)}")
    return STRATEGIES[strategy](assets, constraints=constraints, **kwargs)


STRATEGIES: Dict[str, Callable[..., OptimizationResult]] = {
    'max_sharpe': optimize_max_sharpe,
    'min_volatility': optimize_min_volatility,
    'risk_parity': optimize_risk_parity,
    'max_return_for_risk': optimize_max_return_for_risk,
    'mean_variance': optimize_mean_variance,
}
