"""
Monte Carlo Simulation Module

Simulates portfolio value paths from per-asset drift and volatility.  Each
step's portfolio return is the value-weighted sum of asset returns

    r_i = mu_i / 252 + sigma_i / sqrt(252) * z_i

with z drawn by the Box-Muller transform.  Shocks are independent across
assets unless ``correlated=True``, in which case they are mixed through the
Cholesky factor of the asset correlation matrix.

Paths are generated in chunks, each with its own random stream spawned from
one seed sequence, so a run is reproducible for a given seed regardless of
how many workers execute the chunks.
"""

import math
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import numpy as np
import structlog
from scipy import stats as sp_stats

from ..config import get_settings
from ..exceptions import SimulationCancelledError, SingularMatrixError
from ..models import Asset, MonteCarloResult, MonteCarloStatistics, Percentiles
from ..stats import box_muller, correlation_matrix

logger = structlog.get_logger(__name__)

PERCENTILE_LEVELS = {
    'p1': 0.01,
    'p5': 0.05,
    'p10': 0.10,
    'p25': 0.25,
    'p50': 0.50,
    'p75': 0.75,
    'p90': 0.90,
    'p95': 0.95,
    'p99': 0.99,
}
SHORTFALL_FRACTION = 0.05


def _cholesky(assets: Sequence[Asset]) -> np.ndarray:
    corr = correlation_matrix(assets)
    try:
        return np.linalg.cholesky(corr)
    except np.linalg.LinAlgError as e:
        logger.error(
            "monte_carlo_simulation: correlation matrix not positive definite",
            symbols=[a.symbol for a in assets],
        )
        raise SingularMatrixError(
            "Correlation matrix is not positive definite; cannot draw correlated shocks"
        ) from e


def _simulate_chunk(
    n_paths: int,
    days: int,
    portfolio_value: float,
    weights: np.ndarray,
    daily_drift: np.ndarray,
    daily_vol: np.ndarray,
    chol: Optional[np.ndarray],
    seed: np.random.SeedSequence,
    cancel_event: Optional[threading.Event],
) -> Optional[np.ndarray]:
    """Simulate one chunk of paths; None if cancelled before starting."""
    if cancel_event is not None and cancel_event.is_set():
        return None

    rng = np.random.default_rng(seed)
    z = box_muller(rng, (n_paths, days, weights.size))
    if chol is not None:
        z = z @ chol.T

    asset_returns = daily_drift + daily_vol * z
    port_returns = asset_returns @ weights  # (n_paths, days)

    paths = np.empty((n_paths, days + 1))
    paths[:, 0] = portfolio_value
    paths[:, 1:] = portfolio_value * np.cumprod(1.0 + port_returns, axis=1)
    return paths


def _summarise(finals: np.ndarray, portfolio_value: float):
    n = finals.size
    sorted_values = np.sort(finals)

    mean = float(finals.mean())
    std = float(finals.std())  # population, over simulated outcomes
    if std == 0:
        skewness = 0.0
        kurtosis = 0.0
    else:
        skewness = float(sp_stats.skew(finals, bias=True))
        kurtosis = float(sp_stats.kurtosis(finals, fisher=True, bias=True))

    statistics = MonteCarloStatistics(
        mean=mean,
        median=float(sorted_values[n // 2]),
        std_dev=std,
        skewness=skewness,
        kurtosis=kurtosis,
    )

    percentiles = Percentiles(**{
        key: float(sorted_values[min(n - 1, int(math.floor(n * level)))])
        for key, level in PERCENTILE_LEVELS.items()
    })

    returns = (finals - portfolio_value) / portfolio_value
    probability_of_loss = float(np.mean(returns < 0) * 100)

    worst = sorted_values[:max(1, int(math.floor(n * SHORTFALL_FRACTION)))]
    expected_shortfall = float(portfolio_value - worst.mean())

    return statistics, percentiles, probability_of_loss, expected_shortfall


def monte_carlo_simulation(
    assets: Sequence[Asset],
    portfolio_value: float,
    days: Optional[int] = None,
    simulations: Optional[int] = None,
    *,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    correlated: bool = False,
    workers: int = 1,
    chunk_size: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> MonteCarloResult:
    """Simulate ``simulations`` value paths of ``days`` steps each.

    Args:
        assets: Holdings; weight_i = asset.value / portfolio_value
        portfolio_value: Starting value in USD
        days: Trading days per path (default 252)
        simulations: Number of paths (default 10,000)
        seed: Seed for a reproducible run
        rng: Generator to derive the run's streams from (ignored with seed)
        correlated: Draw shocks through the Cholesky factor of the asset
            correlation matrix instead of independently
        workers: Threads used to run chunks concurrently
        chunk_size: Paths per chunk (default from settings)
        cancel_event: Checked before each chunk; when set the run stops

    Returns:
        MonteCarloResult

    Raises:
        SimulationCancelledError: ``cancel_event`` was set mid-run
        SingularMatrixError: ``correlated`` with a non positive definite matrix
    """
    settings = get_settings()
    days = settings.MC_DAYS if days is None else days
    simulations = settings.MC_SIMULATIONS if simulations is None else simulations
    chunk_size = settings.MC_CHUNK_SIZE if chunk_size is None else chunk_size

    if portfolio_value <= 0:
        raise ValueError(f"Portfolio value must be positive, got {portfolio_value}")
    if days < 1:
        raise ValueError(f"Days must be >= 1, got {days}")
    if simulations < 1:
        raise ValueError(f"Simulations must be >= 1, got {simulations}")
    if workers < 1:
        raise ValueError(f"Workers must be >= 1, got {workers}")
    if chunk_size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {chunk_size}")
    if not assets:
        raise ValueError("Cannot simulate an empty portfolio")

    trading_days = settings.TRADING_DAYS
    weights = np.array([a.value for a in assets], dtype=float) / portfolio_value
    daily_drift = np.array([a.expected_return for a in assets], dtype=float) / trading_days
    daily_vol = np.array([a.volatility for a in assets], dtype=float) / math.sqrt(trading_days)
    chol = _cholesky(assets) if correlated else None

    if seed is not None:
        seed_seq = np.random.SeedSequence(seed)
    elif rng is not None:
        seed_seq = np.random.SeedSequence(int(rng.integers(0, 2 ** 63)))
    else:
        seed_seq = np.random.SeedSequence()

    sizes = [chunk_size] * (simulations // chunk_size)
    if simulations % chunk_size:
        sizes.append(simulations % chunk_size)
    chunk_seeds = seed_seq.spawn(len(sizes))

    logger.info(
        "monte_carlo_simulation: starting",
        num_assets=len(assets),
        simulations=simulations,
        days=days,
        chunks=len(sizes),
        workers=workers,
        correlated=correlated,
    )

    def run(size: int, child: np.random.SeedSequence) -> Optional[np.ndarray]:
        return _simulate_chunk(
            size, days, portfolio_value, weights, daily_drift, daily_vol, chol, child, cancel_event
        )

    if workers == 1:
        chunks: List[Optional[np.ndarray]] = []
        for size, child in zip(sizes, chunk_seeds):
            chunk = run(size, child)
            if chunk is None:
                break
            chunks.append(chunk)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            chunks = list(pool.map(run, sizes, chunk_seeds))

    completed = [c for c in chunks if c is not None]
    done = sum(c.shape[0] for c in completed)
    if done < simulations:
        logger.warning(
            "monte_carlo_simulation: cancelled",
            completed=done,
            requested=simulations,
        )
        raise SimulationCancelledError(
            f"Simulation cancelled after {done} of {simulations} paths", completed=done
        )

    paths = np.vstack(completed)
    paths.flags.writeable = False

    statistics, percentiles, probability_of_loss, expected_shortfall = _summarise(
        paths[:, -1], portfolio_value
    )

    logger.info(
        "monte_carlo_simulation: complete",
        mean_final_value=statistics.mean,
        probability_of_loss=probability_of_loss,
        expected_shortfall=expected_shortfall,
    )

    return MonteCarloResult(
        simulations=simulations,
        days=days,
        initial_value=float(portfolio_value),
        paths=paths,
        statistics=statistics,
        percentiles=percentiles,
        probability_of_loss=probability_of_loss,
        expected_shortfall=expected_shortfall,
        correlated=correlated,
    )
