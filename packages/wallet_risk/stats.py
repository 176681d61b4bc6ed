"""
Statistics Primitives

Shared numeric kernel for the risk engine and the portfolio optimizer:
moments, the normal distribution, a pivoted linear solver and the one
covariance formula both engines use.  Pure functions on numpy arrays.
"""

import math
from typing import Dict, Sequence

import numpy as np
import structlog
from scipy import stats as sp_stats

from .exceptions import InsufficientDataError, SingularMatrixError
from .models import Asset

logger = structlog.get_logger(__name__)

# Abramowitz & Stegun 7.1.26
_ERF_A1 = 0.254829592
_ERF_A2 = -0.284496736
_ERF_A3 = 1.421413741
_ERF_A4 = -1.453152027
_ERF_A5 = 1.061405429
_ERF_P = 0.3275911

Z_SCORES = {
    0.90: 1.28,
    0.95: 1.645,
    0.99: 2.326,
}
DEFAULT_Z_SCORE = 1.645

PIVOT_TOLERANCE = 1e-12


def _as_array(xs: Sequence[float]) -> np.ndarray:
    return np.asarray(xs, dtype=float).ravel()


def mean(xs: Sequence[float]) -> float:
    arr = _as_array(xs)
    if arr.size == 0:
        raise InsufficientDataError("Cannot compute mean of empty data", required=1, available=0)
    return float(arr.mean())


def variance(xs: Sequence[float]) -> float:
    """Sample variance (divisor n - 1)."""
    arr = _as_array(xs)
    if arr.size < 2:
        raise InsufficientDataError(
            f"Need at least 2 observations for variance, got {arr.size}",
            required=2,
            available=int(arr.size),
        )
    return float(arr.var(ddof=1))


def std_dev(xs: Sequence[float]) -> float:
    return math.sqrt(variance(xs))


def erf(x):
    """Error function, Abramowitz-Stegun approximation (|error| < 1.5e-7).

    Accepts a scalar or an array; returns the same kind.
    """
    arr = np.asarray(x, dtype=float)
    sign = np.where(arr >= 0, 1.0, -1.0)
    a = np.abs(arr)
    t = 1.0 / (1.0 + _ERF_P * a)
    poly = ((((_ERF_A5 * t + _ERF_A4) * t + _ERF_A3) * t + _ERF_A2) * t + _ERF_A1) * t
    y = sign * (1.0 - poly * np.exp(-a * a))
    return float(y) if y.ndim == 0 else y


def normal_pdf(x, mu: float = 0.0, sigma: float = 1.0):
    if sigma <= 0:
        raise ValueError(f"Standard deviation must be positive, got {sigma}")
    arr = np.asarray(x, dtype=float)
    y = np.exp(-((arr - mu) ** 2) / (2 * sigma * sigma)) / (sigma * math.sqrt(2 * math.pi))
    return float(y) if y.ndim == 0 else y


def normal_cdf(x, mu: float = 0.0, sigma: float = 1.0):
    if sigma <= 0:
        raise ValueError(f"Standard deviation must be positive, got {sigma}")
    z = (np.asarray(x, dtype=float) - mu) / sigma
    y = 0.5 * (1.0 + np.asarray(erf(z / math.sqrt(2))))
    return float(y) if y.ndim == 0 else y


def z_score(confidence_level: float) -> float:
    """One-sided z-score for the usual confidence levels (1.645 otherwise)."""
    return Z_SCORES.get(round(confidence_level, 6), DEFAULT_Z_SCORE)


def solve_linear_system(A, b) -> np.ndarray:
    """Solve ``A x = b`` by Gaussian elimination with partial pivoting.

    Raises:
        SingularMatrixError: If a pivot is effectively zero.
        ValueError: If shapes are inconsistent.
    """
    A = np.array(A, dtype=float)
    b = np.array(b, dtype=float).ravel()

    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"Coefficient matrix must be square, got shape {A.shape}")
    n = A.shape[0]
    if b.shape[0] != n:
        raise ValueError(f"Right-hand side length {b.shape[0]} doesn't match matrix size {n}")

    aug = np.column_stack([A, b])

    # Forward elimination
    for i in range(n):
        pivot_row = i + int(np.argmax(np.abs(aug[i:, i])))
        pivot = aug[pivot_row, i]
        if abs(pivot) < PIVOT_TOLERANCE:
            logger.error("solve_linear_system: singular matrix", column=i, pivot=float(pivot))
            raise SingularMatrixError(f"Matrix is singular: near-zero pivot in column {i}")
        if pivot_row != i:
            aug[[i, pivot_row]] = aug[[pivot_row, i]]
        factors = aug[i + 1:, i] / aug[i, i]
        aug[i + 1:, i:] -= np.outer(factors, aug[i, i:])

    # Back substitution
    x = np.zeros(n)
    for i in range(n - 1, -1, -1):
        x[i] = (aug[i, n] - aug[i, i + 1:n] @ x[i + 1:]) / aug[i, i]

    return x


def descriptive_stats(xs: Sequence[float]) -> Dict[str, float]:
    """Mean, sample variance, std-dev, skewness and excess kurtosis.

    Skewness and kurtosis are population moments; both are 0 for a constant
    series.
    """
    arr = _as_array(xs)
    var = variance(arr)
    sd = math.sqrt(var)

    if sd == 0:
        skewness = 0.0
        kurtosis = 0.0
    else:
        skewness = float(sp_stats.skew(arr, bias=True))
        kurtosis = float(sp_stats.kurtosis(arr, fisher=True, bias=True))

    return {
        'mean': float(arr.mean()),
        'variance': var,
        'std_dev': sd,
        'skewness': skewness,
        'kurtosis': kurtosis,
    }


def percentile(xs: Sequence[float], p: float) -> float:
    """Percentile with linear interpolation between order statistics."""
    arr = _as_array(xs)
    if arr.size == 0:
        raise InsufficientDataError("Cannot compute percentile of empty data", required=1, available=0)
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")
    return float(np.percentile(arr, p))


def covariance(x: Sequence[float], y: Sequence[float]) -> float:
    """Sample covariance of two equally long series."""
    xa, ya = _as_array(x), _as_array(y)
    if xa.size != ya.size:
        raise ValueError(f"Series lengths differ: {xa.size} vs {ya.size}")
    if xa.size < 2:
        raise InsufficientDataError(
            f"Need at least 2 observations for covariance, got {xa.size}",
            required=2,
            available=int(xa.size),
        )
    return float(np.cov(xa, ya, ddof=1)[0, 1])


def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation; 0 when either series is constant."""
    xa, ya = _as_array(x), _as_array(y)
    cov = covariance(xa, ya)
    denom = xa.std(ddof=1) * ya.std(ddof=1)
    if denom == 0:
        return 0.0
    return float(cov / denom)


def box_muller(rng: np.random.Generator, size) -> np.ndarray:
    """Standard-normal draws from pairs of uniforms (Box-Muller transform)."""
    u1 = 1.0 - rng.random(size)  # (0, 1], keeps log finite
    u2 = rng.random(size)
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)


def multiple_regression(X, y) -> Dict:
    """Ordinary least squares with intercept via the normal equations.

    Args:
        X: Regressors (T x K, or a flat array for a single regressor)
        y: Response (length T)

    Returns:
        Dict with coefficients (intercept first), r_squared, predictions

    Raises:
        SingularMatrixError: If X'X is singular (e.g. a constant regressor)
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    y = _as_array(y)

    if X.shape[0] != y.shape[0]:
        raise ValueError(f"X has {X.shape[0]} rows but y has {y.shape[0]} values")
    if X.shape[0] <= X.shape[1]:
        raise InsufficientDataError(
            f"Need more observations ({X.shape[0]}) than regressors ({X.shape[1]})",
            required=X.shape[1] + 1,
            available=X.shape[0],
        )

    design = np.column_stack([np.ones(len(y)), X])
    coefficients = solve_linear_system(design.T @ design, design.T @ y)
    predictions = design @ coefficients

    ss_res = float(np.sum((y - predictions) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return {
        'coefficients': coefficients,
        'r_squared': float(r_squared),
        'predictions': predictions,
    }


# ---------------------------------------------------------------------------
# Covariance kernel shared by both engines
# ---------------------------------------------------------------------------


def correlation_matrix(assets: Sequence[Asset]) -> np.ndarray:
    """Correlation matrix aligned to asset order.

    The diagonal is 1.0.  Each pair is resolved once, from the earlier asset's
    map, then the later one's; a pair present in neither is 0.0.  The result is
    always symmetric.

    Raises:
        ValueError: Duplicate symbols
        SingularMatrixError: The pairwise values do not form a positive
            semi-definite matrix
    """
    check_unique_symbols(assets)
    n = len(assets)
    corr = np.eye(n)
    for i in range(n):
        for j in range(i + 1, n):
            a, b = assets[i], assets[j]
            rho = a.correlations.get(b.symbol)
            if rho is None:
                rho = b.correlations.get(a.symbol, 0.0)
            corr[i, j] = rho
            corr[j, i] = rho

    if n > 1:
        min_eigenvalue = float(np.linalg.eigvalsh(corr).min())
        if min_eigenvalue < -1e-10:
            logger.error(
                "correlation_matrix: not positive semi-definite",
                symbols=[a.symbol for a in assets],
                min_eigenvalue=min_eigenvalue,
            )
            raise SingularMatrixError(
                f"Correlation matrix is not positive semi-definite "
                f"(min eigenvalue {min_eigenvalue:.4g})"
            )
    return corr


def check_unique_symbols(assets: Sequence[Asset]) -> None:
    """Raise ValueError if any symbol appears more than once."""
    seen = set()
    duplicates = []
    for asset in assets:
        if asset.symbol in seen and asset.symbol not in duplicates:
            duplicates.append(asset.symbol)
        seen.add(asset.symbol)
    if duplicates:
        raise ValueError(f"Duplicate asset symbols: {duplicates}")


def covariance_matrix(volatilities, corr) -> np.ndarray:
    """Sigma_ij = sigma_i * sigma_j * rho_ij."""
    vols = _as_array(volatilities)
    corr = np.asarray(corr, dtype=float)
    if corr.shape != (vols.size, vols.size):
        raise ValueError(
            f"Correlation matrix shape {corr.shape} doesn't match {vols.size} assets"
        )
    return np.outer(vols, vols) * corr


def portfolio_variance(weights, volatilities, corr) -> np.ndarray | float:
    """Quadratic form sum_ij w_i w_j sigma_i sigma_j rho_ij.

    ``weights`` may be a single vector or a (K x N) batch of candidates, in
    which case a length-K array is returned.
    """
    cov = covariance_matrix(volatilities, corr)
    w = np.asarray(weights, dtype=float)

    if w.shape[-1] != cov.shape[0]:
        raise ValueError(
            f"Weights dimension {w.shape[-1]} doesn't match covariance {cov.shape[0]}"
        )

    if w.ndim == 1:
        var = np.array(w @ cov @ w)
    else:
        var = np.einsum('ki,ij,kj->k', w, cov, w)

    if np.any(var < -1e-10):
        logger.error("portfolio_variance: negative variance", min_variance=float(np.min(var)))
        raise ValueError(
            f"Negative portfolio variance ({float(np.min(var)):.6e}). "
            "Correlation matrix is not positive semi-definite."
        )
    # Clamp tiny negative values from numerical noise to zero
    var = np.maximum(var, 0.0)

    return float(var) if var.ndim == 0 else var
