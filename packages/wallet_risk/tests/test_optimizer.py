"""
Unit tests for the optimization package - Portfolio Optimizer

Tests cover:
- Performance metrics (return, volatility, Sharpe)
- Bound projection of candidate weights
- Randomized-search strategies and their constraints
- Risk parity
- Efficient frontier
- Result changes and improvement metrics
"""

import math

import pytest
import numpy as np
from numpy.testing import assert_allclose

from wallet_risk.exceptions import InvalidConstraintError, SingularMatrixError
from wallet_risk.models import Asset, OptimizationConstraints
from wallet_risk.optimization import (
    current_allocation,
    portfolio_return,
    portfolio_volatility,
    sharpe_ratio,
    optimize,
    optimize_max_sharpe,
    optimize_min_volatility,
    optimize_risk_parity,
    optimize_max_return_for_risk,
    optimize_mean_variance,
    generate_efficient_frontier,
    apply_bounds,
)
from wallet_risk.optimization.portfolio import STRATEGIES, sample_allocations
from wallet_risk.optimization.results import build_changes

SAMPLES = 2000


def _weight_sum(result):
    return sum(result.target_allocation.values())


class TestPerformance:
    """Tests for portfolio_return, portfolio_volatility and sharpe_ratio."""

    def test_example_volatility(self, two_assets):
        """0.5/0.5 of vol 0.20 and 0.15 with rho 0.3."""
        vol = portfolio_volatility(two_assets, {'A': 0.5, 'B': 0.5})

        expected = math.sqrt(0.25 * 0.04 + 0.25 * 0.0225 + 2 * 0.25 * 0.3 * 0.20 * 0.15)
        assert_allclose(vol, expected, rtol=1e-12)
        assert abs(vol - 0.1422) < 1e-3

    def test_portfolio_return(self, two_assets):
        """Weighted expected return; missing symbols count as 0."""
        assert_allclose(portfolio_return(two_assets, {'A': 0.5, 'B': 0.5}), 0.09, rtol=1e-12)
        assert_allclose(portfolio_return(two_assets, {'A': 1.0}), 0.10, rtol=1e-12)

    def test_sharpe_default_risk_free(self):
        """Default risk-free rate is 4%."""
        assert_allclose(sharpe_ratio(0.14, 0.5), 0.2, rtol=1e-12)

    def test_sharpe_zero_volatility(self):
        """Riskless portfolio has Sharpe 0."""
        assert sharpe_ratio(0.10, 0.0) == 0.0

    def test_current_allocation(self, crypto_assets):
        """Weights from asset values."""
        current = current_allocation(crypto_assets)

        assert_allclose(current['BTC'], 0.4)
        assert_allclose(sum(current.values()), 1.0)


class TestApplyBounds:
    """Tests for bound projection of candidates."""

    def test_rows_sum_to_one_within_bounds(self):
        """Every projected row sums to 1 and respects [min, max]."""
        rng = np.random.default_rng(0)
        raw = rng.random((500, 5))

        w = apply_bounds(raw, 0.05, 0.40)

        assert_allclose(w.sum(axis=1), 1.0, atol=1e-9)
        assert np.all(w >= 0.05 - 1e-12)
        assert np.all(w <= 0.40 + 1e-12)

    def test_unconstrained_is_normalization(self):
        """Default bounds only normalize."""
        w = apply_bounds(np.array([1.0, 3.0]), 0.0, 1.0)

        assert_allclose(w, [[0.25, 0.75]], rtol=1e-12)

    def test_sample_allocations_include_anchors(self):
        """Equal-weight and single-asset portfolios are always candidates."""
        candidates = sample_allocations(3, 10, OptimizationConstraints(), np.random.default_rng(0))

        assert candidates.shape == (14, 3)
        assert_allclose(candidates[0], [1 / 3, 1 / 3, 1 / 3])
        assert_allclose(candidates[1:4], np.eye(3))


class TestMaxSharpe:
    """Tests for optimize_max_sharpe."""

    def test_weights_sum_to_one(self, crypto_assets):
        """Returned allocation sums to 1."""
        result = optimize_max_sharpe(crypto_assets, samples=SAMPLES, seed=42)

        assert abs(_weight_sum(result) - 1.0) < 1e-6
        assert result.strategy == 'max_sharpe'
        assert result.candidates_evaluated == SAMPLES + len(crypto_assets) + 1

    def test_best_of_candidates(self, two_assets):
        """No sampled candidate beats the returned Sharpe."""
        result = optimize_max_sharpe(two_assets, samples=500, seed=7)

        candidates = sample_allocations(2, 500, OptimizationConstraints(), np.random.default_rng(7))
        for w in candidates:
            allocation = {'A': w[0], 'B': w[1]}
            ret = portfolio_return(two_assets, allocation)
            vol = portfolio_volatility(two_assets, allocation)
            assert sharpe_ratio(ret, vol) <= result.sharpe_ratio + 1e-12

    def test_reported_metrics_consistent(self, crypto_assets):
        """Reported return / vol / Sharpe match the allocation."""
        result = optimize_max_sharpe(crypto_assets, samples=SAMPLES, seed=42)

        assert_allclose(result.expected_return, portfolio_return(crypto_assets, result.target_allocation))
        assert_allclose(result.expected_volatility, portfolio_volatility(crypto_assets, result.target_allocation))
        assert_allclose(
            result.sharpe_ratio,
            sharpe_ratio(result.expected_return, result.expected_volatility),
        )

    def test_bounds_respected(self, crypto_assets):
        """Every weight is within [min, max]."""
        constraints = OptimizationConstraints(min_allocation=0.05, max_allocation=0.35)
        result = optimize_max_sharpe(crypto_assets, constraints, samples=SAMPLES, seed=1)

        for weight in result.target_allocation.values():
            assert 0.05 - 1e-9 <= weight <= 0.35 + 1e-9
        assert abs(_weight_sum(result) - 1.0) < 1e-6

    def test_reproducible(self, crypto_assets):
        """Same seed, same allocation."""
        a = optimize_max_sharpe(crypto_assets, samples=500, seed=3)
        b = optimize_max_sharpe(crypto_assets, samples=500, seed=3)

        assert a.target_allocation == b.target_allocation


class TestMinVolatility:
    """Tests for optimize_min_volatility."""

    def test_prefers_stablecoin(self, crypto_assets):
        """Unconstrained min-vol puts everything in the 1% vol asset."""
        result = optimize_min_volatility(crypto_assets, samples=SAMPLES, seed=42)

        assert_allclose(result.target_allocation['USDC'], 1.0, atol=1e-9)
        assert_allclose(result.expected_volatility, 0.01, rtol=1e-9)

    def test_target_return_filter(self, crypto_assets):
        """Rejects candidates below the target return."""
        constraints = OptimizationConstraints(target_return=0.40)
        result = optimize_min_volatility(crypto_assets, constraints, samples=SAMPLES, seed=42)

        assert result.expected_return >= 0.40 - 1e-12

    def test_unreachable_target_raises(self, crypto_assets):
        """A target above every asset's return leaves no candidate."""
        constraints = OptimizationConstraints(target_return=5.0)

        with pytest.raises(InvalidConstraintError, match="No sampled allocation"):
            optimize_min_volatility(crypto_assets, constraints, samples=200, seed=42)


class TestRiskParity:
    """Tests for optimize_risk_parity."""

    def test_lower_volatility_gets_more_weight(self):
        """Two uncorrelated assets: higher vol, smaller weight."""
        assets = [
            Asset(symbol='LOW', value=500.0, expected_return=0.1, volatility=0.2),
            Asset(symbol='HIGH', value=500.0, expected_return=0.2, volatility=0.6),
        ]

        result = optimize_risk_parity(assets)

        assert result.target_allocation['HIGH'] < result.target_allocation['LOW']
        assert_allclose(result.target_allocation['LOW'], 0.75, rtol=1e-12)
        assert_allclose(result.target_allocation['HIGH'], 0.25, rtol=1e-12)

    def test_bounds_applied(self, crypto_assets):
        """USDC would dominate; max_allocation caps it."""
        constraints = OptimizationConstraints(max_allocation=0.5)
        result = optimize_risk_parity(crypto_assets, constraints)

        assert result.target_allocation['USDC'] <= 0.5 + 1e-9
        assert abs(_weight_sum(result) - 1.0) < 1e-6

    def test_zero_volatility_raises(self):
        """Inverse volatility is undefined for a riskless asset."""
        assets = [
            Asset(symbol='CASH', value=500.0, expected_return=0.0, volatility=0.0),
            Asset(symbol='BTC', value=500.0, expected_return=0.3, volatility=0.6),
        ]

        with pytest.raises(InvalidConstraintError, match="positive volatility"):
            optimize_risk_parity(assets)


class TestMaxReturnForRisk:
    """Tests for optimize_max_return_for_risk."""

    def test_within_risk_band(self, crypto_assets):
        """Volatility within 10% of the target risk."""
        result = optimize_max_return_for_risk(crypto_assets, 0.5, samples=SAMPLES, seed=42)

        assert 0.45 - 1e-12 <= result.expected_volatility <= 0.55 + 1e-12
        assert abs(_weight_sum(result) - 1.0) < 1e-6

    def test_non_positive_target_raises(self, crypto_assets):
        """Target risk must be positive."""
        with pytest.raises(ValueError, match="Target risk must be positive"):
            optimize_max_return_for_risk(crypto_assets, 0.0)


class TestMeanVariance:
    """Tests for optimize_mean_variance."""

    def test_zero_risk_aversion_maximizes_return(self, crypto_assets):
        """With no risk penalty the best single asset wins."""
        result = optimize_mean_variance(crypto_assets, risk_aversion=0.0, samples=200, seed=42)

        assert_allclose(result.target_allocation['SOL'], 1.0, atol=1e-9)

    def test_high_risk_aversion_lowers_volatility(self, crypto_assets):
        """More risk aversion, less volatility."""
        bold = optimize_mean_variance(crypto_assets, risk_aversion=0.5, samples=SAMPLES, seed=42)
        timid = optimize_mean_variance(crypto_assets, risk_aversion=20.0, samples=SAMPLES, seed=42)

        assert timid.expected_volatility < bold.expected_volatility

    def test_negative_risk_aversion_raises(self, crypto_assets):
        """Risk aversion must be non-negative."""
        with pytest.raises(ValueError, match="Risk aversion must be non-negative"):
            optimize_mean_variance(crypto_assets, risk_aversion=-1.0)


class TestConstraints:
    """Tests for constraint validation."""

    def test_min_above_max_rejected(self):
        """min_allocation > max_allocation fails model validation."""
        with pytest.raises(ValueError, match="exceeds max_allocation"):
            OptimizationConstraints(min_allocation=0.6, max_allocation=0.4)

    def test_min_too_large_raises(self, crypto_assets):
        """5 assets at >= 30% each cannot sum to 1."""
        constraints = OptimizationConstraints(min_allocation=0.3)

        with pytest.raises(InvalidConstraintError, match="min_allocation"):
            optimize_max_sharpe(crypto_assets, constraints, samples=10)

    def test_max_too_small_raises(self, crypto_assets):
        """5 assets at <= 10% each cannot sum to 1."""
        constraints = OptimizationConstraints(max_allocation=0.1)

        with pytest.raises(InvalidConstraintError, match="max_allocation"):
            optimize_min_volatility(crypto_assets, constraints, samples=10)

    def test_empty_portfolio_raises(self):
        """Nothing to optimize."""
        with pytest.raises(ValueError, match="empty portfolio"):
            optimize_max_sharpe([], samples=10)

    @pytest.mark.parametrize("strategy", sorted(STRATEGIES))
    def test_dispatch_shared_kwargs(self, two_assets, strategy):
        """Every strategy accepts the same sampling keywords through optimize()."""
        kwargs = dict(samples=200, seed=1, rng=None, risk_free_rate=0.04)
        if strategy == 'max_return_for_risk':
            kwargs['target_risk'] = 0.16

        result = optimize(two_assets, strategy, **kwargs)

        assert result.strategy == strategy
        assert_allclose(sum(result.target_allocation.values()), 1.0, rtol=1e-9)

    def test_risk_parity_ignores_sampling_keywords(self, two_assets):
        """Closed form: seed and samples do not change the weights."""
        plain = optimize_risk_parity(two_assets)
        seeded = optimize(two_assets, 'risk_parity', seed=1, samples=50)

        assert seeded.target_allocation == plain.target_allocation

    def test_duplicate_symbols_raise(self, two_assets):
        """The same symbol listed twice is rejected."""
        assets = list(two_assets) + [two_assets[0]]

        with pytest.raises(ValueError, match="Duplicate asset symbols"):
            optimize_max_sharpe(assets, samples=10, seed=1)
        with pytest.raises(ValueError, match="Duplicate asset symbols"):
            current_allocation(assets)

    def test_inconsistent_correlations_raise(self):
        """Pairwise -0.9 among three assets has no valid covariance."""
        assets = [
            Asset(symbol=s, value=1000.0, expected_return=0.1, volatility=0.3,
                  correlations={o: -0.9 for o in 'XYZ' if o != s})
            for s in 'XYZ'
        ]

        with pytest.raises(SingularMatrixError, match="not positive semi-definite"):
            optimize_max_sharpe(assets, samples=10, seed=1)

    def test_dispatch_unknown_raises(self, two_assets):
        """Unknown strategy name should raise ValueError."""
        with pytest.raises(ValueError, match="Unknown optimization strategy"):
            optimize(two_assets, 'yolo')


class TestEfficientFrontier:
    """Tests for generate_efficient_frontier."""

    def test_sorted_by_risk(self, crypto_assets):
        """Points sorted by risk ascending and bounded by the asset returns."""
        frontier = generate_efficient_frontier(crypto_assets, points=8, samples=500, seed=42)

        risks = [p.risk for p in frontier]
        assert risks == sorted(risks)
        assert 0 < len(frontier) <= 8
        for point in frontier:
            assert 0.05 - 1e-9 <= point.expected_return <= 0.80 + 1e-9

    def test_lowest_target_is_min_volatility(self, crypto_assets):
        """The first sweep target is the lowest asset return: pure stablecoin."""
        frontier = generate_efficient_frontier(crypto_assets, points=4, samples=500, seed=42)

        assert_allclose(frontier[0].risk, 0.01, rtol=1e-9)

    def test_serializes_return_key(self, two_assets):
        """FrontierPoint dumps its return under 'return'."""
        frontier = generate_efficient_frontier(two_assets, points=3, samples=200, seed=1)

        dumped = frontier[0].model_dump(by_alias=True)
        assert set(dumped) == {'return', 'risk', 'sharpe'}

    def test_invalid_points_raises(self, two_assets):
        """At least one point is required."""
        with pytest.raises(ValueError, match="Points must be"):
            generate_efficient_frontier(two_assets, points=0)


class TestResultChanges:
    """Tests for trade lists and improvement metrics."""

    def test_changes_classified(self, two_assets):
        """Large deltas are buys / sells, small ones holds."""
        changes = build_changes(two_assets, {'A': 0.8, 'B': 0.2}, 0.05)
        by_symbol = {c.symbol: c for c in changes}

        assert by_symbol['A'].action == 'buy'
        assert by_symbol['B'].action == 'sell'
        assert_allclose(by_symbol['A'].amount, 0.3 * 10000.0, rtol=1e-12)

        holds = build_changes(two_assets, {'A': 0.52, 'B': 0.48}, 0.05)
        assert all(c.action == 'hold' for c in holds)

    def test_result_drops_holds(self):
        """Equal current and target weights produce no trades."""
        result = optimize_risk_parity([
            Asset(symbol='X', value=500.0, expected_return=0.1, volatility=0.3),
            Asset(symbol='Y', value=500.0, expected_return=0.1, volatility=0.3),
        ])

        assert result.changes == []
        assert_allclose(result.improvement_metrics.return_improvement, 0.0, atol=1e-12)
        assert_allclose(result.improvement_metrics.risk_reduction, 0.0, atol=1e-12)

    def test_improvement_metrics(self, crypto_assets):
        """Sharpe improvement is measured against the current allocation."""
        result = optimize_max_sharpe(crypto_assets, samples=SAMPLES, seed=42)
        current = current_allocation(crypto_assets)
        current_sharpe = sharpe_ratio(
            portfolio_return(crypto_assets, current),
            portfolio_volatility(crypto_assets, current),
        )

        assert_allclose(
            result.improvement_metrics.sharpe_improvement,
            result.sharpe_ratio - current_sharpe,
            rtol=1e-10,
        )
