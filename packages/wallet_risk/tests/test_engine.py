"""
Unit tests for risk/engine.py - Composite Risk Analysis

Tests cover:
- Overall risk score weighting and cap
- analyze_portfolio_risk assembly
"""

import pytest
from numpy.testing import assert_allclose

from wallet_risk.exceptions import InsufficientDataError
from wallet_risk.stats import correlation_matrix
from wallet_risk.risk.engine import analyze_portfolio_risk, overall_risk_score
from wallet_risk.risk.metrics import concentration_risk, historical_var


class TestOverallRiskScore:
    """Tests for overall_risk_score."""

    def test_weighted_sum(self):
        """0.30 VaR% + 0.20 corr + 0.25 conc + 0.25 liq."""
        score = overall_risk_score(5000, 100000, 40.0, 20.0, 10.0)

        assert_allclose(score, 0.30 * 5.0 + 0.20 * 40.0 + 0.25 * 20.0 + 0.25 * 10.0, rtol=1e-12)

    def test_capped_at_100(self):
        """Extreme inputs cap at 100."""
        assert overall_risk_score(200000, 100000, 100.0, 100.0, 100.0) == 100.0

    def test_zero_value_ignores_var(self):
        """No value means no VaR contribution."""
        score = overall_risk_score(0.0, 0.0, 50.0, 0.0, 0.0)

        assert_allclose(score, 10.0, rtol=1e-12)


class TestAnalyzePortfolioRisk:
    """Tests for analyze_portfolio_risk."""

    def test_full_analysis(self, crypto_assets, sample_portfolio_returns):
        """All parts are filled in and consistent with the individual metrics."""
        corr = correlation_matrix(crypto_assets)
        volumes = {a.symbol: 1e10 for a in crypto_assets}
        caps = {a.symbol: 1e12 for a in crypto_assets}

        risk = analyze_portfolio_risk(
            crypto_assets, 100000.0, sample_portfolio_returns, corr, volumes, caps
        )

        var95, cvar95 = historical_var(sample_portfolio_returns, 100000.0, confidence=0.95)
        assert_allclose(risk.value_at_risk.var95, var95, rtol=1e-12)
        assert_allclose(risk.value_at_risk.cvar95, cvar95, rtol=1e-12)
        assert risk.value_at_risk.var99 >= risk.value_at_risk.var95
        assert_allclose(risk.concentration_risk, concentration_risk(crypto_assets), rtol=1e-12)
        assert risk.liquidity_risk == 0.0
        assert 0.0 <= risk.overall_risk_score <= 100.0
        assert risk.stress_test.market_crash > 0

    def test_too_few_returns_raises(self, crypto_assets):
        """Historical VaR inside the analysis needs 30 points."""
        corr = correlation_matrix(crypto_assets)

        with pytest.raises(InsufficientDataError):
            analyze_portfolio_risk(crypto_assets, 100000.0, [0.01] * 10, corr)
