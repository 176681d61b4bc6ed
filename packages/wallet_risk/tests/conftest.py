"""
Shared test fixtures for the wallet-risk test suite.

Provides consistent test data across all test modules:
- Two-asset portfolio used in the worked volatility example
- A five-asset crypto portfolio with a correlation structure
- Sample daily portfolio returns
- Sample per-asset returns DataFrame
"""

import pytest
import numpy as np
import pandas as pd

from wallet_risk.models import Asset


@pytest.fixture
def two_assets():
    """A(vol 0.20) and B(vol 0.15), equal value, correlation 0.3.

    Returns:
        List[Asset]: Two assets with a symmetric correlation entry
    """
    return [
        Asset(symbol='A', value=5000.0, expected_return=0.10, volatility=0.20,
              correlations={'B': 0.3}),
        Asset(symbol='B', value=5000.0, expected_return=0.08, volatility=0.15,
              correlations={'A': 0.3}),
    ]


@pytest.fixture
def crypto_assets():
    """Five-asset crypto portfolio with unequal weights.

    Returns:
        List[Asset]: BTC, ETH, SOL, USDC, LINK (total value 100,000)
    """
    return [
        Asset(symbol='BTC', value=40000.0, expected_return=0.45, volatility=0.60, beta=1.0,
              correlations={'ETH': 0.8, 'SOL': 0.7, 'USDC': 0.0, 'LINK': 0.6}),
        Asset(symbol='ETH', value=25000.0, expected_return=0.55, volatility=0.75, beta=1.2,
              correlations={'SOL': 0.75, 'USDC': 0.0, 'LINK': 0.7}),
        Asset(symbol='SOL', value=15000.0, expected_return=0.80, volatility=1.00, beta=1.5,
              correlations={'USDC': 0.0, 'LINK': 0.65}),
        Asset(symbol='USDC', value=10000.0, expected_return=0.05, volatility=0.01, beta=0.0,
              correlations={'LINK': 0.0}),
        Asset(symbol='LINK', value=10000.0, expected_return=0.60, volatility=0.90, beta=1.3),
    ]


@pytest.fixture
def sample_portfolio_returns():
    """Daily portfolio returns, 250 points.

    Returns:
        np.ndarray: Normal returns with mean 0.001 and std 0.03
    """
    np.random.seed(42)
    return np.random.normal(0.001, 0.03, 250)


@pytest.fixture
def sample_returns():
    """Per-asset daily returns with correlation structure.

    Returns:
        pd.DataFrame: Returns matrix (252 x 3) with DatetimeIndex.
            ETH is correlated with BTC.
    """
    np.random.seed(42)
    dates = pd.bdate_range('2024-01-01', periods=252)
    symbols = ['BTC', 'ETH', 'SOL']

    data = np.random.normal(0.001, 0.03, (len(dates), len(symbols)))
    data[:, 1] = 0.7 * data[:, 0] + 0.3 * data[:, 1]  # ETH correlated with BTC

    return pd.DataFrame(data, index=dates, columns=symbols)


@pytest.fixture
def market_returns(sample_returns):
    """Market factor series: BTC returns plus small noise.

    Returns:
        pd.Series: Market returns aligned to sample_returns index
    """
    np.random.seed(7)
    noise = np.random.normal(0, 0.005, len(sample_returns))
    return pd.Series(sample_returns['BTC'].values + noise, index=sample_returns.index)
