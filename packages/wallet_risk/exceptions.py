"""Custom exceptions for the wallet-risk engines.

Data-dependent failures get their own types so callers can tell a bad input
apart from a programming error.  The value-related errors also subclass
``ValueError`` so generic argument handling keeps working.
"""


class WalletRiskError(Exception):
    """Base exception for all wallet-risk errors."""

    pass


class InsufficientDataError(WalletRiskError, ValueError):
    """Raised when there's not enough data to compute a metric.

    Examples:
    - Fewer than 30 historical returns for VaR / CVaR
    - Empty series passed to a statistics primitive
    """

    def __init__(self, message: str, required: int | None = None, available: int | None = None):
        super().__init__(message)
        self.required = required
        self.available = available


class SingularMatrixError(WalletRiskError, ValueError):
    """Raised when a linear solve or factorisation meets a (near) zero pivot."""

    pass


class InvalidConstraintError(WalletRiskError, ValueError):
    """Raised when optimizer constraints leave no feasible allocation."""

    pass


class SimulationCancelledError(WalletRiskError):
    """Raised when a Monte Carlo run is stopped through its cancel event."""

    def __init__(self, message: str, completed: int = 0):
        super().__init__(message)
        self.completed = completed
