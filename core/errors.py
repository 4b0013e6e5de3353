"""
Exceptions raised by the basket distribution engine.

Everything is raised straight to the caller; there is no partial-result mode.
"""


class BasketError(Exception):
    """Base class for engine errors."""


class ConfigurationError(BasketError, ValueError):
    """Invalid construction data (lengths, seeds, mandatory collaborators)."""


class DomainError(BasketError, ValueError):
    """A call-time argument lies outside what the strategy supports."""


class CorrelationTypeError(DomainError, TypeError):
    """The correlation variant cannot be used by the requesting strategy."""

    def __init__(self, correlation, purpose: str = "a factor array"):
        self.correlation = correlation
        super().__init__(
            f"{type(correlation).__name__} cannot provide {purpose}."
        )


class NonConvergenceError(BasketError, RuntimeError):
    """A root search or minimization exhausted its budget."""


class ReentrantComputationError(BasketError, RuntimeError):
    """A distribution was requested while it was being computed."""
