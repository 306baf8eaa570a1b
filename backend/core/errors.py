"""Exception hierarchy for the core.

Configuration problems are fatal and surface while a strategy is being
set up. Missing or not-yet-warmed data is never an exception: strategies
report it as an empty signal with a reason.
"""


class ConfigurationError(Exception):
    """Invalid strategy or indicator configuration."""


class DuplicateIndicatorKeyError(ConfigurationError):
    """An indicator key was registered twice on the same builder."""

    def __init__(self, key: str):
        super().__init__(f"Indicator key '{key}' is already declared")
        self.key = key


class UnsupportedIndicatorError(ConfigurationError):
    """No backend can compute the requested indicator kind."""

    def __init__(self, kind: str):
        super().__init__(f"Unsupported indicator kind '{kind}'")
        self.kind = kind


class InvalidIndicatorOptionsError(ConfigurationError):
    """Indicator options are malformed for the given kind."""


class IndicatorComputationError(RuntimeError):
    """A backend produced output that breaks the lookback contract."""
