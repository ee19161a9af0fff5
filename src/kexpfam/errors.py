class NotFittedError(RuntimeError):
    """Raised when coefficients are requested before ``fit()`` has run."""


class DimensionMismatchError(ValueError):
    """Raised when data, basis, mask or query shapes disagree."""


class InvalidConfigurationError(ValueError):
    """Raised for an empty or malformed basis, or invalid regularisation."""
