__all__ = ["NumericalError", "DomainError", "FormatError", "DimensionError"]


class NumericalError(ValueError):
    """A matrix operation could not produce a finite result (e.g. singular covariance)."""


class DomainError(ValueError):
    """An argument lies outside the domain where the computation is defined."""


class FormatError(ValueError):
    """A cluster file does not follow the expected layout."""

    def __init__(self, message: str, lineno=None):
        if lineno is not None:
            message = f"line {lineno}: {message}"
        super().__init__(message)
        self.lineno = lineno


class DimensionError(ValueError):
    """Array shapes disagree with the dimensionality they are used with."""
