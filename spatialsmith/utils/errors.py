"""Error types, warnings and message helpers for SpatialSmith.

Input problems are `InvalidInputError` (a ValueError); numerical failures
during estimation are `NonConvergenceError` or `SingularCovarianceError`.
"""

from typing import Any, Optional


class SpatialSmithError(Exception):
    """Base exception for SpatialSmith errors."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize SpatialSmith error.

        Args:
            message: Primary error message.
            suggestion: Optional suggestion for fixing the error.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with suggestion if available."""
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class InvalidInputError(SpatialSmithError, ValueError):
    """Error raised when input data cannot support a model fit.

    Covers mismatched lengths, rank-deficient design matrices, negative
    distances and degenerate responses.
    """

    pass


class ParameterError(InvalidInputError):
    """Error raised when an option or parameter value is invalid."""

    pass


class NonConvergenceError(SpatialSmithError):
    """Error raised when the optimizer stops without meeting its criterion."""

    pass


class SingularCovarianceError(SpatialSmithError):
    """Error raised when a covariance matrix cannot be factorized."""

    pass


class DependencyError(SpatialSmithError, ImportError):
    """Error raised when required dependencies are missing."""

    pass


class IsolatedUnitWarning(UserWarning):
    """Areal unit without neighbors; it receives its own independent variance."""

    pass


def format_validation_error(
    message: str,
    expected: Optional[str] = None,
    received: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> str:
    """Format a standardized validation error message.

    Args:
        message: Primary error message.
        expected: What was expected (optional).
        received: What was received (optional).
        suggestion: How to fix the error (optional).

    Returns:
        Formatted error message string.
    """
    parts = [message]
    if expected and received:
        parts.append(f"Expected: {expected}, Received: {received}")
    elif expected:
        parts.append(f"Expected: {expected}")
    elif received:
        parts.append(f"Received: {received}")
    if suggestion:
        parts.append(f"Suggestion: {suggestion}")
    return "\n".join(parts)


def format_parameter_error(
    parameter_name: str,
    value: Any,
    valid_values: Optional[list[str]] = None,
    constraint: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> str:
    """Format a standardized parameter error message.

    Args:
        parameter_name: Name of the invalid parameter.
        value: Invalid value that was provided.
        valid_values: List of valid values (optional).
        constraint: Constraint that was violated (optional).
        suggestion: How to fix the error (optional).

    Returns:
        Formatted error message string.
    """
    parts = [f"Invalid value for parameter '{parameter_name}': {value}"]
    if valid_values:
        parts.append(f"Valid values: {', '.join(map(str, valid_values))}")
    if constraint:
        parts.append(f"Constraint: {constraint}")
    if suggestion:
        parts.append(f"Suggestion: {suggestion}")
    return "\n".join(parts)


def format_dependency_error(dependency_name: str, optional_group: Optional[str] = None) -> str:
    """Format a missing-dependency message with the matching install hint."""
    extra = f"spatialsmith[{optional_group}]" if optional_group else dependency_name
    return f"Missing required dependency: {dependency_name}\nInstall with: pip install {extra}"


def raise_validation_error(
    message: str,
    expected: Optional[str] = None,
    received: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> None:
    """Raise a standardized validation error.

    Args:
        message: Primary error message.
        expected: What was expected (optional).
        received: What was received (optional).
        suggestion: How to fix the error (optional).

    Raises:
        InvalidInputError: Always raises this exception.
    """
    error_msg = format_validation_error(message, expected, received)
    raise InvalidInputError(error_msg, suggestion=suggestion)


def raise_parameter_error(
    parameter_name: str,
    value: Any,
    valid_values: Optional[list[str]] = None,
    constraint: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> None:
    """Raise a standardized parameter error.

    Raises:
        ParameterError: Always raises this exception.
    """
    error_msg = format_parameter_error(parameter_name, value, valid_values, constraint)
    raise ParameterError(
        error_msg, suggestion=suggestion, details={"parameter": parameter_name}
    )


def raise_dependency_error(dependency_name: str, optional_group: Optional[str] = None) -> None:
    """Raise a standardized dependency error.

    Raises:
        DependencyError: Always raises this exception.
    """
    error_msg = format_dependency_error(dependency_name, optional_group)
    raise DependencyError(error_msg)
