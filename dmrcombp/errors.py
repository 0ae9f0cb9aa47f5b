"""
Exception classes for dmrcombp.

This module provides:
- A common base class for every error raised by the package
- Data validation errors that carry the offending input and row
- Configuration errors for out-of-range parameters
- A cancellation error raised when a region search is stopped cooperatively
"""

from typing import Any, Dict, Optional


class DMRCombpError(Exception):
    """Base exception for all dmrcombp errors."""

    def __init__(self, message: str, step: Optional[str] = None, details: Optional[Dict] = None):
        """Initialize dmrcombp error.

        Parameters
        ----------
        message : str
            Error message
        step : str, optional
            Analysis step where the error occurred
        details : dict, optional
            Additional error details
        """
        super().__init__(message)
        self.step = step
        self.details = details or {}


class DataValidationError(DMRCombpError):
    """Raised when input data fails validation.

    ``field`` names the offending input (column, vector or matrix) and ``row``
    the first offending row, when one can be identified.
    """

    def __init__(
        self,
        message: str,
        field: str,
        row: Optional[Any] = None,
        step: Optional[str] = None,
    ):
        """Initialize data validation error."""
        self.raw_message = message
        if row is not None:
            message = f"{message} (input '{field}', row {row})"
        else:
            message = f"{message} (input '{field}')"
        super().__init__(message, step, {"field": field, "row": row})
        self.field = field
        self.row = row

    def __reduce__(self):
        """Custom pickling so the error survives a round trip through worker processes."""
        return (
            self.__class__,
            (self.raw_message, self.field, self.row, self.step),
            self.__dict__,
        )


class ConfigurationError(DMRCombpError):
    """Raised when a configuration value is outside its valid range."""

    def __init__(self, parameter: str, value: Any, reason: str):
        """Initialize configuration error."""
        message = f"Invalid value for '{parameter}': {value!r} ({reason})"
        super().__init__(
            message, "configuration", {"parameter": parameter, "value": value, "reason": reason}
        )
        self.parameter = parameter
        self.value = value

    def __reduce__(self):
        """Custom pickling to handle multiprocessing correctly."""
        return (
            self.__class__,
            (self.parameter, self.value, self.details.get("reason", "")),
            self.__dict__,
        )


class SearchCancelledError(DMRCombpError):
    """Raised when a region search is cancelled before completion."""

    def __init__(self, phase: str, completed: int, total: int):
        """Initialize cancellation error."""
        message = (
            f"Region search cancelled during {phase} "
            f"({completed}/{total} chromosomes completed)"
        )
        super().__init__(message, phase, {"completed": completed, "total": total})
        self.phase = phase
        self.completed = completed
        self.total = total

    def __reduce__(self):
        """Custom pickling to handle multiprocessing correctly."""
        return (self.__class__, (self.phase, self.completed, self.total), self.__dict__)
