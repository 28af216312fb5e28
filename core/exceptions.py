"""
Exception hierarchy for model evaluation and minimization.

Every error carries a primary message, optional context describing the
offending configuration, and an error code for programmatic handling.
"""

from typing import Any, Dict, Optional, Sequence


class CFitError(Exception):
    """
    Base exception for fitting errors.

    Attributes:
        message: Primary error message
        context: Additional context information
        error_code: Unique error code for programmatic handling
    """

    prefix = "Fit Error"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        """
        Initialize fitting error.

        Args:
            message: Primary error description
            context: Additional context information (variable names, parameter values, etc.)
            error_code: Unique error code for programmatic handling
        """
        self.message = message
        self.context = context or {}
        self.error_code = error_code or self.__class__.__name__

        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with its context."""
        formatted = f"{self.prefix}: {self.message}"

        if self.context:
            formatted += f"\nContext: {self.context}"

        return formatted

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'error_code': self.error_code
        }


class PdfException(CFitError):
    """
    Raised for invalid model usage.

    Covers single-value evaluation of multi-variable models, wrong variable
    cardinality, malformed limits, projections on unknown variables and
    generation without an upper bound of the density.
    """

    prefix = "Pdf Error"


class MinimizerException(CFitError):
    """Raised when minimizer-level invariants are violated."""

    prefix = "Minimizer Error"


class DegenerateDensityError(CFitError):
    """
    Raised when a normalized density is negative or non-finite.

    A zero density at a data entry is reported the same way, since its
    logarithm cannot enter a likelihood.
    """

    prefix = "Degenerate Density"

    def __init__(
        self,
        message: str,
        entries: Optional[Sequence[int]] = None,
        values: Optional[Sequence[float]] = None,
        **kwargs
    ):
        """
        Initialize degenerate density error.

        Args:
            message: Primary error description
            entries: Dataset entries where the density is degenerate
            values: Density values at those entries
            **kwargs: Additional arguments passed to base class
        """
        context = kwargs.pop('context', {}) or {}
        self.entries = list(entries) if entries is not None else []
        if self.entries:
            context['entries'] = self.entries[:10]
            context['n_entries'] = len(self.entries)
        if values is not None:
            context['values'] = [float(v) for v in list(values)[:10]]

        super().__init__(message, context=context, **kwargs)
