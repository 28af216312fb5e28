"""
Fitting pipelines.

This package contains the fit session infrastructure: the minimizer
adapter around scipy.optimize, configuration files and result logging.
"""

__version__ = "0.1.0"

from .fit_core import config, logging_utils, minimizer

__all__ = [
    "config",
    "logging_utils",
    "minimizer",
]
