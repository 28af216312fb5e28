"""
Core fitting infrastructure.

This module provides the minimizer adapter, configuration handling and
result logging used to fit density models to datasets.
"""

from typing import Dict, Any

# Type definitions for fit results
ParameterDict = Dict[str, float]
ResultsDict = Dict[str, Any]

from . import config
from . import logging_utils
from . import minimizer
from .config import ConfigurationManager, IntegrationSettings, MinimizerSettings
from .minimizer import FunctionMinimum, Minimizer

__all__ = [
    # Type definitions
    "ParameterDict",
    "ResultsDict",
    # Core modules
    "config",
    "logging_utils",
    "minimizer",
    # Main classes
    "ConfigurationManager",
    "FunctionMinimum",
    "IntegrationSettings",
    "Minimizer",
    "MinimizerSettings",
]
