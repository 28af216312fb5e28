"""
Standardized logging and result reporting for fits.

This module provides consistent diagnostic output for minimization results,
cache registries and model norms.
"""

from typing import Optional
import logging
import sys

import numpy as np

from . import ParameterDict

logger = logging.getLogger(__name__)

LOG_FORMATS = {
    "fit": "[FIT] model={model} entries={entries} -2lnL={fval:.4f} valid={valid} calls={calls} params={params}",
    "cache": "[CACHE] real={real} complex={complex} frozen={frozen}",
    "norm": "[NORM] model={model} {components}",
}


def log_fit(model: str, minimum, n_entries: int) -> None:
    """
    Log a one-line summary of a minimization.

    Args:
        model: Model label
        minimum: FunctionMinimum returned by Minimizer.minimize
        n_entries: Number of dataset entries in the fit
    """
    logger.info(LOG_FORMATS["fit"].format(
        model=model,
        entries=n_entries,
        fval=minimum.fval,
        valid=minimum.is_valid,
        calls=minimum.n_function_evaluations,
        params=_format_parameter_summary(minimum.values, minimum.errors),
    ))
    if not minimum.is_valid:
        logger.warning(f"[FIT] {model}: {minimum.message}")


def log_cache_summary(registry) -> None:
    """
    Log which cache indices a session registry holds.

    Args:
        registry: CacheRegistry of the fit session
    """
    logger.info(LOG_FORMATS["cache"].format(
        real=sorted(registry.real),
        complex=sorted(registry.complex),
        frozen=registry.frozen,
    ))


def log_norm_components(model: str, pdf) -> None:
    """
    Log the normalization components of an interference model.

    Args:
        model: Model label
        pdf: Model exposing ``n_dir``, ``n_cnj``, ``n_xed`` and ``norm``
    """
    components = (f"nDir={pdf.n_dir:.6g} nCnj={pdf.n_cnj:.6g} "
                  f"nXed=({pdf.n_xed.real:.6g}{pdf.n_xed.imag:+.6g}j) norm={pdf.norm:.6g}")
    logger.info(LOG_FORMATS["norm"].format(model=model, components=components))


def format_results_table(minimum, model: str = "unknown", precision: int = 6) -> str:
    """
    Format a minimization result into a human-readable table.

    Args:
        minimum: FunctionMinimum returned by Minimizer.minimize
        model: Model label for the header
        precision: Digits after the decimal point

    Returns:
        Formatted string table of results
    """
    lines = []

    lines.append("=" * 60)
    lines.append(f"Fit Results - Model: {model}")
    lines.append(f"Status: {'valid' if minimum.is_valid else 'INVALID'} ({minimum.message})")
    lines.append("=" * 60)

    lines.append("\nFitted Parameters:")
    lines.append("-" * 44)
    for name in minimum.names:
        value = minimum.values[name]
        error = minimum.errors.get(name, 0.0)
        lines.append(f"  {name:<14} = {value:>14.{precision}f} +/- {error:<12.{precision}f}")

    lines.append("\nFit Quality:")
    lines.append("-" * 44)
    lines.append(f"  {'-2lnL':<14} = {minimum.fval:>14.4f}")
    lines.append(f"  {'up':<14} = {minimum.up:>14.3f}")
    lines.append(f"  {'calls':<14} = {minimum.n_function_evaluations:>14d}")

    if len(minimum.names) > 1:
        lines.append("\nCorrelation Matrix:")
        lines.append("-" * 44)
        correlation = minimum.correlation()
        lines.append("  " + " " * 14 + "".join(f"{name[:9]:>10}" for name in minimum.names))
        for i, name in enumerate(minimum.names):
            row = "".join(f"{correlation[i, j]:>10.3f}" for j in range(len(minimum.names)))
            lines.append(f"  {name:<14}{row}")

    lines.append("=" * 60)
    return "\n".join(lines)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Set up standardized logging configuration.

    Args:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        log_file: Optional log file path
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def _format_parameter_summary(values: ParameterDict, errors: Optional[ParameterDict] = None) -> str:
    """
    Format parameter values (and errors) for logging output.

    Args:
        values: Parameter name to value
        errors: Optional parameter name to error

    Returns:
        Formatted parameter string
    """
    errors = errors or {}
    param_strs = []
    for name, value in values.items():
        if name in errors and np.isfinite(errors[name]):
            param_strs.append(f"{name}:{value:.4g}±{errors[name]:.2g}")
        else:
            param_strs.append(f"{name}:{value:.4g}")
    return "{" + ", ".join(param_strs) + "}"
