"""
Configuration file support for fit sessions.

This module provides configuration file parsing (JSON, YAML, INI), default
minimizer and integration settings, and parameter overrides applied to a
model before fitting.
"""

import configparser
import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from config.constants import (
    DEFAULT_MAX_ITER,
    DEFAULT_METHOD,
    DEFAULT_TOLERANCE,
    HESSIAN_STEP,
    MAX_GENERATION_TRIES,
    NORM_BINS,
    PROJECTION_POINTS,
)

# scipy.optimize.minimize methods that accept bounds
BOUNDED_METHODS = ("L-BFGS-B", "TNC", "SLSQP", "Powell", "Nelder-Mead", "trust-constr")


@dataclass
class MinimizerSettings:
    """Options handed to the optimizer and to the error analysis."""
    method: str = DEFAULT_METHOD
    tolerance: float = DEFAULT_TOLERANCE
    max_iter: int = DEFAULT_MAX_ITER
    up: Optional[float] = None
    hessian_step: float = HESSIAN_STEP
    vectorized: bool = True
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.tolerance <= 0:
            raise ValueError("tolerance must be a positive number")
        if self.max_iter <= 0:
            raise ValueError("max_iter must be a positive integer")
        if self.up is not None and self.up <= 0:
            raise ValueError("up must be a positive number")
        if self.hessian_step <= 0:
            raise ValueError("hessian_step must be a positive number")

    @property
    def supports_bounds(self) -> bool:
        return self.method in BOUNDED_METHODS


@dataclass
class IntegrationSettings:
    """Numerical integration and generation settings of the models."""
    norm_bins: int = NORM_BINS
    projection_points: int = PROJECTION_POINTS
    max_generation_tries: int = MAX_GENERATION_TRIES

    def __post_init__(self):
        if self.norm_bins < 2:
            raise ValueError("norm_bins must be at least 2")
        if self.projection_points < 3 or self.projection_points % 2 == 0:
            raise ValueError("projection_points must be an odd number of at least 3")
        if self.max_generation_tries <= 0:
            raise ValueError("max_generation_tries must be a positive integer")


class ConfigurationManager:
    """
    Manages configuration files for fit sessions.

    Supports multiple configuration file formats (JSON, YAML, INI) and provides
    a unified interface for parameter overrides, minimizer and integration settings.
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Optional path to configuration file
        """
        self.config_data = {}
        self.config_file = config_file

        if config_file and os.path.exists(config_file):
            self.load_config(config_file)

    def load_config(self, config_file: str) -> None:
        """
        Load configuration from file.

        Supports JSON, YAML, and INI formats based on file extension.

        Args:
            config_file: Path to configuration file
        """
        config_path = Path(config_file)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        extension = config_path.suffix.lower()

        try:
            if extension == '.json':
                self._load_json(config_path)
            elif extension in ['.yaml', '.yml']:
                self._load_yaml(config_path)
            elif extension in ['.ini', '.cfg']:
                self._load_ini(config_path)
            else:
                self._auto_detect_format(config_path)

        except (OSError, json.JSONDecodeError, yaml.YAMLError, configparser.Error) as e:
            raise ValueError(f"Error loading configuration file {config_file}: {e}") from e

        if self.config_data is None:
            self.config_data = {}

    def _load_json(self, config_path: Path) -> None:
        with open(config_path, 'r') as f:
            self.config_data = json.load(f)

    def _load_yaml(self, config_path: Path) -> None:
        with open(config_path, 'r') as f:
            self.config_data = yaml.safe_load(f)

    def _load_ini(self, config_path: Path) -> None:
        config = configparser.ConfigParser()
        config.optionxform = str  # keep parameter names case-sensitive
        config.read(config_path)
        self._load_ini_from_parser(config)

    def _auto_detect_format(self, config_path: Path) -> None:
        """Auto-detect configuration file format."""
        with open(config_path, 'r') as f:
            content = f.read().strip()

        try:
            self.config_data = json.loads(content)
            return
        except json.JSONDecodeError:
            pass

        try:
            loaded = yaml.safe_load(content)
        except yaml.YAMLError:
            loaded = None
        if isinstance(loaded, dict):
            self.config_data = loaded
            return

        config = configparser.ConfigParser()
        config.optionxform = str
        config.read_string(content)
        self._load_ini_from_parser(config)

    def _load_ini_from_parser(self, config: configparser.ConfigParser) -> None:
        self.config_data = {}
        for section_name in config.sections():
            section = {}
            for key, value in config[section_name].items():
                section[key] = self._convert_value(value)
            self.config_data[section_name] = section

    def _convert_value(self, value: str) -> Union[str, int, float, bool, list, None]:
        """Convert string value to appropriate type."""
        if value.lower() in ['true', 'yes', 'on']:
            return True
        elif value.lower() in ['false', 'no', 'off']:
            return False
        elif value.lower() in ['none', 'null', '']:
            return None

        # Comma-separated lists
        if ',' in value:
            return [self._convert_value(item.strip()) for item in value.split(',') if item.strip()]

        try:
            if '.' in value or 'e' in value.lower():
                return float(value)
            else:
                return int(value)
        except ValueError:
            return value

    def get_parameter_overrides(self) -> Dict[str, Any]:
        """
        Get parameter overrides from configuration.

        Returns:
            Dictionary of parameter name to starting value
        """
        return dict(self.config_data.get('parameters', {}) or {})

    def get_fixed_parameters(self) -> list:
        """
        Names of parameters to hold fixed during the fit.

        Returns:
            List of parameter names
        """
        fixed = (self.config_data.get('fit', {}) or {}).get('fixed_parameters', [])
        if isinstance(fixed, str):
            fixed = [fixed]
        if not isinstance(fixed, list):
            raise ValueError("fixed_parameters must be a list")
        return fixed

    def get_minimizer_settings(self) -> MinimizerSettings:
        """
        Get minimizer settings, falling back to defaults for missing keys.

        Returns:
            MinimizerSettings instance
        """
        section = dict(self.config_data.get('minimizer', {}) or {})
        known = MinimizerSettings.__dataclass_fields__
        unknown = sorted(set(section) - set(known))
        if unknown:
            raise ValueError(f"Unknown minimizer settings: {unknown}")
        return MinimizerSettings(**section)

    def get_integration_settings(self) -> IntegrationSettings:
        """
        Get integration settings, falling back to defaults for missing keys.

        Returns:
            IntegrationSettings instance
        """
        section = dict(self.config_data.get('integration', {}) or {})
        known = IntegrationSettings.__dataclass_fields__
        unknown = sorted(set(section) - set(known))
        if unknown:
            raise ValueError(f"Unknown integration settings: {unknown}")
        return IntegrationSettings(**section)

    def apply_to_model(self, pdf) -> None:
        """
        Apply parameter overrides, fixed flags and integration settings to a model.

        Integration settings are pushed only when the configuration has an
        ``integration`` section, so models keep their own grid otherwise.

        Args:
            pdf: Model exposing ``set_par_fixed``, ``set_pars`` and ``set_integration``
        """
        known = set(pdf.par_names())
        overrides = self.get_parameter_overrides()
        unknown = sorted((set(overrides) | set(self.get_fixed_parameters())) - known)
        if unknown:
            raise ValueError(f"Configuration names unknown parameters: {unknown}")
        integration = self.get_integration_settings() if 'integration' in self.config_data else None

        for name in self.get_fixed_parameters():
            pdf.set_par_fixed(name, True)
        pdf.set_pars(overrides)
        if integration is not None:
            pdf.set_integration(integration)

    def save_config(self, output_file: str, format: str = 'json') -> None:
        """
        Save current configuration to file.

        Args:
            output_file: Path to output file
            format: Output format ('json', 'yaml', or 'ini')
        """
        output_path = Path(output_file)

        if format == 'json':
            with open(output_path, 'w') as f:
                json.dump(self.config_data, f, indent=2)

        elif format in ['yaml', 'yml']:
            with open(output_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False, indent=2)

        elif format in ['ini', 'cfg']:
            config = configparser.ConfigParser()
            config.optionxform = str

            for section_name, section_data in self.config_data.items():
                config.add_section(section_name)
                for key, value in section_data.items():
                    if isinstance(value, list):
                        value = ', '.join(str(item) for item in value)
                    config.set(section_name, key, str(value))

            with open(output_path, 'w') as f:
                config.write(f)

        else:
            raise ValueError(f"Unsupported output format: {format}")

    def create_example_config(self, output_file: str, format: str = 'json') -> None:
        """
        Create an example configuration file with all available options.

        Args:
            output_file: Path to output file
            format: Output format ('json', 'yaml', or 'ini')
        """
        example_config = {
            'parameters': {
                'mu': 0.0,
                'sigma': 1.0,
            },
            'fit': {
                'fixed_parameters': ['sigma'],
            },
            'minimizer': {
                key: value for key, value in asdict(MinimizerSettings()).items()
                if value is not None and key != 'options'
            },
            'integration': asdict(IntegrationSettings()),
        }

        original_config = self.config_data
        self.config_data = example_config
        try:
            self.save_config(output_file, format)
        finally:
            self.config_data = original_config


def load_configuration(config_file: Optional[str] = None) -> ConfigurationManager:
    """
    Load configuration from file or create default configuration.

    Args:
        config_file: Optional path to configuration file

    Returns:
        ConfigurationManager instance
    """
    return ConfigurationManager(config_file)


def find_config_file() -> Optional[str]:
    """
    Search for configuration file in standard locations.

    Searches ./cfit_config.{json,yaml,yml,ini,cfg} first, then the same
    names prefixed with a dot in the home directory.

    Returns:
        Path to first found configuration file, or None
    """
    config_names = [
        'cfit_config.json',
        'cfit_config.yaml',
        'cfit_config.yml',
        'cfit_config.ini',
        'cfit_config.cfg'
    ]

    for config_name in config_names:
        config_file = Path('.') / config_name
        if config_file.exists():
            return str(config_file)
    for config_name in config_names:
        config_file = Path.home() / f".{config_name}"
        if config_file.exists():
            return str(config_file)

    return None
