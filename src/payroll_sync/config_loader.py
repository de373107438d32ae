"""
ConfigLoader module for loading and validating TOML connection configuration
"""

import os
import tomllib
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Any, Optional


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete"""
    pass


class EnvironmentVariableError(Exception):
    """Raised when required environment variables are missing"""
    pass


# Upstream documents a maximum of 100 records per page
MAX_PAGE_SIZE = 100

DEFAULT_ENDPOINTS = {
    'workers': 'hr/v2/workers',
    'tax_profile': 'payroll/v1/workers/{associate_oid}/us-tax-profiles',
    'state_tax_profile': 'payroll/v1/workers/{associate_oid}/us-tax-profiles/{profile_id}/state',
    'time_cards': 'time/v2/workers/{associate_oid}/time-cards',
    'labor_charge_codes': 'time/v1/labor-charge-codes',
}


@dataclass(frozen=True)
class SyncConfig:
    """Configuration data class for one connected account, loaded from TOML"""
    name: str
    base_url: str
    token_url: str
    authentication: Dict[str, Any]
    requests_per_second: float
    page_size: int = MAX_PAGE_SIZE
    max_pages: Optional[int] = None
    max_retries: int = 0
    backoff_factor: float = 2.0
    max_workers: int = 1
    progress_interval: int = 100
    request_timeout: float = 30.0
    endpoints: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))
    cache: Dict[str, Any] = field(default_factory=dict)
    logging: Dict[str, Any] = field(default_factory=dict)

    @property
    def min_request_interval(self) -> float:
        """Minimum number of seconds between the start of two requests"""
        return 1.0 / self.requests_per_second


class ConfigLoader:
    """Loads and validates TOML configuration files"""

    # Required configuration sections and their mandatory keys
    REQUIRED_SECTIONS = {
        'api': ['name', 'base_url'],
        'authentication': ['token_url', 'client_id_env', 'client_secret_env'],
        'rate_limits': ['requests_per_second'],
    }

    # Optional sections that can have default empty values
    OPTIONAL_SECTIONS = [
        'pagination',
        'retries',
        'concurrency',
        'sync',
        'endpoints',
        'cache',
        'logging',
    ]

    @staticmethod
    def load_toml_config(config_path: Path) -> SyncConfig:
        """
        Load sync configuration from TOML file

        Args:
            config_path: Path to the TOML configuration file

        Returns:
            SyncConfig object with all configuration data

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If required configuration is missing, invalid
                or the TOML syntax is broken
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'rb') as f:
                config_data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax in {config_path}: {e}")

        return ConfigLoader.build_config(config_data)

    @staticmethod
    def build_config(config_data: Dict[str, Any]) -> SyncConfig:
        """
        Build a SyncConfig from already-parsed configuration data

        Args:
            config_data: Parsed TOML configuration data

        Returns:
            Validated SyncConfig
        """
        ConfigLoader._validate_required_sections(config_data)

        rate_limits = config_data['rate_limits']
        requests_per_second = float(rate_limits['requests_per_second'])
        if requests_per_second <= 0:
            raise ConfigurationError("rate_limits.requests_per_second must be positive")

        pagination = config_data.get('pagination', {})
        page_size = int(pagination.get('page_size', MAX_PAGE_SIZE))
        if page_size <= 0:
            raise ConfigurationError("pagination.page_size must be positive")

        retries = config_data.get('retries', {})
        concurrency = config_data.get('concurrency', {})
        sync = config_data.get('sync', {})

        max_workers = int(concurrency.get('max_workers', 1))
        if max_workers < 1:
            raise ConfigurationError("concurrency.max_workers must be at least 1")
        # More workers than the limiter can release per second only queue on it
        max_workers = min(max_workers, max(1, int(requests_per_second)))

        endpoints = dict(DEFAULT_ENDPOINTS)
        endpoints.update(config_data.get('endpoints', {}))

        return SyncConfig(
            name=config_data['api']['name'],
            base_url=config_data['api']['base_url'],
            token_url=config_data['authentication']['token_url'],
            authentication=config_data['authentication'],
            requests_per_second=requests_per_second,
            page_size=min(page_size, MAX_PAGE_SIZE),
            max_pages=pagination.get('max_pages'),
            max_retries=int(retries.get('max_attempts', 0)),
            backoff_factor=float(retries.get('backoff_factor', 2.0)),
            max_workers=max_workers,
            progress_interval=int(sync.get('progress_interval', 100)),
            request_timeout=float(config_data['api'].get('timeout_seconds', 30.0)),
            endpoints=endpoints,
            cache=config_data.get('cache', {}),
            logging=config_data.get('logging', {}),
        )

    @staticmethod
    def _validate_required_sections(config_data: Dict[str, Any]) -> None:
        """
        Validate that all required configuration sections and keys are present

        Args:
            config_data: Parsed TOML configuration data

        Raises:
            ConfigurationError: If any required section or key is missing
        """
        missing_items = []

        for section_name, required_keys in ConfigLoader.REQUIRED_SECTIONS.items():
            if section_name not in config_data:
                missing_items.append(f"Section [{section_name}]")
            else:
                section_data = config_data[section_name]
                for key in required_keys:
                    if key not in section_data:
                        missing_items.append(f"Key '{key}' in section [{section_name}]")

        if missing_items:
            raise ConfigurationError(
                f"Missing required configuration items: {', '.join(missing_items)}"
            )

    @staticmethod
    def validate_environment_variables(config: SyncConfig) -> bool:
        """
        Validate that all required environment variables are set

        Args:
            config: SyncConfig object to validate

        Returns:
            True if all environment variables are present

        Raises:
            EnvironmentVariableError: If any required environment variables are missing
        """
        missing_vars = []

        for key, value in config.authentication.items():
            if key.endswith('_env') and isinstance(value, str):
                if not os.getenv(value):
                    missing_vars.append(value)

        if missing_vars:
            raise EnvironmentVariableError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

        return True

    @staticmethod
    def get_environment_value(env_var_name: str) -> str:
        """
        Get environment variable value with proper error handling

        Args:
            env_var_name: Name of the environment variable

        Returns:
            Value of the environment variable

        Raises:
            EnvironmentVariableError: If environment variable is not set
        """
        value = os.getenv(env_var_name)
        if value is None:
            raise EnvironmentVariableError(f"Environment variable '{env_var_name}' is not set")
        return value

    @staticmethod
    def resolve_credentials(config: SyncConfig) -> Dict[str, Any]:
        """
        Resolve client credentials and the optional TLS client certificate

        Args:
            config: SyncConfig whose authentication section names the variables

        Returns:
            Dictionary with client_id, client_secret and cert (None, a path,
            or a (cert, key) tuple as accepted by requests)
        """
        auth = config.authentication
        cert = None
        if auth.get('cert_path_env'):
            cert_path = ConfigLoader.get_environment_value(auth['cert_path_env'])
            if auth.get('key_path_env'):
                cert = (cert_path, ConfigLoader.get_environment_value(auth['key_path_env']))
            else:
                cert = cert_path

        return {
            'client_id': ConfigLoader.get_environment_value(auth['client_id_env']),
            'client_secret': ConfigLoader.get_environment_value(auth['client_secret_env']),
            'cert': cert,
        }
