"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict
from urllib.parse import urlparse

import yaml


DEFAULT_CONFIG_PATH = "config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    'bookstack': {
        'base_url': None,
        'token_id': None,
        'token_secret': None,
        'page_size': 100
    },
    'wikijs': {
        'base_url': None,
        'api_key': None,
        'default_user_email': None,
        'default_user_id': None,
        'default_locale': 'en',
        'default_editor': 'markdown',
        'upload_folder': ''
    },
    'sync': {
        'state_path': './sync-state.json',
        'assets_dir': './sync-assets',
        'hierarchy_separator': '/',
        'include_drafts': False,
        'dry_run': False,
        'skip_user_mapping': False,
        'incremental': False,
        'max_workers': 1,
        'missing_asset_locator': '/missing-asset',
        'progress_bars': True
    },
    'advanced': {
        'request_timeout': 30,
        'upload_timeout': 60,
        'max_retries': 3,
        'retry_backoff_factor': 0.5,
        'rate_limit': 0,
        'verify_ssl': True
    },
    'logging': {
        'level': None,
        'file': None
    }
}

CONFIG_TEMPLATE = """\
# BookStack to Wiki.js sync configuration
# Values of the form ${VAR} are read from the environment.

bookstack:
  base_url: https://bookstack.example.com
  token_id: ${BOOKSTACK_TOKEN_ID}
  token_secret: ${BOOKSTACK_TOKEN_SECRET}
  page_size: 100

wikijs:
  base_url: https://wiki.example.com
  api_key: ${WIKIJS_API_KEY}
  # Identity used when a BookStack user has no Wiki.js account
  default_user_email: admin@example.com
  # default_user_id: 1
  default_locale: en
  default_editor: markdown
  upload_folder: ""

sync:
  state_path: ./sync-state.json
  assets_dir: ./sync-assets
  hierarchy_separator: /
  include_drafts: false
  dry_run: false
  skip_user_mapping: false
  incremental: false
  max_workers: 1
  missing_asset_locator: /missing-asset
  progress_bars: true

advanced:
  request_timeout: 30
  upload_timeout: 60
  max_retries: 3
  retry_backoff_factor: 0.5
  rate_limit: 0
  verify_ssl: true

logging:
  level: INFO
  # file: ./sync.log
"""


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``base`` with ``override`` merged in, recursing into dicts."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        The file is merged over ``DEFAULT_CONFIG``.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        config_data = cls._substitute_env_vars_recursive(config_data)

        return deep_merge(DEFAULT_CONFIG, config_data)

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        for field in ('bookstack.base_url', 'bookstack.token_id', 'bookstack.token_secret',
                      'wikijs.base_url', 'wikijs.api_key'):
            cls._validate_required_field(config, field)

        cls._validate_url(get_nested(config, 'bookstack.base_url'), 'bookstack.base_url')
        cls._validate_url(get_nested(config, 'wikijs.base_url'), 'wikijs.base_url')

        for field in ('bookstack.page_size', 'sync.max_workers', 'advanced.max_retries'):
            value = get_nested(config, field)
            if field == 'advanced.max_retries':
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    raise ValueError(f"{field} must be a non-negative integer")
            elif not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ValueError(f"{field} must be a positive integer")

        for field in ('advanced.request_timeout', 'advanced.upload_timeout'):
            value = get_nested(config, field)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"{field} must be a positive number")

        rate_limit = get_nested(config, 'advanced.rate_limit', 0)
        if not isinstance(rate_limit, (int, float)) or rate_limit < 0:
            raise ValueError("advanced.rate_limit must be a non-negative number")

        for field in ('sync.include_drafts', 'sync.dry_run', 'sync.skip_user_mapping',
                      'sync.incremental', 'sync.progress_bars', 'advanced.verify_ssl'):
            if not isinstance(get_nested(config, field), bool):
                raise ValueError(f"{field} must be a boolean")

        for field in ('sync.state_path', 'sync.assets_dir', 'sync.hierarchy_separator',
                      'sync.missing_asset_locator'):
            cls._validate_required_field(config, field)

        default_user_id = get_nested(config, 'wikijs.default_user_id')
        if default_user_id is not None and (not isinstance(default_user_id, int) or isinstance(default_user_id, bool)):
            raise ValueError("wikijs.default_user_id must be an integer")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = deep_merge(DEFAULT_CONFIG, config)

        if getattr(args, 'state_path', None):
            merged['sync']['state_path'] = args.state_path

        if getattr(args, 'dry_run', None) is not None:
            merged['sync']['dry_run'] = args.dry_run

        if getattr(args, 'skip_users', False):
            merged['sync']['skip_user_mapping'] = True

        if getattr(args, 'include_drafts', False):
            merged['sync']['include_drafts'] = True

        if getattr(args, 'incremental', False):
            merged['sync']['incremental'] = True

        if getattr(args, 'workers', None):
            merged['sync']['max_workers'] = args.workers

        if getattr(args, 'no_progress', False):
            merged['sync']['progress_bars'] = False

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        verbose = getattr(args, 'verbose', 0) or 0
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1:
            merged['logging']['level'] = 'INFO'

        return merged

    @staticmethod
    def write_template(path: str, overwrite: bool = False) -> None:
        """
        Write a commented configuration template.

        Raises:
            FileExistsError: If ``path`` exists and ``overwrite`` is False
        """
        if os.path.exists(path) and not overwrite:
            raise FileExistsError(f"Configuration file already exists: {path}")

        with open(path, 'w', encoding='utf-8') as f:
            f.write(CONFIG_TEMPLATE)

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config_section: dict, field: str) -> None:
        """Validate that a required field exists and has a value."""
        value = get_nested(config_section, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field}")

        if isinstance(value, str) and '${' in value:
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            var_name = match.group(1) if match else value
            raise ValueError(
                f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                f"Please set the {var_name} environment variable or provide a value in config file."
            )

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        """Validate URL format."""
        parsed = urlparse(url)
        if not parsed.scheme or parsed.scheme not in ['http', 'https']:
            raise ValueError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} missing hostname: {url}")


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "bookstack.base_url")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    value = config

    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'get_nested', 'deep_merge', 'DEFAULT_CONFIG', 'DEFAULT_CONFIG_PATH']
