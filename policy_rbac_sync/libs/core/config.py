"""
Configuration Management

Handles loading, validating and defaulting the controller configuration file.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict

import yaml

from .constants import ControllerConstants, FileConstants, NetworkConstants
from .exceptions import ConfigurationError
from .utils import validate_namespace, validate_url

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages configuration loading and validation"""

    # Configuration schema - defines expected structure and types
    CONFIG_SCHEMA = {
        'opa': {
            'type': dict,
            'required': False,
            'fields': {
                'url': {'type': str, 'required': False},
                'timeout': {'type': (int, float), 'required': False},
                'verify_tls': {'type': bool, 'required': False},
                'ca_cert': {'type': str, 'required': False},
                'retries': {'type': int, 'required': False},
                'backoff_factor': {'type': (int, float), 'required': False}
            }
        },
        'controller': {
            'type': dict,
            'required': False,
            'fields': {
                'namespace': {'type': str, 'required': False},
                'key_separator': {'type': str, 'required': False},
                'subject_mode': {
                    'type': str,
                    'required': False,
                    'choices': [mode.value for mode in ControllerConstants.SubjectMode]
                },
                'reconcile_timeout': {'type': (int, float), 'required': False},
                'requeue_on_sync_failure': {'type': bool, 'required': False},
                'record_events': {'type': bool, 'required': False}
            }
        },
        'global': {
            'type': dict,
            'required': False,
            'fields': {
                'debug': {'type': bool, 'required': False},
                'skip_tls': {'type': bool, 'required': False},
                'kubeconfig': {'type': str, 'required': False}
            }
        },
    }

    DEFAULTS = {
        'opa': {
            'url': NetworkConstants.DEFAULT_OPA_URL,
            'timeout': NetworkConstants.DEFAULT_TIMEOUT,
            'verify_tls': False,
            'ca_cert': '',
            'retries': NetworkConstants.DEFAULT_RETRIES,
            'backoff_factor': NetworkConstants.DEFAULT_BACKOFF_FACTOR
        },
        'controller': {
            'namespace': '',
            'key_separator': ControllerConstants.DEFAULT_KEY_SEPARATOR,
            'subject_mode': ControllerConstants.SubjectMode.FIRST.value,
            'reconcile_timeout': NetworkConstants.DEFAULT_RECONCILE_TIMEOUT,
            'requeue_on_sync_failure': False,
            'record_events': True
        },
        'global': {
            'debug': False,
            'skip_tls': False,
            'kubeconfig': ''
        }
    }

    def __init__(self):
        """Initialize configuration manager with defaults"""
        self.config_data = copy.deepcopy(self.DEFAULTS)
        self.config_file_path = None

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file and merge it over the defaults

        Args:
            config_path: Path to configuration file

        Returns:
            Dict containing configuration data

        Raises:
            ConfigurationError: If configuration file cannot be loaded or is invalid
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if not config_file.is_file():
            raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_file, 'r') as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration from {config_path}: {e}")

        self.load_dict(user_config)
        self.config_file_path = config_path
        logger.info(f"Successfully loaded configuration from {config_path}")

        return self.config_data

    def load_dict(self, user_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a configuration mapping and merge it over the defaults

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not isinstance(user_config, dict):
            raise ConfigurationError("Configuration must be a dictionary")

        self._validate_against_schema(user_config, self.CONFIG_SCHEMA, "")

        merged = copy.deepcopy(self.DEFAULTS)
        for section, values in user_config.items():
            if isinstance(values, dict) and section in merged:
                merged[section].update({k: v for k, v in values.items() if v is not None})

        self.config_data = merged
        self._validate_values()
        return self.config_data

    def _validate_against_schema(self, data: Dict[str, Any], schema: Dict[str, Any], path: str = "") -> None:
        """
        Validate data against schema definition

        Raises:
            ConfigurationError: If data doesn't match schema
        """
        for key in data:
            if key not in schema:
                logger.warning(f"Ignoring unknown configuration key: {f'{path}.{key}' if path else key}")

        for key, field_schema in schema.items():
            current_path = f"{path}.{key}" if path else key

            if key in data:
                value = data[key]

                # Skip None values for optional fields
                if value is None and not field_schema.get('required', False):
                    continue

                expected_type = field_schema['type']
                # bool is an int subclass; never accept it for numeric fields
                if not isinstance(value, expected_type) or (
                        isinstance(value, bool) and expected_type is not bool):
                    if isinstance(expected_type, tuple):
                        type_name = " or ".join(t.__name__ for t in expected_type)
                    else:
                        type_name = expected_type.__name__
                    raise ConfigurationError(f"{current_path} must be a {type_name}")

                if 'choices' in field_schema and value not in field_schema['choices']:
                    choices_str = ', '.join(f"'{c}'" for c in field_schema['choices'])
                    raise ConfigurationError(f"{current_path} must be one of: {choices_str}")

                if expected_type == dict and 'fields' in field_schema:
                    self._validate_against_schema(value, field_schema['fields'], current_path)

            elif field_schema.get('required', False):
                raise ConfigurationError(f"Required field {current_path} is missing")

    def _validate_values(self) -> None:
        """Validate semantic constraints the schema cannot express"""
        opa = self.config_data['opa']
        validate_url(opa['url'])

        if opa['timeout'] <= 0:
            raise ConfigurationError("opa.timeout must be greater than 0")
        if opa['retries'] < 0:
            raise ConfigurationError("opa.retries must not be negative")
        if opa['backoff_factor'] < 0:
            raise ConfigurationError("opa.backoff_factor must not be negative")

        controller = self.config_data['controller']
        if controller['namespace']:
            validate_namespace(controller['namespace'])
        if controller['reconcile_timeout'] <= 0:
            raise ConfigurationError("controller.reconcile_timeout must be greater than 0")

    def get_config(self) -> Dict[str, Any]:
        """Get a copy of the current configuration data"""
        return copy.deepcopy(self.config_data)

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get specific configuration section

        Args:
            section: Section name (e.g., 'opa', 'controller')

        Returns:
            Dict containing section data, empty dict if section doesn't exist
        """
        return dict(self.config_data.get(section, {}))

    def get_value(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key

        Args:
            key: Configuration key (supports dot notation like 'opa.url')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config_data

        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set_value(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation"""
        *parents, leaf = key.split('.')
        target = self.config_data
        for k in parents:
            target = target.setdefault(k, {})
        target[leaf] = value

    def get_config_template_content(self) -> str:
        """
        Generate configuration template content as string without file I/O

        Returns:
            str: YAML configuration template content
        """
        header = (
            "# Policy RBAC Sync Configuration File\n"
            "# Controls how Policy role bindings are synchronized into OPA\n"
            "#\n"
            "# controller.subject_mode: 'first' uses the first subject of each RoleBinding,\n"
            "#   'expand' emits one ACL rule per subject\n"
            "# controller.key_separator: inserted between namespace and name in ACL keys\n"
            "# controller.namespace: empty string watches every namespace\n"
        )
        body = yaml.safe_dump(self.DEFAULTS, default_flow_style=False, sort_keys=False)
        return f"{header}\n{body}"

    def generate_config_template(self, output_dir: str = None) -> str:
        """
        Generate configuration template file

        Args:
            output_dir: Directory to save template (optional)

        Returns:
            str: Path to generated template file

        Raises:
            ConfigurationError: If template generation fails
        """
        try:
            if output_dir:
                output_path = Path(output_dir)
                output_path.mkdir(parents=True, exist_ok=True)
                config_file = output_path / FileConstants.DEFAULT_CONFIG_FILE
            else:
                config_file = Path(FileConstants.DEFAULT_CONFIG_FILE)

            with open(config_file, 'w') as f:
                f.write(self.get_config_template_content())

            logger.info(f"Configuration template generated: {config_file}")
            return str(config_file)

        except OSError as e:
            raise ConfigurationError(f"Failed to generate configuration template: {e}")
