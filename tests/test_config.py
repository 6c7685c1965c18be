"""
Configuration Tests

Covers YAML loading, schema validation, defaults and template generation.
"""

import pytest
import yaml

from policy_rbac_sync.libs.core import ConfigManager
from policy_rbac_sync.libs.core.exceptions import ConfigurationError


@pytest.fixture
def config_manager():
    return ConfigManager()


class TestDefaults:
    """Test default configuration values"""

    def test_defaults(self, config_manager):
        assert config_manager.get_value('opa.url') == "https://localhost:8181"
        assert config_manager.get_value('opa.timeout') == 100
        assert config_manager.get_value('opa.verify_tls') is False
        assert config_manager.get_value('controller.key_separator') == ""
        assert config_manager.get_value('controller.subject_mode') == "first"
        assert config_manager.get_value('controller.requeue_on_sync_failure') is False

    def test_defaults_are_not_shared(self):
        first = ConfigManager()
        first.set_value('opa.url', "https://other:8181")

        assert ConfigManager().get_value('opa.url') == "https://localhost:8181"

    def test_get_value_missing_key_returns_default(self, config_manager):
        assert config_manager.get_value('opa.missing', "fallback") == "fallback"
        assert config_manager.get_value('opa.url.deeper') is None


class TestLoadConfig:
    """Test loading configuration files"""

    def test_file_values_override_defaults(self, config_manager, tmp_path):
        # Arrange
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump({
            'opa': {'url': "http://opa.opa.svc:8181", 'timeout': 30},
            'controller': {'key_separator': "_", 'subject_mode': "expand"}
        }))

        # Act
        config_manager.load_config(str(config_file))

        # Assert
        assert config_manager.get_value('opa.url') == "http://opa.opa.svc:8181"
        assert config_manager.get_value('opa.timeout') == 30
        assert config_manager.get_value('opa.retries') == 3
        assert config_manager.get_value('controller.subject_mode') == "expand"
        assert config_manager.config_file_path == str(config_file)

    def test_empty_file_keeps_defaults(self, config_manager, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        config_manager.load_config(str(config_file))

        assert config_manager.get_config() == ConfigManager.DEFAULTS

    def test_missing_file(self, config_manager, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            config_manager.load_config(str(tmp_path / "missing.yaml"))

    def test_directory_is_rejected(self, config_manager, tmp_path):
        with pytest.raises(ConfigurationError, match="not a file"):
            config_manager.load_config(str(tmp_path))

    def test_invalid_yaml(self, config_manager, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("opa: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            config_manager.load_config(str(config_file))


class TestValidation:
    """Test schema and value validation"""

    @pytest.mark.parametrize("user_config,message", [
        ({'opa': {'timeout': "fast"}}, "opa.timeout must be a int or float"),
        ({'opa': {'timeout': True}}, "opa.timeout must be a int or float"),
        ({'opa': {'verify_tls': "yes"}}, "opa.verify_tls must be a bool"),
        ({'controller': {'subject_mode': "all"}}, "controller.subject_mode must be one of"),
        ({'opa': "http://opa"}, "opa must be a dict"),
    ])
    def test_schema_errors(self, config_manager, user_config, message):
        with pytest.raises(ConfigurationError, match=message):
            config_manager.load_dict(user_config)

    @pytest.mark.parametrize("user_config", [
        {'opa': {'url': "opa:8181"}},
        {'opa': {'timeout': 0}},
        {'opa': {'retries': -1}},
        {'opa': {'backoff_factor': -0.5}},
        {'controller': {'namespace': "Bad_Namespace"}},
        {'controller': {'reconcile_timeout': 0}},
    ])
    def test_value_errors(self, config_manager, user_config):
        with pytest.raises(ConfigurationError):
            config_manager.load_dict(user_config)

    def test_non_mapping_is_rejected(self, config_manager):
        with pytest.raises(ConfigurationError):
            config_manager.load_dict(["opa"])

    def test_unknown_keys_are_accepted(self, config_manager):
        config_manager.load_dict({'opa': {'token': "abc"}, 'extra': 1})

        assert config_manager.get_value('opa.token') == "abc"
        assert config_manager.get_value('extra') is None

    def test_none_values_keep_defaults(self, config_manager):
        config_manager.load_dict({'opa': {'url': None}})

        assert config_manager.get_value('opa.url') == "https://localhost:8181"


class TestTemplate:
    """Test configuration template generation"""

    def test_template_content_is_loadable(self, config_manager):
        content = config_manager.get_config_template_content()

        assert content.startswith("# Policy RBAC Sync Configuration File")
        assert yaml.safe_load(content) == ConfigManager.DEFAULTS

    def test_generate_template_writes_file(self, config_manager, tmp_path):
        output_dir = tmp_path / "out"

        path = config_manager.generate_config_template(str(output_dir))

        assert path == str(output_dir / "policy-rbac-sync-config.yaml")
        loaded = ConfigManager()
        loaded.load_config(path)
        assert loaded.get_config() == ConfigManager.DEFAULTS
