"""Unit tests for settings loading and logging configuration."""

import pytest
from pydantic import ValidationError

from panacea.config import ConfigLoader, ControllerSettings, load_settings, verbosity_to_level
from panacea.config.logging import StructuredLogger, get_logging_config
from panacea.models.ingress import EmptyClassPolicy

SETTINGS_ENV = (
    "INGRESS_CLASS", "LISTEN", "KUBECONFIG", "RESYNC_PERIOD", "NAMESPACE",
    "VERBOSITY", "LOG_FORMAT", "LOG_FILE", "EMPTY_CLASS_POLICY", "PROXY__HTTP2", "PROXY__READ_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove settings variables inherited from the test environment."""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


class TestControllerSettings:
    """Test cases for controller settings."""

    def test_default_settings(self):
        """Test defaults match the documented flag defaults."""
        settings = ControllerSettings()

        assert settings.ingress_class == "panacea-ingress-class"
        assert settings.listen == "0.0.0.0:80"
        assert settings.kubeconfig == ""
        assert settings.resync_period == 30
        assert settings.namespace == ""
        assert settings.verbosity == 0
        assert settings.log_format == "text"
        assert settings.empty_class_policy == EmptyClassPolicy.NONE
        assert settings.proxy.max_connections == 100
        assert settings.proxy.idle_timeout == 90.0

    def test_settings_from_environment(self, monkeypatch):
        """Environment variables use the upper-cased field names."""
        monkeypatch.setenv("INGRESS_CLASS", "internal")
        monkeypatch.setenv("LISTEN", ":8080")
        monkeypatch.setenv("RESYNC_PERIOD", "0")
        monkeypatch.setenv("NAMESPACE", "team-a")
        monkeypatch.setenv("EMPTY_CLASS_POLICY", "all")
        monkeypatch.setenv("PROXY__HTTP2", "false")
        monkeypatch.setenv("PROXY__READ_TIMEOUT", "5")
        monkeypatch.setenv("LOG_FILE", "/var/log/panacea.log")

        settings = ControllerSettings()

        assert settings.ingress_class == "internal"
        assert settings.listen == ":8080"
        assert settings.resync_period == 0
        assert settings.namespace == "team-a"
        assert settings.empty_class_policy == EmptyClassPolicy.ALL
        assert settings.proxy.http2 is False
        assert settings.proxy.read_timeout == 5.0
        assert settings.log_file == "/var/log/panacea.log"

    def test_invalid_settings_rejected(self):
        """Invalid values fail validation."""
        with pytest.raises(ValidationError):
            ControllerSettings(log_format="xml")
        with pytest.raises(ValidationError):
            ControllerSettings(resync_period=-1)
        with pytest.raises(ValidationError):
            ControllerSettings(empty_class_policy="some")


class TestConfigLoader:
    """Test cases for the YAML configuration loader."""

    def test_load_without_file(self):
        """Without a file, overrides apply on top of defaults."""
        settings = ConfigLoader().load({"namespace": "prod", "verbosity": None})

        assert settings.namespace == "prod"
        assert settings.verbosity == 0

    def test_load_yaml_file(self, tmp_path):
        """Values from the YAML file are applied."""
        config_file = tmp_path / "controller.yaml"
        config_file.write_text(
            "ingress_class: edge\n"
            "resync_period: 60\n"
            "proxy:\n"
            "  max_connections: 20\n"
        )

        settings = load_settings(config_file)

        assert settings.ingress_class == "edge"
        assert settings.resync_period == 60
        assert settings.proxy.max_connections == 20
        assert settings.proxy.read_timeout == 30.0

    def test_overrides_win_over_file(self, tmp_path):
        """Command-line overrides take precedence over the file."""
        config_file = tmp_path / "controller.yaml"
        config_file.write_text("ingress_class: edge\nnamespace: from-file\n")

        settings = load_settings(config_file, ingress_class="cli", namespace=None)

        assert settings.ingress_class == "cli"
        assert settings.namespace == "from-file"

    def test_env_var_substitution(self, tmp_path, monkeypatch):
        """${VAR} and ${VAR:default} references are substituted."""
        monkeypatch.setenv("EDGE_CLASS", "edge-from-env")
        config_file = tmp_path / "controller.yaml"
        config_file.write_text(
            "ingress_class: ${EDGE_CLASS}\n"
            "namespace: ${UNSET_NAMESPACE_VAR:fallback}\n"
        )

        settings = load_settings(config_file)

        assert settings.ingress_class == "edge-from-env"
        assert settings.namespace == "fallback"

    def test_non_mapping_file_rejected(self, tmp_path):
        """A YAML file that is not a mapping is an error."""
        config_file = tmp_path / "controller.yaml"
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ValueError):
            load_settings(config_file)

    def test_missing_file_raises(self, tmp_path):
        """A missing file is reported, not ignored."""
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "missing.yaml")

    def test_merge_configs(self):
        """Nested mappings are merged key by key."""
        loader = ConfigLoader()

        merged = loader._merge_configs(
            {"proxy": {"http2": True, "read_timeout": 30}, "namespace": "a"},
            {"proxy": {"read_timeout": 5}}
        )

        assert merged == {"proxy": {"http2": True, "read_timeout": 5}, "namespace": "a"}


class TestLoggingConfig:
    """Test cases for logging configuration."""

    def test_verbosity_to_level(self):
        assert verbosity_to_level(0) == "INFO"
        assert verbosity_to_level(1) == "DEBUG"
        assert verbosity_to_level(5) == "DEBUG"

    def test_text_logging_config(self):
        """Text output uses the detailed formatter."""
        config = get_logging_config(log_level="DEBUG", log_format="text")

        assert config["handlers"]["console"]["formatter"] == "detailed"
        assert config["loggers"]["panacea"]["level"] == "DEBUG"
        assert config["loggers"]["kubernetes"]["level"] == "WARNING"
        assert "file" not in config["handlers"]

    def test_json_logging_config(self, tmp_path):
        """JSON output uses python-json-logger and may add a file handler."""
        config = get_logging_config(log_format="json", log_file=str(tmp_path / "controller.log"))

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["formatters"]["json"]["()"] == "pythonjsonlogger.json.JsonFormatter"
        assert config["handlers"]["file"]["formatter"] == "json"
        assert "file" in config["loggers"]["panacea"]["handlers"]

    def test_structured_logger_log_request(self, caplog):
        """Access records carry request fields as attributes."""
        logger = StructuredLogger("panacea.test")

        with caplog.at_level("INFO", logger="panacea.test"):
            logger.log_request("GET", "example.com", "/api", 200, 1.5, client_ip="10.0.0.1")

        record = caplog.records[-1]
        assert record.method == "GET"
        assert record.host == "example.com"
        assert record.status_code == 200
        assert record.client_ip == "10.0.0.1"
