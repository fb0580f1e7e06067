"""Tests for configuration loading and validation."""

import pytest

from telemetripy.core.config import (
    ErrorTrackingConfig,
    LoggingConfig,
    MonitoringConfig,
    PerformanceConfig,
    development_config,
    production_config,
)
from telemetripy.core.exceptions import ConfigurationError
from telemetripy.core.models import AlertRule, PerformanceBudget

pytestmark = pytest.mark.tier(1)


class TestValidation:
    """Tests for section validation."""

    @pytest.mark.core
    def test_defaults_are_valid(self) -> None:
        config = MonitoringConfig().validate()
        assert config.error_tracking.sample_rate == 1.0
        assert config.logging.buffer_size == 100
        assert config.performance.budgets is None

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("config", "option"),
        [
            (MonitoringConfig(error_tracking=ErrorTrackingConfig(sample_rate=1.5)), "error_tracking.sample_rate"),
            (MonitoringConfig(error_tracking=ErrorTrackingConfig(max_errors=0)), "error_tracking.max_errors"),
            (MonitoringConfig(logging=LoggingConfig(level="loud")), "logging.level"),
            (MonitoringConfig(logging=LoggingConfig(buffer_size=-5)), "logging.buffer_size"),
            (MonitoringConfig(logging=LoggingConfig(sample_rate=float("nan"))), "logging.sample_rate"),
            (MonitoringConfig(performance=PerformanceConfig(memory_interval=-1)), "performance.memory_interval"),
            (MonitoringConfig(namespace="bad-name"), "namespace"),
            (MonitoringConfig(service=""), "service"),
        ],
    )
    def test_invalid_option_is_named(self, config: MonitoringConfig, option: str) -> None:
        with pytest.raises(ConfigurationError, match=option):
            config.validate()

    @pytest.mark.core
    def test_level_is_normalized(self) -> None:
        config = LoggingConfig(level="WARNING")
        config.validate()
        assert config.level == "warn"

    @pytest.mark.core
    def test_mapping_rules_and_budgets_are_converted(self) -> None:
        errors = ErrorTrackingConfig(
            alert_rules=[
                {"id": "r", "name": "R", "condition": {"threshold": 1, "timeWindow": 1}}
            ]
        )
        performance = PerformanceConfig(budgets=[{"metric": "LCP", "threshold": 2500}])
        errors.validate()
        performance.validate()
        assert isinstance(errors.alert_rules[0], AlertRule)
        assert performance.budgets == [PerformanceBudget(metric="LCP", threshold=2500)]


class TestFromMapping:
    """Tests for MonitoringConfig.from_mapping()."""

    @pytest.mark.core
    def test_camel_case_nested_sections(self) -> None:
        config = MonitoringConfig.from_mapping(
            {
                "service": "checkout",
                "reportInterval": 30,
                "errorTracking": {"sampleRate": 0.5, "maxErrors": 50},
                "logging": {"level": "debug", "bufferSize": 10},
                "performance": {"enableMemoryMonitoring": False},
            }
        )
        assert config.service == "checkout"
        assert config.report_interval == 30
        assert config.error_tracking.sample_rate == 0.5
        assert config.error_tracking.max_errors == 50
        assert config.logging.buffer_size == 10
        assert config.performance.enable_memory_monitoring is False

    @pytest.mark.core
    def test_unknown_keys_raise(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown logging option"):
            MonitoringConfig.from_mapping({"logging": {"colour": True}})
        with pytest.raises(ConfigurationError, match="Unknown config option"):
            MonitoringConfig.from_mapping({"verbosity": 3})

    @pytest.mark.core
    def test_section_must_be_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match="logging must be a mapping"):
            MonitoringConfig.from_mapping({"logging": "debug"})


class TestFromEnv:
    """Tests for MonitoringConfig.from_env()."""

    @pytest.mark.core
    def test_reads_prefixed_variables(self) -> None:
        config = MonitoringConfig.from_env(
            {
                "TELEMETRIPY_SERVICE": "billing",
                "TELEMETRIPY_ERROR_SAMPLE_RATE": "0.25",
                "TELEMETRIPY_LOG_LEVEL": "error",
                "TELEMETRIPY_LOG_CONSOLE": "off",
                "TELEMETRIPY_LOG_BLOCK_COMPONENTS": "health, metrics",
                "TELEMETRIPY_MEMORY_MONITORING": "no",
                "UNRELATED": "ignored",
            }
        )
        assert config.service == "billing"
        assert config.error_tracking.sample_rate == 0.25
        assert config.logging.level == "error"
        assert config.logging.console is False
        assert config.logging.block_components == ["health", "metrics"]
        assert config.performance.enable_memory_monitoring is False

    @pytest.mark.core
    def test_unparseable_value_names_variable(self) -> None:
        with pytest.raises(ConfigurationError, match="TELEMETRIPY_LOG_CONSOLE"):
            MonitoringConfig.from_env({"TELEMETRIPY_LOG_CONSOLE": "maybe"})
        with pytest.raises(ConfigurationError, match="TELEMETRIPY_MAX_ERRORS"):
            MonitoringConfig.from_env({"TELEMETRIPY_MAX_ERRORS": "many"})


class TestPresets:
    """Tests for the environment presets."""

    @pytest.mark.core
    def test_development_is_verbose(self) -> None:
        config = development_config(service="checkout")
        assert config.environment == "development"
        assert config.logging.level == "debug"
        assert config.error_tracking.enable_alerts is False
        assert config.service == "checkout"

    @pytest.mark.core
    def test_production_is_sampled(self) -> None:
        config = production_config()
        assert config.environment == "production"
        assert config.error_tracking.sample_rate == 0.1
        assert config.logging.level == "warn"
        assert config.logging.console is False

    @pytest.mark.core
    def test_unknown_override_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown config option: colour"):
            production_config(colour="blue")
