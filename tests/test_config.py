"""Tests for lbmon.config — YAML and environment configuration."""

import dataclasses
import textwrap

import pytest

from lbmon.config import ConfigError, MonitorConfig, load_config


@pytest.fixture(autouse=True)
def no_default_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Never pick up a real ~/.lbmon/config.yaml during tests."""
    monkeypatch.setattr("lbmon.config.DEFAULT_CONFIG_PATH", tmp_path / "nope.yaml")


class TestMonitorConfigDefaults:
    """MonitorConfig should provide sensible defaults for every field."""

    def test_timing_defaults(self) -> None:
        cfg = MonitorConfig()
        assert cfg.poll_interval == 60
        assert cfg.dial_timeout == 5
        assert cfg.dns_timeout == 5

    def test_probe_defaults(self) -> None:
        cfg = MonitorConfig()
        assert cfg.port == 443
        assert cfg.ns_aware is True
        assert cfg.dns_resolver == "8.8.8.8"

    def test_optional_backends_disabled(self) -> None:
        cfg = MonitorConfig()
        assert cfg.metrics_port is None
        assert cfg.sentry_dsn is None
        assert cfg.upstream_hostname is None
        assert cfg.debug is False

    def test_is_immutable(self) -> None:
        cfg = MonitorConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.poll_interval = 1  # type: ignore[misc]


class TestLoadConfigEnvironment:
    """load_config() reads the environment mapping."""

    def test_hostnames_split_on_commas(self) -> None:
        cfg = load_config(environ={"HOSTNAMES": "a.example.com, b.example.com,,"})
        assert cfg.hostnames == ("a.example.com", "b.example.com")

    def test_missing_hostnames_raises(self) -> None:
        with pytest.raises(ConfigError, match="HOSTNAMES"):
            load_config(environ={})

    def test_missing_hostnames_allowed_when_not_required(self) -> None:
        cfg = load_config(environ={}, require_hostnames=False)
        assert cfg.hostnames == ()

    def test_numeric_values(self) -> None:
        cfg = load_config(
            environ={
                "HOSTNAMES": "example.com",
                "POLL_INTERVAL": "30",
                "DIAL_TIMEOUT": "2.5",
                "DNS_TIMEOUT": "3",
                "PROBE_PORT": "8443",
                "METRICS_PORT": "9100",
            }
        )
        assert cfg.poll_interval == 30
        assert cfg.dial_timeout == 2.5
        assert cfg.dns_timeout == 3
        assert cfg.port == 8443
        assert cfg.metrics_port == 9100

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("POLL_INTERVAL", "soon"),
            ("DIAL_TIMEOUT", "-1"),
            ("DNS_TIMEOUT", "0"),
            ("PROBE_PORT", "https"),
            ("METRICS_PORT", "70000"),
        ],
    )
    def test_unparsable_numbers_raise(self, key: str, value: str) -> None:
        with pytest.raises(ConfigError):
            load_config(environ={"HOSTNAMES": "example.com", key: value})

    def test_debug_flag(self) -> None:
        cfg = load_config(environ={"HOSTNAMES": "example.com", "DEBUG": "true"})
        assert cfg.debug is True

    def test_ns_aware_can_be_disabled(self) -> None:
        cfg = load_config(environ={"HOSTNAMES": "example.com", "NS_AWARE": "false"})
        assert cfg.ns_aware is False

    def test_invalid_flag_raises(self) -> None:
        with pytest.raises(ConfigError, match="ns_aware"):
            load_config(environ={"HOSTNAMES": "example.com", "NS_AWARE": "maybe"})

    @pytest.mark.parametrize("value", ["verbose", "maybe", "0", "off"])
    def test_unrecognised_debug_value_means_off(self, value: str) -> None:
        cfg = load_config(environ={"HOSTNAMES": "example.com", "DEBUG": value})
        assert cfg.debug is False

    def test_debug_accepts_any_true_word(self) -> None:
        cfg = load_config(environ={"HOSTNAMES": "example.com", "DEBUG": " Yes "})
        assert cfg.debug is True

    def test_empty_values_ignored(self) -> None:
        cfg = load_config(environ={"HOSTNAMES": "example.com", "POLL_INTERVAL": ""})
        assert cfg.poll_interval == 60

    def test_upstream_and_sentry(self) -> None:
        cfg = load_config(
            environ={
                "HOSTNAMES": "example.com",
                "UPSTREAM_HOSTNAME": "upstream.example.com",
                "SENTRY_DSN": "https://key@sentry.example.com/1",
                "SENTRY_ENVIRONMENT": "staging",
            }
        )
        assert cfg.upstream_hostname == "upstream.example.com"
        assert cfg.sentry_dsn == "https://key@sentry.example.com/1"
        assert cfg.sentry_environment == "staging"

    def test_metrics_source_falls_back_to_dyno(self) -> None:
        cfg = load_config(environ={"HOSTNAMES": "example.com", "DYNO": "web.1"})
        assert cfg.metrics_source == "web.1"

    def test_metrics_source_explicit_wins(self) -> None:
        cfg = load_config(
            environ={
                "HOSTNAMES": "example.com",
                "DYNO": "web.1",
                "METRICS_SOURCE": "lb-monitor-1",
            }
        )
        assert cfg.metrics_source == "lb-monitor-1"

    def test_metrics_source_defaults_to_machine_hostname(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("lbmon.config.socket.gethostname", lambda: "box-7")
        cfg = load_config(environ={"HOSTNAMES": "example.com"})
        assert cfg.metrics_source == "box-7"

    def test_explicit_hostnames_override(self) -> None:
        cfg = load_config(
            environ={"HOSTNAMES": "a.example.com"},
            hostnames=["c.example.com"],
        )
        assert cfg.hostnames == ("c.example.com",)

    def test_duplicate_hostnames_collapse(self) -> None:
        cfg = load_config(environ={"HOSTNAMES": "a.example.com, b.example.com,a.example.com"})
        assert cfg.hostnames == ("a.example.com", "b.example.com")

    def test_hostnames_sharing_a_gauge_name_raise(self) -> None:
        with pytest.raises(ConfigError, match="lb_monitor_a_b_example_com_borked"):
            load_config(environ={"HOSTNAMES": "a-b.example.com,a.b.example.com"})

    def test_gauge_collision_in_explicit_hostnames_raises(self) -> None:
        with pytest.raises(ConfigError, match="a-b.example.com and a.b.example.com"):
            load_config(environ={}, hostnames=["a-b.example.com", "a.b.example.com"])


class TestLoadConfigFile:
    """load_config(path=...) with a YAML file."""

    def test_full_config(self, tmp_path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            textwrap.dedent("""\
                hostnames:
                  - a.example.com
                  - b.example.com
                poll_interval: 15
                dial_timeout: 2
                port: 8443
                ns_aware: false
                upstream_hostname: up.example.com
                debug: true
                metrics_port: 9100
            """),
            encoding="utf-8",
        )

        cfg = load_config(cfg_file, environ={})

        assert cfg.hostnames == ("a.example.com", "b.example.com")
        assert cfg.poll_interval == 15
        assert cfg.dial_timeout == 2
        assert cfg.port == 8443
        assert cfg.ns_aware is False
        assert cfg.upstream_hostname == "up.example.com"
        assert cfg.debug is True
        assert cfg.metrics_port == 9100

    def test_environment_overrides_file(self, tmp_path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "hostnames: a.example.com\npoll_interval: 15\n", encoding="utf-8"
        )

        cfg = load_config(cfg_file, environ={"POLL_INTERVAL": "90"})

        assert cfg.hostnames == ("a.example.com",)
        assert cfg.poll_interval == 90

    def test_default_location_is_used(self, tmp_path, monkeypatch) -> None:
        default = tmp_path / "default.yaml"
        default.write_text("hostnames: [a.example.com]\n", encoding="utf-8")
        monkeypatch.setattr("lbmon.config.DEFAULT_CONFIG_PATH", default)

        cfg = load_config(environ={})

        assert cfg.hostnames == ("a.example.com",)

    def test_unknown_keys_are_ignored(self, tmp_path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "hostnames: [a.example.com]\nsome_future_key: true\n", encoding="utf-8"
        )

        cfg = load_config(cfg_file, environ={})

        assert cfg.hostnames == ("a.example.com",)

    def test_empty_file_uses_environment(self, tmp_path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("", encoding="utf-8")

        cfg = load_config(cfg_file, environ={"HOSTNAMES": "a.example.com"})

        assert cfg.hostnames == ("a.example.com",)

    def test_explicit_path_not_found_raises(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(tmp_path / "nonexistent.yaml", environ={})

    def test_invalid_yaml_raises_config_error(self, tmp_path) -> None:
        cfg_file = tmp_path / "bad.yaml"
        cfg_file.write_text(":\n  - :\n    bad: [", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(cfg_file, environ={})

    def test_non_mapping_top_level_raises(self, tmp_path) -> None:
        cfg_file = tmp_path / "list.yaml"
        cfg_file.write_text("- one\n- two\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(cfg_file, environ={})

    def test_bad_hostnames_type_raises(self, tmp_path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("hostnames: 42\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="hostnames"):
            load_config(cfg_file, environ={})
