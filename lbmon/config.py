"""Configuration loading from a YAML file and environment variables."""

import logging
import os
import socket
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from lbmon.metrics import metric_name

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".lbmon"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"


@dataclass(frozen=True)
class MonitorConfig:
    """Process-wide settings, built once at startup and shared read-only.

    Attributes:
        hostnames: Hostnames to monitor, one loop each.
        poll_interval: Seconds to wait between poll cycles.
        dial_timeout: Seconds allowed for each TCP connection attempt.
        dns_timeout: Seconds allowed for each DNS exchange.
        dns_resolver: Recursive resolver asked for NS records.
        port: TCP port probed on every address.
        ns_aware: Resolve through each authoritative nameserver rather
            than with a single system lookup.
        upstream_hostname: Reference hostname whose addresses are
            compared against failing ones, or None.
        debug: Log every probe result, not only failures.
        metrics_port: Port for the Prometheus endpoint; None disables
            metrics.
        metrics_host: Bind address for the Prometheus endpoint.
        metrics_source: Value of the ``source`` label on every gauge.
        sentry_dsn: Sentry DSN; None means errors are only logged.
        sentry_environment: Sentry environment tag.
    """

    hostnames: tuple[str, ...] = ()
    poll_interval: float = 60
    dial_timeout: float = 5
    dns_timeout: float = 5
    dns_resolver: str = "8.8.8.8"
    port: int = 443
    ns_aware: bool = True
    upstream_hostname: str | None = None
    debug: bool = False
    metrics_port: int | None = None
    metrics_host: str = "0.0.0.0"
    metrics_source: str = field(default_factory=lambda: socket.gethostname())
    sentry_dsn: str | None = None
    sentry_environment: str | None = None


class ConfigError(Exception):
    """Raised when the configuration is missing, malformed, or unparsable."""


# Environment variables that map to MonitorConfig fields.
_ENV_KEY_TO_FIELD: dict[str, str] = {
    "HOSTNAMES": "hostnames",
    "POLL_INTERVAL": "poll_interval",
    "DIAL_TIMEOUT": "dial_timeout",
    "DNS_TIMEOUT": "dns_timeout",
    "DNS_RESOLVER": "dns_resolver",
    "PROBE_PORT": "port",
    "NS_AWARE": "ns_aware",
    "UPSTREAM_HOSTNAME": "upstream_hostname",
    "DEBUG": "debug",
    "METRICS_PORT": "metrics_port",
    "METRICS_HOST": "metrics_host",
    "METRICS_SOURCE": "metrics_source",
    "SENTRY_DSN": "sentry_dsn",
    "SENTRY_ENVIRONMENT": "sentry_environment",
}

_FIELD_NAMES = frozenset(f.name for f in fields(MonitorConfig))

_POSITIVE_NUMBERS = ("poll_interval", "dial_timeout", "dns_timeout")
_PORTS = ("port", "metrics_port")
_FLAGS = ("ns_aware",)
_TRUTHY = frozenset({"true", "1", "yes", "on"})
_FALSY = frozenset({"false", "0", "no", "off"})


def load_config(
    path: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    hostnames: Iterable[str] | None = None,
    require_hostnames: bool = True,
) -> MonitorConfig:
    """Build a ``MonitorConfig`` from a YAML file and the environment.

    Precedence, lowest first: field defaults, the YAML file, environment
    variables, then *hostnames*.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.lbmon/config.yaml``) is tried and
            silently skipped when absent.
        environ: Environment mapping (default: ``os.environ``).
        hostnames: Hostnames that replace any configured ones.
        require_hostnames: Raise when no hostname is configured.

    Returns:
        A populated, immutable ``MonitorConfig``.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the file is not valid YAML, a value cannot be
            parsed, or hostnames are required but missing.
    """
    raw: dict[str, object] = {}

    resolved = _resolve_path(path)
    if resolved is None:
        logger.debug("No config file found; using environment only")
    else:
        raw.update(_read_yaml(resolved))

    raw.update(_read_environ(os.environ if environ is None else environ))

    if hostnames:
        raw["hostnames"] = list(hostnames)

    cfg = _build_config(raw)

    if require_hostnames and not cfg.hostnames:
        raise ConfigError("please provide the HOSTNAMES env variable")
    _check_gauge_names(cfg.hostnames)

    _log_effective(cfg, raw)
    return cfg


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _read_yaml(source: Path) -> dict[str, object]:
    """Load the YAML mapping at *source*, ignoring unknown keys."""
    logger.debug("Loading config from %s", source)
    text = source.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {source}: {exc}") from exc

    if raw is None:
        return {}

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {source}, "
            f"got {type(raw).__name__}"
        )

    unknown = set(raw) - _FIELD_NAMES
    if unknown:
        logger.warning(
            "Ignoring unknown config keys in %s: %s",
            source,
            ", ".join(sorted(map(str, unknown))),
        )

    return {k: v for k, v in raw.items() if k in _FIELD_NAMES}


def _read_environ(environ: Mapping[str, str]) -> dict[str, object]:
    """Pick the non-empty lbmon variables out of *environ*."""
    out: dict[str, object] = {}
    for env_key, field_name in _ENV_KEY_TO_FIELD.items():
        value = environ.get(env_key, "")
        if value != "":
            out[field_name] = value

    # Heroku-style fallback for the metrics source label.
    if "metrics_source" not in out and environ.get("DYNO"):
        out["metrics_source"] = environ["DYNO"]
    return out


def _build_config(raw: dict[str, object]) -> MonitorConfig:
    """Coerce raw string/YAML values into a ``MonitorConfig``."""
    kwargs: dict[str, object] = {}

    for name, value in raw.items():
        if value is None:
            continue
        if name == "hostnames":
            kwargs[name] = _parse_hostnames(value)
        elif name in _POSITIVE_NUMBERS:
            kwargs[name] = _parse_positive(name, value)
        elif name in _PORTS:
            kwargs[name] = _parse_port(name, value)
        elif name in _FLAGS:
            kwargs[name] = _parse_flag(name, value)
        elif name == "debug":
            kwargs[name] = _parse_debug(value)
        else:
            kwargs[name] = str(value)

    return MonitorConfig(**kwargs)


def _parse_hostnames(value: object) -> tuple[str, ...]:
    items = value.split(",") if isinstance(value, str) else value
    if not isinstance(items, (list, tuple)):
        raise ConfigError(f"hostnames must be a list or comma-separated string, got {value!r}")
    stripped = (str(item).strip() for item in items)
    return tuple(dict.fromkeys(h for h in stripped if h))


def _parse_positive(name: str, value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return number


def _parse_port(name: str, value: object) -> int:
    try:
        port = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if not 0 < port < 65536:
        raise ConfigError(f"{name} must be between 1 and 65535, got {value!r}")
    return port


def _parse_flag(name: str, value: object) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    raise ConfigError(f"{name} must be true or false, got {value!r}")


def _parse_debug(value: object) -> bool:
    """Anything other than a recognised true value turns debug logging off."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def _log_effective(cfg: MonitorConfig, raw: dict[str, object]) -> None:
    """Log the effective timing settings, noting which were defaulted."""
    # raw holds only explicitly supplied values at this point.
    for name in ("poll_interval", "dial_timeout", "dns_timeout"):
        verb = "running with" if name in raw else "defaulting"
        logger.info("%s %s of %s", verb, name, getattr(cfg, name))
    if cfg.sentry_dsn is None:
        logger.info("no Sentry DSN configured; errors will only be logged")


def _check_gauge_names(hostnames: tuple[str, ...]) -> None:
    """Reject hostnames that would publish to the same gauge."""
    owners: dict[str, str] = {}
    for hostname in hostnames:
        name = metric_name(hostname)
        if name in owners:
            raise ConfigError(
                f"hostnames {owners[name]} and {hostname} both map to "
                f"metric {name}; monitor only one of them"
            )
        owners[name] = hostname
