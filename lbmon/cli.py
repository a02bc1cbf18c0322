"""CLI entry point for the lbmon tool."""

import logging
import signal
import sys
import threading

import click

from lbmon.config import ConfigError, MonitorConfig, load_config
from lbmon.metrics import NullMetrics, PrometheusMetrics, build_metrics
from lbmon.monitor import Monitor, run_monitors
from lbmon.output import render
from lbmon.reporting import ErrorReporter

logger = logging.getLogger(__name__)

FORMATS = ("table", "json")

# Exit status of ``check`` when any address is borked or unresolvable.
EXIT_UNHEALTHY = 2

_config_option = click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.lbmon/config.yaml).",
)


@click.group()
def main() -> None:
    """Check that every address behind a hostname accepts TCP connections."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(threadName)s: %(message)s",
    )


@main.command()
@_config_option
def run(config_path: str | None) -> None:
    """Monitor the configured hostnames until interrupted."""
    cfg = _load(config_path)

    stop = threading.Event()

    def _handle_signal(signum: int, _frame: object) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handle_signal)

    metrics = build_metrics(cfg)
    if isinstance(metrics, PrometheusMetrics):
        try:
            metrics.serve(cfg.metrics_port, cfg.metrics_host)
        except OSError as exc:
            click.echo(f"Error: cannot serve metrics: {exc}", err=True)
            sys.exit(1)

    reporter = ErrorReporter(cfg.sentry_dsn, cfg.sentry_environment)

    logger.info("Monitoring %s", ", ".join(cfg.hostnames))
    threads = run_monitors(cfg, metrics, reporter, stop)

    _wait_for_shutdown(stop)

    for thread in threads:
        thread.join(timeout=cfg.dial_timeout + cfg.dns_timeout)
    reporter.flush()


@main.command()
@click.argument("hostnames", nargs=-1)
@click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)
@_config_option
def check(hostnames: tuple[str, ...], output_format: str, config_path: str | None) -> None:
    """Run a single poll cycle and print per-address results.

    HOSTNAMES default to the configured ones.  Exits with status 2 when
    any address is borked or a hostname cannot be resolved.
    """
    cfg = _load(config_path, hostnames=hostnames)

    # One-shot runs never export gauges; errors are only logged.
    metrics = NullMetrics()
    reporter = ErrorReporter()

    checks = [
        (hostname, Monitor(hostname, cfg, metrics, reporter).run_cycle())
        for hostname in cfg.hostnames
    ]

    render(checks, output_format.lower())

    if any(outcome is None or outcome.borked for _, outcome in checks):
        sys.exit(EXIT_UNHEALTHY)


def _load(config_path: str | None, hostnames: tuple[str, ...] = ()) -> MonitorConfig:
    """Load configuration or exit with status 1."""
    try:
        cfg = load_config(config_path, hostnames=hostnames)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if cfg.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _wait_for_shutdown(stop: threading.Event) -> None:
    """Block the main thread until a termination signal sets *stop*."""
    stop.wait()
