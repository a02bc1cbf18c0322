"""Per-hostname poll loop: resolve, probe, report, sleep, repeat."""

import logging
import threading
import time

from lbmon.config import MonitorConfig
from lbmon.metrics import Metrics, NullMetrics, metric_name
from lbmon.models import DIRECT_SOURCE, AddressSet, PollOutcome, ProbeResult
from lbmon.probe import probe
from lbmon.reporting import ErrorReporter
from lbmon.resolver import ResolutionError, resolve_direct, resolve_via_authority

logger = logging.getLogger(__name__)


class Monitor:
    """Health monitor for one hostname.

    Each cycle resolves the hostname into its full address set, dials
    every address concurrently, and publishes the number of addresses
    that failed.  Nothing is carried over between cycles.
    """

    def __init__(
        self,
        hostname: str,
        config: MonitorConfig,
        metrics: Metrics | None = None,
        reporter: ErrorReporter | None = None,
    ) -> None:
        self.hostname = hostname
        self._config = config
        self._metrics = metrics or NullMetrics()
        self._reporter = reporter or ErrorReporter()

    def resolve(self) -> AddressSet:
        """Resolve the hostname with the configured strategy.

        Raises:
            ResolutionError: If resolution fails.
        """
        if self._config.ns_aware:
            return resolve_via_authority(
                self.hostname,
                resolver=self._config.dns_resolver,
                timeout=self._config.dns_timeout,
            )

        addresses = AddressSet()
        for ip in resolve_direct(self.hostname):
            addresses.add(ip, DIRECT_SOURCE)
        return addresses

    def run_cycle(self) -> PollOutcome | None:
        """Run one resolve → probe → report cycle.

        Returns:
            The cycle's ``PollOutcome``, or None when resolution failed
            (in which case nothing was probed and no gauge was set).
        """
        logger.info("polling %s", self.hostname)
        outcome = PollOutcome(hostname=self.hostname)
        t0 = time.monotonic()

        try:
            addresses = self.resolve()
        except ResolutionError as exc:
            self._reporter.report(exc, hostname=self.hostname)
            return None

        outcome.results = probe(
            addresses.ips(),
            self._config.port,
            self._config.dial_timeout,
            sources=addresses.ip_to_sources(),
        )
        outcome.duration_seconds = time.monotonic() - t0

        if self._config.upstream_hostname and outcome.failed:
            self._annotate_upstream(outcome.failed)

        self._report(outcome)
        self._metrics.gauge(metric_name(self.hostname)).set(outcome.borked)
        return outcome

    def run_forever(self, stop: threading.Event) -> None:
        """Poll until *stop* is set, waiting ``poll_interval`` between cycles."""
        while not stop.is_set():
            self.run_cycle()
            stop.wait(self._config.poll_interval)

    def _annotate_upstream(self, failed: list[ProbeResult]) -> None:
        """Mark whether each failing address is also served by the upstream."""
        upstream = self._config.upstream_hostname
        try:
            upstream_ips = set(resolve_direct(upstream))
        except ResolutionError as exc:
            self._reporter.report(exc, hostname=self.hostname, upstream=upstream)
            return

        for result in failed:
            result.contained_upstream = result.ip in upstream_ips

    def _report(self, outcome: PollOutcome) -> None:
        for result in outcome.results:
            if self._config.debug:
                logger.info(
                    "ok=%s err=%s ip=%s nss=%s",
                    result.ok,
                    result.error,
                    result.ip,
                    result.sources,
                )
            if result.ok:
                continue

            if result.contained_upstream is None:
                logger.warning(
                    "borked ip %s with error %s and nss %s",
                    result.ip,
                    result.error,
                    result.sources,
                )
            else:
                logger.warning(
                    "borked ip %s with error %s and nss %s (%s upstream)",
                    result.ip,
                    result.error,
                    result.sources,
                    "contained" if result.contained_upstream else "not contained",
                )
            self._reporter.report(result.error, hostname=self.hostname, ip=result.ip)

        logger.info(
            "%s: %d of %d address(es) borked",
            self.hostname,
            outcome.borked,
            outcome.total,
        )


def run_monitors(
    config: MonitorConfig,
    metrics: Metrics,
    reporter: ErrorReporter,
    stop: threading.Event,
) -> list[threading.Thread]:
    """Start one supervised monitor thread per configured hostname.

    Returns:
        The started threads; they exit once *stop* is set.
    """
    threads = []
    for hostname in config.hostnames:
        monitor = Monitor(hostname, config, metrics, reporter)
        thread = threading.Thread(
            target=_supervise,
            args=(monitor, config, reporter, stop),
            name=f"monitor-{hostname}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)
    return threads


def _supervise(
    monitor: Monitor,
    config: MonitorConfig,
    reporter: ErrorReporter,
    stop: threading.Event,
) -> None:
    """Keep *monitor* running, restarting it one poll interval after a crash."""
    while not stop.is_set():
        try:
            monitor.run_forever(stop)
        except Exception as exc:
            logger.exception("Monitor for %s crashed; restarting", monitor.hostname)
            reporter.report(exc, hostname=monitor.hostname)
            stop.wait(config.poll_interval)
