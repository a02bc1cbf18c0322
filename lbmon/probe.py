"""TCP health probe: one bounded connection attempt per address, run in parallel."""

import logging
import socket
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor

from lbmon.models import ProbeResult

logger = logging.getLogger(__name__)

DEFAULT_PORT = 443
DEFAULT_DIAL_TIMEOUT = 5.0


def dial(ip: str, port: int, timeout: float) -> None:
    """Open a TCP connection to ``ip:port`` and close it straight away.

    Raises:
        OSError: If the connection is refused, unreachable, or not
            established within *timeout* seconds.
    """
    conn = socket.create_connection((ip, port), timeout=timeout)
    conn.close()


def probe(
    addresses: Iterable[str],
    port: int = DEFAULT_PORT,
    timeout: float = DEFAULT_DIAL_TIMEOUT,
    *,
    sources: Mapping[str, list[str]] | None = None,
) -> list[ProbeResult]:
    """Dial every unique address concurrently and collect the outcomes.

    One worker is started per unique address and the call returns only
    once every dial has finished, so the result list always holds
    exactly one entry per unique input address.  Connection failures
    are recorded on the result, never raised.

    Args:
        addresses: IP addresses to probe.  Duplicates are probed once.
        port: TCP port to connect to.
        timeout: Per-connection deadline in seconds.
        sources: Optional IP → sources mapping copied onto each result.

    Returns:
        Probe results in completion-independent (unspecified) order.
    """
    unique = list(dict.fromkeys(addresses))
    if not unique:
        return []

    sources = sources or {}
    with ThreadPoolExecutor(
        max_workers=len(unique), thread_name_prefix="probe"
    ) as pool:
        futures = [
            pool.submit(_probe_one, ip, port, timeout, list(sources.get(ip, [])))
            for ip in unique
        ]
        return [f.result() for f in futures]


def _probe_one(ip: str, port: int, timeout: float, sources: list[str]) -> ProbeResult:
    try:
        dial(ip, port, timeout)
    except OSError as exc:
        logger.debug("Dial %s:%d failed: %s", ip, port, exc)
        return ProbeResult(ip=ip, sources=sources, ok=False, error=exc)
    return ProbeResult(ip=ip, sources=sources, ok=True)
