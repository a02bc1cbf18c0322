"""Data models: AddressSet, ProbeResult, PollOutcome."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime

# Source recorded for addresses found by a plain system lookup.
DIRECT_SOURCE = "direct"


class AddressSet:
    """IP addresses a hostname resolved to, keyed by the sources that reported them.

    A source is the nameserver that answered the A query, or
    ``DIRECT_SOURCE`` when the address came from a system lookup.  An
    address reported by several nameservers is stored once with all of
    them as sources.
    """

    def __init__(self) -> None:
        self._sources: dict[str, set[str]] = {}

    def add(self, ip: str, source: str) -> None:
        """Record that *source* reported *ip*.  Repeated adds are no-ops."""
        self._sources.setdefault(ip, set()).add(source)

    def ips(self) -> set[str]:
        """Return the unique IP addresses."""
        return set(self._sources)

    def ip_to_sources(self) -> dict[str, list[str]]:
        """Return every IP with the sorted list of sources that reported it."""
        return {ip: sorted(sources) for ip, sources in self._sources.items()}

    def __contains__(self, ip: object) -> bool:
        return ip in self._sources

    def __iter__(self) -> Iterator[str]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)

    def __repr__(self) -> str:
        return f"AddressSet({self.ip_to_sources()!r})"


@dataclass
class ProbeResult:
    """Outcome of a single TCP probe.

    Attributes:
        ip: The probed address.
        sources: Nameservers (or ``"direct"``) that reported the address.
        ok: Whether the connection was accepted.
        error: The connection error, or None on success.
        contained_upstream: Whether the address also appears in the
            upstream hostname's address list.  None when no upstream
            comparison was made.
    """

    ip: str
    sources: list[str] = field(default_factory=list)
    ok: bool = True
    error: BaseException | None = None
    contained_upstream: bool | None = None


@dataclass
class PollOutcome:
    """Aggregate of one poll cycle for one hostname.

    Attributes:
        hostname: The monitored hostname.
        results: One ``ProbeResult`` per probed address.
        timestamp: When the cycle started (UTC).
        duration_seconds: Wall-clock duration of resolve + probe.
    """

    hostname: str
    results: list[ProbeResult] = field(default_factory=list)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC),
    )
    duration_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> list[ProbeResult]:
        return [r for r in self.results if not r.ok]

    @property
    def borked(self) -> int:
        """Number of addresses that refused or timed out this cycle."""
        return len(self.failed)
