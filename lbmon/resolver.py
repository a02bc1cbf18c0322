"""Hostname resolution: direct system lookups and per-nameserver A queries."""

import logging
import socket

import dns.exception
import dns.message
import dns.name
import dns.query
import dns.rcode
import dns.rdatatype

from lbmon.models import AddressSet

logger = logging.getLogger(__name__)

DEFAULT_RESOLVER = "8.8.8.8"
DEFAULT_DNS_TIMEOUT = 5.0
DNS_PORT = 53

# Longest CNAME chain followed inside one answer section.
MAX_CNAME_HOPS = 8


class ResolutionError(Exception):
    """Raised when a hostname cannot be resolved for this poll cycle."""


class UnexpectedRecordError(ResolutionError):
    """Raised when an answer section carries a record type we did not ask for."""


def resolve_direct(hostname: str) -> list[str]:
    """Resolve *hostname* to its A and AAAA addresses with the system resolver.

    Wraps ``socket.getaddrinfo`` and deduplicates the addresses it
    returns across address families and socket types.

    Returns:
        Unique IP addresses in first-seen order.

    Raises:
        ResolutionError: If the lookup fails.
    """
    logger.debug("Resolving %s", hostname)

    try:
        results = socket.getaddrinfo(
            hostname,
            0,
            family=socket.AF_UNSPEC,
            type=socket.SOCK_STREAM,
        )
    except OSError as exc:
        raise ResolutionError(f"lookup of {hostname} failed: {exc}") from exc

    # sockaddr is (ip, port) for AF_INET, (ip, port, flow, scope) for AF_INET6
    out = list(dict.fromkeys(sockaddr[0] for *_, sockaddr in results))

    logger.debug("Resolved %s → %d unique address(es)", hostname, len(out))
    return out


def resolve_via_authority(
    hostname: str,
    *,
    resolver: str = DEFAULT_RESOLVER,
    timeout: float = DEFAULT_DNS_TIMEOUT,
) -> AddressSet:
    """Resolve *hostname* through each of its authoritative nameservers.

    The NS records are fetched from *resolver*; every nameserver is then
    asked for the A records of *hostname* directly, and each address is
    tagged with the nameserver that returned it.  A failure talking to
    any one nameserver fails the whole resolution.

    Args:
        hostname: The hostname to resolve.
        resolver: IP address of the recursive resolver used for the NS query.
        timeout: Deadline in seconds for every individual DNS exchange.

    Returns:
        An ``AddressSet`` mapping each IP to its nameservers.

    Raises:
        ResolutionError: If any query fails, times out, returns an error
            rcode, or yields no nameservers or no addresses.
    """
    response = _exchange(hostname, dns.rdatatype.NS, resolver, timeout)
    nameservers = [
        rdata.target.to_text(omit_final_dot=True)
        for rdata in _decode_answer(response, _qname(hostname), dns.rdatatype.NS)
    ]
    if not nameservers:
        raise ResolutionError(f"no NS records found for {hostname}")

    logger.debug("Nameservers for %s: %s", hostname, ", ".join(nameservers))

    addresses = AddressSet()
    for nameserver in nameservers:
        server = _nameserver_address(nameserver)
        response = _exchange(hostname, dns.rdatatype.A, server, timeout)
        records = _decode_answer(
            response, _qname(hostname), dns.rdatatype.A, follow_cname=True
        )
        for rdata in records:
            addresses.add(rdata.address, nameserver)

    if not addresses:
        raise ResolutionError(f"no A records found for {hostname}")

    logger.debug(
        "Resolved %s via %d nameserver(s) → %d unique address(es)",
        hostname,
        len(nameservers),
        len(addresses),
    )
    return addresses


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _qname(hostname: str) -> str:
    return hostname.rstrip(".") + "."


def _nameserver_address(nameserver: str) -> str:
    """Return the first address of *nameserver* to send queries to."""
    addresses = resolve_direct(nameserver)
    if not addresses:
        raise ResolutionError(f"nameserver {nameserver} has no addresses")
    return addresses[0]


def _exchange(
    hostname: str,
    rdtype: dns.rdatatype.RdataType,
    server: str,
    timeout: float,
) -> dns.message.Message:
    """Send one query to *server* and return the response.

    Truncated UDP answers are retried over TCP.
    """
    qname = _qname(hostname)
    qtype = dns.rdatatype.to_text(rdtype)
    request = dns.message.make_query(qname, rdtype)

    try:
        response, _used_tcp = dns.query.udp_with_fallback(
            request, server, timeout=timeout, port=DNS_PORT
        )
    except (dns.exception.DNSException, OSError) as exc:
        raise ResolutionError(
            f"{qtype} query for {hostname} to {server} failed: {exc!r}"
        ) from exc

    rcode = response.rcode()
    if rcode != dns.rcode.NOERROR:
        raise ResolutionError(
            f"{qtype} query for {hostname} to {server} returned "
            f"{dns.rcode.to_text(rcode)}"
        )
    return response


def _decode_answer(
    response: dns.message.Message,
    qname: str,
    rdtype: dns.rdatatype.RdataType,
    *,
    follow_cname: bool = False,
) -> list:
    """Return the rdata of the *rdtype* answer records owned by *qname*.

    With *follow_cname*, a CNAME chain starting at *qname* is walked and
    the records of its final target are returned.  Rrsets owned by any
    other name are ignored.  A record type other than *rdtype* or CNAME
    raises ``UnexpectedRecordError``.
    """
    rrsets: dict[tuple[dns.name.Name, int], list] = {}
    for rrset in response.answer:
        if rrset.rdtype not in (rdtype, dns.rdatatype.CNAME):
            raise UnexpectedRecordError(
                f"expected {dns.rdatatype.to_text(rdtype)} records for "
                f"{rrset.name}, got {dns.rdatatype.to_text(rrset.rdtype)}"
            )
        rrsets.setdefault((rrset.name, rrset.rdtype), []).extend(rrset)

    owner = dns.name.from_text(qname)
    seen = {owner}
    if follow_cname:
        while (owner, dns.rdatatype.CNAME) in rrsets:
            target = rrsets[(owner, dns.rdatatype.CNAME)][0].target
            if target in seen or len(seen) > MAX_CNAME_HOPS:
                raise ResolutionError(f"CNAME loop or overlong chain at {qname}")
            logger.debug("Following CNAME %s -> %s", owner, target)
            seen.add(target)
            owner = target

    for name, found_type in rrsets:
        if name not in seen:
            logger.debug(
                "Ignoring %s rrset for %s in answer for %s",
                dns.rdatatype.to_text(found_type),
                name,
                qname,
            )
    return rrsets.get((owner, rdtype), [])
