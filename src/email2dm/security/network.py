"""
Connection admission control for email2dm.

Checks the remote address of each SMTP connection against a list of
allowed CIDR ranges before a session is created.
"""

import ipaddress
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@dataclass
class AdmissionCheck:
    """Result of an admission check."""

    allowed: bool
    reason: str | None = None
    matched_rule: str | None = None


def parse_networks(entries: list[str]) -> list[IPNetwork]:
    """
    Parse CIDR strings, dropping malformed entries with a warning.

    A bare address is accepted as a single-host range.

    Args:
        entries: CIDR strings such as "10.0.0.0/8" or "::1/128"

    Returns:
        The valid networks, in order.
    """
    networks: list[IPNetwork] = []
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError as e:
            logger.warning(f"Ignoring invalid network {entry!r}: {e}")
    return networks


def split_host(remote_address: str | tuple) -> str:
    """
    Extract the host part of a remote address.

    Accepts "host", "host:port", "[v6]:port", a bare IPv6 address, or a
    socket peer tuple.
    """
    if isinstance(remote_address, tuple):
        return str(remote_address[0]) if remote_address else ""

    address = remote_address.strip()
    if address.startswith("["):
        end = address.find("]")
        return address[1:end] if end > 0 else address
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def format_address(remote_address: str | tuple) -> str:
    """Render a peer as 'host:port', with brackets for IPv6."""
    if isinstance(remote_address, tuple) and len(remote_address) >= 2:
        host, port = remote_address[0], remote_address[1]
        return f"[{host}]:{port}" if ":" in str(host) else f"{host}:{port}"
    return str(remote_address)


class NetworkFilter:
    """
    Admits connections whose source address is in an allowed range.

    An empty range list admits everything. Addresses that do not parse
    as IPs are denied.
    """

    def __init__(self, allowed_networks: list[str] | None = None) -> None:
        """
        Initialize network filter.

        Args:
            allowed_networks: CIDR strings; malformed entries are dropped.
        """
        self._networks = tuple(parse_networks(allowed_networks or []))
        if self._networks:
            logger.info(f"Admission restricted to {len(self._networks)} network(s)")
        else:
            logger.info("No allowed networks configured, admitting all connections")

    @property
    def networks(self) -> tuple[IPNetwork, ...]:
        """The parsed allowed ranges."""
        return self._networks

    def check(self, remote_address: str | tuple) -> AdmissionCheck:
        """
        Check a remote address against the allowed ranges.

        Args:
            remote_address: Peer address as string or socket tuple

        Returns:
            AdmissionCheck with the decision and the matching range
        """
        if not self._networks:
            return AdmissionCheck(allowed=True, reason="no restrictions configured")

        host = split_host(remote_address)
        # Strip an IPv6 zone index such as fe80::1%eth0
        host = host.split("%", 1)[0]
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            return AdmissionCheck(allowed=False, reason=f"unparseable address: {host}")

        if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped

        for network in self._networks:
            if ip.version == network.version and ip in network:
                return AdmissionCheck(allowed=True, reason="matched", matched_rule=str(network))

        return AdmissionCheck(allowed=False, reason=f"{ip} not in allowed networks")

    def is_allowed(self, remote_address: str | tuple) -> bool:
        """Return True if the remote address may connect."""
        return self.check(remote_address).allowed
