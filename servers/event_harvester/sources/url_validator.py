"""
Source URL validation.

Source URLs come from configuration, but adapters also follow links found
in fetched pages and feeds. Every URL is checked before a request is made so
that a hostile page cannot point the harvester at internal services.
"""

import ipaddress
import socket
from typing import Optional, Union
from urllib.parse import urlparse

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class SSRFError(Exception):
    """Raised when a URL must not be fetched."""
    pass


# Private/reserved ranges that are never fetched
BLOCKED_IP_RANGES = [
    ipaddress.ip_network(cidr)
    for cidr in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "0.0.0.0/8",
        "100.64.0.0/10",
        "224.0.0.0/4",
        "240.0.0.0/4",
        "fc00::/7",
        "fe80::/10",
        "::1/128",
    )
]

BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost"}


def validate_url(
    url: str,
    require_https: bool = True,
    allowed_domains: Optional[set[str]] = None,
    resolve_dns: bool = True,
) -> str:
    """
    Check that a URL is safe to fetch.

    Args:
        url: The URL to validate
        require_https: Reject plain http:// URLs
        allowed_domains: If given, only these domains (and subdomains) pass
        resolve_dns: Resolve the hostname and reject private addresses.
                     Resolution failures are let through; the fetch itself
                     will fail with a network error.

    Returns:
        The stripped URL

    Raises:
        SSRFError: If the URL must not be fetched
    """
    if not url or not isinstance(url, str):
        raise SSRFError("URL must be a non-empty string")

    url = url.strip()
    parsed = urlparse(url)

    scheme = parsed.scheme.lower()
    allowed_schemes = ("https",) if require_https else ("http", "https")
    if scheme not in allowed_schemes:
        raise SSRFError(f"Scheme {scheme or '(none)'}:// is not allowed for {url}")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise SSRFError(f"URL has no hostname: {url}")

    if hostname in BLOCKED_HOSTNAMES or hostname.endswith(".localhost"):
        raise SSRFError(f"Access to {hostname} is blocked")

    if allowed_domains is not None and not domain_allowed(hostname, allowed_domains):
        raise SSRFError(f"Domain {hostname} is not in the allowed domains list")

    literal = _parse_ip(hostname)
    if literal is not None:
        if is_blocked_ip(literal):
            raise SSRFError(f"Access to {hostname} is blocked (private address)")
    elif resolve_dns:
        for ip_str in _resolve(hostname):
            ip = _parse_ip(ip_str)
            if ip is not None and is_blocked_ip(ip):
                raise SSRFError(
                    f"Access to {hostname} is blocked (resolves to private address {ip_str})"
                )

    return url


def domain_allowed(hostname: str, allowed_domains: set[str]) -> bool:
    """Exact or subdomain match against an allow list."""
    hostname = hostname.lower()
    for domain in allowed_domains:
        domain = domain.lower()
        if hostname == domain or hostname.endswith("." + domain):
            return True
    return False


def is_blocked_ip(ip: IPAddress) -> bool:
    """Check whether an address falls in a blocked range."""
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip.version == net.version and ip in net for net in BLOCKED_IP_RANGES)


def _parse_ip(hostname: str) -> Optional[IPAddress]:
    try:
        return ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return None


def _resolve(hostname: str) -> list[str]:
    try:
        results = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC)
    except socket.gaierror:
        return []
    return sorted({str(result[4][0]) for result in results})
