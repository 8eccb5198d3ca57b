"""
URL validation against SSRF.

Only http/https targets are accepted, and literal hostnames that fall in
private or internal ranges are rejected. Loopback addresses stay allowed
so a locally running API can be used during development.
"""

import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlsplit

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

ALLOWED_SCHEMES = {"http", "https"}

# Never allowed, listed so rejections can name the protocol
DANGEROUS_PROTOCOLS = [
    "file:",
    "ftp:",
    "ftps:",
    "sftp:",
    "tftp:",
    "gopher:",
    "dict:",
    "ldap:",
    "ldaps:",
    "smtp:",
    "smtps:",
    "imap:",
    "imaps:",
    "pop3:",
    "pop3s:",
    "ssh:",
    "telnet:",
    "javascript:",
    "data:",
    "vbscript:",
    "blob:",
    "filesystem:",
    "chrome:",
    "chrome-extension:",
    "moz-extension:",
    "ms-appx:",
    "ms-appx-web:",
]

PRIVATE_IPV4_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("255.0.0.0/8"),
]

PRIVATE_IPV6_NETWORKS = [
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
    ipaddress.ip_network("::1/128"),
]

DEV_LOOPBACK_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
]

LOCALHOST_NAMES = {"localhost", "localhost.localdomain"}

# Dotted numbers in decimal, octal or hex, one to four parts: 10.1, 0xA9FEA9FE
_NUMERIC_IPV4 = re.compile(r"^(0x[0-9a-f]*|[0-9]+)(\.(0x[0-9a-f]*|[0-9]+)){0,3}$")


@dataclass(frozen=True)
class UrlValidationResult:
    """Outcome of a URL check."""

    valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "UrlValidationResult":
        return cls(valid=True)

    @classmethod
    def reject(cls, error: str) -> "UrlValidationResult":
        return cls(valid=False, error=error)


def _strip_host(hostname: str) -> str:
    """Remove IPv6 brackets or an IPv4 port suffix."""
    if hostname.startswith("[") and "]" in hostname:
        return hostname[1 : hostname.index("]")]
    if hostname.count(":") == 1:
        return hostname.split(":", 1)[0]
    return hostname


def parse_ip_literal(host: str) -> Optional[IPAddress]:
    """
    Interpret a hostname as an IP address the way curl's resolver does.

    Numeric IPv4 shorthand (2852039166, 0xA9FEA9FE, 0251.0376.0251.0376,
    10.1) is normalized through inet_aton, and IPv4-mapped IPv6 addresses
    are unwrapped. Returns None for names.
    """
    if _NUMERIC_IPV4.match(host):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return None

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return None

    if address.version == 6 and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def is_private_ip(hostname: str) -> bool:
    """
    Check whether a hostname is a private or internal address.

    Loopback (127.0.0.0/8, ::1) and localhost names are explicitly allowed
    for development and return False. Hostnames that are not IP literals
    are not resolved and return False.
    """
    host = hostname.strip().lower().rstrip(".")

    if host in LOCALHOST_NAMES or host.endswith(".localhost"):
        return False

    address = parse_ip_literal(_strip_host(host))
    if address is None:
        return False

    # Development allowance is checked before the general private rules
    if any(address in network for network in DEV_LOOPBACK_NETWORKS):
        return False

    networks = PRIVATE_IPV4_NETWORKS if address.version == 4 else PRIVATE_IPV6_NETWORKS
    return any(address in network for network in networks)


def validate_url_protocol(url: str) -> UrlValidationResult:
    """Accept only http:// and https:// URLs."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return UrlValidationResult.reject("Invalid URL format")

    if not parts.scheme:
        return UrlValidationResult.reject("Invalid URL format")

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return UrlValidationResult.reject(
            f"Invalid protocol: {scheme}:. Only HTTP and HTTPS URLs are allowed."
        )

    if not parts.netloc:
        return UrlValidationResult.reject("Invalid URL format")

    return UrlValidationResult.ok()


def validate_url(url: str) -> UrlValidationResult:
    """
    Full validation for externally supplied URLs.

    Combines the protocol check with the private network check.
    """
    result = validate_url_protocol(url)
    if not result.valid:
        return result

    try:
        hostname = urlsplit(url.strip()).hostname
    except ValueError:
        return UrlValidationResult.reject("Invalid URL format")

    if not hostname:
        return UrlValidationResult.reject("Invalid URL format")

    if is_private_ip(hostname):
        return UrlValidationResult.reject(
            f"Access to internal network addresses ({hostname}) is not allowed."
        )

    return UrlValidationResult.ok()
