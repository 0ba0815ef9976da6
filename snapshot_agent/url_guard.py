from __future__ import annotations

import ipaddress
import re
import unicodedata
from urllib.parse import SplitResult, unquote, urlsplit

from .models import ValidationResult

_ALLOWED_SCHEMES = ("http", "https")

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1"})
_RESERVED_HOSTS = frozenset({"0.0.0.0", "::"})

# Matched against the host the browser will connect to; nothing is resolved.
_PRIVATE_HOST_PATTERNS = (
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[01])\."),
    re.compile(r"^192\.168\."),
    re.compile(r"^169\.254\."),  # link-local
    re.compile(r"^::1$"),
    re.compile(r"^f[cd][0-9a-f]{0,2}:", re.IGNORECASE),  # fc00::/7
    re.compile(r"^fe[89ab][0-9a-f]?:", re.IGNORECASE),  # fe80::/10
)

# A host whose last label looks like a number is parsed as IPv4 by browsers.
_NUMERIC_LABEL = re.compile(r"^(?:[0-9]+|0[xX][0-9a-fA-F]*)$")
_IPV4_DIGITS = {10: re.compile(r"^[0-9]+$"), 8: re.compile(r"^[0-7]+$"), 16: re.compile(r"^[0-9a-fA-F]+$")}

INVALID_SCHEME = "Only HTTP and HTTPS URLs are allowed"
LOCAL_ADDRESS = "Local addresses (localhost, 127.0.0.1) are not allowed"
PRIVATE_ADDRESS = "Private network addresses are not allowed (SSRF protection)"
RESERVED_ADDRESS = "Reserved addresses are not allowed"


def _reject(reason: str) -> ValidationResult:
    return ValidationResult(valid=False, reason=reason)


def _split(url: str) -> SplitResult:
    parts = urlsplit(url)
    if parts.scheme.lower() in _ALLOWED_SCHEMES and "\\" in url:
        # Browsers read "\" as "/" in http(s) URLs, which can end the authority early.
        parts = urlsplit(url.replace("\\", "/"))
    parts.port  # raises ValueError on a bad port
    return parts


def _ipv4_number(label: str, host: str) -> int:
    radix = 10
    if label[:2] in ("0x", "0X"):
        radix, label = 16, label[2:]
    elif len(label) > 1 and label.startswith("0"):
        radix, label = 8, label[1:]
    if not label:
        return 0
    if not _IPV4_DIGITS[radix].match(label):
        raise ValueError(f"invalid IPv4 address {host!r}")
    return int(label, radix)


def _parse_ipv4(host: str) -> str | None:
    """Browser IPv4 parsing: ``127.1``, ``2130706433``, ``0x7f.1`` and ``0177.0.0.1`` are all 127.0.0.1.

    Returns None when the host is a domain name.
    """
    labels = host.split(".")
    if len(labels) > 1 and labels[-1] == "":
        labels.pop()
    if not _NUMERIC_LABEL.match(labels[-1]):
        return None
    if len(labels) > 4 or "" in labels:
        raise ValueError(f"invalid IPv4 address {host!r}")

    numbers = [_ipv4_number(label, host) for label in labels]
    if any(n > 255 for n in numbers[:-1]) or numbers[-1] >= 256 ** (5 - len(numbers)):
        raise ValueError(f"invalid IPv4 address {host!r}")

    value = numbers[-1]
    for i, n in enumerate(numbers[:-1]):
        value += n * 256 ** (3 - i)
    return str(ipaddress.IPv4Address(value))


def canonical_host(hostname: str) -> str:
    """Serialize ``hostname`` the way the browser's URL parser does."""
    host = unquote(hostname)
    if not host.isascii():
        host = unicodedata.normalize("NFKC", host)
    host = host.lower()

    if ":" in host:
        ip = ipaddress.IPv6Address(host)
        if ip.scope_id:
            raise ValueError(f"zone identifiers are not supported: {hostname!r}")
        if ip.ipv4_mapped is not None:
            return str(ip.ipv4_mapped)
        return ip.compressed

    ipv4 = _parse_ipv4(host)
    if ipv4 is not None:
        return ipv4

    host = host.rstrip(".")
    if not host:
        raise ValueError(f"empty host in {hostname!r}")
    return host


def validate_url(url: str) -> ValidationResult:
    """Decide whether ``url`` is safe to hand to the browser.

    Rules run in order and the first match wins: parse errors, scheme,
    loopback names, private ranges, then reserved addresses. Host rules see
    the host after browser-style normalization, so ``http://2130706433/``
    is treated as ``127.0.0.1``.
    """
    try:
        parts = _split(url.strip())
    except ValueError as e:
        return _reject(f"Invalid URL format: {e}")

    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        return _reject(INVALID_SCHEME)

    if not parts.hostname:
        return _reject("Invalid URL format: URL has no hostname")

    try:
        hostname = canonical_host(parts.hostname)
    except ValueError as e:
        return _reject(f"Invalid URL format: {e}")

    if hostname in _LOCAL_HOSTS:
        return _reject(LOCAL_ADDRESS)

    if any(p.search(hostname) for p in _PRIVATE_HOST_PATTERNS):
        return _reject(PRIVATE_ADDRESS)

    if hostname in _RESERVED_HOSTS:
        return _reject(RESERVED_ADDRESS)

    return ValidationResult(valid=True)
