"""
Failure taxonomy for screenshot requests.

Playwright only hands us exception messages, so engine failures are
classified by looking for the Chromium network error codes and the
"Timeout" wording Playwright puts in its timeout errors. Anything we do
not recognise is a generic rendering failure.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from playwright.async_api import TimeoutError as PlaywrightTimeoutError


class ErrorKind(str, Enum):
    INVALID_REQUEST = "InvalidRequest"
    VALIDATION_REJECTED = "ValidationRejected"
    DNS_RESOLUTION_FAILED = "DnsResolutionFailed"
    CONNECTION_REFUSED = "ConnectionRefused"
    NAVIGATION_TIMEOUT = "NavigationTimeout"
    RENDERING_FAILURE = "RenderingFailure"


DNS_FAILURE_MARKER = "net::ERR_NAME_NOT_RESOLVED"
TIMEOUT_MARKER = "Timeout"
CONNECTION_REFUSED_MARKER = "net::ERR_CONNECTION_REFUSED"


@dataclass(frozen=True)
class Classification:
    kind: ErrorKind
    status_code: int
    message: str


class ScreenshotError(Exception):
    """Request-level failure rendered as ``{"error": message}``."""

    def __init__(self, kind: ErrorKind, status_code: int, message: str, headers: dict[str, str] | None = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.message = message
        self.headers = headers

    @classmethod
    def from_classification(cls, c: Classification) -> "ScreenshotError":
        return cls(c.kind, c.status_code, c.message)


class BrowserLaunchError(RuntimeError):
    """Chromium could not be started; no request can be served."""


def classify(error: BaseException | str) -> Classification:
    raw = str(error)

    if DNS_FAILURE_MARKER in raw:
        return Classification(ErrorKind.DNS_RESOLUTION_FAILED, 400, "Domain not found or cannot be resolved")

    if TIMEOUT_MARKER in raw or isinstance(error, (PlaywrightTimeoutError, asyncio.TimeoutError)):
        return Classification(
            ErrorKind.NAVIGATION_TIMEOUT,
            504,
            "Page load timeout - the website took too long to respond",
        )

    if CONNECTION_REFUSED_MARKER in raw:
        return Classification(
            ErrorKind.CONNECTION_REFUSED,
            400,
            "Connection refused - the server rejected the connection",
        )

    return Classification(ErrorKind.RENDERING_FAILURE, 500, f"Failed to take screenshot: {raw}")
