from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

from pydantic import BaseModel, Field

from .errors import ErrorKind


class ScreenshotRequest(BaseModel):
    # Optional so a missing field is reported as our own 400, not a 422.
    url: str | None = Field(None, description="Absolute http(s) URL to capture")


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    message: str = "Screenshot service is running"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str | None = None


@dataclass(frozen=True)
class ScreenshotSuccess:
    image: bytes
    mime: str = "image/png"


@dataclass(frozen=True)
class ScreenshotFailure:
    kind: ErrorKind
    status_code: int
    message: str


ScreenshotOutcome = Union[ScreenshotSuccess, ScreenshotFailure]
