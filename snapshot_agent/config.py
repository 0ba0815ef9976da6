from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from the repo root .env for local dev.
_HERE = Path(__file__).resolve()
_REPO_ROOT = _HERE.parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 SnapshotAgent/1.0"
)


def _cors_allow_origins() -> list[str]:
    raw = os.getenv("SCREENSHOT_CORS_ORIGINS", "").strip()
    if not raw:
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    timeout_ms: int = 30000
    max_concurrent_pages: int = 4
    page_acquire_timeout_s: float = 30.0
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: str = DEFAULT_USER_AGENT
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            timeout_ms=int(os.getenv("SCREENSHOT_TIMEOUT_MS", "30000")),
            max_concurrent_pages=max(1, int(os.getenv("MAX_CONCURRENT_PAGES", "4"))),
            page_acquire_timeout_s=float(os.getenv("PAGE_ACQUIRE_TIMEOUT_S", "30")),
            viewport_width=int(os.getenv("VIEWPORT_WIDTH", "1280")),
            viewport_height=int(os.getenv("VIEWPORT_HEIGHT", "720")),
            user_agent=os.getenv("SCREENSHOT_USER_AGENT", DEFAULT_USER_AGENT),
            cors_origins=_cors_allow_origins(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
