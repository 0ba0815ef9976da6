"""Headless Chromium screenshot service with SSRF-guarded URL intake."""

__version__ = "0.1.0"
