"""Preflight checks for the pronunciation service configuration.

Run this before starting the HTTP service to catch common misconfiguration:
  python scripts/preflight.py

Optional network checks:
  python scripts/preflight.py --check-http
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import httpx
from dotenv import load_dotenv


DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


@dataclass
class Report:
    passed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def ok(self, message: str) -> None:
        self.passed.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def fail(self, message: str) -> None:
        self.failures.append(message)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


def _load_environment() -> None:
    """Load local env files in precedence order without overwriting existing vars."""
    repo_dir = Path(__file__).resolve().parent.parent
    for env_file in (repo_dir / ".env.local", repo_dir / ".env"):
        if env_file.exists():
            load_dotenv(env_file, override=False)


def _is_valid_http_url(value: str) -> bool:
    """Return True when value is an absolute HTTP(S) URL."""
    parsed = urlparse((value or "").strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _env_int(name: str, default: int, report: Report, *, minimum: int = 1) -> int:
    """Parse int env var and emit validation failures into the report."""
    raw = os.getenv(name, str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        report.fail(f"{name} must be an integer. Got: {raw!r}")
        return default
    if value < minimum:
        report.fail(f"{name} must be >= {minimum}. Got: {value}")
    return value


def _env_float(name: str, default: float, report: Report, *, minimum: float = 0.0) -> float:
    """Parse float env var and emit validation failures into the report."""
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        report.fail(f"{name} must be a number. Got: {raw!r}")
        return default
    if value < minimum:
        report.fail(f"{name} must be >= {minimum}. Got: {value}")
    return value


def _mask(value: str) -> str:
    """Mask secret values for safe console output."""
    trimmed = value.strip()
    if len(trimmed) < 8:
        return "***"
    return f"{trimmed[:4]}...{trimmed[-4:]}"


def check_speech_provider(report: Report) -> str:
    """Validate the Gemini speech settings and return the API base URL."""
    api_key = (os.getenv("GEMINI_API_KEY") or "").strip()
    if not api_key:
        report.fail("GEMINI_API_KEY is required.")
    else:
        if len(api_key) < 20:
            report.warn("GEMINI_API_KEY looks unusually short; verify it is correct.")
        report.ok(f"GEMINI_API_KEY detected ({_mask(api_key)}).")

    api_base = (os.getenv("GEMINI_API_BASE") or DEFAULT_API_BASE).strip()
    if not _is_valid_http_url(api_base):
        report.fail(f"GEMINI_API_BASE is not a valid HTTP(S) URL: {api_base!r}")
    else:
        report.ok(f"GEMINI_API_BASE={api_base}")

    template = os.getenv("GEMINI_PROMPT_TEMPLATE")
    if template is not None and "{text}" not in template:
        report.fail("GEMINI_PROMPT_TEMPLATE must contain '{text}'.")

    timeout = _env_float("GEMINI_REQUEST_TIMEOUT_SECONDS", 30, report, minimum=1.0)
    if timeout > 120:
        report.warn("GEMINI_REQUEST_TIMEOUT_SECONDS is high; failed requests will hang the UI.")
    return api_base


def check_audio_format(report: Report) -> None:
    """Validate the PCM format the WAV encoder is configured to trust."""
    sample_rate = _env_int("AUDIO_SAMPLE_RATE", 24_000, report)
    channels = _env_int("AUDIO_CHANNELS", 1, report)
    bits = _env_int("AUDIO_BITS_PER_SAMPLE", 16, report, minimum=8)

    if bits % 8:
        report.fail(f"AUDIO_BITS_PER_SAMPLE must be a multiple of 8. Got: {bits}")
    if sample_rate != 24_000 or channels != 1 or bits != 16:
        report.warn(
            "Audio format differs from the 24000 Hz mono 16-bit PCM Gemini returns; "
            "playback speed or pitch may be wrong."
        )
    report.ok(f"Audio format: {sample_rate} Hz, {channels} ch, {bits}-bit.")

    max_chars = _env_int("MAX_TEXT_CHARS", 500, report, minimum=0)
    if max_chars == 0:
        report.warn("MAX_TEXT_CHARS is 0; input length is unbounded.")


def check_secret_hygiene(report: Report) -> None:
    """Run lightweight secret safety checks for common local misconfigurations."""
    repo_dir = Path(__file__).resolve().parent.parent
    if (repo_dir / ".env").exists():
        report.warn(".env detected. Ensure it is local-only and gitignored.")


def _probe(url: str, *, timeout_seconds: float) -> tuple[bool, str]:
    """Probe URL reachability and return (ok, message)."""
    try:
        with httpx.Client(timeout=timeout_seconds, follow_redirects=True) as client:
            response = client.get(url)
        if response.status_code >= 500:
            return (False, f"{url} responded with HTTP {response.status_code}.")
        return (True, f"{url} reachable (HTTP {response.status_code}).")
    except httpx.HTTPError as exc:
        return (False, f"{url} not reachable ({exc}).")


def check_http_health(report: Report, *, api_base: str, timeout_seconds: float) -> None:
    """Optionally check that the speech API host answers."""
    ok, message = _probe(api_base, timeout_seconds=timeout_seconds)
    if ok:
        report.ok(f"Speech API health check passed: {message}")
    else:
        report.fail(f"Speech API health check failed: {message}")


def print_report(report: Report) -> None:
    """Render a human-readable summary report to stdout."""
    for message in report.passed:
        print(f"[PASS] {message}")
    for message in report.warnings:
        print(f"[WARN] {message}")
    for message in report.failures:
        print(f"[FAIL] {message}")
    print(
        f"\nSummary: {len(report.passed)} passed, {len(report.warnings)} warnings, {len(report.failures)} failures."
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for optional network checks and probe timeouts."""
    parser = argparse.ArgumentParser(description="Pronunciation service preflight checks")
    parser.add_argument(
        "--check-http",
        action="store_true",
        help="Probe the configured speech API base URL.",
    )
    parser.add_argument(
        "--http-timeout",
        type=float,
        default=3.0,
        help="Timeout (seconds) for preflight HTTP probes (default: 3.0).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run preflight suite and return process exit code."""
    args = parse_args(argv)
    _load_environment()
    report = Report()

    api_base = check_speech_provider(report)
    check_audio_format(report)
    check_secret_hygiene(report)
    if args.check_http:
        check_http_health(report, api_base=api_base, timeout_seconds=max(args.http_timeout, 0.1))

    print_report(report)
    return 1 if report.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
