"""Claude OAuth usage API: keychain token lookup, fetch and strict parsing."""

import enum
import json
import logging
import re
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone

from curl_cffi import requests
from curl_cffi.requests.exceptions import RequestException

log = logging.getLogger(__name__)

USAGE_URL = "https://api.anthropic.com/api/oauth/usage"
HEADERS = {
    "Accept": "application/json",
    "anthropic-beta": "oauth-2025-04-20",
}
KEYCHAIN_SERVICE = "Claude Code-credentials"
SECURITY_BIN = "/usr/bin/security"


# ── data models ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class UsageWindow:
    utilization: float     # 0–100, not clamped here
    resets_at: datetime    # aware, UTC


@dataclass(frozen=True)
class UsageSnapshot:
    five_hour: UsageWindow
    seven_day: UsageWindow


class ErrorKind(enum.Enum):
    CREDENTIAL_MISSING = "credential_missing"
    AUTH = "auth"
    NETWORK = "network"
    PARSE = "parse"


@dataclass(frozen=True)
class RefreshOutcome:
    snapshot: UsageSnapshot | None = None
    error: ErrorKind | None = None

    @classmethod
    def success(cls, snapshot: UsageSnapshot) -> "RefreshOutcome":
        return cls(snapshot=snapshot)

    @classmethod
    def failure(cls, kind: ErrorKind) -> "RefreshOutcome":
        return cls(error=kind)

    @property
    def ok(self) -> bool:
        return self.error is None and self.snapshot is not None


class UsageParseError(ValueError):
    """The usage response didn't have the expected shape."""


# ── keychain ──────────────────────────────────────────────────────────────────

def read_oauth_token(service: str = KEYCHAIN_SERVICE) -> str | None:
    """Read the Claude Code OAuth access token from the login keychain.

    Any failure (security missing, item absent, unexpected JSON) is treated
    as "no credential".
    """
    try:
        result = subprocess.run(
            [SECURITY_BIN, "find-generic-password", "-s", service, "-w"],
            capture_output=True, text=True, timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as e:
        log.debug("security lookup failed: %s", e)
        return None
    if result.returncode != 0:
        log.debug("no keychain item %r (exit %s)", service, result.returncode)
        return None
    try:
        creds = json.loads(result.stdout.strip())
    except json.JSONDecodeError:
        log.debug("keychain item %r is not JSON", service)
        return None
    oauth = creds.get("claudeAiOauth") if isinstance(creds, dict) else None
    token = oauth.get("accessToken") if isinstance(oauth, dict) else None
    if not isinstance(token, str) or not token:
        log.debug("keychain item %r has no accessToken", service)
        return None
    return token


# ── parser ────────────────────────────────────────────────────────────────────

_TS_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(val: str) -> datetime:
    """Parse an ISO-8601 timestamp such as 2025-01-01T05:00:00.000Z."""
    if not isinstance(val, str):
        raise UsageParseError(f"timestamp is not a string: {val!r}")
    m = _TS_RE.match(val.strip())
    if not m:
        raise UsageParseError(f"bad timestamp: {val!r}")
    base, frac, tz = m.groups()
    # fromisoformat only takes up to microseconds
    micros = (frac or "0")[:6].ljust(6, "0")
    if tz == "Z":
        tz = "+00:00"
    try:
        dt = datetime.fromisoformat(f"{base}.{micros}{tz}")
    except ValueError as e:
        raise UsageParseError(f"bad timestamp: {val!r}") from e
    return dt.astimezone(timezone.utc)


def _window(payload: dict, key: str) -> UsageWindow:
    bucket = payload.get(key)
    if not isinstance(bucket, dict):
        raise UsageParseError(f"{key}: missing or not an object")
    util = bucket.get("utilization")
    if isinstance(util, bool) or not isinstance(util, (int, float)):
        raise UsageParseError(f"{key}.utilization: expected a number, got {util!r}")
    if "resets_at" not in bucket:
        raise UsageParseError(f"{key}.resets_at: missing")
    return UsageWindow(float(util), parse_timestamp(bucket["resets_at"]))


def parse_usage(payload) -> UsageSnapshot:
    """
    Response shape:
      five_hour  → {utilization: number, resets_at: ISO-8601}
      seven_day  → same
    Other keys are ignored.
    """
    if not isinstance(payload, dict):
        raise UsageParseError("response is not a JSON object")
    return UsageSnapshot(
        five_hour=_window(payload, "five_hour"),
        seven_day=_window(payload, "seven_day"),
    )


# ── fetch ─────────────────────────────────────────────────────────────────────

def fetch_usage(token: str) -> RefreshOutcome:
    """GET the usage endpoint once. Never raises; no retries."""
    headers = {**HEADERS, "Authorization": f"Bearer {token}"}
    try:
        r = requests.get(USAGE_URL, headers=headers, timeout=15)
    except RequestException as e:
        log.error("usage request failed: %s", e)
        return RefreshOutcome.failure(ErrorKind.NETWORK)

    log.debug("GET %s  status=%s  body=%s", USAGE_URL, r.status_code, r.text[:800])
    if r.status_code in (401, 403):
        log.warning("usage request rejected (status=%s)", r.status_code)
        return RefreshOutcome.failure(ErrorKind.AUTH)

    try:
        snapshot = parse_usage(json.loads(r.text))
    except (json.JSONDecodeError, UsageParseError) as e:
        log.error("unexpected usage response (status=%s): %s", r.status_code, e)
        return RefreshOutcome.failure(ErrorKind.PARSE)
    return RefreshOutcome.success(snapshot)
