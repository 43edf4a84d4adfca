"""Refresh / flash state machine behind the menu bar app.

Everything here runs on the UI thread except the keychain read and the fetch,
which are submitted to an executor and picked up again by poll().
"""

import enum
import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone

from usage_api import (ErrorKind, RefreshOutcome, UsageSnapshot, fetch_usage,
                       read_oauth_token)

log = logging.getLogger(__name__)

ERROR_MESSAGES = {
    ErrorKind.CREDENTIAL_MISSING: "claude auth login",
    ErrorKind.AUTH:               "Run: claude login",
    ErrorKind.NETWORK:            "Network error",
    ErrorKind.PARSE:              "API error",
}
LOGIN_ERRORS = frozenset({ErrorKind.CREDENTIAL_MISSING, ErrorKind.AUTH})


class Phase(enum.Enum):
    POLLING = "polling"
    NO_CREDENTIAL = "no_credential"
    SHOWING_USAGE = "showing_usage"
    SHOWING_ERROR = "showing_error"


# ── display helpers ───────────────────────────────────────────────────────────

def ascii_bar(percent: float, width: int = 15) -> str:
    clamped = min(max(percent, 0.0), 100.0)
    filled = int(math.floor(clamped / 100.0 * width + 0.5))
    return "▰" * filled + "▱" * (width - filled)


def format_time_until(when: datetime, now: datetime | None = None) -> str:
    """'2h 5m', '12m' or 'now'."""
    now = now or datetime.now(timezone.utc)
    secs = int((when - now).total_seconds())
    if secs <= 0:
        return "now"
    h, rem = divmod(secs, 3600)
    m = rem // 60
    if h > 0:
        return f"{h}h {m}m"
    return f"{m}m"


def format_days_until(when: datetime, now: datetime | None = None) -> str:
    """'1 day', '3 days' (rounded up) or 'now'."""
    now = now or datetime.now(timezone.utc)
    secs = (when - now).total_seconds()
    if secs <= 0:
        return "now"
    days = math.ceil(secs / 86400)
    return "1 day" if days == 1 else f"{days} days"


def format_reset_time(when: datetime) -> str:
    """Local weekday and time, e.g. 'Sun 09:00'."""
    return when.astimezone().strftime("%a %H:%M")


# ── flash pulse ───────────────────────────────────────────────────────────────

class FlashPulse:
    """Sine-wave alpha, one cycle per second, 0..1, while active."""

    PERIOD = 1.0

    def __init__(self):
        self.active = False
        self.phase = 0.0
        self.alpha = 0.0

    def start(self):
        if self.active:
            return
        self.active = True
        self.phase = 0.0
        self.alpha = 0.5

    def tick(self, dt: float) -> float:
        if not self.active:
            return 0.0
        self.phase += dt
        self.alpha = (math.sin(self.phase / self.PERIOD * 2 * math.pi) + 1) / 2
        return self.alpha

    def stop(self):
        self.active = False
        self.phase = 0.0
        self.alpha = 0.0


# ── menu text ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MenuText:
    five_hour_bar: str
    five_hour_pct: str
    five_hour_reset: str
    seven_day_bar: str
    seven_day_pct: str
    seven_day_reset: str
    login_visible: bool
    flash_names: tuple[str, ...]


# ── controller ────────────────────────────────────────────────────────────────

class Controller:
    def __init__(self, read_token=read_oauth_token, fetch=fetch_usage,
                 executor=None, bar_width: int = 15):
        self._read_token = read_token
        self._fetch = fetch
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="usage")
        self.bar_width = bar_width

        self.token: str | None = None
        self.phase = Phase.POLLING
        self.snapshot: UsageSnapshot | None = None
        self.error: ErrorKind | None = None
        self.progress = 0.0
        self.flash_sessions: dict[str, str] = {}   # session_id -> display name
        self.pulse = FlashPulse()
        self._pending: Future | None = None

    # ── refresh ──────────────────────────────────────────────────────────────

    def refresh(self) -> Future | None:
        """Start a usage fetch unless one is already outstanding.

        When no token is cached the keychain is read on the executor too,
        since `security` can block on an access prompt.
        """
        if self._pending is not None:
            log.debug("refresh skipped: request still in flight")
            return None
        self._pending = self._executor.submit(self._fetch_with_token, self.token)
        return self._pending

    def _fetch_with_token(self, token: str | None):
        """Worker side of refresh(): returns (token, RefreshOutcome)."""
        if token is None:
            token = self._read_token()
            if token is None:
                return None, RefreshOutcome.failure(ErrorKind.CREDENTIAL_MISSING)
        return token, self._fetch(token)

    def poll(self) -> bool:
        """Apply a finished fetch, if any. Returns True when state changed."""
        fut = self._pending
        if fut is None or not fut.done():
            return False
        self._pending = None
        try:
            self.token, outcome = fut.result()
        except Exception:
            log.exception("usage fetch raised")
            outcome = RefreshOutcome.failure(ErrorKind.NETWORK)
        self.apply(outcome)
        return True

    def apply(self, outcome: RefreshOutcome):
        if outcome.ok:
            self.phase = Phase.SHOWING_USAGE
            self.snapshot = outcome.snapshot
            self.error = None
            util = outcome.snapshot.five_hour.utilization / 100.0
            self.progress = min(max(util, 0.0), 1.0)
            log.debug("usage: 5h=%.1f%% 7d=%.1f%%",
                      outcome.snapshot.five_hour.utilization,
                      outcome.snapshot.seven_day.utilization)
            return

        kind = outcome.error or ErrorKind.PARSE
        self.progress = 0.0
        self.error = kind
        if kind is ErrorKind.CREDENTIAL_MISSING:
            self.token = None
            self.phase = Phase.NO_CREDENTIAL
            log.info("no OAuth token in keychain")
            return
        if kind is ErrorKind.AUTH:
            # Drop the cached token so the next cycle re-reads the keychain
            self.token = None
        self.phase = Phase.SHOWING_ERROR
        log.info("refresh failed: %s", kind.value)

    # ── flash ────────────────────────────────────────────────────────────────

    def flash_on(self, session_id: str, name: str):
        self.flash_sessions[session_id] = name
        self.pulse.start()

    def flash_off(self, session_id: str):
        self.flash_sessions.pop(session_id, None)
        if not self.flash_sessions:
            self.pulse.stop()

    def clear_flashes(self):
        self.flash_sessions.clear()
        self.pulse.stop()

    def pending_flash_names(self) -> list[str]:
        return sorted(self.flash_sessions.values())

    def menu_opened(self) -> list[str]:
        """The user looked at the menu: acknowledge the flash and refresh."""
        self.pulse.stop()
        names = self.pending_flash_names()
        self.refresh()
        return names

    # ── menu ─────────────────────────────────────────────────────────────────

    def menu_text(self, now: datetime | None = None) -> MenuText:
        flashes = tuple(self.pending_flash_names())
        w = self.bar_width

        if self.phase in (Phase.NO_CREDENTIAL, Phase.SHOWING_ERROR):
            return MenuText(
                ERROR_MESSAGES[self.error], "", "", "", "", "",
                login_visible=self.error in LOGIN_ERRORS,
                flash_names=flashes,
            )

        snap = self.snapshot
        if snap is None:
            return MenuText(
                ascii_bar(0, w), "Session: ---%", "Resets in ---",
                ascii_bar(0, w), "Weekly: ---%", "Resets in ---",
                login_visible=False, flash_names=flashes,
            )

        five, seven = snap.five_hour, snap.seven_day
        weekly_reset = f"Resets in {format_days_until(seven.resets_at, now)}"
        if weekly_reset != "Resets in now":
            weekly_reset += f" ({format_reset_time(seven.resets_at)})"
        return MenuText(
            ascii_bar(five.utilization, w),
            f"Session: {five.utilization:.0f}%",
            f"Resets in {format_time_until(five.resets_at, now)}",
            ascii_bar(seven.utilization, w),
            f"Weekly: {seven.utilization:.0f}%",
            weekly_reset,
            login_visible=False,
            flash_names=flashes,
        )

    def shutdown(self):
        self._executor.shutdown(wait=False)
