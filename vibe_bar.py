#!/usr/bin/env python3
"""
VibeLimit: macOS status bar app

The status item shows an animated sprite whose position tracks the Claude
five-hour usage window; the menu lists:
  1. Pending flash notifications (from `vibelimit-flash` hooks)
  2. Session (five-hour) usage and reset time
  3. Weekly (seven-day) usage and reset time

Setup:
  pip install .
  vibelimit
"""

import logging
import subprocess

import objc
import rumps
from AppKit import NSMenuItem, NSObject, NSView
from Foundation import NSRunLoop, NSRunLoopCommonModes

import nyan_frames
from flash_channel import FLASH_OFF, FLASH_ON, DistributedFlashChannel
from nyan_view import render
from vibe_config import (LOG_FILE, REFRESH_INTERVALS, load_config, save_config,
                         setting)
from vibe_state import Controller, MenuText
from usage_api import read_oauth_token

log = logging.getLogger(__name__)

ANIMATION_INTERVAL = 1.0 / 30.0
FLUSH_INTERVAL = 0.25
FLASH_ITEM_TAG = 999       # dynamic flash rows in the menu
MENU_FONT_SIZE = 13

LOGIN_SCRIPT = """
tell application "Terminal"
    activate
    do script "claude auth login"
end tell
"""


# ── status bar view ───────────────────────────────────────────────────────────

class NyanView(NSView):
    """Draws the current sprite frame; clicks fall through to the button."""

    def initWithFrame_(self, frame):
        self = objc.super(NyanView, self).initWithFrame_(frame)
        if self:
            self.clock = None
            self.controller = None
        return self

    def drawRect_(self, rect):
        if self.clock is None or self.controller is None:
            return
        render(self.clock.frame, self.bounds(),
               self.controller.progress, self.controller.pulse.alpha)

    def hitTest_(self, point):
        return None


class _MenuWatcher(NSObject):
    """NSMenu delegate forwarding menuWillOpen: to a Python callback."""

    def menuWillOpen_(self, menu):
        fn = getattr(self, "_on_open", None)
        if fn:
            fn()


# ── menu helpers ──────────────────────────────────────────────────────────────

def _mi(key: str) -> rumps.MenuItem:
    """Display-only menu item (non-clickable but visually active)."""
    item = rumps.MenuItem(key)
    item.set_callback(None)
    item._menuitem.setEnabled_(True)
    return item


def _set_text(item: rumps.MenuItem, text: str, mono: bool = False):
    if not mono:
        item.title = text
        return
    try:
        from AppKit import NSFont, NSFontAttributeName
        from Foundation import NSAttributedString
        font = NSFont.monospacedSystemFontOfSize_weight_(MENU_FONT_SIZE, 0.0)
        astr = NSAttributedString.alloc().initWithString_attributes_(
            text, {NSFontAttributeName: font}
        )
        item._menuitem.setAttributedTitle_(astr)
    except Exception as e:
        log.debug("_set_text: %s", e)
        item.title = text


def _set_hidden(item: rumps.MenuItem, hidden: bool):
    item._menuitem.setHidden_(hidden)


def _start_timer(callback, interval: float, tolerance: float = 0.0) -> rumps.Timer:
    """rumps.Timer that also fires while the menu is open."""
    timer = rumps.Timer(callback, interval)
    timer.start()
    try:
        nstimer = timer._nstimer
        if tolerance:
            nstimer.setTolerance_(tolerance)
        NSRunLoop.currentRunLoop().addTimer_forMode_(nstimer, NSRunLoopCommonModes)
    except Exception as e:
        log.debug("timer common-mode setup failed: %s", e)
    return timer


# ── app ───────────────────────────────────────────────────────────────────────

class VibeBar(rumps.App):
    def __init__(self):
        super().__init__("VibeLimit", title="◆", quit_button=None)
        self.config = load_config()
        service = setting(self.config, "keychain_service")
        self.controller = Controller(
            read_token=lambda: read_oauth_token(service),
            bar_width=setting(self.config, "bar_width"),
        )
        self._clock = nyan_frames.FrameClock(
            nyan_frames.load(setting(self.config, "gif_path"))
        )
        self._view: NyanView | None = None
        self._drawn_alpha = 0.0
        self._menu_watcher = None
        self._refresh_interval = setting(self.config, "refresh_interval")

        self._build_menu()
        self._apply_state()

        self._channel = DistributedFlashChannel()
        self._channel.subscribe(FLASH_ON, self._on_flash_on)
        self._channel.subscribe(FLASH_OFF, self._on_flash_off)

        # The status item only exists once the run loop is up
        self._setup_timer = rumps.Timer(self._deferred_setup, 0.1)
        self._setup_timer.start()

        self._timer = _start_timer(self._on_timer, self._refresh_interval, tolerance=5)
        self._anim_timer = _start_timer(self._on_frame, ANIMATION_INTERVAL, tolerance=0.005)
        # Drains finished fetches on the main thread (avoids AppKit crashes)
        self._ui_ticker = _start_timer(self._flush_ui, FLUSH_INTERVAL)

        self.controller.refresh()
        self._apply_state()

    # ── menu ─────────────────────────────────────────────────────────────────

    def _build_menu(self):
        self._clear_item = rumps.MenuItem("Clear notifications", callback=self._clear_flash)
        self._five_bar = _mi("five_hour_bar")
        self._five_pct = _mi("five_hour_pct")
        self._five_reset = _mi("five_hour_reset")
        self._seven_bar = _mi("seven_day_bar")
        self._seven_pct = _mi("seven_day_pct")
        self._seven_reset = _mi("seven_day_reset")
        self._login_item = rumps.MenuItem("Run: claude auth login", callback=self._open_login)

        interval_menu = rumps.MenuItem("Refresh Interval")
        self._interval_items = {}
        for label, secs in REFRESH_INTERVALS.items():
            item = rumps.MenuItem(label, callback=self._make_interval_cb(secs))
            item._menuitem.setState_(1 if secs == self._refresh_interval else 0)
            interval_menu.add(item)
            self._interval_items[secs] = item

        self.menu = [
            self._clear_item,
            self._five_bar,
            self._five_pct,
            self._five_reset,
            None,
            self._seven_bar,
            self._seven_pct,
            self._seven_reset,
            None,
            self._login_item,
            interval_menu,
            None,
            rumps.MenuItem("Quit", callback=self._quit, key="q"),
        ]
        _set_hidden(self._clear_item, True)

    def _apply_menu_text(self, text: MenuText):
        _set_text(self._five_bar, text.five_hour_bar, mono=True)
        _set_text(self._five_pct, text.five_hour_pct)
        _set_text(self._five_reset, text.five_hour_reset)
        _set_text(self._seven_bar, text.seven_day_bar, mono=True)
        _set_text(self._seven_pct, text.seven_day_pct)
        _set_text(self._seven_reset, text.seven_day_reset)
        _set_hidden(self._login_item, not text.login_visible)

    def _rebuild_flash_items(self, names: list[str]):
        try:
            ns_menu = self._nsapp.nsstatusitem.menu()
        except AttributeError:
            return
        if ns_menu is None:
            return
        for item in list(ns_menu.itemArray()):
            if item.tag() == FLASH_ITEM_TAG:
                ns_menu.removeItem_(item)

        _set_hidden(self._clear_item, not names)
        if not names:
            return
        index = ns_menu.indexOfItem_(self._clear_item._menuitem) + 1
        rows = [NSMenuItem.alloc().initWithTitle_action_keyEquivalent_(f"❓ {n}", None, "")
                for n in names]
        rows.append(NSMenuItem.separatorItem())
        for row in rows:
            row.setTag_(FLASH_ITEM_TAG)
            ns_menu.insertItem_atIndex_(row, index)
            index += 1

    def _apply_state(self):
        """Push controller state to the menu and the status item."""
        self._apply_menu_text(self.controller.menu_text())
        if self._view is not None:
            self._view.setNeedsDisplay_(True)
        elif self._nsapp_ready():
            self.title = self._fallback_title()

    def _fallback_title(self) -> str:
        """Text title used when the animation couldn't be loaded."""
        c = self.controller
        flag = "❓ " if c.flash_sessions else ""
        if c.snapshot is not None and c.error is None:
            return f"{flag}◆ {c.snapshot.five_hour.utilization:.0f}%"
        if c.error is not None:
            return f"{flag}◆ !"
        return f"{flag}◆"

    def _nsapp_ready(self) -> bool:
        return getattr(getattr(self, "_nsapp", None), "nsstatusitem", None) is not None

    # ── setup ────────────────────────────────────────────────────────────────

    def _deferred_setup(self, _timer):
        """Runs once after the run loop is active, then stops itself."""
        _timer.stop()
        statusitem = self._nsapp.nsstatusitem

        ns_menu = statusitem.menu()
        if ns_menu is not None:
            # Keep display-only rows looking enabled
            ns_menu.setAutoenablesItems_(False)
            self._menu_watcher = _MenuWatcher.alloc().init()
            self._menu_watcher._on_open = self._on_menu_open
            ns_menu.setDelegate_(self._menu_watcher)

        if not self._clock.frames:
            log.warning("no animation frames, using text title")
            self.title = self._fallback_title()
            return

        try:
            from AppKit import NSViewHeightSizable, NSViewWidthSizable
            statusitem.setLength_(setting(self.config, "status_width"))
            button = statusitem.button()
            self.title = ""
            view = NyanView.alloc().initWithFrame_(button.bounds())
            view.setAutoresizingMask_(NSViewWidthSizable | NSViewHeightSizable)
            view.clock = self._clock
            view.controller = self.controller
            button.addSubview_(view)
            self._view = view
        except Exception:
            log.exception("could not install status bar view")
            self.title = self._fallback_title()

    # ── timers ───────────────────────────────────────────────────────────────

    def _on_timer(self, _timer):
        self.controller.refresh()
        self._apply_state()

    def _on_frame(self, _timer):
        dt, changed = self._clock.tick()
        pulse = self.controller.pulse
        if pulse.active:
            pulse.tick(dt)
        if self._view is None:
            return
        if changed or pulse.alpha != self._drawn_alpha:
            self._drawn_alpha = pulse.alpha
            self._view.setNeedsDisplay_(True)

    def _flush_ui(self, _timer):
        if self.controller.poll():
            self._apply_state()

    def _make_interval_cb(self, secs: int):
        def _cb(_sender):
            self._refresh_interval = secs
            self.config["refresh_interval"] = secs
            save_config(self.config)
            self._timer.stop()
            self._timer = _start_timer(self._on_timer, secs, tolerance=5)
            for s, item in self._interval_items.items():
                item._menuitem.setState_(1 if s == secs else 0)
        return _cb

    # ── flash ────────────────────────────────────────────────────────────────

    def _on_flash_on(self, session_id: str, name: str):
        log.debug("flash on: %s (%s)", session_id, name)
        self.controller.flash_on(session_id, name)
        if self._view is None:
            self._apply_state()

    def _on_flash_off(self, session_id: str, _name: str):
        log.debug("flash off: %s", session_id)
        self.controller.flash_off(session_id)
        if self._view is None:
            self._apply_state()

    def _clear_flash(self, _sender):
        self.controller.clear_flashes()
        self._rebuild_flash_items([])
        self._apply_state()

    def _on_menu_open(self):
        names = self.controller.menu_opened()
        self._rebuild_flash_items(names)
        self._apply_state()

    # ── actions ──────────────────────────────────────────────────────────────

    def _open_login(self, _sender):
        try:
            subprocess.run(["osascript", "-e", LOGIN_SCRIPT],
                           capture_output=True, timeout=30)
        except (OSError, subprocess.SubprocessError):
            log.exception("could not open Terminal for login")

    def _quit(self, _sender):
        for timer in (self._timer, self._anim_timer, self._ui_ticker):
            timer.stop()
        self._channel.close()
        self.controller.shutdown()
        rumps.quit_application()


def _hide_dock_icon():
    try:
        from AppKit import NSApplication, NSApplicationActivationPolicyAccessory
        NSApplication.sharedApplication().setActivationPolicy_(
            NSApplicationActivationPolicyAccessory)
    except Exception as e:
        log.debug("could not set accessory activation policy: %s", e)


def main():
    logging.basicConfig(
        filename=LOG_FILE,
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    _hide_dock_icon()
    VibeBar().run()


if __name__ == "__main__":
    main()
