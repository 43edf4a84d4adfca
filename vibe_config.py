"""Settings for the VibeLimit menu bar app, persisted as JSON in the home dir."""

import json
import logging
import os

log = logging.getLogger(__name__)

CONFIG_FILE = os.path.expanduser("~/.vibelimit_config.json")
LOG_FILE = os.path.expanduser("~/.vibelimit.log")

ASSET_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "assets")

REFRESH_INTERVALS = {
    "1 min":  60,
    "5 min":  300,
    "15 min": 900,
}

DEFAULTS = {
    "refresh_interval": 60,
    "bar_width": 15,          # segments in the ASCII bars
    "status_width": 150,      # points reserved in the status bar
    "gif_path": os.path.join(ASSET_DIR, "pikanyan.gif"),
    "keychain_service": "Claude Code-credentials",
}


def load_config(path: str = CONFIG_FILE) -> dict:
    if os.path.exists(path):
        try:
            with open(path) as f:
                cfg = json.load(f)
            if isinstance(cfg, dict):
                return cfg
            log.warning("Config file %s is not an object, ignoring", path)
        except (json.JSONDecodeError, OSError) as e:
            corrupt = path + ".bak"
            log.warning("Config file corrupt (%s), resetting. Backup at %s", e, corrupt)
            try:
                os.replace(path, corrupt)
            except OSError:
                log.debug("could not move %s aside", path, exc_info=True)
    return {}


def save_config(cfg: dict, path: str = CONFIG_FILE):
    tmp = path + ".tmp"
    with open(tmp, "w") as f:
        json.dump(cfg, f, indent=2)
    os.replace(tmp, path)


def setting(cfg: dict, key: str):
    """Return the configured value for key, falling back to DEFAULTS."""
    return cfg.get(key, DEFAULTS[key])
