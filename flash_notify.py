#!/usr/bin/env python3
"""
Relay a Claude Code hook event to the VibeLimit menu bar app.

Hook setup (~/.claude/settings.json):
  "Notification": [... "command": "vibelimit-flash on" ...]
  "UserPromptSubmit": [... "command": "vibelimit-flash off" ...]

The hook JSON arrives on stdin; session_id and the basename of cwd are
forwarded as the flash payload.
"""

import json
import logging
import os
import sys

from flash_channel import EVENTS, DistributedFlashChannel
from vibe_config import LOG_FILE

log = logging.getLogger(__name__)

USAGE = "usage: vibelimit-flash on|off  (hook JSON on stdin)"


def read_hook_input(stream) -> dict:
    try:
        data = json.loads(stream.read() or "{}")
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        log.debug("unreadable hook input: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def display_name(cwd) -> str:
    """Last path component of cwd ('' when unknown)."""
    if not isinstance(cwd, str) or not cwd:
        return ""
    stripped = cwd.rstrip("/")
    return os.path.basename(stripped) if stripped else "/"


def build_payload(hook: dict) -> tuple[str, str]:
    session_id = hook.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        session_id = "unknown"
    return session_id, display_name(hook.get("cwd"))


def main(argv=None, stdin=None, channel=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] not in EVENTS:
        print(USAGE, file=sys.stderr)
        return 1
    event = argv[0]

    if not logging.getLogger().handlers:
        logging.basicConfig(
            filename=LOG_FILE,
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(message)s",
        )

    session_id, name = build_payload(read_hook_input(sys.stdin if stdin is None else stdin))
    if channel is None:
        channel = DistributedFlashChannel()
    channel.publish(event, session_id, name)
    log.debug("flash %s posted for %s (%s)", event, session_id, name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
