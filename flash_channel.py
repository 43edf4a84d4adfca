"""Flash on/off signalling between CLI hooks and the menu bar app.

Two named events ("on", "off") each carry a JSON string payload
{"id": <session id>, "name": <display label>}. Malformed payloads are
dropped before handlers see them.
"""

import json
import logging

log = logging.getLogger(__name__)

FLASH_ON = "on"
FLASH_OFF = "off"
EVENTS = (FLASH_ON, FLASH_OFF)

NOTIFICATION_PREFIX = "com.vibelimit.flash."


def notification_name(event: str) -> str:
    if event not in EVENTS:
        raise ValueError(f"unknown flash event: {event!r}")
    return NOTIFICATION_PREFIX + event


def encode_payload(session_id: str, name: str) -> str:
    return json.dumps({"id": session_id, "name": name})


def decode_payload(obj) -> tuple[str, str] | None:
    """Return (session_id, name) or None; name falls back to the id."""
    if not isinstance(obj, str):
        return None
    try:
        payload = json.loads(obj)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    session_id = payload.get("id")
    if not isinstance(session_id, str) or not session_id:
        return None
    name = payload.get("name")
    if not isinstance(name, str) or not name:
        name = session_id
    return session_id, name


class FlashChannel:
    """publish/subscribe for the two flash events.

    Handlers are called as handler(session_id, name).
    """

    def publish(self, event: str, session_id: str, name: str):
        raise NotImplementedError

    def subscribe(self, event: str, handler):
        raise NotImplementedError

    @staticmethod
    def dispatch(raw, handlers):
        """Decode raw and call each handler; malformed payloads are dropped."""
        info = decode_payload(raw)
        if info is None:
            log.debug("dropping malformed flash payload: %r", raw)
            return
        for handler in list(handlers):
            handler(*info)


class LocalFlashChannel(FlashChannel):
    """In-process channel; payloads go through the same JSON encoding."""

    def __init__(self):
        self._handlers: dict[str, list] = {e: [] for e in EVENTS}

    def publish(self, event: str, session_id: str, name: str):
        notification_name(event)
        self.deliver(event, encode_payload(session_id, name))

    def deliver(self, event: str, raw):
        """Dispatch a raw payload as a transport would."""
        self.dispatch(raw, self._handlers[event])

    def subscribe(self, event: str, handler):
        notification_name(event)
        self._handlers[event].append(handler)


class DistributedFlashChannel(FlashChannel):
    """NSDistributedNotificationCenter transport (macOS, any process)."""

    def __init__(self):
        from Foundation import NSDistributedNotificationCenter
        self._center = NSDistributedNotificationCenter.defaultCenter()
        self._observers = []

    def publish(self, event: str, session_id: str, name: str):
        self._center.postNotificationName_object_userInfo_deliverImmediately_(
            notification_name(event), encode_payload(session_id, name), None, True,
        )

    def subscribe(self, event: str, handler):
        from Foundation import NSOperationQueue

        def _on_note(note):
            raw = note.object()
            self.dispatch(str(raw) if raw is not None else None, [handler])

        token = self._center.addObserverForName_object_queue_usingBlock_(
            notification_name(event), None, NSOperationQueue.mainQueue(), _on_note,
        )
        self._observers.append(token)

    def close(self):
        for token in self._observers:
            self._center.removeObserver_(token)
        self._observers.clear()
