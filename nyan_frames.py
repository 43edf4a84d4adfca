"""GIF frame extraction and time-based playback for the status bar sprite."""

import logging
import os
import time
from dataclasses import dataclass

log = logging.getLogger(__name__)

# ImageIO GIF property keys (values of kCGImagePropertyGIF*DelayTime)
UNCLAMPED_DELAY_KEY = "UnclampedDelayTime"
DELAY_KEY = "DelayTime"

DEFAULT_FRAME_DURATION = 0.1
MIN_FRAME_DURATION = 0.02     # zero-delay GIFs would otherwise spin
MAX_TICK_SECONDS = 0.5        # cap per tick so a wake from sleep doesn't jump


@dataclass(frozen=True)
class AnimationFrame:
    bitmap: object        # NSImage when decoded by ImageIO
    duration: float       # seconds, >= MIN_FRAME_DURATION


@dataclass(frozen=True)
class PlaybackState:
    index: int = 0
    accumulated: float = 0.0


def frame_duration(props: dict | None) -> float:
    """Pick a frame's display time from its GIF properties.

    The unclamped delay wins over the (browser-clamped) delay; with neither
    present the frame gets DEFAULT_FRAME_DURATION. The result is floored to
    MIN_FRAME_DURATION.
    """
    props = props or {}
    for key in (UNCLAMPED_DELAY_KEY, DELAY_KEY):
        val = props.get(key)
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            return max(float(val), MIN_FRAME_DURATION)
    return DEFAULT_FRAME_DURATION


def decode_frames(source) -> list[AnimationFrame]:
    """Decode every frame of an image source.

    source must provide count(), image_at(i) and properties_at(i).
    Frames whose image can't be created are skipped.
    """
    frames: list[AnimationFrame] = []
    for i in range(source.count()):
        try:
            image = source.image_at(i)
        except Exception:
            log.debug("frame %d: image decode raised", i, exc_info=True)
            image = None
        if image is None:
            log.debug("frame %d: skipped (undecodable)", i)
            continue
        try:
            props = source.properties_at(i)
        except Exception:
            log.debug("frame %d: no properties", i, exc_info=True)
            props = None
        frames.append(AnimationFrame(image, frame_duration(props)))
    return frames


class _ImageIOSource:
    """CGImageSource wrapper exposing the decode_frames() protocol."""

    def __init__(self, path: str):
        import Quartz
        from Foundation import NSData
        self._q = Quartz
        data = NSData.dataWithContentsOfFile_(path)
        self._src = Quartz.CGImageSourceCreateWithData(data, None) if data else None

    def count(self) -> int:
        if self._src is None:
            return 0
        return self._q.CGImageSourceGetCount(self._src)

    def image_at(self, i: int):
        from AppKit import NSImage
        cg = self._q.CGImageSourceCreateImageAtIndex(self._src, i, None)
        if cg is None:
            return None
        size = (self._q.CGImageGetWidth(cg), self._q.CGImageGetHeight(cg))
        return NSImage.alloc().initWithCGImage_size_(cg, size)

    def properties_at(self, i: int) -> dict:
        props = self._q.CGImageSourceCopyPropertiesAtIndex(self._src, i, None) or {}
        gif = props.get(self._q.kCGImagePropertyGIFDictionary) or {}
        return {str(k): v for k, v in gif.items()}


def load(path: str) -> list[AnimationFrame]:
    """Load all frames of the GIF at path; [] when missing or undecodable."""
    if not path or not os.path.isfile(path):
        log.warning("animation asset not found: %s", path)
        return []
    try:
        frames = decode_frames(_ImageIOSource(path))
    except Exception:
        log.warning("could not decode animation %s", path, exc_info=True)
        return []
    if not frames:
        log.warning("animation %s has no decodable frames", path)
    else:
        log.debug("loaded %d frames from %s (loop %.2fs)",
                  len(frames), path, sum(f.duration for f in frames))
    return frames


def advance(frames: list[AnimationFrame], state: PlaybackState,
            elapsed: float) -> tuple[PlaybackState, bool]:
    """Move the playback cursor forward by elapsed seconds, looping.

    Returns the new state and whether the displayed frame changed. The
    caller is responsible for capping elapsed (see FrameClock).
    """
    if not frames:
        return state, False
    index = state.index % len(frames)
    acc = state.accumulated + elapsed
    while acc >= frames[index].duration:
        acc -= frames[index].duration
        index = (index + 1) % len(frames)
    return PlaybackState(index, acc), index != state.index


class FrameClock:
    """Feeds real elapsed time from a monotonic clock into advance()."""

    def __init__(self, frames: list[AnimationFrame], clock=time.monotonic):
        self.frames = frames
        self.state = PlaybackState()
        self._clock = clock
        self._last_tick: float | None = None

    @property
    def frame(self) -> AnimationFrame | None:
        if not self.frames:
            return None
        return self.frames[self.state.index]

    def tick(self) -> tuple[float, bool]:
        """Return (clamped seconds since last tick, frame changed)."""
        now = self._clock()
        if self._last_tick is None:
            dt = 0.0
        else:
            dt = min(max(now - self._last_tick, 0.0), MAX_TICK_SECONDS)
        self._last_tick = now
        self.state, changed = advance(self.frames, self.state, dt)
        return dt, changed
