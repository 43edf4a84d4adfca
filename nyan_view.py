"""Progress sprite geometry and drawing.

The sprite scrolls left to right as progress goes 0 -> 1. At 0 only its tail
(the left TAIL_FRACTION of the image) peeks in from the left edge; at 1 it
sits flush against the right edge. Behind it a "trail" is painted by
stretching the sprite's leftmost pixel column from x=0 up to just inside the
sprite.
"""

from dataclasses import dataclass

TAIL_FRACTION = 0.35
TRAIL_OVERLAP = 0.15


@dataclass(frozen=True)
class SpriteLayout:
    x: float
    width: float
    height: float
    trail_width: float | None   # None when the trail would be off-canvas


def layout(image_size: tuple[float, float], viewport_size: tuple[float, float],
           progress: float) -> SpriteLayout | None:
    img_w, img_h = image_size
    view_w, view_h = viewport_size
    if img_h <= 0 or img_w <= 0:
        return None
    progress = min(max(progress, 0.0), 1.0)

    height = view_h
    width = img_w * (height / img_h)
    tail = width * TAIL_FRACTION
    x = progress * (view_w - width + tail) - tail

    trail_end = x + width * TRAIL_OVERLAP
    return SpriteLayout(x, width, height, trail_end if trail_end > 0 else None)


def render(frame, bounds, progress: float, flash_alpha: float = 0.0):
    """Paint frame into the current graphics context, clipped to bounds.

    frame is an AnimationFrame (or None, which draws nothing); bounds is an
    NSRect with origin (0, 0).
    """
    if frame is None:
        return
    from AppKit import (NSBezierPath, NSColor, NSGraphicsContext,
                        NSCompositingOperationSourceOver)
    from Foundation import NSMakeRect, NSZeroRect

    img = frame.bitmap
    img_size = img.size()
    geo = layout((img_size.width, img_size.height),
                 (bounds.size.width, bounds.size.height), progress)
    if geo is None:
        return

    NSGraphicsContext.saveGraphicsState()
    try:
        NSBezierPath.bezierPathWithRect_(bounds).addClip()

        if geo.trail_width is not None:
            column = NSMakeRect(0, 0, 1, img_size.height)
            img.drawInRect_fromRect_operation_fraction_(
                NSMakeRect(0, 0, geo.trail_width, geo.height), column,
                NSCompositingOperationSourceOver, 1.0,
            )

        img.drawInRect_fromRect_operation_fraction_(
            NSMakeRect(geo.x, 0, geo.width, geo.height), NSZeroRect,
            NSCompositingOperationSourceOver, 1.0,
        )

        if flash_alpha > 0:
            NSColor.whiteColor().colorWithAlphaComponent_(min(flash_alpha, 1.0)).setFill()
            NSBezierPath.fillRect_(bounds)
    finally:
        NSGraphicsContext.restoreGraphicsState()
