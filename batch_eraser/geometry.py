from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from .contracts import MaskSettings


@dataclass(frozen=True)
class PixelRect:
    """Mask rectangle in pixel space. Fractional values are kept as-is."""

    x: float
    y: float
    w: float
    h: float

    @property
    def is_empty(self) -> bool:
        return self.w <= 0 or self.h <= 0


def to_pixel_rect(settings: "MaskSettings", canvas_w: float, canvas_h: float) -> PixelRect:
    """
    Map a percentage rectangle onto a canvas of the given size.

    No clamping: rectangles reaching past the canvas are clipped later by the mask builder.
    """
    return PixelRect(
        x=canvas_w * settings.maskX / 100.0,
        y=canvas_h * settings.maskY / 100.0,
        w=canvas_w * settings.width / 100.0,
        h=canvas_h * settings.height / 100.0,
    )


def to_percent(x: float, y: float, w: float, h: float, canvas_w: float, canvas_h: float) -> Dict[str, float]:
    """
    Inverse of to_pixel_rect: a drawn pixel rectangle -> MaskSettings rect fields.
    """
    if canvas_w <= 0 or canvas_h <= 0:
        raise ValueError(f"Invalid canvas size: {(canvas_w, canvas_h)}")
    return {
        "maskX": x / canvas_w * 100.0,
        "maskY": y / canvas_h * 100.0,
        "width": w / canvas_w * 100.0,
        "height": h / canvas_h * 100.0,
    }
