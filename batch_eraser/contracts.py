from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_ASPECT_RATIO, DEFAULT_FEATHER, DEFAULT_OPACITY
from .geometry import PixelRect, to_percent, to_pixel_rect

AspectRatio = Literal["9:16", "4:5"]


class MaskSettings(BaseModel):
    """
    Percentage-relative mask rectangle plus presentation parameters.

    Field names match the persisted settings file exactly.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    width: float = Field(default=0.0, ge=0.0, le=100.0)
    height: float = Field(default=0.0, ge=0.0, le=100.0)
    maskX: float = Field(default=0.0, ge=0.0, le=100.0)
    maskY: float = Field(default=0.0, ge=0.0, le=100.0)
    feather: float = Field(default=DEFAULT_FEATHER, ge=0.0)
    opacity: float = Field(default=DEFAULT_OPACITY, ge=0.0, le=1.0)
    aspectRatio: AspectRatio = DEFAULT_ASPECT_RATIO

    @property
    def has_mask(self) -> bool:
        return self.width > 0 and self.height > 0

    def pixel_rect(self, canvas_w: float, canvas_h: float) -> PixelRect:
        return to_pixel_rect(self, canvas_w, canvas_h)

    @classmethod
    def from_pixel_rect(
        cls,
        x: float,
        y: float,
        w: float,
        h: float,
        canvas_w: float,
        canvas_h: float,
        **presentation,
    ) -> "MaskSettings":
        return cls(**to_percent(x, y, w, h, canvas_w, canvas_h), **presentation)

    def with_rect(self, other: "MaskSettings") -> "MaskSettings":
        """Adopt another value's rectangle, keep our feather/opacity/aspectRatio."""
        return self.model_copy(
            update={
                "width": other.width,
                "height": other.height,
                "maskX": other.maskX,
                "maskY": other.maskY,
            }
        )

    def without_mask(self) -> "MaskSettings":
        return self.model_copy(update={"width": 0.0, "height": 0.0})


@dataclass(frozen=True)
class ImageRecord:
    """One source image as uploaded (encoded bytes + native size)."""

    data: bytes
    mime_type: str
    width: int
    height: int
    name: str


@dataclass(frozen=True)
class StageTimings:
    normalize_s: float
    generate_s: float
    denormalize_s: float
    total_s: float


@dataclass(frozen=True)
class BatchItem:
    """An image paired with its cropped generation result (lossless PNG bytes)."""

    original: ImageRecord
    result: bytes
    timings: StageTimings
