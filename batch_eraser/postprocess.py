from __future__ import annotations

import logging
from typing import Tuple

import cv2
import numpy as np

from .config import PAD_COLOR
from .preprocess import _check_ratio, flatten_to_rgb

logger = logging.getLogger(__name__)


def compute_source_offset(side: int, target_w: int, target_h: int, aspect_ratio: str) -> Tuple[int, int]:
    """
    Top-left of the crop window on a square of the given side.

    Mirrors preprocess.compute_draw_offset; any divergence shifts every result.
    """
    _check_ratio(aspect_ratio)
    if aspect_ratio == "4:5" and target_w < target_h:
        return 0, (side - target_h) // 2
    return (side - target_w) // 2, (side - target_h) // 2


def match_square_side(generated: np.ndarray, side: int) -> np.ndarray:
    """
    Bring a generated image back to the side length that was sent.

    Generators often answer at their own native resolution (e.g. 1024 for a
    1920 input); cropping at the wrong scale would misplace every pixel.
    """
    rgb = flatten_to_rgb(generated)
    h, w = rgb.shape[:2]
    if (h, w) == (side, side):
        return rgb
    logger.warning("Generated image is %dx%d, expected %dx%d; rescaling before crop", w, h, side, side)
    interp = cv2.INTER_AREA if max(h, w) > side else cv2.INTER_LANCZOS4
    return cv2.resize(rgb, (side, side), interpolation=interp)


def crop_from_square(square: np.ndarray, target_w: int, target_h: int, aspect_ratio: str) -> np.ndarray:
    """
    Undo normalize_to_square: cut a target_w x target_h window 1:1 out of the square.

    Parts of the window outside the square come back as PAD_COLOR.
    """
    rgb = flatten_to_rgb(square)
    if target_w <= 0 or target_h <= 0:
        raise ValueError(f"Invalid target size: {(target_w, target_h)}")

    side = rgb.shape[1]
    sx, sy = compute_source_offset(side, target_w, target_h, aspect_ratio)

    out = np.empty((target_h, target_w, 3), dtype=np.uint8)
    out[...] = np.array(PAD_COLOR, dtype=np.uint8)

    # intersect the window with the square
    x0, y0 = max(sx, 0), max(sy, 0)
    x1, y1 = min(sx + target_w, rgb.shape[1]), min(sy + target_h, rgb.shape[0])
    if x1 > x0 and y1 > y0:
        out[y0 - sy : y1 - sy, x0 - sx : x1 - sx] = rgb[y0:y1, x0:x1]
    return out
