from __future__ import annotations

import math
from typing import Tuple

import cv2
import numpy as np

from .errors import InvalidImageError
from .types import ImageDimensions, LetterboxTransform

BLACK = (0, 0, 0)


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; canvas sizes must round .5 up.
    return int(math.floor(value + 0.5))


def compute_letterbox(dimensions: ImageDimensions, target_size: int = 640) -> LetterboxTransform:
    """
    Compute the uniform scale and padding that fit `dimensions` into a square canvas.

    Bottom/right padding is whatever remains after the rounded top/left offsets,
    so each axis sums to `target_size` exactly and the inverse only needs left/top.
    """

    if isinstance(target_size, bool) or not isinstance(target_size, int) or target_size <= 0:
        raise ValueError(f"target_size must be a positive integer, got {target_size!r}")

    w, h = dimensions.width, dimensions.height
    scale = min(target_size / w, target_size / h)

    scaled_w = _round_half_up(w * scale)
    scaled_h = _round_half_up(h * scale)

    pad_top = _round_half_up((target_size - scaled_h) / 2)
    pad_bottom = target_size - scaled_h - pad_top
    pad_left = _round_half_up((target_size - scaled_w) / 2)
    pad_right = target_size - scaled_w - pad_left

    return LetterboxTransform(
        scale=scale,
        pad_left=float(pad_left),
        pad_top=float(pad_top),
        target_size=target_size,
        scaled_width=scaled_w,
        scaled_height=scaled_h,
        pad_right=float(pad_right),
        pad_bottom=float(pad_bottom),
    )


def image_dimensions(image: np.ndarray) -> ImageDimensions:
    if image is None or not hasattr(image, "shape"):
        raise InvalidImageError("image must be a NumPy array (BGR).")
    if image.ndim != 3 or image.shape[2] != 3:
        raise InvalidImageError(f"Expected image shape (H, W, 3), got {getattr(image, 'shape', None)}")
    h, w = image.shape[:2]
    return ImageDimensions(width=int(w), height=int(h))


def letterbox(
    image: np.ndarray,
    target_size: int = 640,
    color: Tuple[int, int, int] = BLACK,
) -> Tuple[np.ndarray, LetterboxTransform]:
    """
    Resize `image` preserving aspect ratio and pad it to a `target_size` square.

    Returns:
        canvas: (target_size, target_size, 3) uint8 image, same channel order as the input
        transform: parameters needed to invert the mapping
    """

    dims = image_dimensions(image)
    transform = compute_letterbox(dims, target_size)

    if transform.scaled_width == 0 or transform.scaled_height == 0:
        # Extreme aspect ratio: nothing survives the resize, the canvas is all padding.
        canvas = np.empty((target_size, target_size, 3), dtype=np.uint8)
        canvas[:] = color
        return canvas, transform

    resized_size = (transform.scaled_width, transform.scaled_height)
    if (dims.width, dims.height) != resized_size:
        interpolation = cv2.INTER_AREA if transform.scale < 1.0 else cv2.INTER_LINEAR
        image = cv2.resize(image, resized_size, interpolation=interpolation)

    top, bottom, left, right = transform.as_border()
    canvas = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)
    return canvas, transform
