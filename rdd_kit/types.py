from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Tuple, Union

from .errors import InvalidImageError, InvalidModelOutputError

ROW_WIDTH = 6


@dataclass(frozen=True)
class ImageDimensions:
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise InvalidImageError(f"Image dimensions must be positive, got {self.width}x{self.height}")


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Everything needed to map canvas coordinates back to the original image.

    Only `scale`, `pad_left` and `pad_top` take part in the inverse mapping; the
    right/bottom padding is kept so callers can check the canvas adds up.
    """

    scale: float
    pad_left: float
    pad_top: float
    target_size: int
    scaled_width: int
    scaled_height: int
    pad_right: float
    pad_bottom: float

    def as_border(self) -> Tuple[int, int, int, int]:
        # (top, bottom, left, right) as expected by cv2.copyMakeBorder
        return int(self.pad_top), int(self.pad_bottom), int(self.pad_left), int(self.pad_right)


@dataclass(frozen=True)
class RawDetectionRow:
    """
    One row of model output in canvas space.
    """

    x_center: float
    y_center: float
    width: float
    height: float
    confidence: float
    class_id: int

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "RawDetectionRow":
        if len(values) != ROW_WIDTH:
            raise InvalidModelOutputError(f"Expected {ROW_WIDTH} values per row, got {len(values)}")
        xc, yc, w, h, conf, cls_id = values
        return cls(
            x_center=float(xc),
            y_center=float(yc),
            width=float(w),
            height=float(h),
            confidence=float(conf),
            class_id=int(cls_id),
        )


@dataclass(frozen=True)
class Detection:
    """
    Detection in original-image pixel space. `x`/`y` is the top-left corner.
    """

    x: float
    y: float
    width: float
    height: float
    confidence: float
    class_id: int

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.height

    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def to_dict(self) -> Dict[str, Union[float, int]]:
        return {
            "x": float(self.x),
            "y": float(self.y),
            "width": float(self.width),
            "height": float(self.height),
            "confidence": float(self.confidence),
            "classId": int(self.class_id),
        }
