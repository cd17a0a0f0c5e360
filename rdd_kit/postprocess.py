from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List

import numpy as np

from .errors import InvalidModelOutputError
from .types import ROW_WIDTH, Detection, ImageDimensions, LetterboxTransform, RawDetectionRow

MAPPING_LETTERBOX = "letterbox"
MAPPING_LEGACY = "legacy"
MAPPINGS = (MAPPING_LETTERBOX, MAPPING_LEGACY)


@dataclass(frozen=True)
class MapperConfig:
    """
    Settings for turning raw model rows into detections.

    mapping:
        "letterbox" removes the padding offset then divides by the scale.
        "legacy" reproduces the older backend output: `(v / target) * original / scale`
        for every field, padding ignored, and the mapped centre reported as x/y
        without a corner correction. Only useful for comparing against records
        stored by that backend.
    clip_to_image:
        Clamp boxes to the image bounds. Off by default; out-of-canvas boxes from the
        model are passed through for the caller to filter.
    """

    conf_threshold: float = 0.5
    mapping: str = MAPPING_LETTERBOX
    clip_to_image: bool = False

    def __post_init__(self) -> None:
        if not (0.0 <= self.conf_threshold <= 1.0):
            raise ValueError(f"conf_threshold must be in [0, 1], got {self.conf_threshold}")
        if self.mapping not in MAPPINGS:
            raise ValueError(f"mapping must be one of {MAPPINGS}, got {self.mapping!r}")


def as_rows(raw_output: Any) -> np.ndarray:
    """
    Validate model output and view it as (N, 6) rows.

    Accepts any array-like (flat list, (1, N, 6) tensor, ...). An empty output is
    valid and yields zero rows. Any NaN or infinite value rejects the whole output,
    including values in rows that would be filtered out.
    """

    if raw_output is None:
        raise InvalidModelOutputError("Model output is missing")
    try:
        flat = np.asarray(raw_output, dtype=np.float64).ravel()
    except (TypeError, ValueError) as e:
        raise InvalidModelOutputError(f"Model output is not numeric: {e}") from e
    if not np.isfinite(flat).all():
        raise InvalidModelOutputError("Model output contains NaN or infinite values")

    if flat.size % ROW_WIDTH != 0:
        raise InvalidModelOutputError(
            f"Model output length {flat.size} is not a multiple of {ROW_WIDTH} "
            "([x_center, y_center, width, height, confidence, class_id] rows)"
        )
    return flat.reshape(-1, ROW_WIDTH)


class DetectionMapper:
    """
    Filters raw rows by confidence and maps the survivors into original-image pixels.

    Row order is preserved; nothing is sorted or suppressed.
    """

    def __init__(self, cfg: MapperConfig = MapperConfig()):
        self.cfg = cfg

    def map(
        self,
        raw_output: Any,
        transform: LetterboxTransform,
        dimensions: ImageDimensions,
    ) -> List[Detection]:
        rows = as_rows(raw_output)
        if rows.shape[0] == 0:
            return []

        keep = rows[:, 4] > self.cfg.conf_threshold
        rows = rows[keep]
        if rows.shape[0] == 0:
            return []

        cx, cy, w, h = self._to_original(rows[:, :4].copy(), transform, dimensions).T
        if self.cfg.mapping == MAPPING_LEGACY:
            x, y = cx, cy
        else:
            x = cx - w / 2.0
            y = cy - h / 2.0

        if self.cfg.clip_to_image:
            x, y, w, h = self._clip(x, y, w, h, dimensions)

        return [
            Detection(
                x=float(x[i]),
                y=float(y[i]),
                width=float(w[i]),
                height=float(h[i]),
                confidence=float(rows[i, 4]),
                class_id=int(rows[i, 5]),
            )
            for i in range(rows.shape[0])
        ]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _to_original(
        self,
        boxes_cxcywh: np.ndarray,
        transform: LetterboxTransform,
        dimensions: ImageDimensions,
    ) -> np.ndarray:
        scale = transform.scale
        if self.cfg.mapping == MAPPING_LEGACY:
            target = float(transform.target_size)
            boxes_cxcywh[:, [0, 2]] = (boxes_cxcywh[:, [0, 2]] / target) * dimensions.width / scale
            boxes_cxcywh[:, [1, 3]] = (boxes_cxcywh[:, [1, 3]] / target) * dimensions.height / scale
            return boxes_cxcywh

        boxes_cxcywh[:, 0] = (boxes_cxcywh[:, 0] - transform.pad_left) / scale
        boxes_cxcywh[:, 1] = (boxes_cxcywh[:, 1] - transform.pad_top) / scale
        boxes_cxcywh[:, 2:4] = boxes_cxcywh[:, 2:4] / scale
        return boxes_cxcywh

    @staticmethod
    def _clip(x: np.ndarray, y: np.ndarray, w: np.ndarray, h: np.ndarray, dimensions: ImageDimensions):
        x1 = np.clip(x, 0, dimensions.width)
        y1 = np.clip(y, 0, dimensions.height)
        x2 = np.clip(x + w, 0, dimensions.width)
        y2 = np.clip(y + h, 0, dimensions.height)
        return x1, y1, x2 - x1, y2 - y1


def map_detections(
    raw_output: Any,
    transform: LetterboxTransform,
    dimensions: ImageDimensions,
    cfg: MapperConfig = MapperConfig(),
) -> List[Detection]:
    return DetectionMapper(cfg).map(raw_output, transform, dimensions)


def parse_rows(raw_output: Any) -> List[RawDetectionRow]:
    """
    Validated model output as typed rows, unfiltered. Handy for debugging exports.
    """

    return [RawDetectionRow.from_values(row.tolist()) for row in as_rows(raw_output)]
