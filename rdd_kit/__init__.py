"""
Road damage detection core.

Letterbox preprocessing and the inverse coordinate mapping around a pre-trained
detector. Framework-agnostic: the inference step is any callable taking an NCHW
float32 blob and returning the raw output rows. NumPy and OpenCV only; the
ONNX Runtime backend lives in `rdd_kit.backends`.
"""

from .errors import InvalidImageError, InvalidModelOutputError, RoadDamageError
from .types import Detection, ImageDimensions, LetterboxTransform, RawDetectionRow
from .letterbox import compute_letterbox, letterbox
from .postprocess import DetectionMapper, MapperConfig, map_detections, parse_rows
from .runtime import (
    TENSOR_LAYOUT,
    LetterboxConfig,
    PipelineResult,
    PreprocessResult,
    RoadDamagePipeline,
    decode_image,
    load_pipeline,
    preprocess,
    read_image,
    resolve_path,
)
from .metadata import DEFAULT_CLASS_NAMES, class_label, load_class_names, parse_class_names
from .visualize import draw_detections

__all__ = [
    "RoadDamageError",
    "InvalidImageError",
    "InvalidModelOutputError",
    "Detection",
    "ImageDimensions",
    "LetterboxTransform",
    "RawDetectionRow",
    "compute_letterbox",
    "letterbox",
    "DetectionMapper",
    "MapperConfig",
    "map_detections",
    "parse_rows",
    "TENSOR_LAYOUT",
    "LetterboxConfig",
    "PipelineResult",
    "PreprocessResult",
    "RoadDamagePipeline",
    "decode_image",
    "load_pipeline",
    "preprocess",
    "read_image",
    "resolve_path",
    "DEFAULT_CLASS_NAMES",
    "load_class_names",
    "parse_class_names",
    "class_label",
    "draw_detections",
]
