from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import cv2
import numpy as np

from .errors import InvalidImageError
from .letterbox import BLACK, letterbox
from .postprocess import DetectionMapper, MapperConfig
from .types import Detection, ImageDimensions, LetterboxTransform


PathLike = Union[str, Path]

# Tensor layout handed to the inference step. A mismatch here does not raise,
# it silently shifts every box, so any change must bump the version suffix.
TENSOR_LAYOUT = "NCHW/RGB/v1"

InferFn = Callable[[np.ndarray], np.ndarray]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Best-effort project root discovery, used to resolve relative model paths.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, else the project root.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


def _ensure_bgr(image: np.ndarray) -> np.ndarray:
    if image is None or not hasattr(image, "shape"):
        raise InvalidImageError("image must be a NumPy array (BGR).")
    if image.size == 0:
        raise InvalidImageError(f"Image is empty, shape {image.shape}")
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes (JPEG/PNG/...) into a 3-channel BGR array.

    Alpha is dropped and grayscale is expanded so downstream code always sees (H, W, 3).
    """

    if not data:
        raise InvalidImageError("Image data is empty")
    buf = np.frombuffer(data, dtype=np.uint8)
    try:
        image = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise InvalidImageError(f"Could not decode image: {e}") from e
    if image is None or image.size == 0:
        raise InvalidImageError("Could not decode image data")
    return _ensure_bgr(image)


def read_image(path: PathLike) -> np.ndarray:
    p = Path(path)
    if not p.is_file():
        raise InvalidImageError(f"Could not read image at path: {p}")
    return decode_image(p.read_bytes())


def to_tensor(canvas_bgr: np.ndarray) -> np.ndarray:
    # BGR -> RGB, normalize, HWC -> CHW, add batch
    blob = canvas_bgr[:, :, ::-1].astype(np.float32) / 255.0
    return np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])


@dataclass(frozen=True)
class LetterboxConfig:
    target_size: int = 640
    color: tuple = BLACK


@dataclass(frozen=True)
class PreprocessResult:
    tensor: np.ndarray
    transform: LetterboxTransform
    dimensions: ImageDimensions
    layout: str = TENSOR_LAYOUT

    def flat(self) -> np.ndarray:
        return self.tensor.ravel()


def preprocess(image_bgr: np.ndarray, cfg: LetterboxConfig = LetterboxConfig()) -> PreprocessResult:
    image_bgr = _ensure_bgr(image_bgr)
    canvas, transform = letterbox(image_bgr, target_size=cfg.target_size, color=cfg.color)
    h, w = image_bgr.shape[:2]
    return PreprocessResult(
        tensor=to_tensor(canvas),
        transform=transform,
        dimensions=ImageDimensions(width=int(w), height=int(h)),
    )


@dataclass(frozen=True)
class PipelineResult:
    detections: List[Detection]
    dimensions: ImageDimensions
    transform: LetterboxTransform


class RoadDamagePipeline:
    """
    Plug-and-play pipeline: letterbox -> inference -> coordinate mapping.

    The inference step is injected (`infer_fn`), so the pipeline holds no model
    state of its own and can be driven by a fake in tests.
    """

    def __init__(
        self,
        infer_fn: InferFn,
        *,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
        letterbox_cfg: LetterboxConfig = LetterboxConfig(),
        mapper_cfg: MapperConfig = MapperConfig(),
    ):
        self._infer_fn = infer_fn
        self.backend = backend
        self.backend_name = backend_name
        self.letterbox_cfg = letterbox_cfg
        self.mapper = DetectionMapper(mapper_cfg)

    def preprocess(self, image_bgr: np.ndarray) -> PreprocessResult:
        return preprocess(image_bgr, self.letterbox_cfg)

    def run(self, image_bgr: np.ndarray) -> PipelineResult:
        prep = self.preprocess(image_bgr)
        raw = self._infer_fn(prep.tensor)
        detections = self.mapper.map(raw, prep.transform, prep.dimensions)
        return PipelineResult(detections=detections, dimensions=prep.dimensions, transform=prep.transform)

    def __call__(self, image_bgr: np.ndarray) -> List[Detection]:
        return self.run(image_bgr).detections


def load_pipeline(
    model_path: PathLike,
    *,
    root: Optional[PathLike] = "auto",
    letterbox_cfg: LetterboxConfig = LetterboxConfig(),
    mapper_cfg: MapperConfig = MapperConfig(),
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
) -> RoadDamagePipeline:
    """
    Create a pipeline for an ONNX model on disk.

        pipe = load_pipeline("models/YOLOv8_Small_RDD.onnx")

    Relative paths resolve against the project root by default.
    """

    resolved = resolve_path(model_path, root=root)
    if resolved.suffix.lower() != ".onnx":
        raise ValueError(f"Expected an .onnx model, got '{resolved.name}'")

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    ort_backend = OnnxRuntimeBackend(
        resolved,
        OnnxRuntimeBackendConfig(
            providers=onnx_providers,
            input_name=onnx_input_name,
            output_name=onnx_output_name,
            target_size=letterbox_cfg.target_size,
        ),
    )
    return RoadDamagePipeline(
        ort_backend.infer,
        backend=ort_backend,
        backend_name="onnxruntime",
        letterbox_cfg=letterbox_cfg,
        mapper_cfg=mapper_cfg,
    )
