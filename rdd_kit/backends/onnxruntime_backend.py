from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import numpy as np

from ..errors import InvalidModelOutputError

PathLike = Union[str, Path]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    How to open the road damage ONNX export.

    - providers: execution providers in priority order; None lets ORT decide
    - input_name/output_name: pin the I/O names instead of taking the first of each
    - target_size: canvas side the export was built for. When the model declares a
      static input shape it must be (1, 3, target_size, target_size).
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    target_size: Optional[int] = None


def _static_dims(shape: Sequence[Any]) -> list:
    # Symbolic dims ("batch", None) are left as None.
    return [d if isinstance(d, int) else None for d in shape]


class OnnxRuntimeBackend:
    """
    Holds one ONNX Runtime session for the lifetime of the process.

    `infer` takes the letterboxed (1, 3, T, T) float32 blob and returns the raw
    detection rows exactly as the model emits them; mapping happens elsewhere.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except ImportError as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required to run the road damage model: `pip install onnxruntime`"
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.is_file():
            raise FileNotFoundError(f"ONNX model not found: {self.model_path}")

        providers = list(cfg.providers) if cfg.providers else None
        session = ort.InferenceSession(str(self.model_path), providers=providers)
        self._bind(session, cfg)

    @classmethod
    def from_session(cls, session: Any, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()) -> "OnnxRuntimeBackend":
        """Wrap an already-created session (or anything with the same run/get_inputs API)."""
        backend = cls.__new__(cls)
        backend.model_path = None
        backend._bind(session, cfg)
        return backend

    def _bind(self, session: Any, cfg: OnnxRuntimeBackendConfig) -> None:
        self.session = session
        inputs = list(session.get_inputs())
        outputs = list(session.get_outputs())
        if not inputs or not outputs:
            raise ValueError("ONNX model must declare at least one input and one output")

        input_names = [i.name for i in inputs]
        output_names = [o.name for o in outputs]
        self.input_name = cfg.input_name or input_names[0]
        self.output_name = cfg.output_name or output_names[0]
        if self.input_name not in input_names:
            raise ValueError(f"Model has no input named {self.input_name!r} (inputs: {input_names})")
        if self.output_name not in output_names:
            raise ValueError(f"Model has no output named {self.output_name!r} (outputs: {output_names})")

        self.input_shape = _static_dims(inputs[input_names.index(self.input_name)].shape)
        self._check_input_shape(cfg.target_size)

        logger.info(
            "Road damage model ready: %s input=%s%s output=%s providers=%s",
            self.model_path.name if self.model_path else "<session>",
            self.input_name,
            self.input_shape,
            self.output_name,
            ",".join(self.providers_in_use),
        )

    def _check_input_shape(self, target_size: Optional[int]) -> None:
        shape = self.input_shape
        if len(shape) != 4:
            raise ValueError(f"Expected a 4-D NCHW model input, got shape {shape}")
        if shape[1] not in (None, 3):
            raise ValueError(f"Expected 3 input channels, got shape {shape}")
        if target_size is None:
            return
        for side in shape[2:]:
            if side is not None and side != target_size:
                raise ValueError(f"Model expects {side}px input but the canvas is {target_size}px")

    @property
    def providers_in_use(self) -> Sequence[str]:
        get = getattr(self.session, "get_providers", None)
        return tuple(get()) if get is not None else ()

    def infer(self, blob: np.ndarray) -> np.ndarray:
        if blob.ndim != 4 or blob.shape[1] != 3:
            raise ValueError(f"Expected a (1, 3, H, W) blob, got {blob.shape}")
        outputs = self.session.run([self.output_name], {self.input_name: blob.astype(np.float32, copy=False)})
        if not outputs or outputs[0] is None:
            raise InvalidModelOutputError("Invalid model output: nothing returned")
        raw = np.asarray(outputs[0])
        # A (1, 0, 6) tensor is a valid "no detections"; a scalar is not a row tensor.
        if raw.ndim == 0:
            raise InvalidModelOutputError(f"Invalid model output: scalar {self.output_name!r}")
        return raw
