from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from rdd_kit.postprocess import MAPPINGS

logger = logging.getLogger(__name__)

ENV_PREFIX = "ROAD_REPORT_"
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class ServiceConfig:
    model_path: str = "models/YOLOv8_Small_RDD.onnx"
    metadata_path: Optional[str] = None
    target_size: int = 640
    conf_threshold: float = 0.5
    mapping: str = "letterbox"
    clip_to_image: bool = False
    upload_dir: str = "uploads"
    records_path: str = "data/detections.json"
    users_path: str = "data/users.json"
    public_base_url: str = "http://localhost:5000"
    admin_key: Optional[str] = None
    jwt_secret: Optional[str] = None
    token_ttl_seconds: int = 86400
    show_labels: bool = False
    onnx_providers: Optional[Tuple[str, ...]] = None
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000

    def __post_init__(self) -> None:
        if self.target_size <= 0:
            raise ValueError("target_size must be > 0")
        if not (0.0 <= self.conf_threshold <= 1.0):
            raise ValueError("conf_threshold must be within [0, 1]")
        if self.mapping not in MAPPINGS:
            raise ValueError(f"mapping must be one of {list(MAPPINGS)}")
        if not self.model_path.strip():
            raise ValueError("model_path must not be empty")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        if not (0 < self.port < 65536):
            raise ValueError("port must be within 1..65535")
        if self.admin_key is not None and not self.admin_key:
            raise ValueError("admin_key must not be an empty string")
        if self.jwt_secret is not None and not self.jwt_secret:
            raise ValueError("jwt_secret must not be an empty string")
        if self.token_ttl_seconds <= 0:
            raise ValueError("token_ttl_seconds must be > 0")


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload[key]
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _require_int(payload: Mapping[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _require_number(payload: Mapping[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_bool(payload: Mapping[str, Any], key: str) -> bool:
    value = payload[key]
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean")
    return value


def _parse_providers(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        parts = [p.strip() for p in value.split(",")]
    elif isinstance(value, list) and all(isinstance(p, str) for p in value):
        parts = [p.strip() for p in value]
    else:
        raise ValueError("onnx_providers must be a string or list of strings")
    cleaned = tuple(p for p in parts if p)
    return cleaned or None


_STR_KEYS = {"model_path", "mapping", "upload_dir", "records_path", "users_path", "public_base_url", "log_level", "host"}
_OPTIONAL_STR_KEYS = {"metadata_path", "admin_key", "jwt_secret"}
_SECRET_KEYS = {"admin_key", "jwt_secret"}
_INT_KEYS = {"target_size", "port", "token_ttl_seconds"}
_FLOAT_KEYS = {"conf_threshold"}
_BOOL_KEYS = {"clip_to_image", "show_labels"}


def _coerce(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {f.name for f in fields(ServiceConfig)}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown service config keys: {unknown}")

    out: Dict[str, Any] = {}
    for key in payload:
        if key in _STR_KEYS:
            out[key] = _require_str(payload, key)
        elif key in _OPTIONAL_STR_KEYS:
            out[key] = None if payload[key] is None else _require_str(payload, key)
        elif key in _INT_KEYS:
            out[key] = _require_int(payload, key)
        elif key in _FLOAT_KEYS:
            out[key] = _require_number(payload, key)
        elif key in _BOOL_KEYS:
            out[key] = _require_bool(payload, key)
        elif key == "onnx_providers":
            out[key] = _parse_providers(payload[key])
    if "log_level" in out:
        out["log_level"] = out["log_level"].upper()
    return out


def _env_value(key: str, raw: str) -> Any:
    if key in _INT_KEYS:
        try:
            return int(raw)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}{key.upper()} must be an integer") from exc
    if key in _FLOAT_KEYS:
        try:
            return float(raw)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}{key.upper()} must be a number") from exc
    if key in _BOOL_KEYS:
        lowered = raw.strip().lower()
        if lowered not in {"1", "0", "true", "false", "yes", "no"}:
            raise ValueError(f"{ENV_PREFIX}{key.upper()} must be a boolean")
        return lowered in {"1", "true", "yes"}
    return raw


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Collect `ROAD_REPORT_<KEY>` variables, e.g. ROAD_REPORT_ADMIN_KEY or ROAD_REPORT_PORT.
    """

    environ = os.environ if environ is None else environ
    payload: Dict[str, Any] = {}
    for f in fields(ServiceConfig):
        name = f"{ENV_PREFIX}{f.name.upper()}"
        if name in environ:
            payload[f.name] = _env_value(f.name, environ[name])
            if f.name not in _SECRET_KEYS:
                logger.debug("Config override from env: %s=%s", name, environ[name])
    return payload


def load_service_config(
    path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ServiceConfig:
    """
    Defaults < JSON file < environment. The file must be a JSON object using the
    ServiceConfig field names; unknown keys are rejected.
    """

    payload: Dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise FileNotFoundError(f"Service config not found: {path}")
        raw = path.read_text(encoding="utf-8")
        try:
            loaded = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid service config JSON: {path}") from exc
        if not isinstance(loaded, dict):
            raise ValueError("Service config must be a JSON object")
        payload.update(loaded)
        logger.info("Loaded service config from %s", path)

    payload.update(env_overrides(environ))
    return replace(ServiceConfig(), **_coerce(payload))
