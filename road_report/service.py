from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2

from rdd_kit import (
    DEFAULT_CLASS_NAMES,
    LetterboxConfig,
    MapperConfig,
    RoadDamagePipeline,
    decode_image,
    draw_detections,
    load_class_names,
    load_pipeline,
    resolve_path,
)

from .auth import AuthConfigError, AuthError, TokenClaims, TokenIssuer, hash_password, verify_password
from .config import ServiceConfig
from .store import ROLE_ADMIN, ROLE_USER, DetectionRecord, DetectionStore, UserAccount, UserStore, new_record_id

logger = logging.getLogger(__name__)


class AccountExistsError(ValueError):
    pass


class ReportService:
    """
    Glue between the detection pipeline, annotated image files, the record store
    and the account store.
    """

    def __init__(
        self,
        pipeline: RoadDamagePipeline,
        store: DetectionStore,
        config: ServiceConfig,
        class_names: Optional[Dict[int, str]] = None,
        users: Optional[UserStore] = None,
    ):
        self.pipeline = pipeline
        self.store = store
        self.config = config
        self.class_names = class_names if class_names is not None else dict(DEFAULT_CLASS_NAMES)
        self.users = users if users is not None else UserStore(Path(config.users_path))
        self.tokens = TokenIssuer(config.jwt_secret, config.token_ttl_seconds)
        self.upload_dir = Path(config.upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def image_url(self, filename: str) -> str:
        return f"{self.config.public_base_url.rstrip('/')}/uploads/{filename}"

    # ------------------------------------------------------------------ #
    # Reports
    # ------------------------------------------------------------------ #
    def submit(self, image_bytes: bytes, user_id: Optional[str] = None) -> DetectionRecord:
        """
        Detect damage on an uploaded photo, save the annotated copy and store a pending record.

        Raises InvalidImageError / InvalidModelOutputError from the pipeline unchanged.
        If the record cannot be stored, the annotated image is removed again.
        """

        image = decode_image(image_bytes)
        result = self.pipeline.run(image)
        logger.info(
            "Detected %d objects on %dx%d image (scale=%.4f)",
            len(result.detections),
            result.dimensions.width,
            result.dimensions.height,
            result.transform.scale,
        )

        record_id = new_record_id()
        filename = f"{record_id}.jpg"
        annotated = draw_detections(
            image,
            result.detections,
            class_names=self.class_names,
            show_label=self.config.show_labels,
        )
        out_path = self.upload_dir / filename
        if not cv2.imwrite(str(out_path), annotated):
            raise RuntimeError(f"Failed to write annotated image: {out_path}")

        try:
            return self.store.create(
                record_id=record_id,
                image_url=self.image_url(filename),
                detections=result.detections,
                original_width=result.dimensions.width,
                original_height=result.dimensions.height,
                user_id=user_id,
            )
        except Exception:
            out_path.unlink(missing_ok=True)
            logger.error("Could not store record %s, removed %s", record_id, out_path)
            raise

    def list_for_user(self, user_id: str) -> List[DetectionRecord]:
        return self.store.find_by_user(user_id)

    def approve(self, record_id: str) -> Optional[DetectionRecord]:
        return self.store.approve(record_id)

    # ------------------------------------------------------------------ #
    # Accounts
    # ------------------------------------------------------------------ #
    def register(self, name: str, email: str, password: str, role: str = ROLE_USER) -> Tuple[UserAccount, str]:
        """Create an account and return it with a fresh token."""
        if not self.tokens.enabled:
            raise AuthConfigError("jwt_secret is not configured")
        if self.users.find_by_email(email, role) is not None:
            raise AccountExistsError(f"{role.capitalize()} already exists")
        try:
            user = self.users.create(name=name, email=email, password_hash=hash_password(password), role=role)
        except ValueError as e:
            # Lost a race against a concurrent registration.
            raise AccountExistsError(f"{role.capitalize()} already exists") from e
        return user, self.tokens.issue(user)

    def register_admin(self, name: str, email: str, password: str) -> Tuple[UserAccount, str]:
        return self.register(name, email, password, role=ROLE_ADMIN)

    def login(self, email: str, password: str, role: str = ROLE_USER) -> Tuple[UserAccount, str]:
        if not self.tokens.enabled:
            raise AuthConfigError("jwt_secret is not configured")
        user = self.users.find_by_email(email, role)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed %s login for %s", role, email)
            raise AuthError("Invalid credentials")
        return user, self.tokens.issue(user)

    def authenticate(self, token: str) -> TokenClaims:
        """Verify a token and check that its account still exists."""
        claims = self.tokens.verify(token)
        user = self.users.get(claims.user_id)
        if user is None or user.role != claims.role:
            raise AuthError("Invalid token")
        return claims


def build_service(config: ServiceConfig) -> ReportService:
    """
    Wire the ONNX-backed pipeline and the on-disk stores from a ServiceConfig.

    The model session is created here, once per process.
    """

    pipeline = load_pipeline(
        config.model_path,
        letterbox_cfg=LetterboxConfig(target_size=config.target_size),
        mapper_cfg=MapperConfig(
            conf_threshold=config.conf_threshold,
            mapping=config.mapping,
            clip_to_image=config.clip_to_image,
        ),
        onnx_providers=config.onnx_providers,
    )
    class_names = None
    if config.metadata_path:
        class_names = load_class_names(str(resolve_path(config.metadata_path)), fallback=DEFAULT_CLASS_NAMES)
    if not config.jwt_secret:
        logger.warning("jwt_secret is not set: registration, login and approval are disabled")
    store = DetectionStore(Path(config.records_path))
    users = UserStore(Path(config.users_path))
    return ReportService(pipeline, store, config, class_names=class_names, users=users)
