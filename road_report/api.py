"""
FastAPI application for road damage reports.

Routes:
- POST /predict                 -> run detection on an uploaded photo, store a pending record
- GET  /detections/{user_id}    -> records submitted by a user
- PUT  /approve/{detection_id}  -> mark a record approved (admin bearer token required)
- POST /register                -> create a user account, returns a token
- POST /login                   -> user or admin login, returns a token
- POST /register-admin          -> create an admin account (X-Admin-Key required)
- GET  /uploads/{filename}      -> annotated images
- GET  /health
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import FastAPI, File, Form, Header, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from rdd_kit.errors import InvalidImageError, RoadDamageError

from .auth import AuthConfigError, AuthError, bearer_token
from .schemas import (
    AccountOut,
    AdminAuthResponse,
    ApproveResponse,
    AuthResponse,
    HealthResponse,
    LoginRequest,
    PredictResponse,
    RecordListResponse,
    RecordOut,
    RegisterRequest,
)
from .service import AccountExistsError, ReportService
from .store import ROLE_ADMIN

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, details: Optional[str] = None) -> JSONResponse:
    payload = {"success": False, "error": error}
    if details is not None:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=payload)


def _reject(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


def _admin_key_ok(expected: Optional[str], given: Optional[str]) -> bool:
    if not expected or not given:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), given.encode("utf-8"))


def create_app(service: ReportService) -> FastAPI:
    """Create the FastAPI app around an already-wired ReportService."""
    app = FastAPI(
        title="Road Damage Report",
        version="0.1.0",
        description="Upload road photos, detect damage, review reports",
    )
    app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"errors": jsonable_encoder(exc.errors())})

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="ok", model=service.pipeline.backend_name or "custom")

    @app.post("/predict", response_model=PredictResponse)
    def predict(image: UploadFile = File(...), userId: Optional[str] = Form(None)):
        data = image.file.read()
        try:
            record = service.submit(data, user_id=userId)
        except InvalidImageError as e:
            logger.warning("Rejected upload %r: %s", image.filename, e)
            return _error(400, "Invalid image", str(e))
        except RoadDamageError as e:
            logger.error("Prediction failed for %r: %s", image.filename, e)
            return _error(500, "Failed to process image", str(e))
        except Exception as e:
            logger.exception("Unexpected error while processing %r", image.filename)
            return _error(500, "Failed to process image", str(e))

        return PredictResponse(
            detection_id=record.id,
            image_url=record.image_url,
            detections=record.detections,
        )

    @app.get("/detections/{user_id}", response_model=RecordListResponse)
    def detections_for_user(user_id: str):
        records = service.list_for_user(user_id)
        return RecordListResponse(detections=[RecordOut.model_validate(r.to_dict()) for r in records])

    @app.put("/approve/{detection_id}", response_model=ApproveResponse)
    def approve(detection_id: str, authorization: Optional[str] = Header(None)):
        try:
            claims = service.authenticate(bearer_token(authorization))
        except AuthError as e:
            return _reject(401, str(e))
        if claims.role != ROLE_ADMIN:
            return _reject(403, "Forbidden")

        record = service.approve(detection_id)
        if record is None:
            return _reject(404, "Detection not found")
        logger.info("Record %s approved by %s", detection_id, claims.user_id)
        return ApproveResponse(detection=RecordOut.model_validate(record.to_dict()))

    @app.post("/register", response_model=AuthResponse)
    def register(body: RegisterRequest):
        try:
            user, token = service.register(body.name, body.email, body.password)
        except AccountExistsError:
            return _reject(400, "User already exists")
        except AuthConfigError as e:
            logger.error("Registration unavailable: %s", e)
            return _reject(503, "Authentication is not configured")
        return AuthResponse(token=token, user=AccountOut(id=user.id, name=user.name, role=user.role))

    @app.post("/login", response_model=AuthResponse)
    def login(body: LoginRequest):
        try:
            user, token = service.login(body.email, body.password, role=body.role)
        except AuthError:
            return _reject(400, "Invalid credentials")
        except AuthConfigError as e:
            logger.error("Login unavailable: %s", e)
            return _reject(503, "Authentication is not configured")
        return AuthResponse(token=token, user=AccountOut(id=user.id, name=user.name, role=user.role))

    @app.post("/register-admin", response_model=AdminAuthResponse)
    def register_admin(body: RegisterRequest, x_admin_key: Optional[str] = Header(None)):
        if not _admin_key_ok(service.config.admin_key, x_admin_key):
            return _reject(403, "Forbidden")
        try:
            admin, token = service.register_admin(body.name, body.email, body.password)
        except AccountExistsError:
            return _reject(400, "Admin already exists")
        except AuthConfigError as e:
            logger.error("Admin registration unavailable: %s", e)
            return _reject(503, "Authentication is not configured")
        return AdminAuthResponse(token=token, admin=AccountOut(id=admin.id, name=admin.name, role=admin.role))

    app.mount("/uploads", StaticFiles(directory=str(service.upload_dir)), name="uploads")

    return app
