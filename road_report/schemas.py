"""
Request and response models for the HTTP API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DetectionOut(_Wire):
    x: float = Field(..., description="Top-left x in original image pixels")
    y: float = Field(..., description="Top-left y in original image pixels")
    width: float
    height: float
    confidence: float
    class_id: int = Field(..., alias="classId")


class PredictResponse(_Wire):
    success: bool = True
    detection_id: str = Field(..., alias="detectionId")
    image_url: str = Field(..., alias="imageUrl")
    detections: List[DetectionOut]


class RecordOut(_Wire):
    id: str
    image_url: str = Field(..., alias="imageUrl")
    detections: List[DetectionOut]
    original_width: int = Field(..., alias="originalWidth")
    original_height: int = Field(..., alias="originalHeight")
    user_id: Optional[str] = Field(None, alias="userId")
    status: str = Field(..., description="pending|approved")
    created_at: str = Field(..., alias="createdAt")


class RecordListResponse(_Wire):
    success: bool = True
    detections: List[RecordOut]


class ApproveResponse(_Wire):
    message: str = "Image approved"
    detection: RecordOut


class HealthResponse(BaseModel):
    status: str
    model: str


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["user", "admin"] = "user"


class AccountOut(BaseModel):
    id: str
    name: str
    role: str


class AuthResponse(BaseModel):
    token: str
    user: AccountOut


class AdminAuthResponse(BaseModel):
    token: str
    admin: AccountOut
