"""
Road damage reporting service built on top of `rdd_kit`.

`rdd_kit` owns the detection geometry; this package adds what a deployment needs:
- configuration (JSON file + environment)
- detection records with a pending/approved review status
- user and admin accounts with bcrypt passwords and JWT access tokens
- annotated image storage
- the HTTP API
"""

from __future__ import annotations

from .config import ServiceConfig, load_service_config
from .logging_setup import setup_logging
from .service import ReportService, build_service
from .auth import AuthError, TokenIssuer, hash_password, verify_password
from .store import STATUS_APPROVED, STATUS_PENDING, DetectionRecord, DetectionStore, UserAccount, UserStore

__all__ = [
    "ServiceConfig",
    "load_service_config",
    "setup_logging",
    "ReportService",
    "build_service",
    "STATUS_APPROVED",
    "STATUS_PENDING",
    "DetectionRecord",
    "DetectionStore",
    "UserAccount",
    "UserStore",
    "AuthError",
    "TokenIssuer",
    "hash_password",
    "verify_password",
]
