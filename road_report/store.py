"""
Detection records and user accounts, each kept in a JSON document on disk.

Writes go through a temp file and an atomic replace so a crash never leaves a
half-written store. The in-memory state only changes once the new document is
on disk.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rdd_kit.types import Detection

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)
SCHEMA_VERSION = 1


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _read_document(path: Path, key: str, what: str) -> List[Dict[str, Any]]:
    if not path.exists():
        logger.info("%s store %s does not exist yet, starting empty", what, path)
        return []
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid {what.lower()} store JSON: {path}") from exc
    if not isinstance(payload, dict) or payload.get("schema_version") != SCHEMA_VERSION:
        raise ValueError(f"Unsupported {what.lower()} store format: {path}")
    items = payload.get(key, [])
    if not isinstance(items, list):
        raise ValueError(f"Unsupported {what.lower()} store format: {path}")
    return items


def _write_document(path: Path, key: str, items: List[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"schema_version": SCHEMA_VERSION, key: items}
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp, path)


@dataclass(frozen=True)
class DetectionRecord:
    id: str
    image_url: str
    detections: List[Dict[str, Any]]
    original_width: int
    original_height: int
    user_id: Optional[str] = None
    status: str = STATUS_PENDING
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        return {
            "id": payload["id"],
            "imageUrl": payload["image_url"],
            "detections": payload["detections"],
            "originalWidth": payload["original_width"],
            "originalHeight": payload["original_height"],
            "userId": payload["user_id"],
            "status": payload["status"],
            "createdAt": payload["created_at"],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DetectionRecord":
        return cls(
            id=str(payload["id"]),
            image_url=str(payload["imageUrl"]),
            detections=list(payload.get("detections", [])),
            original_width=int(payload["originalWidth"]),
            original_height=int(payload["originalHeight"]),
            user_id=payload.get("userId"),
            status=str(payload.get("status", STATUS_PENDING)),
            created_at=str(payload.get("createdAt", "")),
        )


def new_record_id() -> str:
    return uuid.uuid4().hex


class DetectionStore:
    """
    Thread-safe JSON-file store of DetectionRecord documents.

    The whole document is small (one entry per uploaded photo) and is loaded once,
    kept in memory and rewritten on every change.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._records: Dict[str, DetectionRecord] = {}
        for item in _read_document(self.path, "records", "Detection"):
            record = DetectionRecord.from_dict(item)
            self._records[record.id] = record
        if self._records:
            logger.info("Loaded %d detection records from %s", len(self._records), self.path)

    def _commit(self, records: Dict[str, DetectionRecord]) -> None:
        # Caller holds the lock. A failed write leaves self._records untouched.
        _write_document(self.path, "records", [r.to_dict() for r in records.values()])
        self._records = records

    def create(
        self,
        *,
        image_url: str,
        detections: Sequence[Detection],
        original_width: int,
        original_height: int,
        user_id: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> DetectionRecord:
        record = DetectionRecord(
            id=record_id or new_record_id(),
            image_url=image_url,
            detections=[d.to_dict() for d in detections],
            original_width=int(original_width),
            original_height=int(original_height),
            user_id=user_id,
        )
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"Duplicate detection record id: {record.id}")
            records = dict(self._records)
            records[record.id] = record
            self._commit(records)
        logger.info("Stored detection record %s (%d detections)", record.id, len(record.detections))
        return record

    def get(self, record_id: str) -> Optional[DetectionRecord]:
        with self._lock:
            return self._records.get(record_id)

    def find_by_user(self, user_id: str) -> List[DetectionRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.user_id == user_id]

    def all(self) -> List[DetectionRecord]:
        with self._lock:
            return list(self._records.values())

    def approve(self, record_id: str) -> Optional[DetectionRecord]:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                return None
            record = replace(record, status=STATUS_APPROVED)
            records = dict(self._records)
            records[record_id] = record
            self._commit(records)
        logger.info("Approved detection record %s", record_id)
        return record


@dataclass(frozen=True)
class UserAccount:
    """A registered reporter or reviewer. `password_hash` is a bcrypt hash, never the password."""

    id: str
    name: str
    email: str
    password_hash: str
    role: str = ROLE_USER
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "passwordHash": self.password_hash,
            "role": self.role,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "UserAccount":
        return cls(
            id=str(payload["id"]),
            name=str(payload["name"]),
            email=str(payload["email"]),
            password_hash=str(payload["passwordHash"]),
            role=str(payload.get("role", ROLE_USER)),
            created_at=str(payload.get("createdAt", "")),
        )


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """
    Thread-safe JSON-file store of user and admin accounts.

    Users and admins are separate populations: the same email may register once
    per role, and lookups always name the role.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._users: Dict[str, UserAccount] = {}
        for item in _read_document(self.path, "users", "User"):
            user = UserAccount.from_dict(item)
            self._users[user.id] = user

    def create(self, *, name: str, email: str, password_hash: str, role: str = ROLE_USER) -> UserAccount:
        if role not in ROLES:
            raise ValueError(f"role must be one of {ROLES}, got {role!r}")
        user = UserAccount(
            id=new_record_id(),
            name=name,
            email=normalize_email(email),
            password_hash=password_hash,
            role=role,
        )
        with self._lock:
            if self._find(user.email, role) is not None:
                raise ValueError(f"{role} already exists: {user.email}")
            users = dict(self._users)
            users[user.id] = user
            _write_document(self.path, "users", [u.to_dict() for u in users.values()])
            self._users = users
        logger.info("Registered %s account %s", role, user.id)
        return user

    def _find(self, email: str, role: str) -> Optional[UserAccount]:
        for user in self._users.values():
            if user.email == email and user.role == role:
                return user
        return None

    def find_by_email(self, email: str, role: str = ROLE_USER) -> Optional[UserAccount]:
        with self._lock:
            return self._find(normalize_email(email), role)

    def get(self, user_id: str) -> Optional[UserAccount]:
        with self._lock:
            return self._users.get(user_id)
