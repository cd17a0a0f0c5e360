import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from rdd_kit.types import Detection
from road_report.store import ROLE_ADMIN, ROLE_USER, STATUS_APPROVED, STATUS_PENDING, DetectionStore, UserStore


class TestDetectionStore(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.path = Path(tmpdir.name) / "data" / "detections.json"

    def _create(self, store: DetectionStore, user_id: str = "u1"):
        return store.create(
            image_url="http://localhost:5000/uploads/x.jpg",
            detections=[Detection(x=1.5, y=2.0, width=3.0, height=4.0, confidence=0.8, class_id=3)],
            original_width=1280,
            original_height=720,
            user_id=user_id,
        )

    def test_create_starts_pending_and_persists(self) -> None:
        store = DetectionStore(self.path)
        record = self._create(store)
        self.assertEqual(record.status, STATUS_PENDING)
        self.assertTrue(self.path.exists())

        reloaded = DetectionStore(self.path)
        again = reloaded.get(record.id)
        self.assertEqual(again, record)
        self.assertEqual(
            again.detections,
            [{"x": 1.5, "y": 2.0, "width": 3.0, "height": 4.0, "confidence": 0.8, "classId": 3}],
        )

    def test_find_by_user(self) -> None:
        store = DetectionStore(self.path)
        a = self._create(store, "u1")
        self._create(store, "u2")
        b = self._create(store, "u1")
        self.assertEqual([r.id for r in store.find_by_user("u1")], [a.id, b.id])
        self.assertEqual(store.find_by_user("nobody"), [])
        self.assertEqual(len(store.all()), 3)

    def test_approve(self) -> None:
        store = DetectionStore(self.path)
        record = self._create(store)
        approved = store.approve(record.id)
        self.assertEqual(approved.status, STATUS_APPROVED)
        self.assertEqual(approved.detections, record.detections)
        self.assertEqual(DetectionStore(self.path).get(record.id).status, STATUS_APPROVED)

    def test_approve_unknown_returns_none(self) -> None:
        store = DetectionStore(self.path)
        self.assertIsNone(store.approve("missing"))

    def test_duplicate_id_rejected(self) -> None:
        store = DetectionStore(self.path)
        store.create(image_url="a", detections=[], original_width=1, original_height=1, record_id="same")
        with self.assertRaises(ValueError):
            store.create(image_url="b", detections=[], original_width=1, original_height=1, record_id="same")

    def test_corrupt_file_rejected(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(ValueError):
            DetectionStore(self.path)

    def test_unknown_schema_rejected(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"schema_version": 99, "records": []}), encoding="utf-8")
        with self.assertRaises(ValueError):
            DetectionStore(self.path)

    def test_failed_create_is_not_kept(self) -> None:
        # A file where the data directory should be makes every write fail.
        self.path.parent.parent.mkdir(parents=True, exist_ok=True)
        self.path.parent.write_text("not a directory", encoding="utf-8")
        store = DetectionStore(self.path)
        with self.assertRaises(OSError):
            store.create(
                image_url="a", detections=[], original_width=1, original_height=1, user_id="u1", record_id="ghost"
            )
        self.assertIsNone(store.get("ghost"))
        self.assertEqual(store.find_by_user("u1"), [])
        self.assertEqual(store.all(), [])

    def test_failed_approve_keeps_pending(self) -> None:
        store = DetectionStore(self.path)
        record = self._create(store)
        with mock.patch("road_report.store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                store.approve(record.id)
        self.assertEqual(store.get(record.id).status, STATUS_PENDING)
        self.assertEqual(DetectionStore(self.path).get(record.id).status, STATUS_PENDING)


class TestUserStore(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.path = Path(tmpdir.name) / "data" / "users.json"

    def test_create_and_reload(self) -> None:
        store = UserStore(self.path)
        user = store.create(name="Asha", email=" Asha@Example.com ", password_hash="$2b$10$x")
        self.assertEqual(user.email, "asha@example.com")
        self.assertEqual(user.role, ROLE_USER)

        reloaded = UserStore(self.path)
        self.assertEqual(reloaded.get(user.id), user)
        self.assertEqual(reloaded.find_by_email("ASHA@example.com"), user)

    def test_email_unique_per_role(self) -> None:
        store = UserStore(self.path)
        store.create(name="A", email="a@example.com", password_hash="h")
        with self.assertRaises(ValueError):
            store.create(name="B", email="A@example.com", password_hash="h")
        admin = store.create(name="A", email="a@example.com", password_hash="h", role=ROLE_ADMIN)
        self.assertEqual(store.find_by_email("a@example.com", ROLE_ADMIN), admin)

    def test_unknown_role_rejected(self) -> None:
        with self.assertRaises(ValueError):
            UserStore(self.path).create(name="A", email="a@example.com", password_hash="h", role="root")

    def test_failed_write_does_not_register(self) -> None:
        store = UserStore(self.path)
        with mock.patch("road_report.store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                store.create(name="A", email="a@example.com", password_hash="h")
        self.assertIsNone(store.find_by_email("a@example.com"))


if __name__ == "__main__":
    unittest.main()
