import tempfile
import unittest
from pathlib import Path
from unittest import mock

import cv2
import numpy as np

from rdd_kit import draw_detections
from rdd_kit.runtime import RoadDamagePipeline
from road_report.auth import AuthConfigError, AuthError
from road_report.config import ServiceConfig
from road_report.service import AccountExistsError, ReportService
from road_report.store import ROLE_ADMIN, DetectionStore


def _png_bytes(width: int, height: int) -> bytes:
    ok, buf = cv2.imencode(".png", np.full((height, width, 3), 90, dtype=np.uint8))
    assert ok
    return buf.tobytes()


def _rows(*_):
    return np.array([[[320, 320, 100, 50, 0.9, 3]]], dtype=np.float32)


class TestReportService(unittest.TestCase):
    def _service(self, **overrides) -> ReportService:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        root = Path(tmpdir.name)
        settings = dict(
            upload_dir=str(root / "uploads"),
            records_path=str(root / "detections.json"),
            users_path=str(root / "users.json"),
            jwt_secret="test-secret",
        )
        settings.update(overrides)
        config = ServiceConfig(**settings)
        return ReportService(
            RoadDamagePipeline(_rows, backend_name="fake"),
            DetectionStore(Path(config.records_path)),
            config,
            class_names={3: "pothole"},
        )

    def test_labels_follow_config(self) -> None:
        for show_labels in (False, True):
            with self.subTest(show_labels=show_labels):
                service = self._service(show_labels=show_labels)
                with mock.patch("road_report.service.draw_detections", wraps=draw_detections) as draw:
                    service.submit(_png_bytes(64, 32), user_id="u1")
                kwargs = draw.call_args.kwargs
                self.assertIs(kwargs["show_label"], show_labels)
                self.assertEqual(kwargs["class_names"], {3: "pothole"})

    def test_labels_change_the_annotated_image(self) -> None:
        plain = self._service()
        labelled = self._service(show_labels=True)
        a = plain.submit(_png_bytes(640, 640))
        b = labelled.submit(_png_bytes(640, 640))
        img_a = cv2.imread(str(plain.upload_dir / f"{a.id}.jpg"))
        img_b = cv2.imread(str(labelled.upload_dir / f"{b.id}.jpg"))
        self.assertFalse(np.array_equal(img_a, img_b))

    def test_store_failure_removes_annotated_image(self) -> None:
        service = self._service()
        with mock.patch.object(service.store, "create", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                service.submit(_png_bytes(20, 20), user_id="u1")
        self.assertEqual(list(service.upload_dir.iterdir()), [])
        self.assertEqual(service.store.all(), [])

    def test_register_login_and_authenticate(self) -> None:
        service = self._service()
        user, token = service.register("Asha", "asha@example.com", "secret1")
        self.assertNotEqual(service.users.get(user.id).password_hash, "secret1")
        self.assertEqual(service.authenticate(token).user_id, user.id)

        again, token2 = service.login("ASHA@example.com", "secret1")
        self.assertEqual(again.id, user.id)
        self.assertEqual(service.authenticate(token2).role, "user")

        with self.assertRaises(AuthError):
            service.login("asha@example.com", "wrong-password")
        with self.assertRaises(AuthError):
            service.login("asha@example.com", "secret1", role=ROLE_ADMIN)
        with self.assertRaises(AccountExistsError):
            service.register("Asha", "asha@example.com", "secret1")

    def test_admin_accounts_are_separate(self) -> None:
        service = self._service()
        service.register("Asha", "asha@example.com", "secret1")
        admin, token = service.register_admin("Asha", "asha@example.com", "admin-pass")
        self.assertEqual(admin.role, ROLE_ADMIN)
        self.assertEqual(service.authenticate(token).role, ROLE_ADMIN)
        self.assertEqual(service.login("asha@example.com", "admin-pass", role=ROLE_ADMIN)[0].id, admin.id)

    def test_token_for_unknown_account_rejected(self) -> None:
        service = self._service()
        other = self._service()
        _, token = other.register("Bo", "bo@example.com", "secret1")
        # Same signing secret, but the account only exists in the other service.
        with self.assertRaises(AuthError):
            service.authenticate(token)

    def test_auth_needs_a_secret(self) -> None:
        service = self._service(jwt_secret=None)
        with self.assertRaises(AuthConfigError):
            service.register("Asha", "asha@example.com", "secret1")
        self.assertIsNone(service.users.find_by_email("asha@example.com"))
        with self.assertRaises(AuthError):
            service.authenticate("anything")


if __name__ == "__main__":
    unittest.main()
