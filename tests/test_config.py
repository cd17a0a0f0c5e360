import json
import tempfile
import unittest
from pathlib import Path

from road_report.config import ServiceConfig, env_overrides, load_service_config


class TestServiceConfig(unittest.TestCase):
    def _write(self, payload) -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / "service.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_defaults(self) -> None:
        cfg = load_service_config(None, environ={})
        self.assertEqual(cfg, ServiceConfig())
        self.assertEqual(cfg.target_size, 640)
        self.assertEqual(cfg.conf_threshold, 0.5)
        self.assertEqual(cfg.mapping, "letterbox")

    def test_load_file(self) -> None:
        path = self._write(
            {
                "model_path": "models/rdd.onnx",
                "target_size": 320,
                "conf_threshold": 0.6,
                "mapping": "legacy",
                "onnx_providers": "CUDAExecutionProvider, CPUExecutionProvider",
                "log_level": "debug",
                "admin_key": "s3cret",
            }
        )
        cfg = load_service_config(path, environ={})
        self.assertEqual(cfg.model_path, "models/rdd.onnx")
        self.assertEqual(cfg.target_size, 320)
        self.assertEqual(cfg.mapping, "legacy")
        self.assertEqual(cfg.onnx_providers, ("CUDAExecutionProvider", "CPUExecutionProvider"))
        self.assertEqual(cfg.log_level, "DEBUG")
        self.assertEqual(cfg.admin_key, "s3cret")

    def test_env_overrides_file(self) -> None:
        path = self._write({"port": 8000, "clip_to_image": False})
        cfg = load_service_config(
            path,
            environ={"ROAD_REPORT_PORT": "9000", "ROAD_REPORT_CLIP_TO_IMAGE": "true", "ROAD_REPORT_ADMIN_KEY": "k"},
        )
        self.assertEqual(cfg.port, 9000)
        self.assertTrue(cfg.clip_to_image)
        self.assertEqual(cfg.admin_key, "k")

    def test_env_ignores_other_variables(self) -> None:
        self.assertEqual(env_overrides({"PATH": "/bin", "ROAD_REPORT": "x"}), {})

    def test_unknown_keys_rejected(self) -> None:
        path = self._write({"model_path": "m.onnx", "mongo_uri": "x"})
        with self.assertRaises(ValueError):
            load_service_config(path, environ={})

    def test_auth_and_label_settings(self) -> None:
        path = self._write({"jwt_secret": "file-secret", "token_ttl_seconds": 3600, "show_labels": True})
        cfg = load_service_config(path, environ={"ROAD_REPORT_JWT_SECRET": "env-secret"})
        self.assertEqual(cfg.jwt_secret, "env-secret")
        self.assertEqual(cfg.token_ttl_seconds, 3600)
        self.assertTrue(cfg.show_labels)
        self.assertEqual(cfg.users_path, "data/users.json")
        for payload in ({"jwt_secret": ""}, {"token_ttl_seconds": 0}, {"show_labels": "yes"}):
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    load_service_config(self._write(payload), environ={})

    def test_wrong_types_rejected(self) -> None:
        for payload in ({"target_size": "640"}, {"conf_threshold": True}, {"clip_to_image": "yes"}):
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    load_service_config(self._write(payload), environ={})

    def test_invalid_values_rejected(self) -> None:
        for payload in ({"target_size": 0}, {"conf_threshold": 1.2}, {"mapping": "stretch"}, {"port": 0}):
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    load_service_config(self._write(payload), environ={})

    def test_bad_env_value(self) -> None:
        with self.assertRaises(ValueError):
            load_service_config(None, environ={"ROAD_REPORT_TARGET_SIZE": "big"})

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_service_config(Path("/nonexistent/service.json"), environ={})


if __name__ == "__main__":
    unittest.main()
