from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from app.config import DEFAULT_CONFIG, apply_env_overrides, load_config


class ConfigTest(unittest.TestCase):
    def test_missing_file_returns_defaults_copy(self) -> None:
        config = load_config("/nonexistent/config.yaml")
        self.assertEqual(config, DEFAULT_CONFIG)
        config["workflow"]["max_images"] = 99
        self.assertEqual(DEFAULT_CONFIG["workflow"]["max_images"], 5)

    def test_yaml_is_merged_over_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text(
                "telegram:\n  enabled: true\n  allowed_user_ids: ['7']\nworkflow:\n  max_images: 3\n",
                encoding="utf-8",
            )
            config = load_config(str(path))
        self.assertTrue(config["telegram"]["enabled"])
        self.assertEqual(config["telegram"]["allowed_user_ids"], ["7"])
        self.assertEqual(config["telegram"]["timeout_sec"], 10)
        self.assertEqual(config["workflow"]["max_images"], 3)
        self.assertEqual(config["workflow"]["session_ttl_hours"], 24)

    def test_json_config_is_supported(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"storage": {"backend": "dynamodb"}}), encoding="utf-8")
            config = load_config(str(path))
        self.assertEqual(config["storage"]["backend"], "dynamodb")
        self.assertEqual(config["storage"]["dynamodb"]["table_prefix"], "storefront")

    def test_env_overrides(self) -> None:
        config = load_config(None)
        apply_env_overrides(
            config,
            environ={
                "TELEGRAM_BOT_TOKEN": "tok",
                "TELEGRAM_ENABLED": "yes",
                "TELEGRAM_ALLOWED_USER_IDS": " 1, 2 ,,3",
                "DDB_SESSIONS_TABLE": "sessions-table",
                "SESSION_TTL_HOURS": "12",
                "MAX_PRODUCT_IMAGES": "8",
                "SQLITE_PATH": "",
            },
        )
        self.assertEqual(config["telegram"]["bot_token"], "tok")
        self.assertTrue(config["telegram"]["enabled"])
        self.assertEqual(config["telegram"]["allowed_user_ids"], ["1", "2", "3"])
        self.assertEqual(config["storage"]["dynamodb"]["tables"]["sessions"], "sessions-table")
        self.assertEqual(config["workflow"]["session_ttl_hours"], 12.0)
        self.assertEqual(config["workflow"]["max_images"], 8)
        self.assertEqual(config["storage"]["sqlite_path"], DEFAULT_CONFIG["storage"]["sqlite_path"])


if __name__ == "__main__":
    unittest.main()
