import json
import os
import sys
import tempfile
import unittest
from unittest.mock import patch

# Add the parent directory to the path to access order_bot
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from order_bot.config_manager import ENV_FIELDS, get_config, is_configured, save_config

COMPLETE = {
    "slack_signing_secret": "secret",
    "slack_bot_token": "xoxb-1",
    "google_service_account_key": "{}",
    "llm_api_key": "or-key",
    "selected_sheet_id": "sheet-123",
}


class TestConfigManager(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmp.name, "config.json")
        # start every test from a clean environment
        cleared = {name: "" for name in ENV_FIELDS}
        self.env = patch.dict(os.environ, cleared)
        self.env.start()

    def tearDown(self):
        self.env.stop()
        self.tmp.cleanup()

    def test_missing_file_is_unconfigured(self):
        config = get_config(self.path)
        self.assertFalse(is_configured(config))
        self.assertEqual(len(config.missing_fields()), 5)
        self.assertEqual(config.timezone, "Asia/Seoul")

    def test_save_then_load(self):
        self.assertTrue(save_config(COMPLETE, self.path))
        config = get_config(self.path)
        self.assertTrue(is_configured(config))
        self.assertEqual(config.selected_sheet_id, "sheet-123")

    def test_blank_values_do_not_overwrite(self):
        save_config(COMPLETE, self.path)
        save_config({"slack_bot_token": "  ", "selected_sheet_id": "sheet-456", "bogus": "x"}, self.path)

        with open(self.path, encoding="utf-8") as f:
            stored = json.load(f)
        self.assertEqual(stored["slack_bot_token"], "xoxb-1")
        self.assertEqual(stored["selected_sheet_id"], "sheet-456")
        self.assertNotIn("bogus", stored)

    def test_environment_wins_over_file(self):
        save_config(COMPLETE, self.path)
        with patch.dict(os.environ, {"SELECTED_SHEET_ID": "from-env", "OPENROUTER_API_KEY": "env-key"}):
            config = get_config(self.path)
        self.assertEqual(config.selected_sheet_id, "from-env")
        self.assertEqual(config.llm_api_key, "env-key")

    def test_corrupt_file_is_ignored(self):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{oops")
        self.assertFalse(is_configured(get_config(self.path)))


if __name__ == '__main__':
    unittest.main()
