import os
import sys
import unittest

# Add the parent directory to the path to access order_bot
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from constants.models import DEFAULT_EXTRACTION_MODEL
from order_bot.errors import ConfigurationError
from order_bot.llm_handler import LLMHandler


class TestLLMHandler(unittest.IsolatedAsyncioTestCase):

    async def test_missing_key_raises_before_any_request(self):
        handler = LLMHandler(None)
        with self.assertRaises(ConfigurationError):
            await handler.get_response_async("hello")

    def test_request_data(self):
        handler = LLMHandler("or-key")
        headers, data = handler._prepare_request_data([{"role": "user", "content": "hi"}])
        self.assertEqual(headers["Authorization"], "Bearer or-key")
        self.assertEqual(data["model"], DEFAULT_EXTRACTION_MODEL)
        self.assertEqual(data["temperature"], 0)
        self.assertEqual(data["messages"], [{"role": "user", "content": "hi"}])

    def test_extract_content(self):
        result = {"choices": [{"message": {"content": "[]"}}]}
        self.assertEqual(LLMHandler._extract_content(result), "[]")
        self.assertEqual(LLMHandler._extract_content({"choices": []}), "")
        self.assertEqual(LLMHandler._extract_content({"error": "rate limited"}), "")
        self.assertEqual(LLMHandler._extract_content({"choices": [{"message": {"content": None}}]}), "")


if __name__ == '__main__':
    unittest.main()
