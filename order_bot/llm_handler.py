import logging
from typing import Any, Dict, List, Optional

import aiohttp

from constants.models import DEFAULT_EXTRACTION_MODEL
from order_bot.errors import ConfigurationError

logger = logging.getLogger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"


class LLMHandler:
    """
    Handles calls to the OpenRouter chat completions API for order extraction.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = DEFAULT_EXTRACTION_MODEL,
        api_url: str = OPENROUTER_API_URL,
        timeout: float = 30.0,
    ):
        """
        Initialize the LLM handler

        Args:
            api_key: OpenRouter API key
            model_name: Name of the model to use
            api_url: Chat completions endpoint
            timeout: Total request timeout in seconds
        """
        self.api_key = api_key or ""
        self.model_name = model_name
        self.api_url = api_url
        self.timeout = timeout

    async def get_response_async(self, prompt: str) -> str:
        """
        Send a single-turn prompt and return the raw text of the first choice.

        Raises:
            ConfigurationError: if no API key is configured
            aiohttp.ClientError: on transport or HTTP status failures
        """
        if not self.api_key:
            raise ConfigurationError("LLM API key is not configured. Add OPENROUTER_API_KEY to the settings.")

        headers, data = self._prepare_request_data([{"role": "user", "content": prompt}])
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.api_url, headers=headers, json=data) as response:
                response.raise_for_status()
                result = await response.json()

        return self._extract_content(result)

    def _prepare_request_data(self, messages: List[Dict[str, str]]) -> tuple:
        """
        Prepare headers and data for API request

        Args:
            messages: Formatted messages for the API

        Returns:
            Tuple of (headers, data)
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        data = {
            "model": self.model_name,
            "messages": messages,
            "temperature": 0,
            "max_tokens": 1000,
        }

        return headers, data

    @staticmethod
    def _extract_content(result: Dict[str, Any]) -> str:
        try:
            return result["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            logger.warning(f"Unexpected LLM response shape: {str(result)[:200]}")
            return ""
