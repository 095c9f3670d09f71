"""
Thin wrapper around the Slack Web API used by the bot.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from slack_sdk.errors import SlackApiError
from slack_sdk.signature import SignatureVerifier
from slack_sdk.web.async_client import AsyncWebClient

from order_bot.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Messenger(Protocol):
    async def post_message(
        self, channel: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None, thread_ts: Optional[str] = None
    ) -> str: ...

    async def update_message(
        self, channel: str, ts: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None
    ) -> None: ...


class SlackMessenger:
    """Posts and edits bot messages through chat.postMessage / chat.update."""

    def __init__(self, bot_token: Optional[str], client: Optional[AsyncWebClient] = None):
        if client is None:
            if not bot_token:
                raise ConfigurationError("Slack bot token is not configured.")
            client = AsyncWebClient(token=bot_token)
        self.client = client

    async def post_message(
        self, channel: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None, thread_ts: Optional[str] = None
    ) -> str:
        kwargs: Dict[str, Any] = {"channel": channel, "text": text}
        if blocks is not None:
            kwargs["blocks"] = blocks
        if thread_ts is not None:
            kwargs["thread_ts"] = thread_ts

        try:
            response = await self.client.chat_postMessage(**kwargs)
        except SlackApiError as e:
            logger.error(f"chat.postMessage failed in {channel}: {e.response.get('error')}")
            raise
        return response["ts"]

    async def update_message(
        self, channel: str, ts: str, text: str, blocks: Optional[List[Dict[str, Any]]] = None
    ) -> None:
        kwargs: Dict[str, Any] = {"channel": channel, "ts": ts, "text": text}
        if blocks is not None:
            kwargs["blocks"] = blocks

        try:
            await self.client.chat_update(**kwargs)
        except SlackApiError as e:
            logger.error(f"chat.update failed for {channel}/{ts}: {e.response.get('error')}")
            raise

    async def fetch_bot_identity(self) -> Tuple[Optional[str], Optional[str]]:
        """Looks up the bot's own (user_id, bot_id) so its messages can be ignored."""
        try:
            response = await self.client.auth_test()
        except SlackApiError as e:
            logger.warning(f"auth.test failed, bot identity unknown: {e.response.get('error')}")
            return None, None
        return response.get("user_id"), response.get("bot_id")


def verify_slack_request(signing_secret: str, body: bytes, headers: Mapping[str, str]) -> bool:
    """Checks the X-Slack-Signature header against the raw request body."""
    if not signing_secret:
        return False
    verifier = SignatureVerifier(signing_secret)
    return verifier.is_valid_request(body, dict(headers))
