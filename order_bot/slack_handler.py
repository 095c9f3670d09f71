"""
Routes Slack events to the order pipeline.

Every inbound delivery goes through the same steps: drop the bot's own
messages, drop duplicates and late retries, then call the handler registered
for the event kind. Handlers get the event and the BotContext built at
startup; nothing here lives in module globals.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from constants.schemas import ActionEvent, EventKind, OrderBatch, SlackEvent
from order_bot.approval import APPROVE_ACTION_ID, CANCEL_ACTION_ID, ApprovalWorkflow
from order_bot.config_manager import BotConfig
from order_bot.dedup import EventDeduplicator
from order_bot.errors import ConfigurationError, OrderBotError
from order_bot.google_sheets import GoogleSheetsStore
from order_bot.llm_handler import LLMHandler
from order_bot.order_parser import OrderParser
from order_bot.sheet_sync import SyncEngine
from order_bot.slack_api import SlackMessenger

logger = logging.getLogger(__name__)


@dataclass
class BotContext:
    """Everything a handler needs. Rebuilt from scratch when the settings change."""

    config: BotConfig
    messenger: Any
    parser: OrderParser
    dedup: EventDeduplicator
    sync: SyncEngine
    approvals: ApprovalWorkflow

    @property
    def sheet_id(self) -> Optional[str]:
        return self.config.selected_sheet_id


def build_context(config: BotConfig, messenger=None, store=None, llm=None) -> BotContext:
    """Wire up the pipeline. Collaborators can be swapped for fakes in tests."""
    if messenger is None:
        messenger = SlackMessenger(config.slack_bot_token)
    if store is None:
        store = GoogleSheetsStore(config.google_service_account_key)
    if llm is None:
        llm = LLMHandler(config.llm_api_key, model_name=config.llm_model)

    sync = SyncEngine(store, timezone=config.timezone)
    return BotContext(
        config=config,
        messenger=messenger,
        parser=OrderParser(llm),
        dedup=EventDeduplicator(),
        sync=sync,
        approvals=ApprovalWorkflow(messenger, sync, config.selected_sheet_id),
    )


# --- Event handlers ---


async def handle_new_message(event: SlackEvent, ctx: BotContext):
    """Parse a new message and ask for confirmation."""
    logger.info(f"New message received: {event.text}")
    lines = await ctx.parser.parse_message(event.text)
    batch = OrderBatch.from_lines(lines, source_ts=event.message_ts, channel=event.channel)
    return await ctx.approvals.request_approval(batch)


async def handle_edited_message(event: SlackEvent, ctx: BotContext):
    """Re-parse an edited message and replace its rows. No confirmation step."""
    if event.previous_text is not None and event.previous_text == event.text:
        logger.info(f"Message {event.message_ts} changed without a text edit, nothing to sync")
        return None

    logger.info(f"Message edited: {event.text}")
    lines = await ctx.parser.parse_message(event.text)
    batch = OrderBatch.from_lines(lines, source_ts=event.message_ts, channel=event.channel)

    try:
        if not ctx.sheet_id:
            raise ConfigurationError("No spreadsheet is selected. Set SELECTED_SHEET_ID in the settings.")
        result = await ctx.sync.update_by_timestamp(ctx.sheet_id, event.message_ts, batch.lines)
    except OrderBotError as e:
        logger.error(f"Error while syncing edit of {event.message_ts}: {str(e)}")
        await _notify_thread(ctx, event, f"⚠️ Could not update the sheet: {e}")
        return None

    logger.info(f"Sheet updated for edited message {event.message_ts}")
    return result


async def handle_deleted_message(event: SlackEvent, ctx: BotContext):
    """Remove the rows of a deleted message, except protected ones."""
    logger.info(f"Message deleted, TS: {event.message_ts}")
    if not ctx.sheet_id:
        logger.warning("No spreadsheet selected, cannot sync the deletion")
        return None

    result = await ctx.sync.delete_by_timestamp(ctx.sheet_id, event.message_ts)
    logger.info(f"Deleted {result.deleted} row(s) for message {event.message_ts}")
    return result


async def handle_approve(action: ActionEvent, ctx: BotContext):
    return await ctx.approvals.approve(action)


async def handle_cancel(action: ActionEvent, ctx: BotContext):
    return await ctx.approvals.cancel(action)


async def _notify_thread(ctx: BotContext, event: SlackEvent, text: str) -> None:
    try:
        await ctx.messenger.post_message(channel=event.channel, thread_ts=event.message_ts, text=text)
    except Exception as e:
        logger.error(f"Could not post the error message to Slack: {str(e)}")


EVENT_HANDLERS: Dict[EventKind, Callable[[SlackEvent, BotContext], Awaitable[Any]]] = {
    EventKind.NEW: handle_new_message,
    EventKind.EDITED: handle_edited_message,
    EventKind.DELETED: handle_deleted_message,
}

ACTION_HANDLERS: Dict[str, Callable[[ActionEvent, BotContext], Awaitable[Any]]] = {
    APPROVE_ACTION_ID: handle_approve,
    CANCEL_ACTION_ID: handle_cancel,
}


# --- Dispatch ---


async def dispatch_event(event: SlackEvent, ctx: BotContext):
    """Self-echo filter, then dedup, then the handler for the event kind."""
    if event.author_is_self:
        logger.debug(f"Ignoring our own message {event.message_ts}")
        return None

    if ctx.dedup.should_skip_event(event):
        return None

    handler = EVENT_HANDLERS[event.kind]
    try:
        return await handler(event, ctx)
    except Exception:
        logger.exception(f"Error while handling {event.kind.value} event {event.event_id}")
        return None


async def dispatch_action(action: ActionEvent, ctx: BotContext):
    handler = ACTION_HANDLERS.get(action.action_id)
    if handler is None:
        logger.info(f"Ignoring unknown action {action.action_id}")
        return None

    if ctx.dedup.should_skip_event(action):
        return None

    try:
        return await handler(action, ctx)
    except Exception:
        logger.exception(f"Error while handling action {action.action_id} on {action.message_ts}")
        return None


async def dispatch_envelope(envelope: Dict[str, Any], ctx: BotContext):
    """Entry point for a raw Slack event_callback payload."""
    event = SlackEvent.from_envelope(envelope, bot_user_id=ctx.config.bot_user_id, bot_id=ctx.config.bot_id)
    if event is None:
        logger.debug(f"Ignoring Slack event of type {(envelope.get('event') or {}).get('type')}")
        return None
    return await dispatch_event(event, ctx)


async def dispatch_interaction(payload: Dict[str, Any], ctx: BotContext):
    """Entry point for a raw Slack interactive payload."""
    action = ActionEvent.from_payload(payload)
    if action is None:
        logger.debug(f"Ignoring Slack interaction of type {payload.get('type')}")
        return None
    return await dispatch_action(action, ctx)
