"""
Human confirmation of parsed orders.

A parsed batch is posted back to the Slack thread with Approve / Cancel
buttons. The whole batch travels inside the button value, so approving never
re-parses the message and still works after a restart. The in-memory registry
only tracks which prompts are open, in flight, or already resolved.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from constants.schemas import ActionEvent, OrderBatch, PendingApproval
from order_bot.errors import ConfigurationError

logger = logging.getLogger(__name__)

APPROVE_ACTION_ID = "approve_order"
CANCEL_ACTION_ID = "cancel_order"

# Slack rejects button values longer than this
MAX_BUTTON_VALUE_LENGTH = 2000
RESOLVED_HISTORY_SIZE = 1000
MAX_PENDING_APPROVALS = 1000


class ApprovalState(str, Enum):
    PARSED = "parsed"
    AWAITING_APPROVAL = "awaiting_approval"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


def _section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def build_prompt_blocks(batch: OrderBatch, payload: str) -> List[Dict[str, Any]]:
    companies = ", ".join(batch.companies)
    summary = "\n".join(f"• {line.company} / {line.product} × {line.count}" for line in batch.lines)
    return [
        _section(
            f"*Company check:* Is the company *{companies}* correct? \n"
            "Press the Approve button below to record it in the sheet."
        ),
        _section(summary),
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Approve"},
                    "style": "primary",
                    "action_id": APPROVE_ACTION_ID,
                    "value": payload,
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Cancel"},
                    "style": "danger",
                    "action_id": CANCEL_ACTION_ID,
                    "value": payload,
                },
            ],
        },
    ]


class ApprovalWorkflow:
    """Sends confirmation prompts and applies the approve / cancel decision."""

    def __init__(self, messenger, sync_engine, sheet_id: Optional[str]):
        self.messenger = messenger
        self.sync = sync_engine
        self.sheet_id = sheet_id
        self._pending: Dict[Tuple[str, str], PendingApproval] = {}
        self._in_flight: Set[Tuple[str, str]] = set()
        self._resolved: Dict[Tuple[str, str], ApprovalState] = {}
        # prompts whose last approve wrote some rows before failing
        self._partially_written: Set[Tuple[str, str]] = set()

    def get_pending(self, channel: str, prompt_ts: str) -> Optional[PendingApproval]:
        return self._pending.get((channel, prompt_ts))

    def state_of(self, channel: str, prompt_ts: str) -> Optional[ApprovalState]:
        key = (channel, prompt_ts)
        if key in self._pending or key in self._in_flight:
            return ApprovalState.AWAITING_APPROVAL
        return self._resolved.get(key)

    def _mark_resolved(self, key: Tuple[str, str], state: ApprovalState) -> None:
        self._resolved[key] = state
        # oldest resolution goes first
        while len(self._resolved) > RESOLVED_HISTORY_SIZE:
            self._resolved.pop(next(iter(self._resolved)))

    async def request_approval(self, batch: OrderBatch) -> Optional[PendingApproval]:
        """Post the confirmation prompt for a parsed batch. Empty batches get no prompt."""
        if batch.is_empty():
            logger.info(f"Nothing to confirm for message {batch.source_ts}")
            return None

        payload = batch.encode()
        if len(payload) > MAX_BUTTON_VALUE_LENGTH:
            logger.warning(
                f"Approval payload for {batch.source_ts} is {len(payload)} chars, Slack may reject the buttons"
            )

        companies = ", ".join(batch.companies)
        prompt_ts = await self.messenger.post_message(
            channel=batch.channel,
            thread_ts=batch.source_ts,
            text=f"Is the company [{companies}] correct?",
            blocks=build_prompt_blocks(batch, payload),
        )

        pending = PendingApproval(batch=batch, channel=batch.channel, prompt_ts=prompt_ts, payload=payload)
        self._pending[pending.key] = pending
        while len(self._pending) > MAX_PENDING_APPROVALS:
            stale = self._pending.pop(next(iter(self._pending)))
            logger.info(f"Dropping unanswered prompt {stale.prompt_ts} for message {stale.batch.source_ts}")
        logger.info(f"Awaiting approval for {len(batch.lines)} line(s) from {batch.source_ts} (prompt {prompt_ts})")
        return pending

    def _begin_decision(self, action: ActionEvent) -> Optional[Tuple[str, str]]:
        key = (action.channel, action.message_ts)
        if key in self._resolved:
            logger.info(f"Prompt {action.message_ts} was already resolved, ignoring {action.action_id}")
            return None
        if key in self._in_flight:
            logger.info(f"Prompt {action.message_ts} is already being processed, ignoring {action.action_id}")
            return None
        self._in_flight.add(key)
        return key

    async def approve(self, action: ActionEvent) -> Optional[ApprovalState]:
        """Write the batch from the button payload to the sheet and close the prompt."""
        key = self._begin_decision(action)
        if key is None:
            return None

        try:
            try:
                batch = OrderBatch.decode(action.value)
            except ValueError as e:
                logger.error(f"Could not decode approval payload on prompt {action.message_ts}: {e}")
                await self._notify_failure(action, "The order data attached to this prompt is unreadable.")
                return ApprovalState.AWAITING_APPROVAL

            pending = self._pending.pop(key, None)
            if pending is None:
                logger.info(f"No pending record for prompt {action.message_ts}, using the button payload")

            try:
                if not self.sheet_id:
                    raise ConfigurationError("No spreadsheet is selected. Set SELECTED_SHEET_ID in the settings.")
                if key in self._partially_written:
                    logger.info(f"Replacing rows left by the failed attempt for {batch.source_ts}")
                    await self.sync.update_by_timestamp(self.sheet_id, batch.source_ts, batch.lines)
                else:
                    logger.info(f"Writing approved batch {batch.source_ts} to spreadsheet {self.sheet_id}")
                    await self.sync.append(self.sheet_id, batch.lines)
            except Exception as e:
                logger.error(f"Error while recording approved batch {batch.source_ts}: {str(e)}")
                if pending is not None:
                    self._pending[key] = pending
                message = str(e)
                if self.sheet_id:
                    # rows may have landed; a retry replaces them instead of appending again
                    self._partially_written.add(key)
                    message += "\nSome rows may already be in the sheet. Approving again replaces them."
                await self._notify_failure(action, message)
                return ApprovalState.AWAITING_APPROVAL

            self._partially_written.discard(key)
            self._mark_resolved(key, ApprovalState.COMMITTED)
            companies = ", ".join(batch.companies)
            await self.messenger.update_message(
                channel=action.channel,
                ts=action.message_ts,
                text="✅ Recorded in Google Sheets!",
                blocks=[_section(f"✅ *[{companies}]* orders were recorded in the sheet.")],
            )
            logger.info(f"Batch {batch.source_ts} committed")
            return ApprovalState.COMMITTED
        finally:
            self._in_flight.discard(key)

    async def cancel(self, action: ActionEvent) -> Optional[ApprovalState]:
        """Close the prompt without writing anything."""
        key = self._begin_decision(action)
        if key is None:
            return None

        try:
            self._pending.pop(key, None)
            self._partially_written.discard(key)
            self._mark_resolved(key, ApprovalState.CANCELLED)
            await self.messenger.update_message(
                channel=action.channel,
                ts=action.message_ts,
                text="❌ Cancelled.",
                blocks=[_section("❌ Sheet entry was cancelled.")],
            )
            logger.info(f"Prompt {action.message_ts} cancelled")
            return ApprovalState.CANCELLED
        finally:
            self._in_flight.discard(key)

    async def _notify_failure(self, action: ActionEvent, message: str) -> None:
        try:
            await self.messenger.post_message(
                channel=action.channel,
                thread_ts=action.message_ts,
                text=f"⚠️ Recording failed: {message}",
            )
        except Exception as e:
            logger.error(f"Could not tell the user about the failure: {str(e)}")
