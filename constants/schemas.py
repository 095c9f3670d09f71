import json
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError


# --- Order Models ---


class OrderLine(BaseModel):
    """A single (company, product, count) triple extracted from a Slack message"""

    company: str = Field(min_length=1)
    product: str = Field(min_length=1)
    count: int = Field(gt=0)
    source_ts: Optional[str] = Field(default=None, alias="ts")

    class Config:
        populate_by_name = True
        frozen = True

    def with_source(self, source_ts: str) -> "OrderLine":
        """Return a copy of this line stamped with the originating message ts."""
        return self.model_copy(update={"source_ts": source_ts})


class OrderBatch(BaseModel):
    """All lines parsed out of one Slack message, in message order"""

    source_ts: str
    channel: str
    lines: Tuple[OrderLine, ...] = ()

    class Config:
        frozen = True

    @classmethod
    def from_lines(cls, lines: List[OrderLine], source_ts: str, channel: str) -> "OrderBatch":
        return cls(
            source_ts=source_ts,
            channel=channel,
            lines=tuple(line.with_source(source_ts) for line in lines),
        )

    @property
    def companies(self) -> List[str]:
        seen: List[str] = []
        for line in self.lines:
            if line.company not in seen:
                seen.append(line.company)
        return seen

    def is_empty(self) -> bool:
        return not self.lines

    def encode(self) -> str:
        """Serialize the batch into the opaque string carried by the approval buttons."""
        return json.dumps(
            {
                "ts": self.source_ts,
                "channel": self.channel,
                "lines": [[line.company, line.product, line.count] for line in self.lines],
            },
            ensure_ascii=False,
            separators=(",", ":"),
        )

    @classmethod
    def decode(cls, payload: str) -> "OrderBatch":
        """Inverse of encode(). Raises ValueError on anything it did not produce."""
        try:
            data = json.loads(payload)
            lines = [
                OrderLine(company=company, product=product, count=count)
                for company, product, count in data["lines"]
            ]
            return cls.from_lines(lines, source_ts=str(data["ts"]), channel=str(data["channel"]))
        except (TypeError, KeyError, ValueError, ValidationError) as e:
            raise ValueError(f"Invalid order batch payload: {e}") from e


class PendingApproval(BaseModel):
    """A confirmation prompt that is waiting for the approve/cancel click"""

    batch: OrderBatch
    channel: str
    prompt_ts: str
    payload: str

    @property
    def key(self) -> Tuple[str, str]:
        return (self.channel, self.prompt_ts)


class SyncResult(BaseModel):
    """Outcome of a delete-by-timestamp scan"""

    deleted: int = 0
    protected: int = 0


# --- Slack Event Models ---


class EventKind(str, Enum):
    NEW = "new"
    EDITED = "edited"
    DELETED = "deleted"


def _is_from_bot(message: Dict[str, Any], bot_user_id: Optional[str], bot_id: Optional[str] = None) -> bool:
    """True only for messages posted by this bot. Other integrations carry their own bot_id."""
    if bot_id and message.get("bot_id") == bot_id:
        return True
    return bool(bot_user_id) and message.get("user") == bot_user_id


class SlackEvent(BaseModel):
    """A message create/edit/delete event pulled out of a Slack event_callback envelope"""

    event_id: Optional[str] = None
    event_time: Optional[float] = None
    kind: EventKind
    text: str = ""
    previous_text: Optional[str] = None
    message_ts: str
    channel: str
    author_is_self: bool = False

    @classmethod
    def from_envelope(
        cls, envelope: Dict[str, Any], bot_user_id: Optional[str] = None, bot_id: Optional[str] = None
    ) -> Optional["SlackEvent"]:
        """Build an event from the Slack payload, or None for anything we do not handle."""
        event = envelope.get("event") or {}
        if event.get("type") != "message":
            return None

        subtype = event.get("subtype")
        common = {
            "event_id": envelope.get("event_id"),
            "event_time": envelope.get("event_time"),
            "channel": event.get("channel", ""),
        }

        if subtype is None:
            if not event.get("ts"):
                return None
            return cls(
                kind=EventKind.NEW,
                text=event.get("text") or "",
                message_ts=event["ts"],
                author_is_self=_is_from_bot(event, bot_user_id, bot_id),
                **common,
            )

        if subtype == "message_changed":
            message = event.get("message") or {}
            previous = event.get("previous_message") or {}
            if not message.get("ts"):
                return None
            return cls(
                kind=EventKind.EDITED,
                text=message.get("text") or "",
                previous_text=previous.get("text"),
                message_ts=message["ts"],
                author_is_self=_is_from_bot(message, bot_user_id, bot_id),
                **common,
            )

        if subtype == "message_deleted":
            previous = event.get("previous_message") or {}
            if not event.get("deleted_ts"):
                return None
            return cls(
                kind=EventKind.DELETED,
                previous_text=previous.get("text"),
                message_ts=event["deleted_ts"],
                author_is_self=_is_from_bot(previous, bot_user_id, bot_id),
                **common,
            )

        return None


class ActionEvent(BaseModel):
    """A button click from an interactive (block_actions) payload"""

    trigger_id: Optional[str] = None
    action_id: str
    value: str = ""
    channel: str
    message_ts: str
    user_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["ActionEvent"]:
        if payload.get("type") != "block_actions":
            return None
        actions = payload.get("actions") or []
        if not actions:
            return None
        action = actions[0]
        channel = (payload.get("channel") or {}).get("id") or (payload.get("container") or {}).get("channel_id")
        message_ts = (payload.get("message") or {}).get("ts") or (payload.get("container") or {}).get("message_ts")
        if not channel or not message_ts:
            return None
        return cls(
            trigger_id=payload.get("trigger_id"),
            action_id=action.get("action_id", ""),
            value=action.get("value") or "",
            channel=channel,
            message_ts=message_ts,
            user_id=(payload.get("user") or {}).get("id"),
        )
