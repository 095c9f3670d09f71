"""
FastAPI endpoints for the Slack order bot.
Receives Slack events and button clicks, and lets the operator update the settings.
"""

import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from fastapi import Body, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
import uvicorn

from constants.models import get_display_name
from order_bot.config_manager import BotConfig, get_config, is_configured, save_config
from order_bot.errors import OrderBotError
from order_bot.slack_api import verify_slack_request
from order_bot.slack_handler import BotContext, build_context, dispatch_envelope, dispatch_interaction

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Slack Order Sheet Bot",
    description="Turns Slack order messages into Google Sheets rows after confirmation",
    version="1.0.0"
)
app.state.context = None
app.state.tasks = set()


def init_bot(config: Optional[BotConfig] = None) -> Optional[BotContext]:
    """(Re)build the bot context from the current settings. Returns None if not configured."""
    config = config or get_config()
    if not is_configured(config):
        logger.warning(f"Required settings are missing, Slack bot is waiting: {', '.join(config.missing_fields())}")
        app.state.context = None
        return None

    try:
        context = build_context(config)
    except OrderBotError as e:
        logger.error(f"❌ Could not start the Slack bot: {e}")
        app.state.context = None
        return None

    app.state.context = context
    logger.info(f"✅ Slack bot is running (LLM: {get_display_name(config.llm_model)})")
    return context


def _spawn(coro) -> asyncio.Task:
    """Run event handling after Slack has been acknowledged."""
    task = asyncio.create_task(coro)
    app.state.tasks.add(task)
    task.add_done_callback(app.state.tasks.discard)
    return task


async def resolve_bot_user(context: Optional[BotContext]) -> None:
    """Learn our own Slack identity so the bot ignores its own messages."""
    if context is None:
        return
    config = context.config
    if config.bot_user_id and config.bot_id:
        return
    user_id, bot_id = await context.messenger.fetch_bot_identity()
    config.bot_user_id = config.bot_user_id or user_id
    config.bot_id = config.bot_id or bot_id
    logger.info(f"Bot identity: user {config.bot_user_id}, bot {config.bot_id}")


@app.on_event("startup")
async def startup():
    await resolve_bot_user(init_bot())


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"message": "Slack order bot is running", "status": "healthy"}


@app.post("/slack/events")
async def slack_events(request: Request):
    """
    Single Slack endpoint for the Events API and for interactivity (button clicks).

    Slack expects an answer within 3 seconds, so the work runs as a background task.
    """
    context: Optional[BotContext] = app.state.context
    if context is None:
        return JSONResponse(status_code=503, content={"error": "The Slack app is not configured yet."})

    body = await request.body()
    if not verify_slack_request(context.config.slack_signing_secret, body, request.headers):
        logger.warning("Rejected a Slack request with an invalid signature")
        raise HTTPException(status_code=401, detail="Invalid Slack signature")

    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded"):
        form = parse_qs(body.decode("utf-8"))
        raw_payload = (form.get("payload") or [None])[0]
        if not raw_payload:
            raise HTTPException(status_code=400, detail="Missing interaction payload")
        try:
            payload = json.loads(raw_payload)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Interaction payload is not JSON")
        _spawn(dispatch_interaction(payload, context))
        return Response(status_code=200)

    try:
        envelope = json.loads(body or b"{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Event body is not JSON")

    if envelope.get("type") == "url_verification":
        return {"challenge": envelope.get("challenge")}

    if envelope.get("type") == "event_callback":
        _spawn(dispatch_envelope(envelope, context))

    return Response(status_code=200)


@app.post("/save-config")
async def save_config_endpoint(
    settings: Dict[str, Any] = Body(...),
    key: Optional[str] = Query(None, description="Secret key for authentication"),
):
    """Merge new settings into config.json and restart the Slack bot with them."""
    expected_key = os.environ.get('CONFIG_SECRET_KEY')
    if expected_key and key != expected_key:
        logger.warning("Invalid secret key provided to /save-config")
        raise HTTPException(status_code=401, detail="Invalid secret key")

    if not save_config(settings):
        raise HTTPException(status_code=500, detail="Could not write the settings file")

    context = init_bot()
    await resolve_bot_user(context)
    return {
        "success": True,
        "message": "Settings saved",
        "configured": context is not None,
    }


@app.get("/api/health")
async def health_check():
    """Detailed health check with configuration status"""
    config = get_config()
    return {
        "status": "healthy",
        "bot_running": app.state.context is not None,
        "missing_settings": config.missing_fields(),
        "pending_tasks": len(app.state.tasks),
        "endpoints": {
            "slack_events": "/slack/events",
            "save_config": "/save-config",
            "health": "/api/health"
        }
    }


if __name__ == "__main__":
    # This allows running the API standalone for testing
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 3000)))
