#!/usr/bin/env python3
"""
Run the order parser on a message from the command line.

Handy for checking how a message will be understood before blaming Slack:

    python scripts/replay_message.py "acme big 3 green 2"
    python scripts/replay_message.py "acme big 3" --ts 1712345678.000100 --write
"""

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path to allow importing modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from constants.schemas import OrderBatch
from order_bot.config_manager import get_config
from order_bot.google_sheets import GoogleSheetsStore
from order_bot.llm_handler import LLMHandler
from order_bot.order_parser import OrderParser
from order_bot.sheet_sync import SyncEngine

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def replay(text: str, ts: str, channel: str, write: bool, delete: bool) -> int:
    config = get_config()
    parser = OrderParser(LLMHandler(config.llm_api_key, model_name=config.llm_model))

    lines = await parser.parse_message(text)
    batch = OrderBatch.from_lines(lines, source_ts=ts, channel=channel)
    if batch.is_empty():
        logger.warning("No order lines found")
    for line in batch.lines:
        print(f"{line.company}\t{line.product}\t{line.count}\t{line.source_ts}")

    if not (write or delete):
        return 0

    if not config.selected_sheet_id:
        logger.error("Missing SELECTED_SHEET_ID, cannot touch the spreadsheet")
        return 1

    sync = SyncEngine(GoogleSheetsStore(config.google_service_account_key), timezone=config.timezone)
    if delete:
        result = await sync.delete_by_timestamp(config.selected_sheet_id, ts)
        logger.info(f"Deleted {result.deleted} row(s), {result.protected} protected")
    if write:
        written = await sync.append(config.selected_sheet_id, batch.lines)
        logger.info(f"Wrote {written} row(s)")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Parse an order message and optionally sync it to the sheet")
    parser.add_argument("text", help="Message text exactly as posted in Slack")
    parser.add_argument("--ts", default="0000000000.000000", help="Slack ts to stamp on the rows")
    parser.add_argument("--channel", default="cli", help="Channel id recorded on the batch")
    parser.add_argument("--write", action="store_true", help="Append the parsed rows to the spreadsheet")
    parser.add_argument("--delete", action="store_true", help="Delete existing rows for --ts first")
    args = parser.parse_args()

    sys.exit(asyncio.run(replay(args.text, args.ts, args.channel, args.write, args.delete)))


if __name__ == "__main__":
    main()
