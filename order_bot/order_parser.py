"""
Order message parsing.

Slack order messages usually look like "acme big 10 blue 5". Those are parsed
with a plain token walk. Anything that does not fit that shape is handed to the
LLM, whose answer is decoded and re-normalized locally.
"""

import json
import logging
import re
from typing import Any, List, Optional

from pydantic import ValidationError

from constants.products import PRODUCT_NAMES
from constants.schemas import OrderLine
from order_bot.errors import ConfigurationError
from order_bot.normalizer import normalize_product

logger = logging.getLogger(__name__)

_COUNT_PATTERN = re.compile(r"[0-9]+")
_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)

EXTRACTION_PROMPT_TEMPLATE = """The following is an order message posted in Slack.
Extract the [company], [product] and [count] from the message and answer with a JSON array.
When one company orders several products, create one object per product.

The product must be normalized to exactly one of: [{products}]
If a word sounds or means like one of these, convert it to the closest one.

Example input: "acme bigg 10 blu 15"
Example output: [{{"company": "acme", "product": "big", "count": 10}}, {{"company": "acme", "product": "blue", "count": 15}}]

Message: "{message}"

Important: do not add any explanation. Output only the JSON array."""


def fast_parse(text: str) -> Optional[List[OrderLine]]:
    """Parse "company product count [product count ...]" without calling the LLM.

    Returns None when the message does not fit the pattern exactly, so the
    caller can fall back to the LLM. Never returns a partial list.
    """
    parts = (text or "").split()
    if len(parts) < 3:
        return None

    company = parts[0]
    pairs = parts[1:]
    if len(pairs) % 2 != 0:
        return None

    results = []
    for i in range(0, len(pairs), 2):
        product, count_str = pairs[i], pairs[i + 1]
        if not _COUNT_PATTERN.fullmatch(count_str):
            return None
        count = int(count_str)
        if count <= 0:
            return None
        results.append(OrderLine(company=company, product=normalize_product(product), count=count))

    return results


def strip_code_fences(raw: str) -> str:
    """Remove ```json ... ``` markup the model sometimes wraps around its answer."""
    return _CODE_FENCE_PATTERN.sub("", raw or "").strip()


def build_extraction_prompt(text: str) -> str:
    return EXTRACTION_PROMPT_TEMPLATE.format(products=", ".join(PRODUCT_NAMES), message=text)


def decode_extraction(raw: str) -> List[OrderLine]:
    """Turn the model's answer into order lines, or [] if it broke the contract."""
    cleaned = strip_code_fences(raw)
    try:
        parsed: Any = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"LLM answer is not JSON: {e} (answer: {cleaned[:200]})")
        return []

    if not isinstance(parsed, list):
        logger.error(f"LLM answer is not a JSON array: {cleaned[:200]}")
        return []

    lines = []
    try:
        for item in parsed:
            if not isinstance(item, dict):
                raise TypeError(f"expected an object, got {type(item).__name__}")
            line = OrderLine(
                company=str(item.get("company", "")).strip(),
                product=item.get("product"),
                count=item.get("count"),
            )
            lines.append(line.model_copy(update={"product": normalize_product(line.product)}))
    except (TypeError, ValidationError) as e:
        logger.error(f"LLM answer does not match the order schema: {e}")
        return []

    return lines


async def ai_parse(text: str, llm) -> List[OrderLine]:
    """Extract order lines with the LLM. Failures are logged and yield []."""
    try:
        raw = await llm.get_response_async(build_extraction_prompt(text))
    except ConfigurationError as e:
        logger.error(f"Skipping LLM extraction: {e}")
        return []
    except Exception as e:
        logger.error(f"Error while calling the LLM for extraction: {str(e)}")
        return []

    return decode_extraction(raw)


class OrderParser:
    """Fast pattern first, LLM second."""

    def __init__(self, llm):
        self.llm = llm

    async def parse_message(self, text: str) -> List[OrderLine]:
        quick_result = fast_parse(text)
        if quick_result is not None:
            logger.info(f"Parsed {len(quick_result)} order line(s) with the fast pattern (LLM call saved)")
            return quick_result

        logger.info("Message does not fit the fast pattern, asking the LLM")
        lines = await ai_parse(text, self.llm)
        if not lines:
            logger.warning(f"No order lines could be extracted from message: {text[:100]!r}")
        return lines
