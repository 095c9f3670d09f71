"""
Product name normalization.

Maps whatever people type for a product ("bigone", "초록색", "blu") onto one of
the canonical product names in constants/products.py.
"""

import logging
from typing import Dict, List, Optional

from constants.products import PRODUCT_SYNONYMS

logger = logging.getLogger(__name__)


def _build_lookup(synonyms: Dict[str, List[str]]) -> Dict[str, set]:
    return {key: {variant.casefold() for variant in variants} | {key.casefold()} for key, variants in synonyms.items()}


_SYNONYM_LOOKUP = _build_lookup(PRODUCT_SYNONYMS)


def normalize_product(product: Optional[str], synonyms: Optional[Dict[str, List[str]]] = None) -> Optional[str]:
    """Return the canonical product name for a raw token.

    Exact synonym matches are tried first, then containment of the canonical
    key inside the token. Unknown products come back unchanged.
    """
    if not product:
        return product

    lookup = _SYNONYM_LOOKUP if synonyms is None else _build_lookup(synonyms)
    token = product.strip().casefold()

    for key, variants in lookup.items():
        if token in variants:
            return key

    for key in lookup:
        if key.casefold() in token:
            return key

    logger.debug(f"No canonical product for '{product}', keeping it as is")
    return product
