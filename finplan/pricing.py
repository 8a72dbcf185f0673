# =============================================================================
# FINPLAN ENGINE - PRICING MODULE
# =============================================================================
# Effective HT sale price per (product, channel).
#
# PRIORITY:
# 1. Price override carried by the sales entry
# 2. Channel tier price of the product
# 3. Base price of the product (data-integrity warning)
# =============================================================================

import logging
from decimal import Decimal
from typing import List, Optional

from .catalog import Product
from .enums import Channel
from .money import ZERO

logger = logging.getLogger(__name__)


def tier_price(product: Product, channel: Channel) -> Optional[Decimal]:
    """Channel tier price, or None when the product has no price for that channel."""
    return product.channel_prices.get(channel.value)


def effective_price(
    product: Optional[Product],
    channel: Channel,
    override: Optional[Decimal] = None,
    warnings: Optional[List[str]] = None,
    product_id: str = "",
) -> Decimal:
    """
    HT unit price used to value a sale.

    A missing tier falls back to the base price; an unknown product is
    valued at zero. Both cases add a warning.
    """
    if override is not None:
        return override

    if product is None:
        message = f"Unknown product '{product_id}' in sales (price set to 0)"
        logger.warning(message)
        if warnings is not None:
            warnings.append(message)
        return ZERO

    price = tier_price(product, channel)
    if price is not None:
        return price

    message = (
        f"No {channel.value} price for product {product.product_id}; "
        f"using base price {product.base_price}"
    )
    logger.warning(message)
    if warnings is not None:
        warnings.append(message)
    return product.base_price


# =============================================================================
# END OF PRICING MODULE
# =============================================================================
