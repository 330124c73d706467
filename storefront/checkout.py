"""Turning a cart into a Stripe Checkout Session."""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from . import config, crud, payments
from .cart import CheckoutLine
from .models import is_shop_category

logger = logging.getLogger(__name__)

OUT_OF_STOCK_MESSAGE = "At least one item isn't in stock!"

# (minimum quantity, discount rate), checked top-down
BULK_DISCOUNT_TIERS = (
    (30, Decimal("0.20")),
    (20, Decimal("0.15")),
    (10, Decimal("0.10")),
)


def bulk_discount_rate(quantity: int) -> Decimal:
    for minimum, rate in BULK_DISCOUNT_TIERS:
        if quantity >= minimum:
            return rate
    return Decimal("0")


def apply_bulk_discount(stripe_product_id: Optional[str], unit_amount: int, quantity: int) -> Tuple[int, Decimal]:
    """Discounted unit amount (minor units) and the rate that was applied."""
    if stripe_product_id not in config.BULK_DISCOUNT_PRODUCT_IDS:
        return unit_amount, Decimal("0")
    rate = bulk_discount_rate(quantity)
    if rate == 0:
        return unit_amount, rate
    discounted = (Decimal(unit_amount) * (1 - rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(discounted), rate


def build_description(colours: str, option: str, discount_rate: Decimal) -> Optional[str]:
    parts = []
    if colours:
        parts.append(f"Color(s): {colours}")
    if option:
        parts.append(f"Option: {option}")
    if discount_rate > 0:
        parts.append(f"Bulk discount applied: {int(discount_rate * 100)}% off")
    return "; ".join(parts) or None


def validate_cart(db: Session, lines: List[CheckoutLine]) -> None:
    """Check stock and prices against the catalogue before going to Stripe.

    Stock is only checked here, never reserved. Quantities of the same
    listing under different option keys count together.
    """
    wanted: dict[int, int] = {}
    for line in lines:
        listing = crud.get_listing(db, line.listing_id)
        if listing is None or not is_shop_category(listing.category):
            raise ValueError(f"listing_not_found:{line.listing_id}")
        if line.price_id and line.price_id not in crud.listing_price_ids(listing):
            raise ValueError(f"stale_price:{line.key}")
        wanted[listing.id] = wanted.get(listing.id, 0) + line.quantity
        if wanted[listing.id] > (listing.stock or 0):
            raise ValueError("out_of_stock")


def build_line_items(lines: List[CheckoutLine]) -> list:
    line_items = []
    for line in lines:
        if not line.price_id:
            logger.error("cart line %s has no price, skipping", line.key)
            continue

        price = payments.retrieve_price(line.price_id)
        unit_amount, rate = apply_bulk_discount(price["product"], price["unit_amount"], line.quantity)

        product_data = {
            "name": line.name,
            # lets the webhook find the listing behind this ad-hoc price
            "metadata": {"listing_id": str(line.listing_id), "price_id": line.price_id},
        }
        description = build_description(line.colours, line.option, rate)
        if description:
            product_data["description"] = description

        line_items.append(
            {
                "price_data": {
                    "currency": config.STRIPE_CURRENCY,
                    "unit_amount": unit_amount,
                    "product_data": product_data,
                },
                "quantity": line.quantity,
            }
        )
    return line_items


def start_checkout(db: Session, lines: List[CheckoutLine], origin: str) -> str:
    validate_cart(db, lines)
    line_items = build_line_items(lines)
    if not line_items:
        raise ValueError("cart_empty")
    return payments.create_checkout_session(line_items, return_url=f"{origin.rstrip('/')}/thank-you")
