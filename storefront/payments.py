"""Stripe access: catalogue sync, checkout sessions, webhook verification."""
import logging
from decimal import Decimal, ROUND_HALF_UP

import stripe
from fastapi import HTTPException

from . import config
from .models import is_shop_category

logger = logging.getLogger(__name__)

CHECKOUT_PAYMENT_METHODS = ["card", "afterpay_clearpay"]
PLACEHOLDER_SHIPPING_LABEL = "Calculating…"


def _stripe_required() -> None:
    if not config.STRIPE_SECRET_KEY:
        raise HTTPException(
            status_code=500,
            detail="Stripe is not configured. Set STRIPE_SECRET_KEY.",
        )
    stripe.api_key = config.STRIPE_SECRET_KEY


def to_minor_units(amount) -> int:
    # Convert decimal currency to integer minor units (e.g., cents)
    dec = Decimal(str(amount))
    minor = (dec * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def _as_dict(obj) -> dict:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


# -----------------------------
# Thin SDK wrappers
# -----------------------------

def create_product(name: str, images: list) -> str:
    _stripe_required()
    product = stripe.Product.create(name=name, images=images, shippable=True)
    return product.id


def update_product(product_id: str, **fields) -> None:
    _stripe_required()
    stripe.Product.modify(product_id, **fields)


def create_price(product_id: str, amount) -> str:
    _stripe_required()
    price = stripe.Price.create(
        currency=config.STRIPE_CURRENCY,
        unit_amount=to_minor_units(amount),
        product=product_id,
    )
    return price.id


def deactivate_price(price_id: str) -> None:
    _stripe_required()
    stripe.Price.modify(price_id, active=False)


def retrieve_price(price_id: str) -> dict:
    """Return ``{"id", "unit_amount", "product"}`` with ``product`` as an id."""
    _stripe_required()
    price = _as_dict(stripe.Price.retrieve(price_id))
    product = price.get("product")
    if isinstance(product, dict):
        product = product.get("id")
    return {"id": price.get("id"), "unit_amount": price.get("unit_amount"), "product": product}


def create_checkout_session(line_items: list, return_url: str) -> str:
    """Create an embedded (custom UI) Checkout Session and return its client secret."""
    _stripe_required()
    session = stripe.checkout.Session.create(
        shipping_address_collection={"allowed_countries": config.SHIPPING_ALLOWED_COUNTRIES},
        # replaced by real rates once the shopper enters an address
        shipping_options=[
            {
                "shipping_rate_data": {
                    "type": "fixed_amount",
                    "fixed_amount": {"amount": 0, "currency": config.STRIPE_CURRENCY},
                    "display_name": PLACEHOLDER_SHIPPING_LABEL,
                },
            }
        ],
        payment_method_types=CHECKOUT_PAYMENT_METHODS,
        line_items=line_items,
        phone_number_collection={"enabled": True},
        mode="payment",
        ui_mode="custom",
        return_url=return_url,
        permissions={"update_shipping_details": "server_only"},
    )
    return session.client_secret


def retrieve_session(session_id: str) -> dict:
    _stripe_required()
    return _as_dict(stripe.checkout.Session.retrieve(session_id))


def list_line_items(session_id: str) -> list:
    """Line items of a session with the product expanded (for its metadata)."""
    _stripe_required()
    items = stripe.checkout.Session.list_line_items(
        session_id,
        limit=100,
        expand=["data.price.product"],
    )
    return [_as_dict(item) for item in items.auto_paging_iter()]


def update_session_shipping(session_id: str, shipping_details: dict, shipping_options: list) -> None:
    _stripe_required()
    stripe.checkout.Session.modify(
        session_id,
        collected_information={"shipping_details": shipping_details},
        shipping_options=shipping_options,
    )


def construct_event(payload: bytes, sig_header: str) -> dict:
    """Verify a webhook delivery. Raises ValueError / SignatureVerificationError."""
    _stripe_required()
    if not config.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=500, detail="STRIPE_WEBHOOK_SECRET is not configured")
    event = stripe.Webhook.construct_event(
        payload=payload,
        sig_header=sig_header,
        secret=config.STRIPE_WEBHOOK_SECRET,
    )
    return _as_dict(event)


# -----------------------------
# Catalogue sync
# -----------------------------

def is_syncable(listing) -> bool:
    return is_shop_category(listing.category) and listing.price is not None


def price_options(listing) -> None:
    """Give every priced standard option of a synced listing its own Stripe price."""
    for opt in listing.options:
        if opt.is_colour_option or opt.price is None:
            opt.price_id = None
            continue
        opt.price_id = create_price(listing.stripe_product_id, opt.price)


def deactivate_prices(price_ids) -> None:
    for price_id in price_ids:
        if not price_id:
            continue
        try:
            deactivate_price(price_id)
        except stripe.StripeError:
            # an orphaned active price is harmless: checkout only accepts current ids
            logger.warning("could not deactivate stale price %s", price_id, exc_info=True)


def sync_listing(listing, stale_price_ids=()) -> bool:
    """Create or refresh the Stripe product and prices behind a listing.

    The caller commits; ids are written onto the ORM objects. Returns False
    for listings that are not sold through Stripe.
    """
    if not is_syncable(listing):
        return False

    images = [listing.main_image] if listing.main_image else []
    if not listing.stripe_product_id:
        listing.stripe_product_id = create_product(listing.name or "Unnamed", images)
        logger.info("created stripe product %s for listing %s", listing.stripe_product_id, listing.id)

    price_options(listing)
    listing.price_id = create_price(listing.stripe_product_id, listing.price)
    update_product(
        listing.stripe_product_id,
        name=listing.name,
        images=images,
        default_price=listing.price_id,
    )
    deactivate_prices(stale_price_ids)
    return True
