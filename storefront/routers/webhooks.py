import logging
from typing import List, Optional, Tuple

import pika.exceptions
import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud, payments
from ..database import get_db
from ..messaging import occurred_at, publish_event
from ..models import Listing, is_shop_category

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Webhooks"])


def _line_listing(db: Session, item: dict) -> Optional[Listing]:
    price = item.get("price") or {}
    product = price.get("product")
    metadata = (product.get("metadata") or {}) if isinstance(product, dict) else {}

    listing_id = str(metadata.get("listing_id") or "")
    if listing_id.isdigit():
        listing = crud.get_listing(db, int(listing_id))
        if listing and is_shop_category(listing.category):
            return listing

    price_id = metadata.get("price_id") or price.get("id")
    if not price_id:
        return None
    return crud.find_listing_by_price_id(db, price_id)


def stock_decrements(db: Session, line_items: List[dict]) -> List[Tuple[int, int]]:
    decrements = []
    for item in line_items:
        listing = _line_listing(db, item)
        if listing is None:
            logger.warning("no listing found for line item %s", item.get("id"))
            continue
        decrements.append((listing.id, int(item.get("quantity") or 0)))
    return decrements


def _publish(routing_key: str, payload: dict) -> None:
    try:
        publish_event(routing_key, payload)
    except pika.exceptions.AMQPError:
        logger.exception("failed to publish %s", routing_key)


def handle_event(db: Session, payload: bytes, sig_header: str) -> None:
    """Verify a delivery and apply it. Blocking, so the route runs it in a worker thread."""
    try:
        event = payments.construct_event(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("webhook signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail=f"Webhook Error: {str(e)}")

    event_id = event.get("id")
    event_type = event.get("type")
    logger.info("stripe event %s (%s)", event_id, event_type)

    if event_type != "checkout.session.completed":
        return
    if crud.is_event_processed(db, event_id):
        logger.info("event %s already processed", event_id)
        return

    session = (event.get("data") or {}).get("object") or {}
    session_id = session.get("id")
    line_items = payments.list_line_items(session_id)
    try:
        results = crud.apply_stock_decrements(
            db,
            event_id=event_id,
            event_type=event_type,
            decrements=stock_decrements(db, line_items),
        )
    except IntegrityError:
        # a concurrent delivery of the same event recorded it first
        logger.info("event %s already processed", event_id)
        return

    _publish(
        "checkout.completed",
        {
            "event": "checkout.completed",
            "occurred_at": occurred_at(),
            "session_id": session_id,
            "amount_total": session.get("amount_total"),
            "currency": session.get("currency"),
            "customer_email": (session.get("customer_details") or {}).get("email"),
        },
    )
    if results:
        _publish(
            "stock.decremented",
            {"event": "stock.decremented", "occurred_at": occurred_at(), "session_id": session_id, "items": results},
        )


@router.post("/webhooks", include_in_schema=False)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Stripe webhook endpoint; stock is decremented on checkout.session.completed."""
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    await run_in_threadpool(handle_event, db, payload, sig_header)
    return PlainTextResponse("Success")
