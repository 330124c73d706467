import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .. import config, schemas, shipping
from ..cart import checkout_lines
from ..checkout import OUT_OF_STOCK_MESSAGE, start_checkout
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Checkout"])

SHIPPING_NOT_FOUND_MESSAGE = "We can't find shipping options. Please try again."
SHIPPING_INTERNAL_ERROR_MESSAGE = "Internal error occurred while calculating shipping options."


@router.post("/checkout_sessions")
def create_checkout_session(
    body: schemas.CheckoutRequest,
    origin: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    lines = checkout_lines(body.cart)
    try:
        client_secret = start_checkout(db, lines, origin or config.PUBLIC_URL)
    except ValueError as e:
        code = str(e).split(":", 1)[0]
        if code == "out_of_stock":
            raise HTTPException(status_code=409, detail=OUT_OF_STOCK_MESSAGE)
        if code == "stale_price":
            raise HTTPException(status_code=409, detail="Prices have changed, please refresh your cart")
        if code == "listing_not_found":
            raise HTTPException(status_code=404, detail="An item in your cart is no longer available")
        if code == "cart_empty":
            raise HTTPException(status_code=400, detail="Your cart is empty")
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.StripeError:
        logger.exception("checkout session creation failed")
        raise HTTPException(status_code=502, detail="Error creating checkout session")

    return {"clientSecret": client_secret}


@router.post("/calculate-shipping-options")
def calculate_shipping_options(body: schemas.ShippingRequest):
    try:
        succeeded = shipping.calculate_shipping_options(body.checkout_session_id, body.shipping_details)
    except ValueError:
        return {"type": "error", "message": SHIPPING_NOT_FOUND_MESSAGE}
    except stripe.StripeError:
        logger.exception("shipping update failed for %s", body.checkout_session_id)
        return {"type": "error", "message": SHIPPING_INTERNAL_ERROR_MESSAGE}

    if not succeeded:
        return {"type": "error", "message": SHIPPING_NOT_FOUND_MESSAGE}
    return {"type": "object", "value": {"succeeded": True}}
