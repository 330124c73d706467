from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import cart as cart_ops
from .. import crud, schemas
from ..database import get_db

router = APIRouter(prefix="/api/cart", tags=["Cart"])


def _cart_error(e: ValueError) -> HTTPException:
    code, _, detail = str(e).partition(":")
    if code in ("cart_item_not_found", "colour_combo_not_found"):
        return HTTPException(status_code=404, detail="Cart item not found")
    if code in ("out_of_stock", "insufficient_stock"):
        return HTTPException(status_code=409, detail="Not enough stock for this item")
    if code == "not_for_sale":
        return HTTPException(status_code=400, detail="This listing is not for sale")
    if code == "options_incomplete":
        return HTTPException(status_code=400, detail=f"Please select an option for {detail}")
    if code in ("unknown_option", "unknown_colour"):
        return HTTPException(status_code=400, detail=f"Invalid selection for {detail}")
    if code == "invalid_quantity":
        return HTTPException(status_code=400, detail="Quantity must be at least 1")
    if code == "quantity_follows_colours":
        return HTTPException(status_code=400, detail="Change the quantity of a colour combination instead")
    return HTTPException(status_code=400, detail=str(e))


@router.post("/add", response_model=schemas.Cart)
def add_item(body: schemas.AddToCartRequest, db: Session = Depends(get_db)):
    listing = crud.get_listing(db, body.listing_id)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    palette = crud.get_colours(db) if any(o.is_colour_option for o in listing.options) else []
    try:
        return cart_ops.add_to_cart(body.cart, listing, body.options, body.colours, body.quantity, palette)
    except ValueError as e:
        raise _cart_error(e)


@router.post("/quantity", response_model=schemas.Cart)
def set_quantity(body: schemas.SetQuantityRequest):
    try:
        return cart_ops.set_quantity(body.cart, body.key, body.quantity)
    except ValueError as e:
        raise _cart_error(e)


@router.post("/colours", response_model=schemas.Cart)
def set_colour_quantity(body: schemas.SetColourQuantityRequest):
    try:
        return cart_ops.set_colour_quantity(body.cart, body.key, body.index, body.quantity)
    except ValueError as e:
        raise _cart_error(e)


@router.post("/remove", response_model=schemas.Cart)
def remove_item(body: schemas.RemoveFromCartRequest):
    return cart_ops.remove_item(body.cart, body.key)


@router.post("/summary", response_model=schemas.CartSummary)
def summary(body: schemas.CartRequest):
    return schemas.CartSummary(
        cart=body.cart,
        subtotal=cart_ops.cart_subtotal(body.cart),
        count=cart_ops.cart_count(body.cart),
    )
