import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import stripe
from fastapi import APIRouter, Depends, Form, HTTPException, status
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from .. import crud, payments, schemas
from ..auth import authenticate_admin, create_access_token, get_current_admin
from ..database import get_db
from ..options import flatten_option_groups, inflate_option_groups
from ..uploads import presign_image_upload
from .catalog import ensure_category

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

_options_adapter = TypeAdapter(List[schemas.OptionIn])


@router.post("/login", response_model=schemas.Token)
def admin_login(
    username: str = Form(..., description="**Admin username**", examples=["admin"]),
    password: str = Form(..., description="**Admin password**", examples=[""]),
):
    if not authenticate_admin(username, password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(data={"sub": username, "role": "admin"})
    return {"access_token": access_token, "token_type": "bearer"}


# -----------------------------
# Form parsing
# -----------------------------

def _parse_price(value: Optional[str]) -> Optional[Decimal]:
    if value is None or not value.strip():
        return None
    try:
        price = Decimal(value.strip())
    except InvalidOperation:
        raise HTTPException(status_code=400, detail="Price must be a number")
    if not price.is_finite() or price < 0:
        raise HTTPException(status_code=400, detail="Price must be a number >= 0")
    return price


def _parse_old_price(value: Optional[str]) -> Optional[Decimal]:
    # the admin form sends placeholders such as "Not Used"
    if value is None:
        return None
    try:
        old_price = Decimal(value.strip())
    except InvalidOperation:
        return None
    return old_price if old_price.is_finite() and old_price >= 0 else None


def _parse_images(value: Optional[str]) -> List[str]:
    if not value:
        return []
    try:
        images = json.loads(value)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="images must be a JSON list of URLs")
    if not isinstance(images, list) or not all(isinstance(url, str) for url in images):
        raise HTTPException(status_code=400, detail="images must be a JSON list of URLs")
    return images


def _parse_options(value: Optional[str]) -> Optional[List[dict]]:
    if value is None:
        return None
    if not value.strip():
        return []
    try:
        options = _options_adapter.validate_json(value)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"custom_options is invalid: {e.errors()[0]['msg']}")
    return [opt.model_dump() for opt in options]


_FIELD_PARSERS = {
    "price": _parse_price,
    "old_price": _parse_old_price,
    "images": _parse_images,
}


def _listing_data(submitted: dict, partial: bool = False) -> dict:
    """Parse the listing form; a partial update leaves out fields that were not sent."""
    data = {}
    for key, value in submitted.items():
        if partial and value is None:
            continue
        parser = _FIELD_PARSERS.get(key)
        data[key] = parser(value) if parser else value
    return data


def _sync(db: Session, listing, stale_price_ids=()) -> None:
    try:
        if payments.sync_listing(listing, stale_price_ids):
            db.commit()
            db.refresh(listing)
    except stripe.StripeError as e:
        db.rollback()
        logger.exception("stripe sync failed for listing %s", listing.id)
        raise HTTPException(status_code=502, detail=f"Stripe error: {str(e)}")


# -----------------------------
# Listings
# -----------------------------

@router.post("/listings/{category}", response_model=schemas.ListingOut, status_code=201)
def create_listing(
    category: str,
    name: str = Form(..., description="**Listing name** (required)", examples=[""]),
    price: Optional[str] = Form(None, description="**Price** (empty for not priced)", examples=[""]),
    description: Optional[str] = Form(None, description="**Description** (optional)", examples=[""]),
    is_sale: bool = Form(False, description="**On sale**"),
    old_price: Optional[str] = Form(None, description="**Price before the sale** (optional)", examples=[""]),
    stock: int = Form(0, ge=0, description="**Stock quantity** (must be >= 0)"),
    images: Optional[str] = Form(None, description="**Image URLs** as a JSON list", examples=["[]"]),
    custom_options: Optional[str] = Form(None, description="**Custom options** as a JSON list", examples=["[]"]),
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    category = ensure_category(category)
    listing_data = _listing_data(
        {
            "name": name,
            "price": price,
            "description": description,
            "is_sale": is_sale,
            "old_price": old_price,
            "stock": stock,
            "images": images,
        }
    )
    try:
        listing = crud.create_listing(db, category, listing_data, _parse_options(custom_options) or [])
    except ValueError as e:
        if str(e) == "name_required":
            raise HTTPException(status_code=400, detail="Listing name is required")
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("listing %s created in %s by %s", listing.id, category, current_admin["username"])
    _sync(db, listing)
    return listing


@router.put("/listings/{category}/{listing_id}", response_model=schemas.ListingOut)
def update_listing(
    category: str,
    listing_id: int,
    name: Optional[str] = Form(None, description="**New name** (omit to keep)", examples=[""]),
    price: Optional[str] = Form(None, description="**New price** (empty for not priced, omit to keep)", examples=[""]),
    description: Optional[str] = Form(None, description="**New description** (omit to keep)", examples=[""]),
    is_sale: Optional[bool] = Form(None, description="**On sale** (omit to keep)"),
    old_price: Optional[str] = Form(None, description="**Price before the sale** (omit to keep)", examples=[""]),
    stock: Optional[int] = Form(None, ge=0, description="**New stock** (>= 0, omit to keep)"),
    images: Optional[str] = Form(None, description="**Image URLs** as a JSON list (omit to keep)", examples=["[]"]),
    custom_options: Optional[str] = Form(None, description="**Custom options** as a JSON list (omit to keep)"),
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    category = ensure_category(category)
    listing = crud.get_listing(db, listing_id, category)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")

    listing_data = _listing_data(
        {
            "name": name,
            "price": price,
            "description": description,
            "is_sale": is_sale,
            "old_price": old_price,
            "stock": stock,
            "images": images,
        },
        partial=True,
    )
    options_data = _parse_options(custom_options)
    stale_price_ids = crud.listing_price_ids(listing) if listing.stripe_product_id else []
    try:
        listing = crud.update_listing(db, listing, listing_data, options_data)
    except ValueError as e:
        if str(e) == "name_required":
            raise HTTPException(status_code=400, detail="Listing name is required")
        raise HTTPException(status_code=400, detail=str(e))

    _sync(db, listing, stale_price_ids)
    return listing


@router.delete("/listings/{category}/{listing_id}")
def delete_listing(
    category: str,
    listing_id: int,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    category = ensure_category(category)
    if not crud.delete_listing(db, listing_id, category):
        raise HTTPException(status_code=404, detail="Listing not found")
    logger.info("listing %s deleted from %s by %s", listing_id, category, current_admin["username"])
    return {"message": "Listing deleted successfully"}


@router.get("/listings/{category}/{listing_id}/option-groups", response_model=List[schemas.OptionGroup])
def get_option_groups(
    category: str,
    listing_id: int,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    listing = crud.get_listing(db, listing_id, ensure_category(category))
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return inflate_option_groups(listing.options)


@router.put("/listings/{category}/{listing_id}/option-groups", response_model=List[schemas.OptionGroup])
def put_option_groups(
    category: str,
    listing_id: int,
    groups: List[schemas.OptionGroup],
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    listing = crud.get_listing(db, listing_id, ensure_category(category))
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")

    stale_price_ids = crud.listing_price_ids(listing, include_listing=False)
    listing = crud.replace_options(db, listing, flatten_option_groups(g.model_dump() for g in groups))

    if listing.stripe_product_id and payments.is_syncable(listing):
        try:
            payments.price_options(listing)
            db.commit()
        except stripe.StripeError as e:
            db.rollback()
            logger.exception("pricing options failed for listing %s", listing.id)
            raise HTTPException(status_code=502, detail=f"Stripe error: {str(e)}")
        payments.deactivate_prices(stale_price_ids)
        db.refresh(listing)
    return inflate_option_groups(listing.options)


@router.post("/uploads/presign")
def presign_upload(
    body: schemas.PresignRequest,
    current_admin: Dict = Depends(get_current_admin),
):
    return {"url": presign_image_upload(body.imagename)}
