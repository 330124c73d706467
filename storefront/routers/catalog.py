from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..models import CATEGORIES, Listing
from ..options import (
    colour_choices,
    discount_percent,
    display_price,
    group_colour_options,
    group_standard_options,
    min_option_price,
)
from ..uploads import public_image_url

router = APIRouter(prefix="/api/forsale", tags=["Catalog"])


def ensure_category(category: str) -> str:
    category = (category or "").lower()
    if category not in CATEGORIES:
        raise HTTPException(status_code=404, detail=f"Unknown category '{category}'")
    return category


def listing_out(listing: Listing) -> schemas.ListingOut:
    out = schemas.ListingOut.model_validate(listing)
    out.images = [public_image_url(url) for url in out.images]
    return out


def listing_detail(listing: Listing, palette) -> schemas.ListingDetail:
    base = listing_out(listing)
    standard = [
        schemas.StandardGroupOut(
            title=group.title,
            options=[schemas.OptionOut.model_validate(opt) for opt in group.options],
        )
        for group in group_standard_options(listing.options)
    ]
    colour = [
        schemas.ColourGroupOut(
            title=group.title,
            colours=[schemas.ColourOut.model_validate(c) for c in colour_choices(group, palette)],
        )
        for group in group_colour_options(listing.options)
    ]
    return schemas.ListingDetail(
        **base.model_dump(),
        standard_groups=standard,
        colour_groups=colour,
        display_price=display_price(listing),
        min_price=min_option_price(listing),
        discount_percent=discount_percent(listing),
        in_stock=(listing.stock or 0) > 0,
    )


@router.get("/{category}", response_model=List[schemas.ListingOut])
def list_listings(category: str, db: Session = Depends(get_db)):
    category = ensure_category(category)
    return [listing_out(listing) for listing in crud.get_listings(db, category)]


@router.get("/{category}/{listing_id}", response_model=schemas.ListingDetail)
def get_listing(category: str, listing_id: int, db: Session = Depends(get_db)):
    category = ensure_category(category)
    listing = crud.get_listing(db, listing_id, category)
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing_detail(listing, crud.get_colours(db))
