import datetime as dt
import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from .models import SHOP_CATEGORIES, Listing, ListingOption, ProcessedEvent, ProductColour

logger = logging.getLogger(__name__)

LISTING_FIELDS = ("name", "description", "price", "old_price", "is_sale", "stock", "images")


# -----------------------------
# Listings
# -----------------------------

def get_listings(db: Session, category: str) -> List[Listing]:
    return (
        db.query(Listing)
        .filter(Listing.category == category)
        .order_by(Listing.id.desc())
        .all()
    )


def get_listing(db: Session, listing_id: int, category: Optional[str] = None) -> Optional[Listing]:
    query = db.query(Listing).filter(Listing.id == listing_id)
    if category is not None:
        query = query.filter(Listing.category == category)
    return query.first()


def _build_options(options_data: Iterable[dict]) -> List[ListingOption]:
    return [
        ListingOption(
            position=position,
            label=(data.get("label") or "").strip(),
            group_name=(data.get("group_name") or None),
            price=data.get("price"),
            image_index=data.get("image_index"),
            is_colour_option=bool(data.get("is_colour_option")),
            colour_ids=[int(c) for c in data.get("colour_ids") or []] if data.get("is_colour_option") else [],
        )
        for position, data in enumerate(options_data)
    ]


def create_listing(db: Session, category: str, listing_data: dict, options_data: Iterable[dict] = ()) -> Listing:
    name = (listing_data.get("name") or "").strip()
    if not name:
        raise ValueError("name_required")

    db_listing = Listing(category=category, **{**listing_data, "name": name})
    db_listing.options = _build_options(options_data)
    db.add(db_listing)
    db.commit()
    db.refresh(db_listing)
    return db_listing


def update_listing(db: Session, db_listing: Listing, listing_data: dict, options_data: Optional[Iterable[dict]] = None) -> Listing:
    if "name" in listing_data:
        name = (listing_data.get("name") or "").strip()
        if not name:
            raise ValueError("name_required")
        listing_data = {**listing_data, "name": name}

    for key, value in listing_data.items():
        if key in LISTING_FIELDS:
            setattr(db_listing, key, value)
    if options_data is not None:
        db_listing.options = _build_options(options_data)
    db.commit()
    db.refresh(db_listing)
    return db_listing


def replace_options(db: Session, db_listing: Listing, options_data: Iterable[dict]) -> Listing:
    db_listing.options = _build_options(options_data)
    db.commit()
    db.refresh(db_listing)
    return db_listing


def delete_listing(db: Session, listing_id: int, category: str) -> Optional[Listing]:
    db_listing = get_listing(db, listing_id, category)
    if db_listing:
        db.delete(db_listing)
        db.commit()
    return db_listing


def listing_price_ids(db_listing: Listing, include_listing: bool = True) -> List[str]:
    """Stripe price ids currently attached to a listing and its options."""
    ids = [opt.price_id for opt in db_listing.options if opt.price_id]
    if include_listing and db_listing.price_id:
        ids.insert(0, db_listing.price_id)
    return ids


def find_listing_by_price_id(db: Session, price_id: str) -> Optional[Listing]:
    """Locate the shop listing that sells a Stripe price.

    Listing prices are searched before option prices, each in shop category
    order.
    """
    for category in SHOP_CATEGORIES:
        listing = (
            db.query(Listing)
            .filter(Listing.category == category, Listing.price_id == price_id)
            .first()
        )
        if listing:
            return listing

    for category in SHOP_CATEGORIES:
        option = (
            db.query(ListingOption)
            .join(Listing)
            .filter(Listing.category == category, ListingOption.price_id == price_id)
            .first()
        )
        if option:
            return option.listing
    return None


# -----------------------------
# Stock
# -----------------------------

def is_event_processed(db: Session, event_id: str) -> bool:
    return db.query(ProcessedEvent).filter(ProcessedEvent.id == event_id).first() is not None


def apply_stock_decrements(
    db: Session,
    *,
    event_id: str,
    event_type: str,
    decrements: Iterable[Tuple[int, int]],
) -> List[dict]:
    """Decrease stock for each (listing_id, quantity) and record the event.

    Stock never goes below zero. Everything commits together so a retried
    delivery of the same event is either fully applied or not at all.
    """
    merged: dict[int, int] = {}
    for listing_id, qty in decrements:
        if qty <= 0:
            continue
        merged[listing_id] = merged.get(listing_id, 0) + qty

    results = []
    try:
        for listing_id in sorted(merged.keys()):
            qty = merged[listing_id]
            listing = (
                db.query(Listing)
                .filter(Listing.id == listing_id)
                .with_for_update()
                .first()
            )
            if not listing:
                logger.warning("listing %s vanished before stock update", listing_id)
                continue
            before = listing.stock or 0
            if before < qty:
                logger.warning(
                    "listing %s oversold: stock %s, sold %s", listing_id, before, qty
                )
            listing.stock = max(before - qty, 0)
            results.append({"listing_id": listing_id, "quantity": qty, "stock": listing.stock})

        db.add(ProcessedEvent(id=event_id, event_type=event_type))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return results


# -----------------------------
# Product colours
# -----------------------------

def get_colours(db: Session) -> List[ProductColour]:
    return (
        db.query(ProductColour)
        .order_by(ProductColour.sort_order.asc(), ProductColour.created_at.asc(), ProductColour.id.asc())
        .all()
    )


def get_colour(db: Session, colour_id: int) -> Optional[ProductColour]:
    return db.query(ProductColour).filter(ProductColour.id == colour_id).first()


def create_colour(db: Session, name: str, image_url: str, sort_order: Optional[int] = None) -> ProductColour:
    if sort_order is None:
        # new colours go last unless told otherwise
        sort_order = int(dt.datetime.now(dt.timezone.utc).timestamp() * 1000)
    db_colour = ProductColour(name=name, image_url=image_url, sort_order=sort_order)
    db.add(db_colour)
    db.commit()
    db.refresh(db_colour)
    return db_colour


def update_colour(db: Session, colour_id: int, update_data: dict) -> Optional[ProductColour]:
    db_colour = get_colour(db, colour_id)
    if not db_colour:
        return None
    for key, value in update_data.items():
        if value is not None:
            setattr(db_colour, key, value)
    db_colour.updated_at = dt.datetime.now(dt.timezone.utc)
    db.commit()
    db.refresh(db_colour)
    return db_colour


def delete_colour(db: Session, colour_id: int) -> Optional[ProductColour]:
    db_colour = get_colour(db, colour_id)
    if db_colour:
        db.delete(db_colour)
        db.commit()
    return db_colour
