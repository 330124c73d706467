from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# Purchasable pages, in the order the webhook searches them for a price id
SHOP_CATEGORIES = ("availability", "plants", "prints", "isopods", "males")

# Breeding stock pages: shown on the site but never sold through Stripe
BREEDER_CATEGORIES = (
    "malecrestedgeckos",
    "femalecrestedgeckos",
    "malegargoylegeckos",
    "femalegargoylegeckos",
    "malechahouageckos",
    "femalechahouageckos",
)

CATEGORIES = SHOP_CATEGORIES + BREEDER_CATEGORIES


def is_shop_category(category: str) -> bool:
    return category in SHOP_CATEGORIES


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    category = Column(String(50), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2))
    old_price = Column(Numeric(10, 2))
    is_sale = Column(Boolean, nullable=False, default=False)
    stock = Column(Integer, nullable=False, default=0)
    images = Column(JSON, nullable=False, default=list)
    stripe_product_id = Column(String(100), index=True)
    price_id = Column(String(100), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    options = relationship(
        "ListingOption",
        back_populates="listing",
        order_by="ListingOption.position",
        cascade="all, delete-orphan",
    )

    @property
    def main_image(self) -> str:
        return self.images[0] if self.images else ""


class ListingOption(Base):
    """One selectable variant of a listing.

    Options that share a group name are presented together; a standard option
    may carry its own price, a colour option instead points at palette colours.
    """

    __tablename__ = "listing_options"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    label = Column(String(200), nullable=False, default="")
    group_name = Column(String(200))
    price = Column(Numeric(10, 2))
    price_id = Column(String(100), index=True)
    image_index = Column(Integer)
    is_colour_option = Column(Boolean, nullable=False, default=False)
    colour_ids = Column(JSON, nullable=False, default=list)

    listing = relationship("Listing", back_populates="options")


class ProductColour(Base):
    __tablename__ = "product_colours"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    image_url = Column(String(500), nullable=False)
    sort_order = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ProcessedEvent(Base):
    """Stripe webhook events that were already applied."""

    __tablename__ = "processed_events"

    id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=False)
    processed_at = Column(DateTime(timezone=True), server_default=func.now())
