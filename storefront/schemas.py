from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# -----------------------------
# Listings & custom options
# -----------------------------

class OptionIn(BaseModel):
    """A custom option as the admin panel submits it (camelCase keys accepted)."""

    model_config = ConfigDict(populate_by_name=True)

    label: str = ""
    group_name: Optional[str] = Field(None, alias="groupName")
    price: Optional[Decimal] = Field(None, ge=0)
    image_index: Optional[int] = Field(None, alias="imageIndex", ge=0)
    is_colour_option: bool = Field(False, alias="isColourOption")
    colour_ids: List[int] = Field(default_factory=list, alias="colourIds")


class OptionOut(BaseModel):
    id: int
    label: str
    group_name: Optional[str] = None
    price: Optional[Decimal] = None
    price_id: Optional[str] = None
    image_index: Optional[int] = None
    is_colour_option: bool = False
    colour_ids: List[int] = []

    model_config = {"from_attributes": True}


class ListingOut(BaseModel):
    id: int
    category: str
    name: str
    description: Optional[str] = None
    price: Optional[Decimal] = None
    old_price: Optional[Decimal] = None
    is_sale: bool = False
    stock: int = 0
    images: List[str] = []
    stripe_product_id: Optional[str] = None
    price_id: Optional[str] = None
    options: List[OptionOut] = []

    model_config = {"from_attributes": True}


class ColourOut(BaseModel):
    id: int
    name: str
    image_url: str
    sort_order: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StandardGroupOut(BaseModel):
    title: str
    options: List[OptionOut]


class ColourGroupOut(BaseModel):
    title: str
    colours: List[ColourOut]


class ListingDetail(ListingOut):
    standard_groups: List[StandardGroupOut] = []
    colour_groups: List[ColourGroupOut] = []
    display_price: Decimal
    min_price: Decimal
    discount_percent: int = 0
    in_stock: bool


class GroupOption(BaseModel):
    label: str = ""
    price: Optional[Decimal] = Field(None, ge=0)
    image_index: Optional[int] = Field(None, ge=0)


class OptionGroup(BaseModel):
    """Nested form state of the admin option-group editor."""

    name: str = ""
    is_colour_option: bool = False
    options: List[GroupOption] = []
    colour_ids: List[int] = []


# -----------------------------
# Product colours
# -----------------------------

class ColourCreate(BaseModel):
    name: Optional[str] = None
    image_url: Optional[str] = None
    sort_order: Optional[int] = None


class ColourUpdate(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    image_url: Optional[str] = None
    sort_order: Optional[int] = None


class ColourDelete(BaseModel):
    id: Optional[int] = None


# -----------------------------
# Cart (held by the browser)
# -----------------------------

class ColourCombo(BaseModel):
    labels: List[str]
    quantity: int = Field(..., ge=0)


class CartEntry(BaseModel):
    id: int
    name: str
    price: Decimal
    price_id: Optional[str] = None
    product_id: Optional[str] = None
    image: str = ""
    quantity: int = Field(..., ge=0)
    category: str
    chosen_option: Optional[str] = None
    chosen_options: Dict[str, str] = {}
    chosen_colors: Optional[List[ColourCombo]] = None


class Cart(BaseModel):
    items: Dict[str, CartEntry] = {}


class AddToCartRequest(BaseModel):
    cart: Cart = Field(default_factory=Cart)
    listing_id: int
    options: Dict[str, str] = {}
    colours: Dict[str, int] = {}
    quantity: int = 1


class SetQuantityRequest(BaseModel):
    cart: Cart
    key: str
    quantity: Union[int, str, None] = None


class SetColourQuantityRequest(BaseModel):
    cart: Cart
    key: str
    index: int = Field(..., ge=0)
    quantity: int


class RemoveFromCartRequest(BaseModel):
    cart: Cart
    key: str


class CartRequest(BaseModel):
    cart: Cart


class CartSummary(BaseModel):
    cart: Cart
    subtotal: Decimal
    count: int


# -----------------------------
# Checkout / shipping / admin misc
# -----------------------------

class CheckoutRequest(BaseModel):
    cart: Cart


class ShippingRequest(BaseModel):
    checkout_session_id: str = Field(..., min_length=1)
    shipping_details: Dict[str, Any]


class PresignRequest(BaseModel):
    imagename: str = Field(..., min_length=1)


class Token(BaseModel):
    access_token: str
    token_type: str
