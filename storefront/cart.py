"""Cart operations over the cart document the browser keeps in local storage.

The server never stores carts. Each call takes the shopper's current cart,
returns a new one, and leaves persisting it to the client.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional
from urllib.parse import quote

from .models import is_shop_category
from .options import (
    colour_choices,
    group_colour_options,
    group_standard_options,
    resolve_selections,
    selected_price,
)
from .schemas import Cart, CartEntry, ColourCombo
from .uploads import public_image_url


def _encode_component(value: str) -> str:
    # same escaping as JavaScript's encodeURIComponent
    return quote(value, safe="-_.!~*'()")


def build_cart_key(listing_id: int, groups, selections: Dict[str, str]) -> str:
    """Listing id plus each selected standard option, in group order.

    Two adds of the same listing with the same standard options land on the
    same key and merge; any other choice gets its own line.
    """
    key = str(listing_id)
    for group in groups:
        label = selections.get(group.title)
        if label:
            key += f"|{_encode_component(group.title)}={_encode_component(label)}"
    return key


def _resolve_colours(groups, colour_selections: Dict[str, int], palette) -> Dict[str, object]:
    chosen = {}
    for group in groups:
        colour_id = colour_selections.get(group.title)
        if colour_id is None:
            raise ValueError(f"options_incomplete:{group.title}")
        match = next((c for c in colour_choices(group, palette) if c.id == colour_id), None)
        if match is None:
            raise ValueError(f"unknown_colour:{group.title}")
        chosen[group.title] = match
    return chosen


def _merge_combo(entry: CartEntry, labels: List[str], quantity: int) -> None:
    if entry.chosen_colors is None:
        entry.chosen_colors = []
    for combo in entry.chosen_colors:
        if combo.labels == labels:
            combo.quantity += quantity
            return
    entry.chosen_colors.append(ColourCombo(labels=labels, quantity=quantity))


def add_to_cart(
    cart: Cart,
    listing,
    selections: Dict[str, str],
    colour_selections: Dict[str, int],
    quantity: int,
    palette,
) -> Cart:
    if not is_shop_category(listing.category) or listing.price is None:
        raise ValueError("not_for_sale")
    if quantity < 1:
        raise ValueError("invalid_quantity")
    if listing.stock <= 0:
        raise ValueError("out_of_stock")

    standard_groups = group_standard_options(listing.options)
    colour_groups = group_colour_options(listing.options)
    chosen = resolve_selections(standard_groups, selections)
    chosen_colours = _resolve_colours(colour_groups, colour_selections, palette)

    labels = {title: opt.label for title, opt in chosen.items()}
    key = build_cart_key(listing.id, standard_groups, labels)

    updated = cart.model_copy(deep=True)
    entry = updated.items.get(key)
    already = entry.quantity if entry else 0
    if already + quantity > listing.stock:
        raise ValueError("insufficient_stock")

    option_parts = [f"{title}: {label}" for title, label in labels.items()]
    colour_parts = [f"{title}: {colour.name}" for title, colour in chosen_colours.items()]

    if entry is not None:
        entry.quantity += quantity
        if colour_parts:
            _merge_combo(entry, colour_parts, quantity)
            colour_text = "; ".join(colour_parts)
            if colour_text not in (entry.chosen_option or ""):
                entry.chosen_option = f"{entry.chosen_option}; {colour_text}" if entry.chosen_option else colour_text
        return updated

    price, price_id = selected_price(listing, chosen.values())
    if price_id is None:
        raise ValueError("not_for_sale")
    summary = "; ".join(option_parts + colour_parts)
    updated.items[key] = CartEntry(
        id=listing.id,
        name=listing.name,
        price=price.quantize(Decimal("0.01")),
        price_id=price_id,
        product_id=listing.stripe_product_id,
        image=public_image_url(listing.main_image),
        quantity=quantity,
        category=listing.category,
        chosen_option=summary or None,
        chosen_options=labels,
        chosen_colors=[ColourCombo(labels=colour_parts, quantity=quantity)] if colour_parts else None,
    )
    return updated


def set_quantity(cart: Cart, key: str, quantity) -> Cart:
    updated = cart.model_copy(deep=True)
    entry = updated.items.get(key)
    if entry is None:
        raise ValueError("cart_item_not_found")
    if entry.chosen_colors:
        # quantity is the sum of the colour combinations
        raise ValueError("quantity_follows_colours")
    try:
        value = int(quantity)
    except (TypeError, ValueError):
        value = 1
    entry.quantity = max(value, 1)
    return updated


def set_colour_quantity(cart: Cart, key: str, index: int, quantity: int) -> Cart:
    updated = cart.model_copy(deep=True)
    entry = updated.items.get(key)
    if entry is None:
        raise ValueError("cart_item_not_found")
    combos = entry.chosen_colors or []
    if index >= len(combos):
        raise ValueError("colour_combo_not_found")

    if quantity <= 0:
        combos.pop(index)
    else:
        combos[index].quantity = quantity

    if not combos:
        del updated.items[key]
        return updated
    entry.chosen_colors = combos
    entry.quantity = sum(c.quantity for c in combos)
    return updated


def remove_item(cart: Cart, key: str) -> Cart:
    updated = cart.model_copy(deep=True)
    updated.items.pop(key, None)
    return updated


def cart_subtotal(cart: Cart) -> Decimal:
    return sum((entry.price * entry.quantity for entry in cart.items.values()), Decimal("0.00"))


def cart_count(cart: Cart) -> int:
    return sum(entry.quantity for entry in cart.items.values())


@dataclass
class CheckoutLine:
    key: str
    listing_id: int
    category: str
    name: str
    price_id: Optional[str]
    quantity: int
    colours: str
    option: str


def colour_display(entry: CartEntry) -> str:
    return ", ".join(f"{' / '.join(c.labels)} ({c.quantity})" for c in entry.chosen_colors or [])


def checkout_lines(cart: Cart) -> List[CheckoutLine]:
    return [
        CheckoutLine(
            key=key,
            listing_id=entry.id,
            category=entry.category,
            name=entry.name,
            price_id=entry.price_id,
            quantity=entry.quantity or 1,
            colours=colour_display(entry),
            option="; ".join(f"{title}: {label}" for title, label in entry.chosen_options.items()),
        )
        for key, entry in cart.items.items()
    ]
