"""Custom option groups.

Listings store their options as one flat, ordered list. The storefront and
the admin editor both work with groups, so this module folds the flat list
into groups and back, and answers the pricing questions that depend on which
options a shopper picked.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

STANDARD_FALLBACK_TITLE = "Option"
COLOUR_FALLBACK_TITLE = "Colour Option"


@dataclass
class StandardGroup:
    title: str
    options: list = field(default_factory=list)


@dataclass
class ColourGroup:
    title: str
    colour_ids: List[int] = field(default_factory=list)


def _title(option, fallback: str) -> str:
    return option.group_name or option.label or fallback


def group_standard_options(options) -> List[StandardGroup]:
    groups: Dict[str, StandardGroup] = {}
    for opt in options or []:
        if opt.is_colour_option:
            continue
        title = _title(opt, STANDARD_FALLBACK_TITLE)
        groups.setdefault(title, StandardGroup(title)).options.append(opt)
    return list(groups.values())


def group_colour_options(options) -> List[ColourGroup]:
    groups: Dict[str, ColourGroup] = {}
    for opt in options or []:
        if not opt.is_colour_option:
            continue
        title = _title(opt, COLOUR_FALLBACK_TITLE)
        group = groups.setdefault(title, ColourGroup(title))
        for colour_id in opt.colour_ids or []:
            if colour_id not in group.colour_ids:
                group.colour_ids.append(colour_id)
    return list(groups.values())


def colour_choices(group: ColourGroup, colours) -> list:
    """Colours a shopper may pick for a group; no ids means the whole palette."""
    if not group.colour_ids:
        return list(colours)
    allowed = set(group.colour_ids)
    return [c for c in colours if c.id in allowed]


# -----------------------------
# Admin editor state
# -----------------------------

def inflate_option_groups(options) -> List[dict]:
    """Flat option rows -> nested editor groups."""
    groups: Dict[Tuple[bool, str], dict] = {}
    for opt in options or []:
        is_colour = bool(opt.is_colour_option)
        name = opt.group_name or opt.label or ""
        group = groups.setdefault(
            (is_colour, name),
            {"name": name, "is_colour_option": is_colour, "options": [], "colour_ids": []},
        )
        if is_colour:
            for colour_id in opt.colour_ids or []:
                if colour_id not in group["colour_ids"]:
                    group["colour_ids"].append(colour_id)
        else:
            group["options"].append(
                {"label": opt.label, "price": opt.price, "image_index": opt.image_index}
            )
    return list(groups.values())


def flatten_option_groups(groups: Iterable[dict]) -> List[dict]:
    """Nested editor groups -> flat option rows ready to store."""
    flat: List[dict] = []
    for group in groups:
        name = (group.get("name") or "").strip()
        if group.get("is_colour_option"):
            if not name:
                continue
            flat.append(
                {
                    "label": name,
                    "group_name": name,
                    "price": None,
                    "image_index": None,
                    "is_colour_option": True,
                    "colour_ids": [int(c) for c in group.get("colour_ids") or []],
                }
            )
            continue

        for opt in group.get("options") or []:
            label = (opt.get("label") or "").strip()
            if not label:
                continue
            flat.append(
                {
                    "label": label,
                    "group_name": name or None,
                    "price": opt.get("price"),
                    "image_index": opt.get("image_index"),
                    "is_colour_option": False,
                    "colour_ids": [],
                }
            )
    return flat


# -----------------------------
# Pricing
# -----------------------------

def resolve_selections(groups: List[StandardGroup], selections: Dict[str, str]) -> Dict[str, object]:
    """Map each group title to the chosen option; every group needs a choice."""
    chosen = {}
    for group in groups:
        label = selections.get(group.title)
        if not label:
            raise ValueError(f"options_incomplete:{group.title}")
        match = next((opt for opt in group.options if opt.label == label), None)
        if match is None:
            raise ValueError(f"unknown_option:{group.title}")
        chosen[group.title] = match
    return chosen


def selected_price(listing, chosen_options: Iterable) -> Tuple[Decimal, Optional[str]]:
    """Unit price and Stripe price id for a set of chosen options.

    The first chosen option that has its own price wins; otherwise the
    listing's base price applies. A priced option only ever bills through
    its own Stripe price, so its id is ``None`` until that price exists.
    """
    for opt in chosen_options:
        if opt.price is not None:
            return Decimal(opt.price), opt.price_id
    return Decimal(listing.price or 0), listing.price_id


def display_price(listing) -> Decimal:
    """Price shown before the shopper picks any option."""
    return selected_price(listing, [])[0]


def min_option_price(listing) -> Decimal:
    base = Decimal(listing.price or 0)
    prices = [
        Decimal(opt.price) if opt.price is not None else base
        for group in group_standard_options(listing.options)
        for opt in group.options
    ]
    return min(prices) if prices else base


def discount_percent(listing) -> int:
    if not listing.is_sale or listing.old_price is None or listing.price is None:
        return 0
    old = Decimal(listing.old_price)
    new = Decimal(listing.price)
    if old <= 0 or new < 0:
        return 0
    pct = (old - new) / old * 100
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
