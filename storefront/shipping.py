"""Shipping rates from the Canada Post Rating API."""
import logging
import xml.etree.ElementTree as ET
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

import requests

from . import config, payments

logger = logging.getLogger(__name__)

RATE_NAMESPACE = "http://www.canadapost.ca/ws/ship/rate-v4"
RATE_CONTENT_TYPE = "application/vnd.cpc.ship.rate-v4+xml"

KG_PER_ITEM = Decimal("0.5")
PARCEL_DIMENSIONS_CM = (30, 22, 17)
REGULAR_PARCEL = "Regular Parcel"
REPTILE_QUOTE_LABEL = "Only select if your purchase includes a reptile. You will be contacted for a shipping quote."


def normalize_postal_code(postal_code: str) -> str:
    return "".join((postal_code or "").split()).upper()


def parcel_weight(line_items: list) -> Decimal:
    return sum((KG_PER_ITEM * int(item.get("quantity") or 0) for item in line_items), Decimal("0"))


def build_rate_request(weight_kg: Decimal, postal_code: str) -> str:
    length, width, height = PARCEL_DIMENSIONS_CM
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<mailing-scenario xmlns="{RATE_NAMESPACE}">
  <quote-type>counter</quote-type>
  <parcel-characteristics>
    <weight>{weight_kg:.2f}</weight>
    <dimensions>
      <length>{length}</length>
      <width>{width}</width>
      <height>{height}</height>
    </dimensions>
    <unpackaged>false</unpackaged>
    <mailing-tube>false</mailing-tube>
    <oversized>false</oversized>
  </parcel-characteristics>
  <origin-postal-code>{normalize_postal_code(config.SHIPPING_ORIGIN_POSTAL_CODE)}</origin-postal-code>
  <destination>
    <domestic>
      <postal-code>{postal_code}</postal-code>
    </domestic>
  </destination>
</mailing-scenario>"""


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element, name: str) -> Optional[str]:
    for child in element.iter():
        if _local(child.tag) == name:
            return (child.text or "").strip()
    return None


def parse_regular_parcel(xml_text: str) -> Optional[Tuple[str, Decimal]]:
    """Service name and amount due of the Regular Parcel quote, if quoted."""
    root = ET.fromstring(xml_text)
    for quote in root.iter():
        if _local(quote.tag) != "price-quote":
            continue
        service_name = _child_text(quote, "service-name") or ""
        if REGULAR_PARCEL not in service_name:
            continue
        try:
            due = Decimal(_child_text(quote, "due") or "0")
        except InvalidOperation:
            due = Decimal("0")
        return service_name, due
    return None


def request_rates(weight_kg: Decimal, postal_code: str) -> Optional[str]:
    try:
        resp = requests.post(
            config.CANADA_POST_RATE_URL,
            data=build_rate_request(weight_kg, postal_code).encode("utf-8"),
            headers={"Content-Type": RATE_CONTENT_TYPE, "Accept": RATE_CONTENT_TYPE},
            auth=(config.CANADA_POST_USERNAME, config.CANADA_POST_PASSWORD),
            timeout=10,
        )
    except requests.exceptions.RequestException:
        logger.exception("Canada Post is unavailable")
        return None
    if resp.status_code != 200:
        logger.error("Canada Post error: %s %s", resp.status_code, resp.text)
        return None
    return resp.text


def _fixed_rate(amount: int, label: str) -> dict:
    return {
        "shipping_rate_data": {
            "type": "fixed_amount",
            "fixed_amount": {"amount": amount, "currency": config.STRIPE_CURRENCY},
            "display_name": label,
        },
    }


def shipping_options_for(line_items: list, shipping_details: dict) -> Optional[List[dict]]:
    """Stripe shipping options for an address, ``None`` when rating failed."""
    postal_code = normalize_postal_code((shipping_details.get("address") or {}).get("postal_code", ""))
    if not postal_code:
        raise ValueError("postal_code_required")

    xml_text = request_rates(parcel_weight(line_items), postal_code)
    if xml_text is None:
        return None
    try:
        quote = parse_regular_parcel(xml_text)
    except ET.ParseError:
        logger.exception("unreadable Canada Post response")
        return None
    if quote is None:
        return []

    service_name, due = quote
    return [
        _fixed_rate(payments.to_minor_units(due), service_name or f"Canada Post - {REGULAR_PARCEL}"),
        _fixed_rate(0, REPTILE_QUOTE_LABEL),
        _fixed_rate(0, config.SHIPPING_LOCAL_PICKUP_LABEL),
    ]


def calculate_shipping_options(session_id: str, shipping_details: dict) -> bool:
    """Rate the session's parcel and push the options onto the session."""
    session = payments.retrieve_session(session_id)
    line_items = payments.list_line_items(session["id"])
    options = shipping_options_for(line_items, shipping_details)
    logger.info("shipping options for %s: %s", session_id, options)
    if not options:
        return False
    payments.update_session_shipping(session_id, shipping_details, options)
    return True
