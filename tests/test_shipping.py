from decimal import Decimal
from types import SimpleNamespace

import pytest
import requests
import stripe

from storefront import config, payments, shipping

RATES_XML = """<?xml version="1.0" encoding="UTF-8"?>
<price-quotes xmlns="http://www.canadapost.ca/ws/ship/rate-v4">
  <price-quote>
    <service-code>DOM.EP</service-code>
    <service-name>Expedited Parcel</service-name>
    <price-details><due>22.10</due></price-details>
  </price-quote>
  <price-quote>
    <service-code>DOM.RP</service-code>
    <service-name>Regular Parcel</service-name>
    <price-details><base>13.02</base><due>15.25</due></price-details>
  </price-quote>
</price-quotes>"""

NO_REGULAR_XML = """<?xml version="1.0" encoding="UTF-8"?>
<price-quotes xmlns="http://www.canadapost.ca/ws/ship/rate-v4">
  <price-quote>
    <service-name>Priority</service-name>
    <price-details><due>40.00</due></price-details>
  </price-quote>
</price-quotes>"""

ADDRESS = {"name": "Jane Keeper", "address": {"line1": "1 Main St", "postal_code": " l4j 1a1 ", "country": "CA"}}


def test_normalize_postal_code():
    assert shipping.normalize_postal_code(" l4j 1a1 ") == "L4J1A1"
    assert shipping.normalize_postal_code(None) == ""


def test_parcel_weight_is_half_a_kilo_per_item():
    assert shipping.parcel_weight([{"quantity": 2}, {"quantity": 3}]) == Decimal("2.5")


def test_rate_request_carries_weight_and_postal_codes():
    xml = shipping.build_rate_request(Decimal("1.5"), "L4J1A1")

    assert "<weight>1.50</weight>" in xml
    assert "<postal-code>L4J1A1</postal-code>" in xml
    assert f"<origin-postal-code>{config.SHIPPING_ORIGIN_POSTAL_CODE}</origin-postal-code>" in xml


def test_parse_regular_parcel():
    assert shipping.parse_regular_parcel(RATES_XML) == ("Regular Parcel", Decimal("15.25"))
    assert shipping.parse_regular_parcel(NO_REGULAR_XML) is None


def test_shipping_options(monkeypatch):
    seen = {}

    def fake_rates(weight, postal_code):
        seen.update(weight=weight, postal_code=postal_code)
        return RATES_XML

    monkeypatch.setattr(shipping, "request_rates", fake_rates)
    options = shipping.shipping_options_for([{"quantity": 3}], ADDRESS)

    assert seen == {"weight": Decimal("1.5"), "postal_code": "L4J1A1"}
    amounts = [o["shipping_rate_data"]["fixed_amount"]["amount"] for o in options]
    labels = [o["shipping_rate_data"]["display_name"] for o in options]
    assert amounts == [1525, 0, 0]
    assert labels[0] == "Regular Parcel"
    assert labels[1] == shipping.REPTILE_QUOTE_LABEL
    assert labels[2] == config.SHIPPING_LOCAL_PICKUP_LABEL


def test_shipping_options_without_postal_code():
    with pytest.raises(ValueError, match="postal_code_required"):
        shipping.shipping_options_for([{"quantity": 1}], {"address": {"postal_code": "  "}})


def test_request_rates_returns_none_on_error_status(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: SimpleNamespace(status_code=500, text="<messages/>"))

    assert shipping.request_rates(Decimal("0.5"), "L4J1A1") is None


def test_request_rates_returns_none_when_unreachable(monkeypatch):
    def unreachable(*args, **kwargs):
        raise requests.exceptions.ConnectionError("no route to host")

    monkeypatch.setattr(requests, "post", unreachable)

    assert shipping.request_rates(Decimal("0.5"), "L4J1A1") is None


def test_calculate_shipping_route_updates_session(client, monkeypatch, fake_stripe):
    fake_stripe.line_items["cs_1"] = [{"id": "li_1", "quantity": 2}]
    monkeypatch.setattr(shipping, "request_rates", lambda weight, postal_code: RATES_XML)

    r = client.post(
        "/api/calculate-shipping-options",
        json={"checkout_session_id": "cs_1", "shipping_details": ADDRESS},
    )

    assert r.json() == {"type": "object", "value": {"succeeded": True}}
    (update,) = fake_stripe.session_updates
    assert update["session_id"] == "cs_1"
    assert update["shipping_details"] == ADDRESS
    assert len(update["shipping_options"]) == 3


def test_calculate_shipping_route_reports_missing_rates(client, monkeypatch, fake_stripe):
    monkeypatch.setattr(shipping, "request_rates", lambda weight, postal_code: None)

    r = client.post(
        "/api/calculate-shipping-options",
        json={"checkout_session_id": "cs_1", "shipping_details": ADDRESS},
    )

    assert r.json() == {"type": "error", "message": "We can't find shipping options. Please try again."}
    assert fake_stripe.session_updates == []


def test_calculate_shipping_route_unknown_session(client, monkeypatch, fake_stripe):
    def retrieve_session(session_id):
        raise stripe.InvalidRequestError(f"No such checkout.session: '{session_id}'", "session")

    monkeypatch.setattr(payments, "retrieve_session", retrieve_session)
    monkeypatch.setattr(shipping, "request_rates", lambda weight, postal_code: RATES_XML)

    r = client.post(
        "/api/calculate-shipping-options",
        json={"checkout_session_id": "cs_missing", "shipping_details": ADDRESS},
    )

    assert r.json()["type"] == "error"
    assert fake_stripe.session_updates == []
