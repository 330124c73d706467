import json
from decimal import Decimal

import stripe

from storefront import auth, config, payments, uploads

OPTIONS = [
    {"label": "A3", "groupName": "Size", "price": "60"},
    {"label": "A4", "groupName": "Size"},
    {"label": "Frame", "groupName": "Frame", "isColourOption": True, "colourIds": [1, 2]},
]


def listing_form(**overrides):
    form = {
        "name": "Crested Gecko Print",
        "price": "45",
        "description": "Giclee print",
        "is_sale": "false",
        "old_price": "Not Used",
        "stock": "4",
        "images": json.dumps(["https://img/print.png"]),
        "custom_options": json.dumps(OPTIONS),
    }
    form.update(overrides)
    return form


def test_login(client, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_PASSWORD_HASH", auth.get_password_hash("correct horse"))

    r = client.post("/admin/login", data={"username": config.ADMIN_USERNAME, "password": "correct horse"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"

    token = r.json()["access_token"]
    assert client.get(
        "/admin/listings/prints/1/option-groups", headers={"Authorization": f"Bearer {token}"}
    ).status_code == 404

    r = client.post("/admin/login", data={"username": config.ADMIN_USERNAME, "password": "wrong"})
    assert r.status_code == 401


def test_listing_routes_require_admin(client, fake_stripe):
    assert client.post("/admin/listings/prints", data=listing_form()).status_code in (401, 403)
    assert fake_stripe.products == {}


def test_create_shop_listing_syncs_stripe(client, admin_headers, fake_stripe):
    r = client.post("/admin/listings/prints", data=listing_form(), headers=admin_headers)

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["old_price"] is None
    assert body["stock"] == 4
    assert Decimal(body["price"]) == Decimal("45")

    product = fake_stripe.products[body["stripe_product_id"]]
    assert product["name"] == "Crested Gecko Print"
    assert product["images"] == ["https://img/print.png"]
    assert product["default_price"] == body["price_id"]
    assert fake_stripe.prices[body["price_id"]]["unit_amount"] == 4500

    a3, a4, frame = body["options"]
    assert fake_stripe.prices[a3["price_id"]]["unit_amount"] == 6000
    assert a4["price_id"] is None
    assert frame["price_id"] is None
    assert frame["colour_ids"] == [1, 2]


def test_create_breeder_listing_stays_off_stripe(client, admin_headers, fake_stripe):
    r = client.post(
        "/admin/listings/malecrestedgeckos",
        data=listing_form(price="", custom_options="[]"),
        headers=admin_headers,
    )

    assert r.status_code == 201, r.text
    assert r.json()["stripe_product_id"] is None
    assert fake_stripe.products == {}


def test_create_rejects_bad_form_values(client, admin_headers, fake_stripe):
    assert client.post("/admin/listings/prints", data=listing_form(images="not json"), headers=admin_headers).status_code == 400
    assert client.post("/admin/listings/prints", data=listing_form(price="abc"), headers=admin_headers).status_code == 400
    assert client.post(
        "/admin/listings/prints",
        data=listing_form(custom_options=json.dumps([{"label": "A3", "price": -1}])),
        headers=admin_headers,
    ).status_code == 400
    assert client.post("/admin/listings/prints", data=listing_form(name="  "), headers=admin_headers).status_code == 400
    assert client.post("/admin/listings/dragons", data=listing_form(), headers=admin_headers).status_code == 404


def test_update_reprices_and_retires_old_prices(client, admin_headers, fake_stripe):
    created = client.post("/admin/listings/prints", data=listing_form(), headers=admin_headers).json()
    old_ids = {created["price_id"], created["options"][0]["price_id"]}

    r = client.put(
        f"/admin/listings/prints/{created['id']}",
        data=listing_form(name="Crested Gecko Print (signed)", price="55", is_sale="true", old_price="65"),
        headers=admin_headers,
    )

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["stripe_product_id"] == created["stripe_product_id"]
    assert body["price_id"] not in old_ids
    assert Decimal(body["old_price"]) == Decimal("65")
    assert body["is_sale"] is True
    assert set(fake_stripe.deactivated) == old_ids
    product = fake_stripe.products[created["stripe_product_id"]]
    assert product["name"] == "Crested Gecko Print (signed)"
    assert product["default_price"] == body["price_id"]


def test_update_without_options_keeps_them(client, admin_headers, fake_stripe):
    created = client.post("/admin/listings/prints", data=listing_form(), headers=admin_headers).json()
    form = listing_form()
    del form["custom_options"]

    body = client.put(f"/admin/listings/prints/{created['id']}", data=form, headers=admin_headers).json()

    assert [o["label"] for o in body["options"]] == ["A3", "A4", "Frame"]


def test_delete_listing(client, admin_headers, fake_stripe):
    created = client.post("/admin/listings/prints", data=listing_form(), headers=admin_headers).json()

    r = client.delete(f"/admin/listings/prints/{created['id']}", headers=admin_headers)

    assert r.status_code == 200
    assert client.get(f"/api/forsale/prints/{created['id']}").status_code == 404
    assert client.delete(f"/admin/listings/prints/{created['id']}", headers=admin_headers).status_code == 404


def test_option_groups_editor(client, admin_headers, fake_stripe):
    created = client.post("/admin/listings/prints", data=listing_form(), headers=admin_headers).json()
    url = f"/admin/listings/prints/{created['id']}/option-groups"

    groups = client.get(url, headers=admin_headers).json()
    assert [(g["name"], g["is_colour_option"]) for g in groups] == [("Size", False), ("Frame", True)]
    assert [o["label"] for o in groups[0]["options"]] == ["A3", "A4"]

    r = client.put(
        url,
        json=[
            {"name": "Size", "options": [{"label": "A2", "price": "80"}, {"label": " "}]},
            {"name": "Frame", "is_colour_option": True, "colour_ids": [3]},
            {"name": "", "is_colour_option": True, "colour_ids": [1]},
        ],
        headers=admin_headers,
    )

    assert r.status_code == 200, r.text
    assert [(g["name"], [o["label"] for o in g["options"]], g["colour_ids"]) for g in r.json()] == [
        ("Size", ["A2"], []),
        ("Frame", [], [3]),
    ]
    assert fake_stripe.deactivated == [created["options"][0]["price_id"]]

    listing = client.get(f"/api/forsale/prints/{created['id']}").json()
    a2 = listing["options"][0]
    assert fake_stripe.prices[a2["price_id"]]["unit_amount"] == 8000


def test_presign_upload(client, admin_headers, monkeypatch):
    calls = []

    class FakeS3:
        def generate_presigned_url(self, method, Params, ExpiresIn):
            calls.append((method, Params, ExpiresIn))
            return "https://bucket.s3.amazonaws.com/gecko.png?signature=abc"

    monkeypatch.setattr(config, "UPLOAD_BUCKET", "gecko-images")
    monkeypatch.setattr(uploads, "_s3_client", lambda: FakeS3())

    r = client.post("/admin/uploads/presign", json={"imagename": "gecko.png"}, headers=admin_headers)

    assert r.status_code == 200
    assert r.json() == {"url": "https://bucket.s3.amazonaws.com/gecko.png?signature=abc"}
    assert calls == [("put_object", {"Bucket": "gecko-images", "Key": "gecko.png", "ContentType": "image/png"}, 60)]


def test_presign_requires_bucket(client, admin_headers, monkeypatch):
    monkeypatch.setattr(config, "UPLOAD_BUCKET", "")

    assert client.post("/admin/uploads/presign", json={"imagename": "gecko.png"}, headers=admin_headers).status_code == 500


def test_partial_update_keeps_unsent_fields(client, admin_headers, fake_stripe):
    created = client.post("/admin/listings/prints", data=listing_form(), headers=admin_headers).json()

    r = client.put(f"/admin/listings/prints/{created['id']}", data={"price": "50"}, headers=admin_headers)

    assert r.status_code == 200, r.text
    body = r.json()
    assert Decimal(body["price"]) == Decimal("50")
    assert body["name"] == "Crested Gecko Print"
    assert body["stock"] == 4
    assert body["images"] == ["https://img/print.png"]
    assert body["description"] == "Giclee print"
    assert [o["label"] for o in body["options"]] == ["A3", "A4", "Frame"]


def test_option_left_unpriced_by_stripe_failure_cannot_be_bought(client, admin_headers, monkeypatch, fake_stripe):
    created = client.post(
        "/admin/listings/prints", data=listing_form(custom_options="[]"), headers=admin_headers
    ).json()

    def create_price(product_id, amount):
        if Decimal(amount) == 60:
            raise stripe.StripeError("rate limited")
        return fake_stripe.create_price(product_id, amount)

    monkeypatch.setattr(payments, "create_price", create_price)
    r = client.put(f"/admin/listings/prints/{created['id']}", data=listing_form(), headers=admin_headers)
    assert r.status_code == 502

    r = client.post("/api/cart/add", json={"listing_id": created["id"], "options": {"Size": "A3"}})
    assert r.status_code == 400

    r = client.post("/api/cart/add", json={"listing_id": created["id"], "options": {"Size": "A4"}})
    assert r.status_code == 200
    (entry,) = r.json()["items"].values()
    assert entry["price_id"] == created["price_id"]
