"""HTTP tests through the Flask test client."""

import pytest


@pytest.fixture
def farmer_auth(register):
    _, headers = register("Ramesh Patil", "farmer", address="Survey No. 12", city="Khed", state="Maharashtra")
    return headers


@pytest.fixture
def farmer2_auth(register):
    _, headers = register("Sunita Devi", "farmer", city="Nashik", state="Maharashtra")
    return headers


@pytest.fixture
def buyer_auth(register):
    _, headers = register("Anita Sharma", "buyer", address="Flat 4B, Baner Road", city="Pune")
    return headers


@pytest.fixture
def buyer2_auth(register):
    _, headers = register("Kiran Rao", "buyer", city="Pune")
    return headers


@pytest.fixture
def courier_auth(register):
    _, headers = register("Vikram Singh", "delivery")
    return headers


@pytest.fixture
def create_listing(client, farmer_auth, listing_payload):
    def _create(headers=None, **overrides):
        response = client.post("/api/listings", json=listing_payload(**overrides), headers=headers or farmer_auth)
        assert response.status_code == 201, response.get_json()
        return response.get_json()["listing"]

    return _create


def order_body(*items):
    return {
        "items": [{"listing_id": listing["id"], "quantity": qty} for listing, qty in items],
        "delivery_address": {"address": "Flat 4B, Baner Road", "city": "Pune", "zip": "411045"},
    }


def set_status(client, order_id, status, headers):
    return client.put(f"/api/orders/{order_id}/status", json={"status": status}, headers=headers)


class TestAuth:

    def test_ping(self, client):
        assert client.get("/ping").status_code == 200

    def test_register_login_me(self, client, register):
        user, headers = register("Ramesh Patil", "farmer", email="Ramesh@Example.com", city="Khed")
        assert user["email"] == "ramesh@example.com"
        assert user["role"] == "farmer"

        response = client.post("/api/auth/login", json={"email": "ramesh@example.com", "password": "secret123"})
        assert response.status_code == 200
        assert response.get_json()["role"] == "farmer"

        me = client.get("/api/auth/me", headers=headers).get_json()
        assert me["id"] == user["id"]
        assert me["location"]["city"] == "Khed"

    def test_duplicate_email(self, client, register):
        register("Anita Sharma", "buyer", email="anita@example.com")
        response = client.post("/api/auth/register", json={
            "name": "Other", "email": "ANITA@example.com", "password": "x", "role": "buyer",
        })
        assert response.status_code == 409

    @pytest.mark.parametrize("body", [
        {"name": "A", "email": "a@example.com", "password": "x", "role": "admin"},
        {"name": "A", "email": "a@example.com", "role": "buyer"},
        {},
    ])
    def test_register_rejects_bad_input(self, client, body):
        response = client.post("/api/auth/register", json=body)
        assert response.status_code == 400
        assert response.get_json()["error"] == "validation_error"

    def test_wrong_password(self, client, register):
        register("Anita Sharma", "buyer", email="anita@example.com")
        response = client.post("/api/auth/login", json={"email": "anita@example.com", "password": "nope"})
        assert response.status_code == 401

    def test_protected_routes_need_a_token(self, client):
        assert client.post("/api/orders", json={}).status_code == 401
        assert client.get("/api/farmer/earnings").status_code == 401


class TestListingsApi:

    def test_create_listing(self, client, farmer_auth, listing_payload):
        response = client.post("/api/listings", json=listing_payload(price=30), headers=farmer_auth)
        assert response.status_code == 201
        data = response.get_json()
        assert data["listing"]["crop_name"] == "Tomato"
        assert data["listing"]["location"]["district"] == "Khed"
        assert data["listing"]["expiry"]["expired"] is False
        assert data["market"]["avgPrice"] == 35
        assert data["market"]["signal"] == "fair"

    def test_only_farmers_create(self, client, buyer_auth, listing_payload):
        response = client.post("/api/listings", json=listing_payload(), headers=buyer_auth)
        assert response.status_code == 403
        assert response.get_json()["error"] == "not_authorized"

    def test_invalid_listing(self, client, farmer_auth, listing_payload):
        response = client.post("/api/listings", json=listing_payload(price=-1), headers=farmer_auth)
        assert response.status_code == 400
        assert "price" in response.get_json()["message"]
        response = client.post("/api/listings", json=listing_payload(price="10.005"), headers=farmer_auth)
        assert response.status_code == 400
        assert "decimal places" in response.get_json()["message"]

    def test_browse_and_filter(self, client, create_listing, farmer2_auth):
        create_listing(crop_name="Tomato", price=30, shelf_life_days=5)
        create_listing(crop_name="Wheat", price=28, shelf_life_days=180, headers=farmer2_auth)
        create_listing(crop_name="Onion", quantity=0)

        data = client.get("/api/listings").get_json()
        assert data["count"] == 2
        assert {l["crop_name"] for l in data["listings"]} == {"Tomato", "Wheat"}

        assert client.get("/api/listings?crop=toM").get_json()["count"] == 1
        assert client.get("/api/listings?maxPrice=29").get_json()["listings"][0]["crop_name"] == "Wheat"
        assert client.get("/api/listings?shelfLife=long").get_json()["count"] == 1
        assert client.get("/api/listings?shelfLife=medium").status_code == 400

    def test_grouped_by_farmer(self, client, create_listing, farmer2_auth):
        create_listing(crop_name="Tomato")
        create_listing(crop_name="Potato")
        create_listing(crop_name="Wheat", headers=farmer2_auth)

        data = client.get("/api/listings?grouped=1").get_json()
        assert data["count"] == 3
        sizes = sorted(len(group["listings"]) for group in data["farmers"])
        assert sizes == [1, 2]

    def test_edit_listing(self, client, create_listing, farmer_auth, farmer2_auth):
        listing = create_listing(price=30)
        url = f"/api/listings/{listing['id']}"

        assert client.put(url, json={"price": 40}, headers=farmer2_auth).status_code == 403
        assert client.put("/api/listings/999", json={"price": 40}, headers=farmer_auth).status_code == 404
        assert client.put(url, json={}, headers=farmer_auth).status_code == 400

        response = client.put(url, json={"price": 40}, headers=farmer_auth)
        assert response.status_code == 200
        updated = response.get_json()["listing"]
        assert updated["price"] == 40
        assert updated["expiry_date"] == listing["expiry_date"]

    def test_my_listings(self, client, create_listing, farmer_auth, buyer_auth):
        create_listing(quantity=0)
        data = client.get("/api/listings/mine", headers=farmer_auth).get_json()
        assert data["count"] == 1
        assert data["listings"][0]["status"] == "sold"
        assert client.get("/api/listings/mine", headers=buyer_auth).status_code == 403

    def test_market_stats(self, client):
        data = client.get("/api/listings/stats?crop=Tomato").get_json()
        assert (data["minPrice"], data["avgPrice"], data["maxPrice"]) == (25, 35, 45)
        assert client.get("/api/listings/stats?crop=onion&price=20").get_json()["signal"] == "competitive"
        assert client.get("/api/listings/stats").status_code == 400
        assert client.get("/api/listings/stats?crop=onion&price=abc").status_code == 400


class TestOrdersApi:

    def test_full_lifecycle(self, client, create_listing, farmer_auth, buyer_auth, courier_auth):
        listing = create_listing(price=30, quantity=10)

        response = client.post("/api/orders", json=order_body((listing, 4)), headers=buyer_auth)
        assert response.status_code == 201
        order = response.get_json()["order"]
        assert order["status"] == "pending"
        assert order["total_amount"] == 120
        assert order["delivery_info"]["zip"] == "411045"
        assert order["pickup_info"]["city"] == "Khed"
        assert order["estimated_time"].endswith(" mins")

        remaining = client.get("/api/listings").get_json()["listings"][0]["quantity"]
        assert remaining == 6

        response = set_status(client, order["id"], "accepted", courier_auth)
        assert response.status_code == 200
        assert response.get_json()["order"]["delivery_partner_id"] is not None

        response = set_status(client, order["id"], "out_for_delivery", farmer_auth)
        assert response.status_code == 409
        assert response.get_json()["error"] == "invalid_transition"

        assert set_status(client, order["id"], "out_for_delivery", courier_auth).status_code == 200
        assert set_status(client, order["id"], "delivered", courier_auth).status_code == 200

        earnings = client.get("/api/farmer/earnings", headers=farmer_auth).get_json()
        assert earnings == {"total_earnings": 120.0, "delivered_order_count": 1}

    def test_checkout_errors(self, client, create_listing, farmer2_auth, buyer_auth, farmer_auth):
        mine = create_listing(quantity=2)
        theirs = create_listing(headers=farmer2_auth)

        response = client.post("/api/orders", json=order_body(), headers=buyer_auth)
        assert response.status_code == 400
        assert response.get_json()["error"] == "empty_cart"

        response = client.post("/api/orders", json=order_body((mine, 1), (theirs, 1)), headers=buyer_auth)
        assert response.status_code == 409
        assert response.get_json()["error"] == "mixed_farmer_cart"

        response = client.post("/api/orders", json=order_body((mine, 3)), headers=buyer_auth)
        assert response.status_code == 409
        assert response.get_json()["error"] == "insufficient_stock"

        response = client.post("/api/orders", json=order_body((mine, 1)), headers=farmer_auth)
        assert response.status_code == 403

        body = order_body((mine, 1))
        del body["delivery_address"]
        assert client.post("/api/orders", json=body, headers=buyer_auth).status_code == 400

        body = order_body((mine, 1))
        body["items"][0]["quantity"] = 0
        assert client.post("/api/orders", json=body, headers=buyer_auth).status_code == 400

        response = client.post("/api/orders", json=order_body(({"id": 999}, 1)), headers=buyer_auth)
        assert response.status_code == 404

    def test_order_visibility(self, client, create_listing, buyer_auth, buyer2_auth, farmer_auth,
                              farmer2_auth, courier_auth):
        listing = create_listing()
        order = client.post("/api/orders", json=order_body((listing, 1)), headers=buyer_auth).get_json()["order"]

        assert client.get("/api/orders", headers=buyer_auth).get_json()["count"] == 1
        assert client.get("/api/orders", headers=buyer2_auth).get_json()["count"] == 0
        assert client.get("/api/orders", headers=farmer_auth).get_json()["count"] == 1
        assert client.get("/api/orders", headers=farmer2_auth).get_json()["count"] == 0
        assert client.get("/api/orders", headers=courier_auth).get_json()["count"] == 1

        assert client.get(f"/api/orders/{order['id']}", headers=buyer_auth).status_code == 200
        assert client.get(f"/api/orders/{order['id']}", headers=buyer2_auth).status_code == 404
        assert client.get("/api/orders/999", headers=buyer_auth).status_code == 404

    def test_delivery_history(self, client, create_listing, buyer_auth, courier_auth):
        listing = create_listing()
        order = client.post("/api/orders", json=order_body((listing, 1)), headers=buyer_auth).get_json()["order"]
        for status in ("accepted", "out_for_delivery", "delivered"):
            set_status(client, order["id"], status, courier_auth)

        assert client.get("/api/orders", headers=courier_auth).get_json()["count"] == 0
        assert client.get("/api/orders?history=1", headers=courier_auth).get_json()["count"] == 1

    def test_cancel(self, client, create_listing, buyer_auth, buyer2_auth):
        listing = create_listing(quantity=3)
        order = client.post("/api/orders", json=order_body((listing, 3)), headers=buyer_auth).get_json()["order"]
        assert client.get("/api/listings").get_json()["count"] == 0

        assert set_status(client, order["id"], "cancelled", buyer2_auth).status_code == 403
        assert set_status(client, order["id"], "shipped", buyer_auth).status_code == 400
        assert set_status(client, order["id"], "cancelled", buyer_auth).status_code == 200
        assert client.get("/api/listings").get_json()["listings"][0]["quantity"] == 3

    def test_event_feed(self, client, create_listing, buyer_auth, buyer2_auth, courier_auth):
        listing = create_listing()
        order = client.post("/api/orders", json=order_body((listing, 1)), headers=buyer_auth).get_json()["order"]
        set_status(client, order["id"], "accepted", courier_auth)

        data = client.get("/api/orders/events?after=0", headers=buyer_auth).get_json()
        assert [e["kind"] for e in data["events"]] == ["created", "status_changed"]
        assert data["events"][1]["new_status"] == "accepted"

        newer = client.get(f"/api/orders/events?after={data['last_sequence']}", headers=buyer_auth).get_json()
        assert newer["events"] == []
        assert newer["last_sequence"] == data["last_sequence"]

        assert client.get("/api/orders/events", headers=buyer2_auth).get_json()["events"] == []
        assert client.get("/api/orders/events?after=x", headers=buyer_auth).status_code == 400

    def test_earnings_are_farmer_only(self, client, buyer_auth):
        assert client.get("/api/farmer/earnings", headers=buyer_auth).status_code == 403
