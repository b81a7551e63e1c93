"""
Cart operations: snapshots, stock checks and totals.
"""

import pytest

from carts import add_item, calculate_totals, get_or_create, update_quantity
from errors import InsufficientStock, NotFound, OutOfStock, ValidationError


class TestCalculateTotals:

    def test_empty(self):
        assert calculate_totals([]) == (0, 0)

    def test_sums_price_times_quantity(self):
        items = [{"price": 19.99, "quantity": 2}, {"price": 5.5, "quantity": 1}]
        assert calculate_totals(items) == (45.48, 3)


class TestCartService:

    def test_get_or_create_is_idempotent(self, db, user):
        uid = str(user["_id"])
        first = get_or_create(db, uid)
        second = get_or_create(db, uid)
        assert first["_id"] == second["_id"]
        assert db["cart"].count_documents({"user_id": uid}) == 1

    def test_add_merges_existing_line(self, db, user, make_product):
        product = make_product(price=200, stock=5)
        cart = get_or_create(db, str(user["_id"]))
        add_item(db, cart, str(product["_id"]), 2)
        cart = add_item(db, cart, str(product["_id"]), 1)
        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 3
        assert cart["total_price"] == 600
        assert cart["total_items"] == 3

    def test_add_beyond_stock_on_existing_line(self, db, user, make_product):
        product = make_product(stock=3)
        cart = get_or_create(db, str(user["_id"]))
        add_item(db, cart, str(product["_id"]), 2)
        with pytest.raises(InsufficientStock) as exc:
            add_item(db, cart, str(product["_id"]), 2)
        assert exc.value.message == "Only 3 items available in stock"

    def test_add_beyond_stock_on_new_line(self, db, user, make_product):
        product = make_product(stock=1)
        cart = get_or_create(db, str(user["_id"]))
        with pytest.raises(InsufficientStock):
            add_item(db, cart, str(product["_id"]), 2)

    def test_add_out_of_stock(self, db, user, make_product):
        product = make_product(stock=0)
        cart = get_or_create(db, str(user["_id"]))
        with pytest.raises(OutOfStock):
            add_item(db, cart, str(product["_id"]))

    def test_add_unknown_product(self, db, user):
        cart = get_or_create(db, str(user["_id"]))
        with pytest.raises(NotFound):
            add_item(db, cart, "64b7f0c2a1b2c3d4e5f60718")

    def test_add_rejects_zero_quantity(self, db, user, make_product):
        product = make_product()
        cart = get_or_create(db, str(user["_id"]))
        with pytest.raises(ValidationError):
            add_item(db, cart, str(product["_id"]), 0)

    def test_update_missing_line(self, db, user, make_product):
        product = make_product()
        cart = get_or_create(db, str(user["_id"]))
        with pytest.raises(NotFound) as exc:
            update_quantity(db, cart, str(product["_id"]), 2)
        assert exc.value.message == "Item not found in cart"


class TestCartRoutes:

    def test_requires_login(self, client):
        response = client.get("/api/cart")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_get_creates_empty_cart(self, client, user_headers):
        response = client.get("/api/cart", headers=user_headers)
        assert response.status_code == 200
        cart = response.json()["data"]["cart"]
        assert cart["items"] == []
        assert cart["total_price"] == 0
        assert cart["total_items"] == 0

    def test_add_snapshots_product(self, client, user_headers, make_product, add_to_cart):
        product = make_product(price=250, stock=4)
        response = add_to_cart(product, 2)
        assert response.status_code == 200
        cart = response.json()["data"]["cart"]
        item = cart["items"][0]
        assert item["name"] == product["name"]
        assert item["price"] == 250
        assert item["image"] == product["images"][0]
        assert item["product"]["stock"] == 4
        assert cart["total_price"] == 500

    def test_snapshot_price_survives_product_change(self, client, db, user_headers, make_product, add_to_cart):
        product = make_product(price=250)
        add_to_cart(product)
        db["product"].update_one({"_id": product["_id"]}, {"$set": {"price": 999}})
        cart = client.get("/api/cart", headers=user_headers).json()["data"]["cart"]
        assert cart["items"][0]["price"] == 250
        assert cart["items"][0]["product"]["price"] == 999

    def test_rejected_add_leaves_cart_unchanged(self, client, db, user, user_headers, make_product, add_to_cart):
        product = make_product(price=100, stock=5)
        response = add_to_cart(product, 6)
        assert response.status_code == 400
        assert response.json()["error"] == "Only 5 items available in stock"
        stored = db["cart"].find_one({"user_id": str(user["_id"])})
        assert stored["items"] == []
        assert stored["total_price"] == 0
        assert stored["total_items"] == 0

        add_to_cart(product, 3)
        assert add_to_cart(product, 3).status_code == 400
        stored = db["cart"].find_one({"user_id": str(user["_id"])})
        assert [i["quantity"] for i in stored["items"]] == [3]
        assert stored["total_price"] == 300
        assert stored["total_items"] == 3

    def test_update_zero_removes_line(self, client, user_headers, make_product, add_to_cart):
        product = make_product()
        add_to_cart(product, 2)
        response = client.put(f"/api/cart/items/{product['_id']}", json={"quantity": 0}, headers=user_headers)
        assert response.status_code == 200
        assert response.json()["data"]["cart"]["items"] == []

    def test_update_checks_live_stock(self, client, db, user_headers, make_product, add_to_cart):
        product = make_product(stock=5)
        add_to_cart(product, 1)
        db["product"].update_one({"_id": product["_id"]}, {"$set": {"stock": 2}})
        response = client.put(f"/api/cart/items/{product['_id']}", json={"quantity": 3}, headers=user_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Only 2 items available in stock"

    def test_remove_and_clear(self, client, user_headers, make_product, add_to_cart):
        first, second = make_product(), make_product()
        add_to_cart(first)
        add_to_cart(second)
        response = client.delete(f"/api/cart/items/{first['_id']}", headers=user_headers)
        items = response.json()["data"]["cart"]["items"]
        assert [i["product_id"] for i in items] == [str(second["_id"])]

        response = client.delete("/api/cart", headers=user_headers)
        cart = response.json()["data"]["cart"]
        assert cart["items"] == []
        assert cart["total_items"] == 0

    def test_add_validates_body(self, client, user_headers):
        response = client.post("/api/cart/items", json={"quantity": 1}, headers=user_headers)
        assert response.status_code == 400
        assert response.json()["success"] is False
