class TestWishlist:

    def test_starts_empty(self, client, user_headers):
        body = client.get("/api/wishlist", headers=user_headers).json()
        assert body["count"] == 0
        assert body["data"]["wishlist"]["products"] == []

    def test_add_is_idempotent(self, client, db, user, user_headers, make_product):
        product = make_product()
        for _ in range(2):
            response = client.post("/api/wishlist", json={"productId": str(product["_id"])}, headers=user_headers)
            assert response.status_code == 200
        stored = db["wishlist"].find_one({"user_id": str(user["_id"])})
        assert stored["product_ids"] == [str(product["_id"])]

    def test_add_unknown_product(self, client, user_headers):
        response = client.post("/api/wishlist", json={"productId": "64b7f0c2a1b2c3d4e5f60718"}, headers=user_headers)
        assert response.status_code == 404

    def test_check_and_remove(self, client, user_headers, make_product):
        product = make_product()
        pid = str(product["_id"])
        client.post("/api/wishlist", json={"productId": pid}, headers=user_headers)
        assert client.get(f"/api/wishlist/check/{pid}", headers=user_headers).json()["data"]["isInWishlist"] is True

        response = client.delete(f"/api/wishlist/{pid}", headers=user_headers)
        assert response.json()["data"]["wishlist"]["products"] == []
        assert client.get(f"/api/wishlist/check/{pid}", headers=user_headers).json()["data"]["isInWishlist"] is False

    def test_deleted_products_are_skipped(self, client, db, user_headers, make_product):
        kept, gone = make_product(), make_product()
        for product in (kept, gone):
            client.post("/api/wishlist", json={"productId": str(product["_id"])}, headers=user_headers)
        db["product"].delete_one({"_id": gone["_id"]})

        body = client.get("/api/wishlist", headers=user_headers).json()
        assert body["count"] == 1
        assert body["data"]["wishlist"]["products"][0]["id"] == str(kept["_id"])

    def test_clear(self, client, user_headers, make_product):
        client.post("/api/wishlist", json={"productId": str(make_product()["_id"])}, headers=user_headers)
        response = client.delete("/api/wishlist", headers=user_headers)
        assert response.json()["data"]["wishlist"]["product_ids"] == []

    def test_wishlists_are_per_user(self, client, user_headers, other_headers, make_product):
        client.post("/api/wishlist", json={"productId": str(make_product()["_id"])}, headers=user_headers)
        assert client.get("/api/wishlist", headers=other_headers).json()["count"] == 0
