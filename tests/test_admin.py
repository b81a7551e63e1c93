"""
Admin dashboard aggregates and user management.
"""

from datetime import datetime

from reporting import monthly_sales, months_ago


class TestMonthsAgo:

    def test_clamps_to_month_end(self):
        assert months_ago(datetime(2024, 8, 31, 12, 0), 6) == datetime(2024, 2, 29, 12, 0)

    def test_crosses_year(self):
        assert months_ago(datetime(2024, 3, 15), 6) == datetime(2023, 9, 15)


class TestMonthlySales:

    def test_buckets_recent_paid_orders(self, db):
        now = datetime(2024, 6, 20)
        db["order"].insert_many([
            {"is_paid": True, "total_price": 100, "created_at": datetime(2024, 6, 1)},
            {"is_paid": True, "total_price": 50, "created_at": datetime(2024, 6, 10)},
            {"is_paid": True, "total_price": 70, "created_at": datetime(2024, 2, 3)},
            {"is_paid": False, "total_price": 999, "created_at": datetime(2024, 6, 2)},
            {"is_paid": True, "total_price": 500, "created_at": datetime(2023, 11, 5)},
        ])
        assert monthly_sales(db, now) == [
            {"year": 2024, "month": 2, "totalSales": 70, "orderCount": 1},
            {"year": 2024, "month": 6, "totalSales": 150, "orderCount": 2},
        ]


class TestDashboard:

    def test_stats(self, client, user_headers, admin_headers, make_product, add_to_cart, checkout):
        product = make_product(price=100, stock=10)
        add_to_cart(product, 2)
        checkout(payment_method="cod")
        add_to_cart(product, 1)
        checkout()

        response = client.get("/api/admin/stats", headers=admin_headers)
        assert response.status_code == 200
        stats = response.json()["data"]

        assert stats["overview"] == {
            "totalUsers": 2,
            "totalProducts": 1,
            "outOfStockProducts": 0,
            "totalOrders": 2,
            "paidOrders": 1,
            "totalRevenue": 270,
        }
        assert stats["orders"]["total"] == 2
        assert stats["orders"]["pending"] == 1
        assert stats["orders"]["processing"] == 1
        assert stats["orders"]["delivered"] == 0

        assert stats["topProducts"] == [{
            "productId": str(product["_id"]),
            "productName": product["name"],
            "productImage": product["images"][0],
            "totalSold": 2,
            "revenue": 200,
        }]
        assert len(stats["monthlySales"]) == 1
        assert stats["monthlySales"][0]["totalSales"] == 270
        assert len(stats["recentOrders"]) == 2
        assert stats["recentOrders"][0]["user"]["email"] == "asha@example.com"

    def test_top_products_skip_deleted(self, client, db, admin_headers, make_product, add_to_cart, checkout):
        product = make_product()
        add_to_cart(product)
        checkout(payment_method="cod")
        db["product"].delete_one({"_id": product["_id"]})
        stats = client.get("/api/admin/stats", headers=admin_headers).json()["data"]
        assert stats["topProducts"] == []

    def test_requires_admin(self, client, user_headers):
        assert client.get("/api/admin/stats", headers=user_headers).status_code == 403
        assert client.get("/api/admin/stats").status_code == 401


class TestUserManagement:

    def test_list_and_search(self, client, user, other_user, admin_headers):
        body = client.get("/api/admin/users", headers=admin_headers).json()
        assert body["total"] == 3
        assert all("password_hash" not in u for u in body["data"]["users"])

        body = client.get("/api/admin/users", params={"search": "ravi"}, headers=admin_headers).json()
        assert [u["email"] for u in body["data"]["users"]] == ["ravi@example.com"]

    def test_detail_includes_spend(self, client, user, admin_headers, make_product, add_to_cart, checkout):
        add_to_cart(make_product(price=1000))
        checkout(payment_method="cod")
        body = client.get(f"/api/admin/users/{user['_id']}", headers=admin_headers).json()
        assert body["data"]["user"]["ordersCount"] == 1
        assert body["data"]["user"]["totalSpent"] == 1100

    def test_update_role(self, client, user, admin_headers):
        response = client.put(f"/api/admin/users/{user['_id']}", json={"role": "admin"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["user"]["role"] == "admin"

    def test_update_to_taken_email(self, client, user, other_user, admin_headers):
        response = client.put(f"/api/admin/users/{user['_id']}", json={"email": "ravi@example.com"}, headers=admin_headers)
        assert response.status_code == 400

    def test_delete_removes_cart_and_wishlist(self, client, db, user, admin_headers, make_product, add_to_cart):
        uid = str(user["_id"])
        add_to_cart(make_product())
        response = client.delete(f"/api/admin/users/{uid}", headers=admin_headers)
        assert response.status_code == 200
        assert db["user"].find_one({"_id": user["_id"]}) is None
        assert db["cart"].find_one({"user_id": uid}) is None

    def test_cannot_delete_self(self, client, admin, admin_headers):
        response = client.delete(f"/api/admin/users/{admin['_id']}", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Cannot delete your own account"

    def test_missing_user(self, client, admin_headers):
        response = client.get("/api/admin/users/64b7f0c2a1b2c3d4e5f60718", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "User not found"
