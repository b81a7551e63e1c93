from seed import SAMPLE_PRODUCTS, seed_admin_if_missing, seed_products_if_empty


def test_seeds_only_empty_catalog(db):
    assert seed_products_if_empty(db) == len(SAMPLE_PRODUCTS)
    assert seed_products_if_empty(db) == 0
    assert db["product"].count_documents({}) == len(SAMPLE_PRODUCTS)


def test_reset_replaces_catalog(db, make_product):
    make_product(name="Leftover")
    assert seed_products_if_empty(db, reset=True) == len(SAMPLE_PRODUCTS)
    assert db["product"].find_one({"name": "Leftover"}) is None


def test_seeded_products_have_derived_fields(db):
    seed_products_if_empty(db)
    foundation = db["product"].find_one({"brand": "Lakme"})
    assert foundation["discount"] == 20
    assert foundation["in_stock"] is True


def test_admin_created_once(db):
    assert seed_admin_if_missing(db, "owner@example.com", "owner123") is True
    assert seed_admin_if_missing(db, "other@example.com", "other123") is False
    assert db["user"].count_documents({"role": "admin"}) == 1
