"""
Populate an empty database with a starter catalog and an admin account.

Usage: python seed.py [--reset]
"""
import argparse
import logging
import os

from pymongo.database import Database as MongoDatabase

from auth import register_user
from catalog import create_product
from config import get_settings
from database import Database, ensure_indexes
from schemas import Role

logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {
        "name": "Lakme 9 to 5 Weightless Mousse Foundation",
        "description": "Lightweight mousse foundation with a matte finish and SPF 20 for all-day wear.",
        "price": 399,
        "original_price": 499,
        "category": "Makeup",
        "brand": "Lakme",
        "images": ["https://images.unsplash.com/photo-1522335789203-aabd1fc54bc9?w=500"],
        "stock": 50,
        "featured": True,
        "best_seller": True,
        "tags": ["foundation", "matte"],
    },
    {
        "name": "Sugar Matte As Hell Crayon Lipstick",
        "description": "Highly pigmented crayon lipstick that stays matte for up to eight hours.",
        "price": 449,
        "original_price": 549,
        "category": "Makeup",
        "brand": "Sugar Cosmetics",
        "images": ["https://images.unsplash.com/photo-1586495777744-4413f21062fa?w=500"],
        "stock": 100,
        "best_seller": True,
        "tags": ["lipstick", "matte"],
    },
    {
        "name": "The Ordinary Niacinamide 10% + Zinc 1%",
        "description": "Serum that targets blemishes and visibly congested pores.",
        "price": 1299,
        "original_price": 1599,
        "category": "Skincare",
        "brand": "The Ordinary",
        "images": ["https://images.unsplash.com/photo-1620916566398-39f1143ab7be?w=500"],
        "stock": 30,
        "featured": True,
        "best_seller": True,
        "tags": ["serum", "niacinamide"],
    },
    {
        "name": "Cetaphil Gentle Skin Cleanser",
        "description": "Soap-free daily cleanser for sensitive and dry skin.",
        "price": 349,
        "original_price": 399,
        "category": "Skincare",
        "brand": "Cetaphil",
        "images": ["https://images.unsplash.com/photo-1556228578-8c89e6adf883?w=500"],
        "stock": 80,
        "tags": ["cleanser", "sensitive-skin"],
    },
    {
        "name": "Pantene Hair Fall Control Shampoo",
        "description": "Pro-V formula shampoo that strengthens hair from root to tip.",
        "price": 199,
        "original_price": 249,
        "category": "Haircare",
        "brand": "Pantene",
        "images": ["https://images.unsplash.com/photo-1535585209827-a15fcdbc4c2d?w=500"],
        "stock": 100,
        "featured": True,
        "tags": ["shampoo", "hair-fall"],
    },
    {
        "name": "The Body Shop White Musk Eau de Toilette",
        "description": "Soft floral musk fragrance with notes of lily and vanilla.",
        "price": 1295,
        "original_price": 1595,
        "category": "Fragrance",
        "brand": "The Body Shop",
        "images": ["https://images.unsplash.com/photo-1541643600914-78b084683601?w=500"],
        "stock": 35,
        "featured": True,
        "tags": ["perfume", "musk"],
    },
    {
        "name": "Swiss Beauty Professional Makeup Brush Set",
        "description": "Twelve-piece synthetic brush set for face and eyes.",
        "price": 599,
        "original_price": 899,
        "category": "Tools & Brushes",
        "brand": "Swiss Beauty",
        "images": ["https://images.unsplash.com/photo-1512496015851-a90fb38ba796?w=500"],
        "stock": 40,
        "tags": ["brushes"],
    },
    {
        "name": "The Man Company Beard Oil - Cedarwood & Mint",
        "description": "Nourishing beard oil that softens the beard and reduces itchiness.",
        "price": 499,
        "original_price": 599,
        "category": "Men",
        "brand": "The Man Company",
        "images": ["https://images.unsplash.com/photo-1522338242992-e1a54906a8da?w=500"],
        "stock": 55,
        "featured": True,
        "tags": ["beard-oil", "grooming"],
    },
]


def seed_products_if_empty(db: MongoDatabase, reset: bool = False) -> int:
    if reset:
        deleted = db["product"].delete_many({}).deleted_count
        logger.info("Deleted %s existing products", deleted)
    if db["product"].count_documents({}) > 0:
        logger.info("Products already present, skipping catalog seed")
        return 0
    for product in SAMPLE_PRODUCTS:
        create_product(db, product)
    logger.info("Seeded %s products", len(SAMPLE_PRODUCTS))
    return len(SAMPLE_PRODUCTS)


def seed_admin_if_missing(db: MongoDatabase, email: str, password: str, name: str = "Store Admin") -> bool:
    if db["user"].find_one({"role": Role.ADMIN.value}):
        return False
    register_user(db, name, email, password, role=Role.ADMIN)
    logger.info("Created admin account %s", email)
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the storefront database")
    parser.add_argument("--reset", action="store_true", help="delete existing products first")
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    database = Database(settings.database_url, settings.database_name)
    db = database.connect()
    try:
        ensure_indexes(db)
        seed_products_if_empty(db, reset=args.reset)
        seed_admin_if_missing(
            db,
            os.getenv("ADMIN_EMAIL", "admin@example.com"),
            os.getenv("ADMIN_PASSWORD", "admin123"),
        )
    finally:
        database.close()


if __name__ == "__main__":
    main()
