import logging
import math
import re
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from auth import CurrentUser, get_current_user, require_admin
from database import create_document, get_db, serialize_doc, to_object_id, utcnow
from errors import Conflict, NotFound, ValidationError, schema_error_message
from schemas import Category, Product, Review

logger = logging.getLogger(__name__)

SORT_OPTIONS = {
    "priceLow": [("price", ASCENDING)],
    "priceHigh": [("price", DESCENDING)],
    "rating": [("rating", DESCENDING), ("num_reviews", DESCENDING)],
    "newest": [("created_at", DESCENDING)],
    "oldest": [("created_at", ASCENDING)],
    "name": [("name", ASCENDING)],
}

LIST_PROJECTION = {"reviews": 0}


def discount_percentage(price: float, original_price: Optional[float]) -> int:
    if original_price and original_price > price:
        return int(math.floor((original_price - price) / original_price * 100 + 0.5))
    return 0


def build_product_filter(
    search: Optional[str] = None,
    category: Optional[str] = None,
    brands: Optional[List[str]] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    in_stock: Optional[bool] = None,
    featured: Optional[bool] = None,
    best_seller: Optional[bool] = None,
    min_rating: Optional[float] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"brand": {"$regex": pattern, "$options": "i"}},
        ]
    if category:
        query["category"] = category
    if brands:
        query["brand"] = {"$in": brands}
    if min_price is not None or max_price is not None:
        price: Dict[str, float] = {}
        if min_price is not None:
            price["$gte"] = min_price
        if max_price is not None:
            price["$lte"] = max_price
        query["price"] = price
    if in_stock is not None:
        query["in_stock"] = in_stock
    if featured is not None:
        query["featured"] = featured
    if best_seller is not None:
        query["best_seller"] = best_seller
    if min_rating:
        query["rating"] = {"$gte": min_rating}
    return query


def build_pagination(page: int = 1, limit: int = 10):
    page = max(1, page)
    limit = min(100, max(1, limit))
    return page, limit, (page - 1) * limit


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "currentPage": page,
        "itemsPerPage": limit,
        "totalItems": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "hasNextPage": page * limit < total,
        "hasPrevPage": page > 1,
    }


def list_products(db: Database, query: Dict[str, Any], sort_by: Optional[str] = None, page: int = 1, limit: int = 10):
    page, limit, skip = build_pagination(page, limit)
    sort = SORT_OPTIONS.get(sort_by or "newest", SORT_OPTIONS["newest"])
    docs = list(db["product"].find(query, LIST_PROJECTION).sort(sort).skip(skip).limit(limit))
    total = db["product"].count_documents(query)
    return [serialize_doc(d) for d in docs], pagination_meta(page, limit, total)


def find_product(db: Database, product_id: str) -> Optional[Dict[str, Any]]:
    if not product_id:
        return None
    try:
        oid = to_object_id(product_id)
    except NotFound:
        return None
    return db["product"].find_one({"_id": oid})


def get_product(db: Database, product_id: str) -> Dict[str, Any]:
    doc = find_product(db, product_id)
    if not doc:
        raise NotFound("Product not found")
    return doc


def create_product(db: Database, data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    original_price = data.get("original_price") or data["price"]
    data["original_price"] = original_price
    data["discount"] = discount_percentage(data["price"], original_price)
    data["in_stock"] = data.get("stock", 0) > 0
    try:
        product = Product(**data)
    except SchemaError as e:
        raise ValidationError(schema_error_message(e))
    product_id = create_document(db, "product", product)
    logger.info("Created product %s (%s)", product_id, product.name)
    return db["product"].find_one({"_id": to_object_id(product_id)})


def update_product(db: Database, product_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    current = get_product(db, product_id)
    changes = {k: v for k, v in changes.items() if v is not None}
    if "price" in changes or "original_price" in changes:
        price = changes.get("price", current["price"])
        original_price = changes.get("original_price") or current.get("original_price") or price
        changes["discount"] = discount_percentage(price, original_price)
    if "stock" in changes:
        changes["in_stock"] = changes["stock"] > 0
    merged = {k: v for k, v in current.items() if k not in ("_id", "created_at", "updated_at")}
    merged.update(changes)
    try:
        Product(**merged)
    except SchemaError as e:
        raise ValidationError(schema_error_message(e))
    changes["updated_at"] = utcnow()
    return db["product"].find_one_and_update(
        {"_id": current["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )


def delete_product(db: Database, product_id: str) -> None:
    doc = get_product(db, product_id)
    db["product"].delete_one({"_id": doc["_id"]})
    logger.info("Deleted product %s", product_id)


def average_rating(reviews: List[Dict[str, Any]]) -> float:
    if not reviews:
        return 0
    return round(sum(r["rating"] for r in reviews) / len(reviews), 1)


def add_review(db: Database, product_id: str, user: CurrentUser, rating: int, comment: str) -> Dict[str, Any]:
    doc = get_product(db, product_id)
    reviews = doc.get("reviews", [])
    if any(r.get("user_id") == user.id for r in reviews):
        raise Conflict("You have already reviewed this product")
    review = Review(user_id=user.id, name=user.name, rating=rating, comment=comment, created_at=utcnow()).model_dump()
    reviews = reviews + [review]
    db["product"].update_one(
        {"_id": doc["_id"]},
        {
            "$push": {"reviews": review},
            "$set": {"rating": average_rating(reviews), "num_reviews": len(reviews), "updated_at": utcnow()},
        },
    )
    return review


def consume_stock(db: Database, product_id: str, quantity: int) -> bool:
    """Atomically take ``quantity`` units, never letting stock go below zero."""
    try:
        oid = to_object_id(product_id)
    except NotFound:
        return False
    updated = db["product"].find_one_and_update(
        {"_id": oid, "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        return False
    if updated["stock"] <= 0:
        db["product"].update_one({"_id": oid, "stock": {"$lte": 0}}, {"$set": {"in_stock": False}})
    return True


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    category: Category
    brand: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list)
    stock: int = Field(0, ge=0)
    tags: List[str] = Field(default_factory=list)
    featured: bool = False
    best_seller: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    category: Optional[Category] = None
    brand: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    featured: Optional[bool] = None
    best_seller: Optional[bool] = None


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("")
def get_products(
    search: Optional[str] = None,
    category: Optional[Category] = None,
    brand: Optional[List[str]] = Query(None),
    minPrice: Optional[float] = None,
    maxPrice: Optional[float] = None,
    inStock: Optional[bool] = None,
    featured: Optional[bool] = None,
    bestSeller: Optional[bool] = None,
    rating: Optional[float] = None,
    sortBy: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db: Database = Depends(get_db),
):
    query = build_product_filter(
        search=search,
        category=category.value if category else None,
        brands=brand,
        min_price=minPrice,
        max_price=maxPrice,
        in_stock=inStock,
        featured=featured,
        best_seller=bestSeller,
        min_rating=rating,
    )
    products, pagination = list_products(db, query, sortBy, page, limit)
    return {"success": True, "count": len(products), "pagination": pagination, "data": {"products": products}}


@router.get("/categories")
def get_categories(db: Database = Depends(get_db)):
    categories = sorted(db["product"].distinct("category"))
    return {"success": True, "count": len(categories), "data": {"categories": categories}}


@router.get("/brands")
def get_brands(db: Database = Depends(get_db)):
    brands = sorted(db["product"].distinct("brand"))
    return {"success": True, "count": len(brands), "data": {"brands": brands}}


@router.get("/featured")
def get_featured(limit: int = 8, db: Database = Depends(get_db)):
    docs = db["product"].find({"featured": True}, LIST_PROJECTION).sort("created_at", DESCENDING).limit(limit)
    products = [serialize_doc(d) for d in docs]
    return {"success": True, "count": len(products), "data": {"products": products}}


@router.get("/bestsellers")
def get_bestsellers(limit: int = 8, db: Database = Depends(get_db)):
    docs = (
        db["product"]
        .find({"best_seller": True}, LIST_PROJECTION)
        .sort([("rating", DESCENDING), ("num_reviews", DESCENDING)])
        .limit(limit)
    )
    products = [serialize_doc(d) for d in docs]
    return {"success": True, "count": len(products), "data": {"products": products}}


@router.get("/{product_id}")
def get_product_by_id(product_id: str, db: Database = Depends(get_db)):
    return {"success": True, "data": {"product": serialize_doc(get_product(db, product_id))}}


@router.post("", status_code=201)
def post_product(payload: ProductCreate, admin: CurrentUser = Depends(require_admin), db: Database = Depends(get_db)):
    doc = create_product(db, payload.model_dump(mode="json"))
    return {"success": True, "message": "Product created successfully", "data": {"product": serialize_doc(doc)}}


@router.put("/{product_id}")
def put_product(product_id: str, payload: ProductUpdate, admin: CurrentUser = Depends(require_admin), db: Database = Depends(get_db)):
    doc = update_product(db, product_id, payload.model_dump(mode="json", exclude_unset=True))
    return {"success": True, "message": "Product updated successfully", "data": {"product": serialize_doc(doc)}}


@router.delete("/{product_id}")
def remove_product(product_id: str, admin: CurrentUser = Depends(require_admin), db: Database = Depends(get_db)):
    delete_product(db, product_id)
    return {"success": True, "message": "Product deleted successfully"}


@router.post("/{product_id}/reviews", status_code=201)
def post_review(product_id: str, payload: ReviewCreate, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    review = add_review(db, product_id, user, payload.rating, payload.comment)
    return {"success": True, "message": "Review added successfully", "data": {"review": serialize_doc(review)}}
