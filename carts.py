"""
Per-user shopping cart.

Items carry a name/image/price snapshot taken when the product is first added;
stock is re-checked against the live product on every mutation. Totals are
always recomputed from the items, never edited on their own.
"""
import logging
from typing import Any, Dict, List, Tuple

from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import CurrentUser, get_current_user
from catalog import find_product
from database import create_document, get_db, serialize_doc, utcnow
from errors import InsufficientStock, NotFound, OutOfStock, ValidationError
from schemas import Cart, CartItem

logger = logging.getLogger(__name__)

PRODUCT_SUMMARY_FIELDS = ("name", "images", "price", "stock", "in_stock")


def calculate_totals(items: List[Dict[str, Any]]) -> Tuple[float, int]:
    total_price = round(sum(item["price"] * item["quantity"] for item in items), 2)
    total_items = sum(item["quantity"] for item in items)
    return total_price, total_items


def get_or_create(db: Database, user_id: str) -> Dict[str, Any]:
    cart = db["cart"].find_one({"user_id": user_id})
    if cart:
        return cart
    try:
        create_document(db, "cart", Cart(user_id=user_id))
    except DuplicateKeyError:
        # a concurrent request created it first
        pass
    return db["cart"].find_one({"user_id": user_id})


def save(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    cart["total_price"], cart["total_items"] = calculate_totals(cart["items"])
    cart["updated_at"] = utcnow()
    db["cart"].update_one(
        {"_id": cart["_id"]},
        {"$set": {
            "items": cart["items"],
            "total_price": cart["total_price"],
            "total_items": cart["total_items"],
            "updated_at": cart["updated_at"],
        }},
    )
    return cart


def _find_item(cart: Dict[str, Any], product_id: str):
    for item in cart["items"]:
        if item["product_id"] == product_id:
            return item
    return None


def add_item(db: Database, cart: Dict[str, Any], product_id: str, quantity: int = 1) -> Dict[str, Any]:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    if not product.get("in_stock"):
        raise OutOfStock("Product is out of stock")

    product_id = str(product["_id"])
    existing = _find_item(cart, product_id)
    if existing:
        new_quantity = existing["quantity"] + quantity
        if new_quantity > product.get("stock", 0):
            raise InsufficientStock(f"Only {product.get('stock', 0)} items available in stock")
        existing["quantity"] = new_quantity
    else:
        if quantity > product.get("stock", 0):
            raise InsufficientStock(f"Only {product.get('stock', 0)} items available in stock")
        images = product.get("images") or []
        item = CartItem(
            product_id=product_id,
            name=product["name"],
            image=images[0] if images else "",
            price=product["price"],
            quantity=quantity,
        )
        cart["items"].append(item.model_dump())
    return save(db, cart)


def remove_item(db: Database, cart: Dict[str, Any], product_id: str) -> Dict[str, Any]:
    cart["items"] = [item for item in cart["items"] if item["product_id"] != product_id]
    return save(db, cart)


def update_quantity(db: Database, cart: Dict[str, Any], product_id: str, quantity: int) -> Dict[str, Any]:
    if quantity <= 0:
        return remove_item(db, cart, product_id)
    item = _find_item(cart, product_id)
    if not item:
        raise NotFound("Item not found in cart")
    product = find_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    if quantity > product.get("stock", 0):
        raise InsufficientStock(f"Only {product.get('stock', 0)} items available in stock")
    item["quantity"] = quantity
    return save(db, cart)


def clear(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    cart["items"] = []
    return save(db, cart)


def cart_view(db: Database, cart: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a cart, attaching the live product summary next to each snapshot."""
    ids = [ObjectId(item["product_id"]) for item in cart["items"] if ObjectId.is_valid(item["product_id"])]
    live = {}
    if ids:
        projection = {field: 1 for field in PRODUCT_SUMMARY_FIELDS}
        for doc in db["product"].find({"_id": {"$in": ids}}, projection):
            live[str(doc["_id"])] = serialize_doc(doc)
    view = serialize_doc(cart)
    for item in view["items"]:
        item["product"] = live.get(item["product_id"])
    return view


class AddItemRequest(BaseModel):
    productId: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)


class UpdateItemRequest(BaseModel):
    quantity: int


router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("")
def get_cart(user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = get_or_create(db, user.id)
    return {"success": True, "data": {"cart": cart_view(db, cart)}}


@router.post("/items")
def add_to_cart(payload: AddItemRequest, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = add_item(db, get_or_create(db, user.id), payload.productId, payload.quantity)
    return {"success": True, "message": "Item added to cart", "data": {"cart": cart_view(db, cart)}}


@router.put("/items/{product_id}")
def update_cart_item(product_id: str, payload: UpdateItemRequest, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = update_quantity(db, get_or_create(db, user.id), product_id, payload.quantity)
    return {"success": True, "message": "Cart updated", "data": {"cart": cart_view(db, cart)}}


@router.delete("/items/{product_id}")
def remove_from_cart(product_id: str, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = remove_item(db, get_or_create(db, user.id), product_id)
    return {"success": True, "message": "Item removed from cart", "data": {"cart": cart_view(db, cart)}}


@router.delete("")
def clear_cart(user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    cart = clear(db, get_or_create(db, user.id))
    return {"success": True, "message": "Cart cleared", "data": {"cart": cart_view(db, cart)}}
