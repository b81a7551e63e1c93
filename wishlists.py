import logging
from typing import Any, Dict

from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import CurrentUser, get_current_user
from catalog import get_product
from database import create_document, get_db, serialize_doc, utcnow
from schemas import Wishlist

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = {"name": 1, "price": 1, "images": 1, "category": 1, "brand": 1, "in_stock": 1}


def get_or_create(db: Database, user_id: str) -> Dict[str, Any]:
    wishlist = db["wishlist"].find_one({"user_id": user_id})
    if wishlist:
        return wishlist
    try:
        create_document(db, "wishlist", Wishlist(user_id=user_id))
    except DuplicateKeyError:
        pass
    return db["wishlist"].find_one({"user_id": user_id})


def _update(db: Database, user_id: str, update: Dict[str, Any]) -> Dict[str, Any]:
    get_or_create(db, user_id)
    update.setdefault("$set", {})["updated_at"] = utcnow()
    return db["wishlist"].find_one_and_update({"user_id": user_id}, update, return_document=ReturnDocument.AFTER)


def add(db: Database, user_id: str, product_id: str) -> Dict[str, Any]:
    product = get_product(db, product_id)
    return _update(db, user_id, {"$addToSet": {"product_ids": str(product["_id"])}})


def remove(db: Database, user_id: str, product_id: str) -> Dict[str, Any]:
    return _update(db, user_id, {"$pull": {"product_ids": product_id}})


def contains(db: Database, user_id: str, product_id: str) -> bool:
    return db["wishlist"].find_one({"user_id": user_id, "product_ids": product_id}, {"_id": 1}) is not None


def clear(db: Database, user_id: str) -> Dict[str, Any]:
    return _update(db, user_id, {"$set": {"product_ids": []}})


def wishlist_view(db: Database, wishlist: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve product references against the live catalog; removed products are skipped."""
    ids = [ObjectId(pid) for pid in wishlist.get("product_ids", []) if ObjectId.is_valid(pid)]
    found = {}
    if ids:
        for doc in db["product"].find({"_id": {"$in": ids}}, PRODUCT_FIELDS):
            found[str(doc["_id"])] = serialize_doc(doc)
    view = serialize_doc(wishlist)
    view["products"] = [found[pid] for pid in wishlist.get("product_ids", []) if pid in found]
    return view


class AddToWishlistRequest(BaseModel):
    productId: str = Field(..., min_length=1)


router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


@router.get("")
def get_wishlist(user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    view = wishlist_view(db, get_or_create(db, user.id))
    return {"success": True, "count": len(view["products"]), "data": {"wishlist": view}}


@router.post("")
def add_to_wishlist(payload: AddToWishlistRequest, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    wishlist = add(db, user.id, payload.productId)
    return {"success": True, "message": "Product added to wishlist", "data": {"wishlist": wishlist_view(db, wishlist)}}


@router.get("/check/{product_id}")
def check_wishlist(product_id: str, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    return {"success": True, "data": {"isInWishlist": contains(db, user.id, product_id)}}


@router.delete("/{product_id}")
def remove_from_wishlist(product_id: str, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    wishlist = remove(db, user.id, product_id)
    return {"success": True, "message": "Product removed from wishlist", "data": {"wishlist": wishlist_view(db, wishlist)}}


@router.delete("")
def clear_wishlist(user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    wishlist = clear(db, user.id)
    return {"success": True, "message": "Wishlist cleared", "data": {"wishlist": wishlist_view(db, wishlist)}}
