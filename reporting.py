"""
Admin dashboard: read-only aggregates over users, products and orders, plus
user management. Revenue figures only ever count paid orders.
"""
import calendar
import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import CurrentUser, public_user, require_admin
from catalog import build_pagination
from database import get_db, serialize_doc, to_object_id, utcnow
from errors import Conflict, NotFound, ValidationError
from schemas import OrderStatus, Role

logger = logging.getLogger(__name__)

TRAILING_MONTHS = 6
TOP_PRODUCTS = 5
RECENT_ORDERS = 5


def months_ago(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def paid_totals(db: Database, match: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    query = {"is_paid": True}
    query.update(match or {})
    rows = list(db["order"].aggregate([
        {"$match": query},
        {"$group": {"_id": None, "total": {"$sum": "$total_price"}, "count": {"$sum": 1}}},
    ]))
    if not rows:
        return {"total": 0, "count": 0}
    return {"total": rows[0]["total"], "count": rows[0]["count"]}


def monthly_sales(db: Database, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or utcnow()
    since = months_ago(now, TRAILING_MONTHS)
    buckets: Dict[tuple, Dict[str, Any]] = {}
    for order in db["order"].find({"is_paid": True, "created_at": {"$gte": since}}, {"created_at": 1, "total_price": 1}):
        key = (order["created_at"].year, order["created_at"].month)
        bucket = buckets.setdefault(key, {"year": key[0], "month": key[1], "totalSales": 0, "orderCount": 0})
        bucket["totalSales"] += order.get("total_price", 0)
        bucket["orderCount"] += 1
    return [buckets[key] for key in sorted(buckets)]


def top_products(db: Database, limit: int = TOP_PRODUCTS) -> List[Dict[str, Any]]:
    rows = db["order"].aggregate([
        {"$match": {"is_paid": True}},
        {"$unwind": "$order_items"},
        {"$group": {
            "_id": "$order_items.product_id",
            "totalSold": {"$sum": "$order_items.quantity"},
            "revenue": {"$sum": {"$multiply": ["$order_items.price", "$order_items.quantity"]}},
        }},
        {"$sort": {"totalSold": -1}},
    ])
    leaders = []
    for row in rows:
        if len(leaders) >= limit:
            break
        product = db["product"].find_one({"_id": ObjectId(row["_id"])}, {"name": 1, "images": 1}) if ObjectId.is_valid(row["_id"]) else None
        if not product:
            continue
        images = product.get("images") or []
        leaders.append({
            "productId": row["_id"],
            "productName": product["name"],
            "productImage": images[0] if images else None,
            "totalSold": row["totalSold"],
            "revenue": row["revenue"],
        })
    return leaders


def recent_orders(db: Database, limit: int = RECENT_ORDERS) -> List[Dict[str, Any]]:
    projection = {"total_price": 1, "order_status": 1, "created_at": 1, "user_id": 1}
    orders = list(db["order"].find({}, projection).sort("created_at", DESCENDING).limit(limit))
    user_ids = [ObjectId(o["user_id"]) for o in orders if ObjectId.is_valid(o["user_id"])]
    users = {str(u["_id"]): {"name": u.get("name"), "email": u.get("email")} for u in db["user"].find({"_id": {"$in": user_ids}})}
    result = []
    for order in orders:
        view = serialize_doc(order)
        view["user"] = users.get(order["user_id"])
        result.append(view)
    return result


def dashboard_stats(db: Database) -> Dict[str, Any]:
    sales = paid_totals(db)
    status_counts = {status.value: db["order"].count_documents({"order_status": status.value}) for status in OrderStatus}
    total_orders = db["order"].count_documents({})
    return {
        "overview": {
            "totalUsers": db["user"].count_documents({}),
            "totalProducts": db["product"].count_documents({}),
            "outOfStockProducts": db["product"].count_documents({"in_stock": False}),
            "totalOrders": total_orders,
            "paidOrders": sales["count"],
            "totalRevenue": sales["total"],
        },
        "orders": dict(total=total_orders, **status_counts),
        "recentOrders": recent_orders(db),
        "monthlySales": monthly_sales(db),
        "topProducts": top_products(db),
    }


def list_users(db: Database, page: int = 1, limit: int = 10, search: Optional[str] = None):
    query: Dict[str, Any] = {}
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]
    page, limit, skip = build_pagination(page, limit)
    docs = db["user"].find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
    total = db["user"].count_documents(query)
    return [public_user(d) for d in docs], total, page, limit


def _get_user_doc(db: Database, user_id: str) -> Dict[str, Any]:
    try:
        oid = to_object_id(user_id)
    except NotFound:
        raise NotFound("User not found")
    doc = db["user"].find_one({"_id": oid})
    if not doc:
        raise NotFound("User not found")
    return doc


def user_detail(db: Database, user_id: str) -> Dict[str, Any]:
    doc = _get_user_doc(db, user_id)
    uid = str(doc["_id"])
    detail = public_user(doc)
    detail["ordersCount"] = db["order"].count_documents({"user_id": uid})
    detail["totalSpent"] = paid_totals(db, {"user_id": uid})["total"]
    return detail


def update_user(db: Database, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    doc = _get_user_doc(db, user_id)
    updates = {k: v for k, v in changes.items() if v is not None}
    if "email" in updates:
        updates["email"] = updates["email"].strip().lower()
    if "role" in updates:
        updates["role"] = Role(updates["role"]).value
    if not updates:
        return doc
    updates["updated_at"] = utcnow()
    try:
        updated = db["user"].find_one_and_update({"_id": doc["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER)
    except DuplicateKeyError:
        raise Conflict("User already exists with this email")
    logger.info("User %s updated: %s", user_id, ", ".join(sorted(k for k in updates if k != "updated_at")))
    return updated


def delete_user(db: Database, user_id: str, admin: CurrentUser) -> None:
    doc = _get_user_doc(db, user_id)
    uid = str(doc["_id"])
    if uid == admin.id:
        raise ValidationError("Cannot delete your own account")
    db["user"].delete_one({"_id": doc["_id"]})
    db["cart"].delete_one({"user_id": uid})
    db["wishlist"].delete_one({"user_id": uid})
    logger.info("User %s deleted by %s", uid, admin.id)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    phone: Optional[str] = None
    is_email_verified: Optional[bool] = None


router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/stats")
def get_stats(db: Database = Depends(get_db)):
    return {"success": True, "data": dashboard_stats(db)}


@router.get("/users")
def get_users(page: int = 1, limit: int = 10, search: Optional[str] = None, db: Database = Depends(get_db)):
    users, total, page, limit = list_users(db, page, limit, search)
    return {
        "success": True,
        "count": len(users),
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit),
        "data": {"users": users},
    }


@router.get("/users/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    return {"success": True, "data": {"user": user_detail(db, user_id)}}


@router.put("/users/{user_id}")
def put_user(user_id: str, payload: UserUpdate, db: Database = Depends(get_db)):
    doc = update_user(db, user_id, payload.model_dump(mode="json", exclude_unset=True))
    return {"success": True, "message": "User updated successfully", "data": {"user": public_user(doc)}}


@router.delete("/users/{user_id}")
def remove_user(user_id: str, admin: CurrentUser = Depends(require_admin), db: Database = Depends(get_db)):
    delete_user(db, user_id, admin)
    return {"success": True, "message": "User deleted successfully"}
