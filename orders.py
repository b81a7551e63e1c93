"""
Order placement, payment settlement and fulfilment status.

Checkout turns the user's cart into an order whose items are frozen copies of
the cart lines. Stock is consumed once, when the order is settled as paid,
whether that happens through the pay endpoint, the Stripe webhook or a
cash-on-delivery checkout. Settlement is a test-and-set on ``is_paid`` so only
one of those paths ever decrements stock for a given order.
"""
import logging
import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from auth import CurrentUser, get_current_user, require_admin
from carts import clear as clear_cart
from catalog import build_pagination, consume_stock, find_product
from config import Settings, get_settings
from database import create_document, get_db, serialize_doc, to_object_id, utcnow
from errors import (
    AlreadyPaid,
    EmptyCart,
    ExternalServiceError,
    Forbidden,
    InvalidStatus,
    NotFound,
    OutOfStock,
    PaymentNotSuccessful,
    PaymentSetupFailed,
    ValidationError,
    schema_error_message,
)
from payments import StripeGateway, get_payment_gateway
from schemas import Order, OrderItem, OrderStatus, PaymentMethod, ShippingAddress

logger = logging.getLogger(__name__)


def compute_totals(items_price: float, settings: Settings) -> Dict[str, float]:
    items_price = round(items_price, 2)
    # half-up, so 0.5 rounds away from zero
    tax_price = math.floor(items_price * settings.tax_rate + 0.5)
    shipping_price = 0 if items_price > settings.free_shipping_threshold else settings.shipping_fee
    return {
        "items_price": items_price,
        "tax_price": tax_price,
        "shipping_price": shipping_price,
        "total_price": round(items_price + tax_price + shipping_price, 2),
    }


def _parse_shipping_address(data: Optional[Dict[str, Any]]) -> ShippingAddress:
    if not data:
        raise ValidationError("Shipping address is required")
    try:
        return ShippingAddress.model_validate(data)
    except SchemaError as e:
        raise ValidationError(f"Shipping address is invalid: {schema_error_message(e)}")


def _parse_payment_method(value: Any) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError("Payment method must be one of: stripe, cod")


def get_order_doc(db: Database, order_id: str) -> Dict[str, Any]:
    try:
        oid = to_object_id(order_id)
    except NotFound:
        raise NotFound("Order not found")
    order = db["order"].find_one({"_id": oid})
    if not order:
        raise NotFound("Order not found")
    return order


def _ensure_can_view(order: Dict[str, Any], user: CurrentUser) -> None:
    if order["user_id"] != user.id and not user.is_admin:
        raise Forbidden("Not authorized to access this order")


def settle_payment(db: Database, order_id, payment_result: Optional[Dict[str, Any]] = None, source: str = "api") -> Optional[Dict[str, Any]]:
    """
    Mark an unpaid order as paid and consume stock for its items.

    Returns the updated order, or None when the order was already paid (another
    path settled it first), in which case nothing is decremented.
    """
    now = utcnow()
    fields: Dict[str, Any] = {
        "is_paid": True,
        "paid_at": now,
        "order_status": OrderStatus.PROCESSING.value,
        "updated_at": now,
    }
    if payment_result is not None:
        fields["payment_result"] = payment_result
    order = db["order"].find_one_and_update(
        {"_id": to_object_id(order_id), "is_paid": False},
        {"$set": fields},
        return_document=ReturnDocument.AFTER,
    )
    if order is None:
        return None

    for item in order["order_items"]:
        if not consume_stock(db, item["product_id"], item["quantity"]):
            logger.warning(
                "Order %s: could not take %s unit(s) of product %s, stock too low or product removed",
                order["_id"], item["quantity"], item["product_id"],
            )
    logger.info("Order %s marked as paid via %s", order["_id"], source)
    return order


def create_order(
    db: Database,
    gateway: StripeGateway,
    settings: Settings,
    user: CurrentUser,
    shipping_address: Optional[Dict[str, Any]],
    payment_method: Any = PaymentMethod.STRIPE.value,
):
    """
    Place an order from the user's cart.

    Returns ``(order, payment_intent)``; ``payment_intent`` is None for cash on
    delivery. The cart is emptied only once the order is safely placed, so a
    failed Stripe setup leaves it untouched. Cash-on-delivery orders are
    settled immediately and so take their stock at checkout.
    """
    address = _parse_shipping_address(shipping_address)
    method = _parse_payment_method(payment_method)

    cart = db["cart"].find_one({"user_id": user.id})
    if not cart or not cart.get("items"):
        raise EmptyCart()

    for item in cart["items"]:
        product = find_product(db, item["product_id"])
        if not product or not product.get("in_stock") or product.get("stock", 0) < item["quantity"]:
            raise OutOfStock(f"Product {item['name']} is out of stock or insufficient quantity available")

    order_items = [
        OrderItem(
            product_id=item["product_id"],
            name=item["name"],
            image=item.get("image", ""),
            price=item["price"],
            quantity=item["quantity"],
        )
        for item in cart["items"]
    ]
    totals = compute_totals(sum(i.price * i.quantity for i in order_items), settings)
    order = Order(
        user_id=user.id,
        order_items=order_items,
        shipping_address=address,
        payment_method=method,
        **totals,
    )
    order_id = create_document(db, "order", order)
    logger.info("Order %s created for user %s (%s, total %s)", order_id, user.id, method.value, totals["total_price"])

    if method is PaymentMethod.COD:
        settle_payment(db, order_id, source="cash on delivery")
        clear_cart(db, cart)
        return get_order_doc(db, order_id), None

    try:
        intent = gateway.create_intent(
            totals["total_price"],
            settings.payment_currency,
            {"orderId": order_id, "userId": user.id},
        )
    except ExternalServiceError as e:
        db["order"].delete_one({"_id": to_object_id(order_id)})
        logger.warning("Order %s rolled back, payment intent creation failed: %s", order_id, e.message)
        raise PaymentSetupFailed(e.message)

    db["order"].update_one(
        {"_id": to_object_id(order_id)},
        {"$set": {"payment_intent_id": intent.intent_id, "updated_at": utcnow()}},
    )
    clear_cart(db, cart)
    payment_intent = {"clientSecret": intent.client_secret, "paymentIntentId": intent.intent_id}
    return get_order_doc(db, order_id), payment_intent


def mark_paid(db: Database, gateway: StripeGateway, order_id: str, user: CurrentUser, payment_intent_id: Optional[str] = None) -> Dict[str, Any]:
    order = get_order_doc(db, order_id)
    _ensure_can_view(order, user)
    if order.get("is_paid"):
        raise AlreadyPaid()

    payment_result = None
    if order.get("payment_method") == PaymentMethod.STRIPE.value:
        stored_intent = order.get("payment_intent_id")
        if payment_intent_id and stored_intent and payment_intent_id != stored_intent:
            raise PaymentNotSuccessful("Payment intent does not belong to this order")
        intent_id = payment_intent_id or stored_intent
        if intent_id:
            try:
                status = gateway.verify_intent(intent_id)
            except ExternalServiceError as e:
                raise PaymentNotSuccessful(e.message)
            if status.status != "succeeded":
                raise PaymentNotSuccessful()
            payment_result = {
                "id": status.id,
                "status": status.status,
                "update_time": utcnow().isoformat(),
                "email_address": status.receipt_email or user.email,
            }

    settled = settle_payment(db, order["_id"], payment_result, source="pay endpoint")
    if settled is None:
        raise AlreadyPaid()
    return settled


def set_status(db: Database, order_id: str, status: Any, actor: CurrentUser) -> Dict[str, Any]:
    if not actor.is_admin:
        raise Forbidden("Only administrators can update order status")
    try:
        new_status = OrderStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidStatus(f"Invalid status. Must be one of: {allowed}")

    order = get_order_doc(db, order_id)
    now = utcnow()
    db["order"].update_one({"_id": order["_id"]}, {"$set": {"order_status": new_status.value, "updated_at": now}})
    if new_status is OrderStatus.DELIVERED:
        # first delivery wins, the timestamp is never overwritten
        db["order"].update_one(
            {"_id": order["_id"], "is_delivered": {"$ne": True}},
            {"$set": {"is_delivered": True, "delivered_at": now}},
        )
    logger.info("Order %s status %s -> %s by %s", order["_id"], order.get("order_status"), new_status.value, actor.id)
    return db["order"].find_one({"_id": order["_id"]})


def find_by_payment_intent(db: Database, intent_id: str) -> Optional[Dict[str, Any]]:
    return db["order"].find_one({"payment_intent_id": intent_id})


class CreateOrderRequest(BaseModel):
    shippingAddress: Optional[Dict[str, Any]] = None
    paymentMethod: str = PaymentMethod.STRIPE.value


class PayOrderRequest(BaseModel):
    paymentIntentId: Optional[str] = None


class StatusRequest(BaseModel):
    status: str


router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", status_code=201)
def post_order(
    payload: CreateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    order, payment_intent = create_order(db, gateway, settings, user, payload.shippingAddress, payload.paymentMethod)
    data: Dict[str, Any] = {"order": serialize_doc(order)}
    if payment_intent:
        data["paymentIntent"] = payment_intent
    return {"success": True, "message": "Order created successfully", "data": data}


@router.get("/myorders")
def my_orders(user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    orders = [serialize_doc(o) for o in db["order"].find({"user_id": user.id}).sort("created_at", DESCENDING)]
    return {"success": True, "count": len(orders), "data": {"orders": orders}}


@router.get("/admin/all")
def all_orders(
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    admin: CurrentUser = Depends(require_admin),
    db: Database = Depends(get_db),
):
    query = {"order_status": status} if status else {}
    page, limit, skip = build_pagination(page, limit)
    docs = db["order"].find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
    orders = [serialize_doc(o) for o in docs]
    total = db["order"].count_documents(query)
    return {
        "success": True,
        "count": len(orders),
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit),
        "data": {"orders": orders},
    }


@router.get("/{order_id}")
def get_order(order_id: str, user: CurrentUser = Depends(get_current_user), db: Database = Depends(get_db)):
    order = get_order_doc(db, order_id)
    _ensure_can_view(order, user)
    return {"success": True, "data": {"order": serialize_doc(order)}}


@router.put("/{order_id}/pay")
def pay_order(
    order_id: str,
    payload: Optional[PayOrderRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    intent_id = payload.paymentIntentId if payload else None
    order = mark_paid(db, gateway, order_id, user, intent_id)
    return {"success": True, "message": "Order payment confirmed", "data": {"order": serialize_doc(order)}}


@router.put("/{order_id}/status")
def update_status(order_id: str, payload: StatusRequest, admin: CurrentUser = Depends(require_admin), db: Database = Depends(get_db)):
    order = set_status(db, order_id, payload.status, admin)
    return {"success": True, "message": "Order status updated", "data": {"order": serialize_doc(order)}}
