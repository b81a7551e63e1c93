import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pymongo.database import Database
from starlette.concurrency import run_in_threadpool

from config import Settings, get_settings
from database import get_db, utcnow
from errors import ExternalServiceError
from orders import find_by_payment_intent, settle_payment
from payments import StripeGateway, get_payment_gateway

logger = logging.getLogger(__name__)


def _payment_succeeded(db: Database, intent: Dict[str, Any]) -> None:
    intent_id = intent.get("id")
    order = find_by_payment_intent(db, intent_id) if intent_id else None
    if not order:
        logger.warning("payment_intent.succeeded for unknown intent %s", intent_id)
        return
    payment_result = {
        "id": intent_id,
        "status": "succeeded",
        "update_time": utcnow().isoformat(),
        "email_address": intent.get("receipt_email"),
    }
    if settle_payment(db, order["_id"], payment_result, source="webhook") is None:
        logger.info("Order %s already paid, webhook ignored", order["_id"])


def _payment_failed(db: Database, intent: Dict[str, Any]) -> None:
    intent_id = intent.get("id")
    order = find_by_payment_intent(db, intent_id) if intent_id else None
    if not order:
        logger.warning("payment_intent.payment_failed for unknown intent %s", intent_id)
        return
    db["order"].update_one(
        {"_id": order["_id"], "is_paid": False},
        {"$set": {"payment_result": {"id": intent_id, "status": "failed"}, "updated_at": utcnow()}},
    )
    logger.info("Payment failed for order %s", order["_id"])


EVENT_HANDLERS = {
    "payment_intent.succeeded": _payment_succeeded,
    "payment_intent.payment_failed": _payment_failed,
}


def handle_event(db: Database, event: Dict[str, Any]) -> None:
    """Apply a verified Stripe event. Errors are logged, there is no caller to report to."""
    event_type = event["type"]
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled Stripe event type: %s", event_type)
        return
    try:
        handler(db, event["data"]["object"])
    except Exception:
        logger.exception("Failed to process Stripe event %s", event_type)


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Database = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings),
):
    if not settings.stripe_webhook_secret:
        logger.error("Stripe webhook secret not configured")
        raise ExternalServiceError("Webhook secret not configured")

    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"), settings.stripe_webhook_secret)
    logger.info("Stripe event received: %s", event["type"])
    await run_in_threadpool(handle_event, db, event)
    return {"received": True}
