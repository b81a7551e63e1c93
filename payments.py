"""
Stripe payment gateway adapter.

Checkout creates a PaymentIntent and hands its client secret to the frontend,
which confirms the payment with Stripe.js. The order is settled either by the
explicit pay endpoint (after ``verify_intent``) or by the signed
``payment_intent.succeeded`` webhook.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe
from fastapi import Depends

from config import Settings, get_settings
from errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntentHandle:
    client_secret: str
    intent_id: str


@dataclass(frozen=True)
class IntentStatus:
    id: str
    status: str
    receipt_email: Optional[str] = None


def to_minor_units(amount: float) -> int:
    # paise for INR, cents for USD
    return int(round(amount * 100))


class StripeGateway:
    def __init__(self, secret_key: Optional[str]):
        self.secret_key = secret_key

    def _require_key(self) -> str:
        if not self.secret_key:
            raise ExternalServiceError("Stripe not configured. Set STRIPE_SECRET_KEY.")
        return self.secret_key

    def create_intent(self, amount: float, currency: str, metadata: Dict[str, str]) -> PaymentIntentHandle:
        if not amount or amount <= 0:
            raise ExternalServiceError("Invalid amount")
        api_key = self._require_key()
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
                api_key=api_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent creation failed: %s", e)
            raise ExternalServiceError(f"Payment processing failed: {e.user_message or e}")
        return PaymentIntentHandle(client_secret=intent.client_secret, intent_id=intent.id)

    def verify_intent(self, intent_id: str) -> IntentStatus:
        api_key = self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=api_key)
        except stripe.StripeError as e:
            logger.error("Stripe payment verification failed for %s: %s", intent_id, e)
            raise ExternalServiceError(f"Payment verification failed: {e.user_message or e}")
        return IntentStatus(id=intent.id, status=intent.status, receipt_email=getattr(intent, "receipt_email", None))

    def construct_event(self, payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
        try:
            event = stripe.Webhook.construct_event(payload=payload, sig_header=signature, secret=secret)
        except ValueError as e:
            raise ValidationError(f"Webhook Error: invalid payload ({e})")
        except stripe.SignatureVerificationError as e:
            raise ValidationError(f"Webhook Error: {e}")
        return event


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return StripeGateway(settings.stripe_secret_key)
