"""
Stripe integration for milestone escrow payments

Configuration Required:
- STRIPE_SECRET_KEY: secret API key
- STRIPE_WEBHOOK_SECRET: signing secret for /api/payment/webhook

Without a secret key the gateway settles internally: intents get a local
reference and are confirmed through /api/payment/finalize.
"""
import logging
import uuid
from typing import Dict, Optional, Any

import stripe

from servicehub.errors import PaymentGatewayError, ValidationError

logger = logging.getLogger(__name__)

PAYMENT_METHOD_TYPES = ['card', 'fpx', 'grabpay']


def to_minor_units(amount: float) -> int:
    """RM 12.34 -> 1234 sen"""
    return int(round(amount * 100))


class StripeGateway:
    """
    Thin wrapper around the Stripe SDK

    Usage:
        gateway.init_app(app)
        intent = gateway.create_payment_intent(
            amount=1500.00,
            currency='MYR',
            description='Milestone 1: Wireframes',
            metadata={'payment_id': payment.id}
        )
    """

    def __init__(self):
        self.api_key = None
        self.webhook_secret = None

    def init_app(self, app):
        self.api_key = app.config.get('STRIPE_SECRET_KEY')
        self.webhook_secret = app.config.get('STRIPE_WEBHOOK_SECRET')
        app.extensions['payment_gateway'] = self

    def is_available(self) -> bool:
        """Check if Stripe is properly configured"""
        return bool(self.api_key)

    def create_payment_intent(self, amount: float, currency: str, description: str,
                              metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.is_available():
            logger.info("Stripe not configured, using internal settlement")
            return {
                'id': f"internal_{uuid.uuid4().hex}",
                'client_secret': None,
                'method': 'internal'
            }

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=to_minor_units(amount),
                currency=currency.lower(),
                payment_method_types=PAYMENT_METHOD_TYPES,
                description=description,
                metadata=metadata or {}
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe PaymentIntent creation failed: {str(e)}")
            raise PaymentGatewayError(f"Payment gateway error: {e.user_message or str(e)}")

        return {'id': intent.id, 'client_secret': intent.client_secret, 'method': 'stripe'}

    def get_charge_id(self, payment_intent_id: str) -> Optional[str]:
        """Latest charge of a confirmed intent (None for internal settlement)"""
        if not self.is_available() or payment_intent_id.startswith('internal_'):
            return None
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise PaymentGatewayError(f"Payment gateway error: {e.user_message or str(e)}")
        if intent.status != 'succeeded':
            raise ValidationError(f"Payment has not succeeded yet (gateway status: {intent.status})")
        return intent.latest_charge

    def refund(self, payment_intent_id: str, amount: float, reason: str = 'requested_by_customer') -> Optional[str]:
        if not self.is_available() or payment_intent_id.startswith('internal_'):
            return f"internal_refund_{uuid.uuid4().hex[:12]}"
        try:
            refund = stripe.Refund.create(
                api_key=self.api_key,
                payment_intent=payment_intent_id,
                amount=to_minor_units(amount),
                reason=reason
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for {payment_intent_id}: {str(e)}")
            raise PaymentGatewayError(f"Payment gateway error: {e.user_message or str(e)}")
        return refund.id

    def construct_event(self, payload: bytes, signature: str):
        """Verify a webhook signature and parse the event"""
        if not self.webhook_secret:
            raise ValidationError('Webhook signing secret is not configured')
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError('Invalid webhook payload')
        except stripe.SignatureVerificationError:
            raise ValidationError('Invalid webhook signature')


# Global instance
gateway = StripeGateway()
