"""Stripe adapter: orders are PaymentIntents, refunds are Stripe Refunds."""

import logging
from typing import Optional

import stripe

from ...core.config import Settings
from ...core.exceptions import GatewayNotConfiguredException, PaymentGatewayException
from .base import GatewayOrder, GatewayRefund, PaymentGateway, PaymentVerification

logger = logging.getLogger(__name__)


class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(self, config: Settings):
        self.configured = False
        if config.stripe_secret_key:
            stripe.api_key = config.stripe_secret_key.get_secret_value()
            stripe.max_network_retries = 1
            self.configured = True

    def _require_configured(self) -> None:
        if not self.configured:
            raise GatewayNotConfiguredException(self.name)

    def create_order(self, amount: int, currency: str, booking_ref: str) -> GatewayOrder:
        self._require_configured()
        try:
            intent = stripe.PaymentIntent.create(
                amount=self.to_minor_units(amount),
                currency=currency.lower(),
                metadata={"booking_id": booking_ref},
            )
        except stripe.StripeError as exc:
            logger.error(f"Stripe PaymentIntent creation failed: {exc}")
            raise PaymentGatewayException(
                "Payment provider rejected the order", details={"gateway": self.name}
            ) from exc
        return GatewayOrder(
            order_id=intent.id,
            amount=amount,
            currency=currency,
            status=intent.status,
            raw={"client_secret": intent.client_secret},
        )

    def verify_payment(
        self,
        payment_ref: Optional[str],
        order_ref: Optional[str],
        signature: Optional[str],
    ) -> PaymentVerification:
        self._require_configured()
        if not order_ref:
            return PaymentVerification(verified=False)
        try:
            intent = stripe.PaymentIntent.retrieve(order_ref)
        except stripe.StripeError as exc:
            logger.error(f"Stripe PaymentIntent lookup failed: {exc}")
            raise PaymentGatewayException(
                "Could not verify payment with provider", details={"gateway": self.name}
            ) from exc
        return PaymentVerification(
            verified=intent.status == "succeeded",
            payment_id=intent.id,
            raw={"status": intent.status},
        )

    def process_refund(self, payment_ref: Optional[str], amount: int) -> GatewayRefund:
        self._require_configured()
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_ref, amount=self.to_minor_units(amount)
            )
        except stripe.StripeError as exc:
            logger.error(f"Stripe refund failed: {exc}")
            raise PaymentGatewayException(
                "Payment provider rejected the refund", details={"gateway": self.name}
            ) from exc
        return GatewayRefund(
            refund_id=refund.id,
            amount=amount,
            status="completed" if refund.status == "succeeded" else "pending",
            raw={"status": refund.status},
        )
