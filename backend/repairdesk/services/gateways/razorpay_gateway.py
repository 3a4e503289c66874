"""Razorpay adapter with HMAC-SHA256 checkout signature verification."""

import hashlib
import hmac
import logging
from typing import Optional

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError

from ...core.config import Settings
from ...core.exceptions import GatewayNotConfiguredException, PaymentGatewayException
from .base import GatewayOrder, GatewayRefund, PaymentGateway, PaymentVerification

logger = logging.getLogger(__name__)

RAZORPAY_ERRORS = (BadRequestError, GatewayError, ServerError)


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    def __init__(self, config: Settings):
        self.client = None
        self._key_secret: Optional[str] = None
        if config.razorpay_key_id and config.razorpay_key_secret:
            self._key_secret = config.razorpay_key_secret.get_secret_value()
            self.client = razorpay.Client(auth=(config.razorpay_key_id, self._key_secret))

    def _require_client(self) -> razorpay.Client:
        if self.client is None:
            raise GatewayNotConfiguredException(self.name)
        return self.client

    def create_order(self, amount: int, currency: str, booking_ref: str) -> GatewayOrder:
        client = self._require_client()
        try:
            order = client.order.create(
                data={
                    "amount": self.to_minor_units(amount),
                    "currency": currency,
                    "receipt": booking_ref,
                    "payment_capture": 1,
                }
            )
        except RAZORPAY_ERRORS as exc:
            logger.error(f"Razorpay order creation failed: {exc}")
            raise PaymentGatewayException(
                "Payment provider rejected the order", details={"gateway": self.name}
            ) from exc
        return GatewayOrder(
            order_id=order["id"],
            amount=amount,
            currency=currency,
            status=order.get("status", "created"),
            raw=dict(order),
        )

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        message = f"{order_id}|{payment_id}"
        generated = hmac.new(
            (self._key_secret or "").encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(generated, signature)

    def verify_payment(
        self,
        payment_ref: Optional[str],
        order_ref: Optional[str],
        signature: Optional[str],
    ) -> PaymentVerification:
        self._require_client()
        if not (payment_ref and order_ref and signature):
            return PaymentVerification(verified=False, payment_id=payment_ref)
        return PaymentVerification(
            verified=self.verify_signature(order_ref, payment_ref, signature),
            payment_id=payment_ref,
        )

    def process_refund(self, payment_ref: Optional[str], amount: int) -> GatewayRefund:
        client = self._require_client()
        try:
            refund = client.payment.refund(payment_ref, {"amount": self.to_minor_units(amount)})
        except RAZORPAY_ERRORS as exc:
            logger.error(f"Razorpay refund failed: {exc}")
            raise PaymentGatewayException(
                "Payment provider rejected the refund", details={"gateway": self.name}
            ) from exc
        return GatewayRefund(
            refund_id=refund["id"],
            amount=amount,
            status="completed" if refund.get("status") == "processed" else "pending",
            raw=dict(refund),
        )
