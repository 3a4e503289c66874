"""Manual gateway for cash and offline payments; always verifies."""

import logging
from typing import Optional

from ...core.ulid_helper import generate_ulid
from .base import GatewayOrder, GatewayRefund, PaymentGateway, PaymentVerification

logger = logging.getLogger(__name__)


class ManualGateway(PaymentGateway):
    name = "manual"

    def create_order(self, amount: int, currency: str, booking_ref: str) -> GatewayOrder:
        return GatewayOrder(
            order_id=f"MANUAL-{generate_ulid()}",
            amount=amount,
            currency=currency,
            raw={"booking_ref": booking_ref},
        )

    def verify_payment(
        self,
        payment_ref: Optional[str],
        order_ref: Optional[str],
        signature: Optional[str],
    ) -> PaymentVerification:
        return PaymentVerification(
            verified=True, payment_id=payment_ref or f"MANUAL-PAY-{generate_ulid()}"
        )

    def process_refund(self, payment_ref: Optional[str], amount: int) -> GatewayRefund:
        logger.info("Recording manual refund", extra={"payment_ref": payment_ref, "amount": amount})
        return GatewayRefund(
            refund_id=f"MANUAL-REF-{generate_ulid()}", amount=amount, status="completed"
        )
