"""
Payment gateway registry.

get_gateway resolves an adapter by name, defaulting to the configured
PAYMENT_GATEWAY. Unknown names fail immediately; known but unconfigured
providers fail on first use with a 501.
"""

from typing import Callable, Dict, Optional

from ...core.config import Settings, settings as default_settings
from ...core.exceptions import ServiceException
from .base import GatewayOrder, GatewayRefund, PaymentGateway, PaymentVerification
from .manual import ManualGateway
from .razorpay_gateway import RazorpayGateway
from .stripe_gateway import StripeGateway

GATEWAYS: Dict[str, Callable[[Settings], PaymentGateway]] = {
    "manual": lambda config: ManualGateway(),
    "razorpay": RazorpayGateway,
    "stripe": StripeGateway,
}


def get_gateway(name: Optional[str] = None, config: Optional[Settings] = None) -> PaymentGateway:
    cfg = config or default_settings
    gateway_name = (name or cfg.payment_gateway or "manual").lower()
    factory = GATEWAYS.get(gateway_name)
    if factory is None:
        raise ServiceException(
            f"Unknown payment gateway: {gateway_name}",
            code="UNKNOWN_GATEWAY",
            details={"gateway": gateway_name},
        )
    return factory(cfg)


__all__ = [
    "GATEWAYS",
    "GatewayOrder",
    "GatewayRefund",
    "ManualGateway",
    "PaymentGateway",
    "PaymentVerification",
    "RazorpayGateway",
    "StripeGateway",
    "get_gateway",
]
