# storefront/services/gateway.py
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Protocol

import razorpay
import requests
from flask import current_app
from razorpay.errors import BadRequestError, GatewayError, ServerError

from ..utils.errors import ExternalServiceFailure

logger = logging.getLogger(__name__)


def verify_signature(provider_order_id, provider_payment_id, signature, secret) -> bool:
    """HMAC-SHA256 of ``order_id|payment_id`` under the key secret, compared in constant time."""
    if not (provider_order_id and provider_payment_id and signature and secret):
        return False
    body = f"{provider_order_id}|{provider_payment_id}".encode()
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, str(signature))


class PaymentGateway(Protocol):
    key_id: str
    key_secret: str
    currency: str

    def create_order(self, amount_minor: int, receipt: str, notes: dict | None = None) -> dict:
        """Provider order for ``amount_minor`` (paise); returns ``{id, amount, currency}``."""
        ...

    def fetch_payment(self, payment_id: str) -> dict:
        """Provider view of a payment; at least ``{order_id, amount}``."""
        ...


class RazorpayGateway:
    """Thin wrapper over the Razorpay SDK with an explicit request timeout."""

    def __init__(self, key_id, key_secret, currency="INR", timeout=10.0):
        self.key_id = key_id
        self.key_secret = key_secret
        self.currency = currency
        self.timeout = timeout
        self._client = None

    @property
    def client(self):
        if self._client is None:
            if not (self.key_id and self.key_secret):
                raise ExternalServiceFailure("Razorpay is not configured", code="GATEWAY_NOT_CONFIGURED")
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def _call(self, what, fn, *args, **kwargs):
        try:
            return fn(*args, timeout=self.timeout, **kwargs)
        except (BadRequestError, ServerError, GatewayError, requests.RequestException) as e:
            logger.error("razorpay %s failed: %s", what, e)
            raise ExternalServiceFailure(
                "We couldn't reach the payment provider. Please try again.",
                code="PAYMENT_PROVIDER_ERROR",
            )

    def create_order(self, amount_minor: int, receipt: str, notes: dict | None = None) -> dict:
        data = {"amount": int(amount_minor), "currency": self.currency, "receipt": receipt}
        if notes:
            data["notes"] = notes
        order = self._call("order.create", self.client.order.create, data=data)
        logger.info("razorpay order %s created for %s %s", order.get("id"), amount_minor, self.currency)
        return order

    def fetch_payment(self, payment_id: str) -> dict:
        return self._call("payment.fetch", self.client.payment.fetch, payment_id)


def get_gateway() -> PaymentGateway:
    return current_app.extensions["payment_gateway"]
