"""HTTP client for the ZynlePay bill-payment JSON API."""

import logging
import requests
from django.conf import settings

from orders.exceptions import GatewayUnavailable

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Client for initiating mobile-money bill payments."""

    def __init__(self, url=None, timeout=None, credentials=None):
        self.url = url or settings.PAYMENT_GATEWAY_URL
        self.timeout = timeout if timeout is not None else settings.PAYMENT_GATEWAY_TIMEOUT
        self.credentials = credentials or {
            "api_id": settings.PAYMENT_GATEWAY_API_ID,
            "merchant_id": settings.PAYMENT_GATEWAY_MERCHANT_ID,
            "api_key": settings.PAYMENT_GATEWAY_API_KEY,
            "channel": settings.PAYMENT_GATEWAY_CHANNEL,
        }

    def build_payload(self, reference_no, amount, payer_phone):
        return {
            "auth": dict(self.credentials),
            "data": {
                "method": "runBillPayment",
                "receiver_id": payer_phone,
                "reference_no": reference_no,
                "amount": str(amount),
            },
        }

    def run_bill_payment(self, reference_no, amount, payer_phone):
        """
        Ask the gateway to collect ``amount`` from ``payer_phone``.

        The gateway answers asynchronously through the callback endpoint;
        the response returned here only acknowledges the request.
        """
        payload = self.build_payload(reference_no, amount, payer_phone)
        try:
            response = requests.post(
                self.url,
                json=payload,
                headers={"Accept": "*/*"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout:
            logger.error("Payment gateway timed out after %ss for %s", self.timeout, reference_no)
            raise GatewayUnavailable("Payment gateway timed out, try again.")
        except requests.exceptions.RequestException as e:
            logger.error("Payment gateway error for %s: %s", reference_no, e)
            raise GatewayUnavailable()

        try:
            return response.json()
        except ValueError:
            return {"raw": response.text}
