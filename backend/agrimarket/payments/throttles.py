from rest_framework.throttling import SimpleRateThrottle


class PerOrderPaymentThrottle(SimpleRateThrottle):
    """Limits how often one buyer can push the same order to the gateway."""
    scope = "payment_initiate"

    def get_cache_key(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return None
        order_id = request.data.get("orderId")
        if not order_id:
            return None

        ident = f"user:{request.user.id}:order:{order_id}"
        return self.cache_format % {"scope": self.scope, "ident": ident}
