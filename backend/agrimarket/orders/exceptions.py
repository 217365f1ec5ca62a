"""
Domain errors for the order fulfillment core.

Every error carries a stable ``default_code`` that ends up in the
response body as ``error``, next to a human readable ``detail``.
"""
from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.views import exception_handler


class InvalidInput(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input."
    default_code = "invalid_input"


class InvalidState(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The order is not in a state that allows this action."
    default_code = "invalid_state"


class AlreadyDelivered(InvalidState):
    default_detail = "Order is already marked as delivered."
    default_code = "already_delivered"


class Forbidden(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to act on this record."
    default_code = "forbidden"


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class AlreadyReviewed(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "You have already reviewed this order."
    default_code = "already_reviewed"


class NotEligible(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "This order cannot be reviewed."
    default_code = "not_eligible"

    def __init__(self, reasons, detail=None):
        super().__init__(detail)
        self.reasons = reasons


class GatewayUnavailable(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Payment gateway is unavailable, try again later."
    default_code = "gateway_unavailable"


def api_exception_handler(exc, context):
    if isinstance(exc, Http404):
        exc = NotFound()
    elif isinstance(exc, PermissionDenied):
        exc = Forbidden(str(exc) or None)
    response = exception_handler(exc, context)
    if response is None or not isinstance(exc, APIException):
        return response

    # serializer validation errors keep DRF's field map under "detail"
    if isinstance(exc, ValidationError):
        detail = exc.detail
        code = InvalidInput.default_code
    elif isinstance(exc.detail, (dict, list)):
        detail = exc.detail
        code = exc.default_code
    else:
        detail = str(exc.detail)
        code = exc.detail.code or exc.default_code

    data = {"error": code, "detail": detail}
    if isinstance(exc, NotEligible):
        data["reasons"] = exc.reasons
    response.data = data
    return response
