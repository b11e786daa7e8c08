"""
Error taxonomy shared by the booking, inventory and payment services.

Services raise these; routers turn them into HTTP responses with
``to_http_exception`` so the status code lives next to the error it belongs to.
"""

from fastapi import HTTPException, status


class TransportError(Exception):
    """Base class for every expected failure in the booking/payment core"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(TransportError):
    status_code = status.HTTP_400_BAD_REQUEST


class PaymentAmountMismatch(ValidationError):
    """Gateway reported an amount or currency that differs from the payment"""


class NotFound(TransportError):
    status_code = status.HTTP_404_NOT_FOUND


class InsufficientInventory(TransportError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "", booking_id: str = None):
        super().__init__(message)
        self.booking_id = booking_id


class InvalidStateTransition(TransportError):
    status_code = status.HTTP_409_CONFLICT


class AlreadyCancelled(InvalidStateTransition):
    pass


class GatewayError(TransportError):
    status_code = status.HTTP_502_BAD_GATEWAY
    retryable = False


class GatewayUnavailable(GatewayError):
    retryable = True


class GatewayRejected(GatewayError):
    pass


class GatewayTimeout(GatewayError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    retryable = True


class UnknownReference(TransportError):
    status_code = status.HTTP_404_NOT_FOUND


class SignatureInvalid(TransportError):
    status_code = status.HTTP_400_BAD_REQUEST


def to_http_exception(error: TransportError) -> HTTPException:
    """Convert a service error into the HTTPException the routers raise"""
    headers = None
    if isinstance(error, GatewayError) and error.retryable:
        headers = {"Retry-After": "5"}
    return HTTPException(status_code=error.status_code, detail=error.message, headers=headers)
