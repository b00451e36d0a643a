"""Error taxonomy for the order/payment/stock pipeline.

Every class carries the HTTP status it maps to; ``app.main`` renders them as
``{"message": ...}`` so business failures never leak internals.
"""


class ShopError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ShopError):
    """Malformed or unacceptable input. Never retried server-side."""
    status_code = 400


class EmptyCart(ShopError):
    status_code = 400

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InsufficientStock(ShopError):
    status_code = 400

    def __init__(self, variant_id: int, message: str | None = None):
        super().__init__(message or f"Insufficient stock for variant {variant_id}")
        self.variant_id = variant_id


class InvalidTransition(ShopError):
    status_code = 422


class GatewayUnavailable(ShopError):
    """The payment gateway failed after the bounded retry."""
    status_code = 400


class NotFound(ShopError):
    status_code = 404


class NotificationFailure(ShopError):
    """Raised inside the notification emitter only; always swallowed there."""
    status_code = 500
