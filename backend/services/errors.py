# backend/services/errors.py
"""
Typed failures raised by the cart, checkout and order services.

Each error carries a stable machine ``code`` and the HTTP status the API layer
answers with, so routes map them without inspecting message strings.
"""


class MarketplaceError(Exception):
    code = "MarketplaceError"
    status_code = 400

    def __init__(self, message: str = None, **context):
        self.message = message or self.default_message()
        self.context = context
        super().__init__(self.message)

    def default_message(self) -> str:
        return self.code

    def to_detail(self) -> dict:
        detail = {"code": self.code, "message": self.message}
        detail.update(self.context)
        return detail


# Validation errors
class InvalidQuantity(MarketplaceError):
    code = "InvalidQuantity"
    status_code = 400

    def default_message(self):
        return "Quantity must be at least 1"


class EmptyCart(MarketplaceError):
    code = "EmptyCart"
    status_code = 400

    def default_message(self):
        return "Cart is empty"


# State errors
class ItemNotFound(MarketplaceError):
    code = "ItemNotFound"
    status_code = 404

    def __init__(self, item_id: int):
        super().__init__(f"Plant {item_id} not found", item_id=item_id)


class ItemUnavailable(MarketplaceError):
    code = "ItemUnavailable"
    status_code = 409

    def __init__(self, item_id: int):
        super().__init__(f"Plant {item_id} is out of stock", item_id=item_id)


class ItemBecameUnavailable(MarketplaceError):
    code = "ItemBecameUnavailable"
    status_code = 409

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Plant {item_id} is no longer available", item_id=item_id)


class LineNotFound(MarketplaceError):
    code = "LineNotFound"
    status_code = 404

    def __init__(self, item_id: int):
        super().__init__(f"Cart item for plant {item_id} not found", item_id=item_id)


class OrderNotFound(MarketplaceError):
    code = "OrderNotFound"
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", order_id=order_id)


class Forbidden(MarketplaceError):
    code = "Forbidden"
    status_code = 403

    def default_message(self):
        return "You don't have permission to access this resource"


class InvalidStatusTransition(MarketplaceError):
    code = "InvalidStatusTransition"
    status_code = 400

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change status from {current} to {requested}",
            current=current,
            requested=requested,
        )


# Payment outcome
class PaymentFailed(MarketplaceError):
    code = "PaymentFailed"
    status_code = 402

    def default_message(self):
        return "Payment was declined"


# Transient infrastructure errors
class GatewayUnavailable(MarketplaceError):
    code = "GatewayUnavailable"
    status_code = 502

    def default_message(self):
        return "Payment service is unavailable, please retry"


class CheckoutFailed(MarketplaceError):
    code = "CheckoutFailed"
    status_code = 503

    def default_message(self):
        return "Checkout could not be completed, please retry"
