"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each maps
onto the shared error taxonomy so the DRF handler can render it.
"""

from __future__ import annotations

from modules.core.exceptions import NotFound, ValidationFailed


class OrderNotFound(NotFound):
    """The requested aggregate order does not exist."""

    default_code = "order_not_found"


class UnitNotFound(NotFound):
    """The requested fulfillment unit does not exist."""

    default_code = "unit_not_found"


class EmptyCart(ValidationFailed):
    """The buyer has no active cart, or it holds no lines."""

    default_code = "empty_cart"


class ProductNotFound(NotFound):
    """A cart line references a variant the inventory does not know."""

    default_code = "product_not_found"


class InsufficientStock(ValidationFailed):
    """Not enough stock to fulfil a line; names the product."""

    default_code = "insufficient_stock"

    def __init__(self, product_name: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for '{product_name}': "
            f"requested {requested}, available {available}.",
            attr="items",
        )
        self.product_name = product_name
        self.requested = requested
        self.available = available


class OrderNotCancellable(ValidationFailed):
    """At least one unit has progressed past the cancellable states."""

    default_code = "order_not_cancellable"
