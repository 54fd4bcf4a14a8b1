"""Seller exceptions."""

from __future__ import annotations

from modules.core.exceptions import NotFound


class SellerNotFound(NotFound):
    """No seller profile exists for the given seller id."""

    default_code = "seller_not_found"
