"""Seller profile look-ups and upserts."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.sellers.exceptions import SellerNotFound
from modules.sellers.models import SellerProfile

logger = structlog.get_logger(__name__)


class SellerDirectory:
    """Read/write access to ``SellerProfile`` by the external seller id."""

    def find(self, seller_id: UUID) -> Optional[SellerProfile]:
        return SellerProfile.objects.filter(seller_id=seller_id).first()

    def get(self, seller_id: UUID) -> SellerProfile:
        profile = self.find(seller_id)
        if profile is None:
            raise SellerNotFound(f"Seller {seller_id} has no profile.")
        return profile

    def state_of(self, seller_id: UUID) -> str:
        """Registered state, or ``""`` when the seller has no profile yet."""
        profile = self.find(seller_id)
        return profile.state if profile else ""

    @transaction.atomic
    def upsert(self, seller_id: UUID, **fields: Any) -> SellerProfile:
        profile, created = SellerProfile.objects.update_or_create(
            seller_id=seller_id, defaults=fields
        )
        logger.info(
            "seller.profile_saved", seller_id=str(seller_id), is_new=created
        )
        return profile

    def pickup_address(self, seller_id: UUID) -> Dict[str, Any]:
        profile = self.get(seller_id)
        address = dict(profile.pickup_address or {})
        address.setdefault("name", profile.display_name)
        address.setdefault("state", profile.state)
        if profile.phone:
            address.setdefault("phone", profile.phone)
        return address
