"""Typed request context passed explicitly into every service call."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from django.db import models

from modules.core.exceptions import NotAuthorized

SYSTEM_ACTOR_ID = UUID(int=0)


class ActorKind(models.TextChoices):
    BUYER = "buyer", "Buyer"
    SELLER = "seller", "Seller"
    ADMIN = "admin", "Admin"
    SYSTEM = "system", "System"


@dataclass(frozen=True)
class RequestContext:
    """Who is acting.

    Views derive it from the authenticated principal; webhook handlers and
    celery tasks use ``RequestContext.system()``.
    """

    actor_id: UUID
    actor_kind: ActorKind

    @classmethod
    def system(cls) -> RequestContext:
        return cls(actor_id=SYSTEM_ACTOR_ID, actor_kind=ActorKind.SYSTEM)

    @classmethod
    def buyer(cls, actor_id: UUID) -> RequestContext:
        return cls(actor_id=actor_id, actor_kind=ActorKind.BUYER)

    @classmethod
    def seller(cls, actor_id: UUID) -> RequestContext:
        return cls(actor_id=actor_id, actor_kind=ActorKind.SELLER)

    @classmethod
    def admin(cls, actor_id: UUID) -> RequestContext:
        return cls(actor_id=actor_id, actor_kind=ActorKind.ADMIN)

    @property
    def is_privileged(self) -> bool:
        return self.actor_kind in (ActorKind.ADMIN, ActorKind.SYSTEM)

    @property
    def audit_id(self) -> UUID | None:
        """Actor id to record in audit trails (``None`` for the system)."""
        if self.actor_kind == ActorKind.SYSTEM:
            return None
        return self.actor_id

    def require_buyer(self, buyer_id: UUID) -> None:
        """Allow the owning buyer or a privileged actor."""
        if self.is_privileged:
            return
        if self.actor_kind != ActorKind.BUYER or self.actor_id != buyer_id:
            raise NotAuthorized("You do not have access to this order.")

    def require_seller(self, seller_id: UUID) -> None:
        """Allow the owning seller or a privileged actor."""
        if self.is_privileged:
            return
        if self.actor_kind != ActorKind.SELLER or self.actor_id != seller_id:
            raise NotAuthorized("This fulfillment unit belongs to another seller.")

    def require_party(self, buyer_id: UUID, seller_id: UUID) -> None:
        """Allow either side of a fulfillment unit."""
        if self.is_privileged:
            return
        if self.actor_kind == ActorKind.BUYER and self.actor_id == buyer_id:
            return
        if self.actor_kind == ActorKind.SELLER and self.actor_id == seller_id:
            return
        raise NotAuthorized("You are not a party to this fulfillment unit.")


def context_from_request(request) -> RequestContext:
    """Build the acting context from an authenticated DRF request."""
    context = getattr(request.user, "context", None)
    if not isinstance(context, RequestContext):
        raise NotAuthorized("The authenticated principal is not a platform actor.")
    return context
