"""Django ORM implementation of ``IReturnRepository``.

Status writes are ``UPDATE ... WHERE id=? AND status=<expected>``; zero
rows means another writer won and the caller gets
``ConcurrentModification``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Model
from django.utils import timezone

from modules.core.exceptions import ConcurrentModification
from modules.orders.models import FulfillmentUnit
from modules.returns.constants import (
    REFUND_SETTLED_STATES,
    RETURN_TERMINAL_STATES,
    RETURN_TIMESTAMPS,
    RefundStatus,
)
from modules.returns.models import Refund, ReturnItem, ReturnRequest
from modules.returns.repositories.interfaces import IReturnRepository
from shared.infrastructure.outbox import flush_domain_events

logger = structlog.get_logger(__name__)


class ReturnDjangoRepository(IReturnRepository):
    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[ReturnRequest]:
        try:
            return (
                ReturnRequest.objects.select_related("unit__order")
                .prefetch_related("items__fulfillment_item", "unit__items")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[ReturnRequest]:
        qs = ReturnRequest.objects.select_related("unit").prefetch_related("items")
        if filters:
            qs = qs.filter(**filters)
        return list(qs)

    def has_open_return(self, unit_id: UUID) -> bool:
        return (
            ReturnRequest.objects.filter(unit_id=unit_id)
            .exclude(status__in=RETURN_TERMINAL_STATES)
            .exists()
        )

    def get_refund(self, id: Any) -> Optional[Refund]:
        try:
            return (
                Refund.objects.select_related("return_request__unit__order")
                .prefetch_related("return_request__items__fulfillment_item")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def refund_for_return(self, return_id: UUID) -> Optional[Refund]:
        return Refund.objects.filter(return_request_id=return_id).first()

    def open_refund_for_unit(self, unit_id: UUID) -> Optional[Refund]:
        return (
            Refund.objects.filter(return_request__unit_id=unit_id)
            .exclude(status__in=REFUND_SETTLED_STATES)
            .first()
        )

    def lock_unit(self, unit_id: UUID) -> None:
        list(
            FulfillmentUnit.objects.select_for_update()
            .filter(id=unit_id)
            .values_list("id", flat=True)
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: ReturnRequest) -> ReturnRequest:
        entity.save()
        flush_domain_events(entity, topic="returns")
        return entity

    @transaction.atomic
    def add_items(self, items: List[ReturnItem]) -> List[ReturnItem]:
        for item in items:
            item.save()
        return items

    @transaction.atomic
    def transition_return(
        self,
        return_request: ReturnRequest,
        new_status: str,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> ReturnRequest:
        stamp = RETURN_TIMESTAMPS.get(new_status)
        fields = dict(extra_fields or {})
        if stamp:
            fields[stamp] = timezone.now()
        self._guarded_update(return_request, new_status, fields, label=return_request.return_number)
        flush_domain_events(return_request, topic="returns")
        return return_request

    @transaction.atomic
    def save_refund(self, refund: Refund) -> Refund:
        refund.save()
        flush_domain_events(refund, topic="refunds")
        return refund

    @transaction.atomic
    def transition_refund(
        self,
        refund: Refund,
        new_status: str,
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> Refund:
        fields = dict(extra_fields or {})
        if new_status == RefundStatus.COMPLETED:
            fields["processed_at"] = timezone.now()
        self._guarded_update(refund, new_status, fields, label=refund.refund_number)
        flush_domain_events(refund, topic="refunds")
        return refund

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _guarded_update(
        instance: Model, new_status: str, fields: Dict[str, Any], label: str
    ) -> None:
        expected = instance.status
        changes = {**fields, "status": new_status, "updated_at": timezone.now()}
        updated = (
            type(instance)
            .objects.filter(id=instance.id, status=expected)
            .update(**changes)
        )
        if not updated:
            logger.warning(
                "returns.concurrent_modification",
                record=label,
                expected_status=expected,
                target_status=new_status,
            )
            raise ConcurrentModification(f"{label} changed while being updated.")
        for field, value in changes.items():
            setattr(instance, field, value)
