"""Unit tests for ReturnService.

Covers:
- Return window measured from the unit's delivery time.
- Item validation: ownership, quantity and claimed amount.
- One open return per unit.
- Status workflow, buyer withdrawal and rejection reasons.
- Completing a return moves the unit to RETURNED.
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from freezegun import freeze_time

from modules.core.context import RequestContext
from modules.core.exceptions import InvalidStateTransition, NotAuthorized, ValidationFailed
from modules.core.models import OutboxEvent
from modules.orders.constants import AggregateStatus, FulfillmentStatus
from modules.returns.constants import RETURN_TRANSITIONS, ReturnStatus
from modules.returns.dtos import CreateReturnDTO, ReturnItemDTO, ReturnStatusUpdateDTO
from modules.returns.exceptions import (
    InvalidReturnItem,
    ReturnAlreadyOpen,
    ReturnWindowExpired,
    UnitNotReturnable,
)

pytestmark = pytest.mark.unit

R = ReturnStatus

REASON = "The mug arrived with a cracked handle."


@pytest.fixture()
def delivered_y(scenario_a, advance_unit):
    return advance_unit(scenario_a.unit_y)


def _request(unit, quantity=1, amount="354.00", item=None):
    item = item or unit.items.get()
    return CreateReturnDTO(
        unit_id=unit.id,
        reason=REASON,
        items=[ReturnItemDTO(item_id=item.id, quantity=quantity, refund_amount=Decimal(amount))],
    )


def _buyer(scenario_a):
    return RequestContext.buyer(scenario_a.buyer_id)


def _seller_moves(service, return_request, *statuses, **fields):
    ctx = RequestContext.seller(return_request.unit.seller_id)
    for status in statuses:
        return_request = service.update_status(
            ctx, ReturnStatusUpdateDTO(return_id=return_request.id, status=status, **fields)
        )
    return return_request


# ---------------------------------------------------------------------------
# Return window
# ---------------------------------------------------------------------------


class TestReturnWindow:
    def test_day_seven_is_allowed(self, return_service, scenario_a, delivered_y):
        now = delivered_y.delivered_at + timedelta(days=7)
        return_request = return_service.create_return(
            _buyer(scenario_a), _request(delivered_y), now=now
        )
        assert return_request.status == R.REQUESTED

    def test_last_day_counts_in_full(self, return_service, scenario_a, delivered_y):
        now = delivered_y.delivered_at + timedelta(days=7, hours=23)
        return_request = return_service.create_return(
            _buyer(scenario_a), _request(delivered_y), now=now
        )
        assert return_request.status == R.REQUESTED

    def test_day_eight_is_expired(self, return_service, scenario_a, delivered_y):
        now = delivered_y.delivered_at + timedelta(days=8)
        with pytest.raises(ReturnWindowExpired) as exc_info:
            return_service.create_return(_buyer(scenario_a), _request(delivered_y), now=now)
        assert exc_info.value.code == "return_window_expired"

    def test_uses_the_clock_by_default(self, return_service, scenario_a, delivered_y):
        with freeze_time(delivered_y.delivered_at + timedelta(days=8, minutes=1)):
            with pytest.raises(ReturnWindowExpired):
                return_service.create_return(_buyer(scenario_a), _request(delivered_y))

    def test_window_follows_settings(self, settings, return_service, scenario_a, delivered_y):
        settings.RETURN_WINDOW_DAYS = 30
        now = delivered_y.delivered_at + timedelta(days=20)
        return_request = return_service.create_return(
            _buyer(scenario_a), _request(delivered_y), now=now
        )
        assert return_request.status == R.REQUESTED

    def test_undelivered_unit(self, return_service, scenario_a, advance_unit):
        unit = advance_unit(scenario_a.unit_y, FulfillmentStatus.OUT_FOR_DELIVERY)
        with pytest.raises(UnitNotReturnable) as exc_info:
            return_service.create_return(_buyer(scenario_a), _request(unit))
        assert exc_info.value.code == "unit_not_delivered"


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateReturn:
    def test_created_with_items(self, return_service, scenario_a, delivered_y):
        return_request = return_service.create_return(_buyer(scenario_a), _request(delivered_y))

        assert re.match(r"^RET-\d{4}-\d{5}$", return_request.return_number)
        assert return_request.buyer_id == scenario_a.buyer_id
        assert return_request.pickup_address["city"] == "Pune"
        item = return_request.items.get()
        assert item.quantity == 1
        assert item.refund_amount == Decimal("354.00")
        assert return_request.claimed_amount == Decimal("354.00")
        assert OutboxEvent.objects.filter(
            event_type="ReturnStatusChanged", topic="returns"
        ).exists()

    def test_numbers_are_sequential(self, return_service, scenario_a, delivered_y, advance_unit):
        first = return_service.create_return(_buyer(scenario_a), _request(delivered_y))
        delivered_x = advance_unit(scenario_a.unit_x)
        second = return_service.create_return(
            _buyer(scenario_a), _request(delivered_x, amount="590.00")
        )
        assert int(second.return_number[-5:]) == int(first.return_number[-5:]) + 1

    def test_only_the_buyer(self, return_service, scenario_a, delivered_y):
        with pytest.raises(NotAuthorized):
            return_service.create_return(
                RequestContext.seller(scenario_a.seller_y), _request(delivered_y)
            )

    def test_foreign_item(self, return_service, scenario_a, delivered_y):
        foreign = scenario_a.unit_x.items.get()
        with pytest.raises(InvalidReturnItem) as exc_info:
            return_service.create_return(
                _buyer(scenario_a), _request(delivered_y, item=foreign)
            )
        assert exc_info.value.code == "item_not_in_unit"
        assert exc_info.value.attr == "items"

    def test_quantity_above_ordered(self, return_service, scenario_a, delivered_y):
        with pytest.raises(InvalidReturnItem) as exc_info:
            return_service.create_return(
                _buyer(scenario_a), _request(delivered_y, quantity=3, amount="1.00")
            )
        assert exc_info.value.code == "return_quantity_exceeded"

    def test_claim_above_paid(self, return_service, scenario_a, delivered_y):
        with pytest.raises(InvalidReturnItem) as exc_info:
            return_service.create_return(
                _buyer(scenario_a), _request(delivered_y, amount="354.01")
            )
        assert exc_info.value.code == "refund_amount_exceeded"

    def test_full_quantity_claim(self, return_service, scenario_a, delivered_y):
        return_request = return_service.create_return(
            _buyer(scenario_a), _request(delivered_y, quantity=2, amount="708.00")
        )
        assert return_request.claimed_amount == Decimal("708.00")

    def test_one_open_return_per_unit(self, return_service, scenario_a, delivered_y):
        return_service.create_return(_buyer(scenario_a), _request(delivered_y))
        with pytest.raises(ReturnAlreadyOpen) as exc_info:
            return_service.create_return(_buyer(scenario_a), _request(delivered_y))
        assert exc_info.value.code == "return_already_exists"

    def test_new_return_after_withdrawal(self, return_service, scenario_a, delivered_y):
        first = return_service.create_return(_buyer(scenario_a), _request(delivered_y))
        return_service.update_status(
            _buyer(scenario_a),
            ReturnStatusUpdateDTO(return_id=first.id, status=R.CANCELLED),
        )
        second = return_service.create_return(_buyer(scenario_a), _request(delivered_y))
        assert second.id != first.id

    def test_short_reason_is_rejected(self, delivered_y):
        with pytest.raises(ValueError):
            CreateReturnDTO(
                unit_id=delivered_y.id,
                reason="Broken",
                items=[
                    ReturnItemDTO(item_id=uuid4(), quantity=1, refund_amount=Decimal("1"))
                ],
            )


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class TestReturnWorkflow:
    @pytest.fixture()
    def requested(self, return_service, scenario_a, delivered_y):
        return return_service.create_return(_buyer(scenario_a), _request(delivered_y))

    def test_happy_path_returns_the_unit(self, return_service, scenario_a, requested, advance_unit):
        advance_unit(scenario_a.unit_x)

        completed = _seller_moves(
            return_service,
            requested,
            R.APPROVED,
            R.PICKED_UP,
            R.IN_TRANSIT,
            R.RECEIVED,
            R.INSPECTED,
            R.COMPLETED,
        )

        assert completed.status == R.COMPLETED
        assert completed.approved_at is not None
        assert completed.completed_at is not None
        scenario_a.unit_y.refresh_from_db()
        scenario_a.order.refresh_from_db()
        assert scenario_a.unit_y.status == FulfillmentStatus.RETURNED
        assert scenario_a.order.status == AggregateStatus.PARTIALLY_RETURNED

    def test_rejection_needs_a_reason(self, return_service, requested):
        with pytest.raises(ValidationFailed) as exc_info:
            _seller_moves(return_service, requested, R.REJECTED)
        assert exc_info.value.code == "rejection_reason_required"

    def test_rejection(self, return_service, requested):
        rejected = _seller_moves(
            return_service, requested, R.REJECTED, rejection_reason="Item shows use."
        )
        assert rejected.status == R.REJECTED
        assert rejected.rejection_reason == "Item shows use."
        assert rejected.rejected_at is not None

    def test_tracking_number_is_kept(self, return_service, requested):
        moved = _seller_moves(return_service, requested, R.APPROVED)
        moved = _seller_moves(return_service, moved, R.PICKED_UP, tracking_number="RTN42")
        assert moved.tracking_number == "RTN42"

    def test_skipping_states(self, return_service, requested):
        with pytest.raises(InvalidStateTransition):
            _seller_moves(return_service, requested, R.RECEIVED)

    def test_buyer_withdraws_requested_return(self, return_service, scenario_a, requested):
        cancelled = return_service.update_status(
            _buyer(scenario_a), ReturnStatusUpdateDTO(return_id=requested.id, status=R.CANCELLED)
        )
        assert cancelled.status == R.CANCELLED

    def test_buyer_cannot_withdraw_after_approval(self, return_service, scenario_a, requested):
        approved = _seller_moves(return_service, requested, R.APPROVED)
        with pytest.raises(NotAuthorized):
            return_service.update_status(
                _buyer(scenario_a),
                ReturnStatusUpdateDTO(return_id=approved.id, status=R.CANCELLED),
            )

    def test_buyer_cannot_approve(self, return_service, scenario_a, requested):
        with pytest.raises(NotAuthorized):
            return_service.update_status(
                _buyer(scenario_a),
                ReturnStatusUpdateDTO(return_id=requested.id, status=R.APPROVED),
            )

    def test_other_seller_is_refused(self, return_service, scenario_a, requested):
        with pytest.raises(NotAuthorized):
            return_service.update_status(
                RequestContext.seller(scenario_a.seller_x),
                ReturnStatusUpdateDTO(return_id=requested.id, status=R.APPROVED),
            )

    def test_parties_can_read(self, return_service, scenario_a, requested):
        assert return_service.get_return(_buyer(scenario_a), requested.id).id == requested.id
        assert (
            return_service.get_return(RequestContext.seller(scenario_a.seller_y), requested.id).id
            == requested.id
        )
        with pytest.raises(NotAuthorized):
            return_service.get_return(RequestContext.buyer(uuid4()), requested.id)


class TestReturnTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(RETURN_TRANSITIONS) == set(R.values)

    @pytest.mark.parametrize("terminal", [R.REJECTED, R.COMPLETED, R.CANCELLED])
    def test_terminal_states(self, terminal):
        assert RETURN_TRANSITIONS[terminal] == set()

    def test_rejection_after_inspection(self):
        assert R.REJECTED in RETURN_TRANSITIONS[R.INSPECTED]
