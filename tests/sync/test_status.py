"""Tests for the order status state machine."""

import pytest

from src.deliverysync.sync.domain.status import (
    EventCode,
    OrderStatus,
    initial_status,
    resolve_transition,
)


class TestEventCodeParse:
    """Tests for parsing raw upstream codes."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("PLC", EventCode.PLACED),
            ("plc", EventCode.PLACED),
            ("placed", EventCode.PLACED),
            ("CFM", EventCode.CONFIRMED),
            ("Confirmed", EventCode.CONFIRMED),
            ("RDR", EventCode.READY_FOR_DISPATCH),
            ("ready-for-dispatch", EventCode.READY_FOR_DISPATCH),
            ("READY_TO_PICKUP", EventCode.READY_FOR_DISPATCH),
            ("DSP", EventCode.DISPATCHED),
            ("dispatched", EventCode.DISPATCHED),
            ("CON", EventCode.CONCLUDED),
            ("CAN", EventCode.CANCELED),
            ("cancelled", EventCode.CANCELED),
            (" can ", EventCode.CANCELED),
        ],
    )
    def test_known_codes(self, raw, expected):
        assert EventCode.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["XYZ", "", "   ", None, 42, "delivered"])
    def test_unknown_codes_return_none(self, raw):
        assert EventCode.parse(raw) is None


class TestInitialStatus:
    """New orders start pending unless the first event is a cancel."""

    def test_canceled_creates_canceled(self):
        assert initial_status(EventCode.CANCELED) is OrderStatus.CANCELED

    @pytest.mark.parametrize(
        "code",
        [
            EventCode.PLACED,
            EventCode.CONFIRMED,
            EventCode.READY_FOR_DISPATCH,
            EventCode.DISPATCHED,
            EventCode.CONCLUDED,
        ],
    )
    def test_other_codes_create_pending(self, code):
        assert initial_status(code) is OrderStatus.PENDING


class TestResolveTransition:
    """Tests for transitions of existing orders."""

    @pytest.mark.parametrize("code", list(EventCode))
    def test_canceled_is_absorbing(self, code):
        assert resolve_transition(OrderStatus.CANCELED, code) is OrderStatus.CANCELED

    @pytest.mark.parametrize("status", [s for s in OrderStatus if s is not OrderStatus.CANCELED])
    def test_cancel_is_unconditional(self, status):
        assert resolve_transition(status, EventCode.CANCELED) is OrderStatus.CANCELED

    def test_forward_moves(self):
        assert resolve_transition(OrderStatus.PENDING, EventCode.CONFIRMED) is OrderStatus.PREPARING
        assert resolve_transition(OrderStatus.PENDING, EventCode.DISPATCHED) is OrderStatus.DISPATCHED
        assert resolve_transition(OrderStatus.DISPATCHED, EventCode.CONCLUDED) is OrderStatus.COMPLETED

    def test_placed_never_changes_existing_order(self):
        for status in OrderStatus:
            assert resolve_transition(status, EventCode.PLACED) is status

    def test_late_events_do_not_move_backward(self):
        assert resolve_transition(OrderStatus.COMPLETED, EventCode.DISPATCHED) is OrderStatus.COMPLETED
        assert resolve_transition(OrderStatus.DISPATCHED, EventCode.CONFIRMED) is OrderStatus.DISPATCHED
        assert resolve_transition(OrderStatus.PREPARING, EventCode.READY_FOR_DISPATCH) is OrderStatus.PREPARING

    @pytest.mark.parametrize("status", list(OrderStatus))
    @pytest.mark.parametrize("code", list(EventCode))
    def test_applying_twice_equals_applying_once(self, status, code):
        once = resolve_transition(status, code)
        assert resolve_transition(once, code) is once

    @pytest.mark.parametrize("status", list(OrderStatus))
    @pytest.mark.parametrize("code", list(EventCode))
    def test_rank_never_decreases(self, status, code):
        assert resolve_transition(status, code).rank >= status.rank
