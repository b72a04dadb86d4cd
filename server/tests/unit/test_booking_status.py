"""Unit tests for booking status helpers and labels."""

import pytest

from reservation_engine.models import (
    BOOKING_STATUS_LABELS,
    DEPARTURE_STATUS_LABELS,
    RESOURCE_TYPE_LABELS,
    BookingStatus,
    DepartureStatus,
    ResourceType,
    allowed_transitions,
    can_transition,
    is_active,
    is_terminal,
)


@pytest.mark.parametrize(
    ("current", "target", "expected"),
    [
        (BookingStatus.HELD, BookingStatus.CONFIRMED, True),
        (BookingStatus.HELD, BookingStatus.CANCELLED, True),
        (BookingStatus.HELD, BookingStatus.EXPIRED, True),
        (BookingStatus.CONFIRMED, BookingStatus.CANCELLED, True),
        (BookingStatus.CONFIRMED, BookingStatus.EXPIRED, False),
        (BookingStatus.CONFIRMED, BookingStatus.HELD, False),
        (BookingStatus.CANCELLED, BookingStatus.CONFIRMED, False),
        (BookingStatus.EXPIRED, BookingStatus.HELD, False),
    ],
)
def test_can_transition(current, target, expected):
    assert can_transition(current, target) is expected


def test_helpers_accept_raw_strings():
    """Test that stored string statuses work as well as enum members."""
    assert can_transition("held", "confirmed")
    assert allowed_transitions("confirmed") == {BookingStatus.CANCELLED}
    assert is_terminal("expired")


def test_terminal_and_active_statuses():
    assert {s for s in BookingStatus if is_terminal(s)} == {BookingStatus.CANCELLED, BookingStatus.EXPIRED}
    assert {s for s in BookingStatus if is_active(s)} == {BookingStatus.HELD, BookingStatus.CONFIRMED}
    assert allowed_transitions(BookingStatus.CANCELLED) == frozenset()


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        can_transition("pending", "held")


def test_every_status_and_type_has_a_label():
    assert set(BOOKING_STATUS_LABELS) == set(BookingStatus)
    assert set(DEPARTURE_STATUS_LABELS) == set(DepartureStatus)
    assert set(RESOURCE_TYPE_LABELS) == set(ResourceType)
