"""Workflow transition table."""

import pytest

from orderflow.models import OrderStatus, TERMINAL_STATUSES
from orderflow.services.orders.transitions import is_terminal, is_valid_transition, next_statuses


@pytest.mark.parametrize("path", [
    ["new", "confirmed", "preparing", "ready", "completed"],
    ["new", "confirmed", "preparing", "ready", "out_for_delivery", "completed"],
])
def test_happy_paths_are_allowed(path):
    for current, nxt in zip(path, path[1:]):
        assert is_valid_transition(current, nxt)


@pytest.mark.parametrize("status", ["new", "confirmed", "preparing", "ready", "out_for_delivery"])
def test_cancel_allowed_from_every_active_status(status):
    assert is_valid_transition(status, OrderStatus.CANCELLED)


@pytest.mark.parametrize("terminal", sorted(s.value for s in TERMINAL_STATUSES))
def test_terminal_statuses_have_no_exit(terminal):
    assert is_terminal(terminal)
    assert next_statuses(terminal) == []
    for target in OrderStatus:
        assert not is_valid_transition(terminal, target)


@pytest.mark.parametrize("current,target", [
    ("new", "ready"),
    ("confirmed", "new"),
    ("preparing", "out_for_delivery"),
    ("new", "new"),
])
def test_skips_and_reversals_are_rejected(current, target):
    assert not is_valid_transition(current, target)


def test_next_statuses_from_ready():
    assert next_statuses(OrderStatus.READY) == [
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    ]
