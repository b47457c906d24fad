"""
Unit tests for snapshot reconciliation.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from fakes import NOW, FakeOrderLineStore, make_line
from sync_tree_orders.services.reconcile import apply_event_lines, plan_deletions, reconcile


def snapshot_of(*lines):
    return {line.external_id: line for line in lines}


@pytest.mark.unit
def test_inserts_new_lines(order_store: FakeOrderLineStore) -> None:
    result = reconcile(order_store, "acc-1", snapshot_of(make_line("a"), make_line("b")), now=NOW)

    assert result.inserted == 2
    assert set(order_store.lines) == {"a", "b"}


@pytest.mark.unit
def test_repeated_run_is_a_no_op(order_store: FakeOrderLineStore) -> None:
    snapshot = snapshot_of(make_line("a"), make_line("b"))
    reconcile(order_store, "acc-1", snapshot, now=NOW)

    result = reconcile(order_store, "acc-1", snapshot, now=NOW)

    assert result.unchanged == 2
    assert result.upserted == 0
    assert result.deleted == 0
    assert len(order_store.upsert_calls) == 1


@pytest.mark.unit
def test_changed_line_is_updated(order_store: FakeOrderLineStore) -> None:
    reconcile(order_store, "acc-1", snapshot_of(make_line("a")), now=NOW)

    result = reconcile(
        order_store, "acc-1", snapshot_of(make_line("a", quantity=3, amount="17.70")), now=NOW
    )

    assert result.updated == 1
    assert order_store.lines["a"].quantity == 3


@pytest.mark.unit
def test_line_missing_inside_window_is_deleted() -> None:
    """A booking that vanished from the PMS within the window is a cancellation."""
    store = FakeOrderLineStore([make_line("a"), make_line("b", booked_at=NOW - timedelta(days=5))])

    result = reconcile(store, "acc-1", snapshot_of(make_line("a")), window_days=30, now=NOW)

    assert result.deleted == 1
    assert set(store.lines) == {"a"}


@pytest.mark.unit
def test_line_older_than_window_is_kept() -> None:
    old = make_line("old", booked_at=NOW - timedelta(days=31))
    store = FakeOrderLineStore([old])

    result = reconcile(store, "acc-1", {}, window_days=30, now=NOW)

    assert result.deleted == 0
    assert "old" in store.lines


@pytest.mark.unit
def test_empty_snapshot_deletes_nothing() -> None:
    store = FakeOrderLineStore(
        [make_line(f"l{i}", booked_at=NOW - timedelta(days=i)) for i in range(1, 6)]
    )

    result = reconcile(store, "acc-1", {}, window_days=30, now=NOW)

    assert result.deleted == 0
    assert len(store.lines) == 5
    assert store.delete_calls == []


@pytest.mark.unit
def test_deletes_suppressed_for_incomplete_snapshot() -> None:
    store = FakeOrderLineStore([make_line("a")])

    result = reconcile(
        store, "acc-1", snapshot_of(make_line("b")), now=NOW, allow_deletes=False
    )

    assert result.deleted == 0
    assert set(store.lines) == {"a", "b"}
    assert store.delete_calls == []


@pytest.mark.unit
def test_other_accounts_are_untouched() -> None:
    store = FakeOrderLineStore([make_line("x", account_id="acc-2")])

    reconcile(store, "acc-1", snapshot_of(make_line("y")), now=NOW)

    assert "x" in store.lines


@pytest.mark.unit
def test_end_to_end_cancellation_between_runs(order_store: FakeOrderLineStore) -> None:
    """Run 1 sees A and B, run 2 only A: B is deleted, A is untouched."""
    a, b = make_line("A", quantity=4, amount="23.60"), make_line("B")
    reconcile(order_store, "acc-1", snapshot_of(a, b), now=NOW)

    result = reconcile(order_store, "acc-1", snapshot_of(a), now=NOW + timedelta(hours=1))

    assert result.deleted == 1
    assert result.unchanged == 1
    assert set(order_store.lines) == {"A"}


@pytest.mark.unit
def test_plan_deletions_boundary() -> None:
    cutoff = NOW - timedelta(days=30)
    at_cutoff = make_line("edge", booked_at=cutoff)
    before = make_line("before", booked_at=cutoff - timedelta(seconds=1))

    assert plan_deletions([at_cutoff, before], set(), cutoff) == ["edge"]


@pytest.mark.unit
def test_event_lines_never_delete_by_absence() -> None:
    store = FakeOrderLineStore([make_line("a"), make_line("b")])

    result = apply_event_lines(store, "acc-1", [make_line("c")])

    assert result.inserted == 1
    assert result.deleted == 0
    assert set(store.lines) == {"a", "b", "c"}


@pytest.mark.unit
def test_event_cancellation_deletes_only_own_lines() -> None:
    store = FakeOrderLineStore([make_line("a"), make_line("z", account_id="acc-2")])

    result = apply_event_lines(store, "acc-1", [], canceled_ids=["a", "z", "missing"])

    assert result.deleted == 1
    assert set(store.lines) == {"z"}
