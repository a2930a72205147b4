"""
Tests for PositionBook.

Validates that:
1. Insert enforces unique ids and fixed-at-open invariants
2. partition() puts every position in exactly one list, preserving order
3. Reads hand out copies, never live entries
"""

from dataclasses import replace

import pytest

from perpsim.sim import PositionBook, Side, check_position_invariants

from conftest import make_position


class TestInsert:
    """Adding positions to the book."""

    def test_insert_and_get(self):
        book = PositionBook()
        position = make_position(position_id="a")
        book.insert(position)

        assert len(book) == 1
        assert "a" in book
        assert book.get("a") is position
        assert book.get("missing") is None

    def test_duplicate_id_raises(self):
        book = PositionBook()
        book.insert(make_position(position_id="a"))
        with pytest.raises(ValueError, match="Duplicate"):
            book.insert(make_position(position_id="a"))

    def test_inconsistent_notional_raises(self):
        book = PositionBook()
        broken = replace(make_position(), notional=999.0)
        with pytest.raises(ValueError, match="notional"):
            book.insert(broken)
        assert len(book) == 0

    def test_valid_position_has_no_invariant_errors(self):
        assert check_position_invariants(make_position(leverage=5.0)) == []

    def test_leverage_below_one_is_invalid(self):
        errors = check_position_invariants(make_position(leverage=0.5))
        assert any("leverage" in e for e in errors)


class TestPartition:
    """Liquidation-style partition of the book."""

    def test_partition_splits_and_keeps_order(self):
        book = PositionBook()
        for i, upnl in enumerate([0.0, -80.0, 5.0, -90.0]):
            book.insert(make_position(position_id=f"p{i}", upnl=upnl))

        retained, removed = book.partition(lambda p: p.unrealized_pnl < -50.0)

        assert [p.position_id for p in retained] == ["p0", "p2"]
        assert [p.position_id for p in removed] == ["p1", "p3"]
        assert [p.position_id for p in book] == ["p0", "p2"]

    def test_partition_of_empty_book(self):
        retained, removed = PositionBook().partition(lambda p: True)
        assert retained == []
        assert removed == []


class TestReads:
    """Snapshots and iteration."""

    def test_snapshot_returns_copies(self):
        book = PositionBook()
        book.insert(make_position(position_id="a"))

        copy = book.snapshot()[0]
        copy.unrealized_pnl = 1234.0

        assert book.get("a").unrealized_pnl == 0.0

    def test_remove_during_iteration(self):
        book = PositionBook()
        for i in range(3):
            book.insert(make_position(position_id=f"p{i}"))

        for position in book:
            book.remove(position.position_id)

        assert len(book) == 0

    def test_mark_to_market_updates_pnl(self):
        book = PositionBook()
        book.insert(make_position(side=Side.SHORT, position_id="s"))
        book.mark_to_market(90.0)

        short = book.get("s")
        assert short.mark_price == 90.0
        assert short.unrealized_pnl == pytest.approx(30.0)
        assert short.unrealized_pnl_percent == pytest.approx(30.0)
