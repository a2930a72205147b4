"""
Position book.

Owns the set of open positions in insertion order and enforces per-position
invariants at insertion:
- notional = collateral x leverage
- size_index = notional / entry_price
- maintenance_margin > 0 and < notional

Lifecycle:
- insert(): only called by the order gate after a successful open
- mark_to_market() / funding: mutate positions in place
- remove() / partition(): the only ways a position leaves the book
"""

import math
from copy import copy
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .types import Position, PositionId

# Relative tolerance for fixed-at-open invariants
_REL_TOL = 1e-9


class PositionBook:
    """Ordered collection of open positions keyed by position_id."""

    def __init__(self):
        self._positions: Dict[PositionId, Position] = {}

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[Position]:
        return iter(list(self._positions.values()))

    def __contains__(self, position_id: object) -> bool:
        return position_id in self._positions

    def get(self, position_id: PositionId) -> Optional[Position]:
        """Live position by id (None if unknown)."""
        return self._positions.get(position_id)

    def snapshot(self) -> List[Position]:
        """Copies of all open positions, oldest first."""
        return [copy(p) for p in self._positions.values()]

    def insert(self, position: Position) -> None:
        """
        Add a newly opened position.

        Raises:
            ValueError: If the id is already in the book or the position
                violates its fixed-at-open invariants
        """
        if position.position_id in self._positions:
            raise ValueError(f"Duplicate position id: {position.position_id}")

        errors = check_position_invariants(position)
        if errors:
            raise ValueError(f"Invalid position {position.position_id}: {errors}")

        self._positions[position.position_id] = position

    def remove(self, position_id: PositionId) -> Optional[Position]:
        """Remove and return a position (None if unknown)."""
        return self._positions.pop(position_id, None)

    def mark_to_market(self, mark_price: float) -> None:
        """Revalue every open position at mark_price."""
        for position in self._positions.values():
            position.mark_to_market(mark_price)

    def partition(
        self,
        should_remove: Callable[[Position], bool],
    ) -> Tuple[List[Position], List[Position]]:
        """
        Split the book in two and keep only the retained side.

        Every position ends up in exactly one of the two lists; order is
        preserved in both.

        Returns:
            (retained, removed)
        """
        retained: List[Position] = []
        removed: List[Position] = []

        for position in self._positions.values():
            if should_remove(position):
                removed.append(position)
            else:
                retained.append(position)

        self._positions = {p.position_id: p for p in retained}
        return retained, removed

    def clear(self) -> None:
        self._positions.clear()


def check_position_invariants(position: Position) -> List[str]:
    """
    Check the fixed-at-open invariants of a position.

    Returns:
        List of error messages (empty if all invariants hold)
    """
    errors = []

    if position.collateral <= 0:
        errors.append(f"collateral must be > 0, got {position.collateral}")
    if position.entry_price <= 0:
        errors.append(f"entry_price must be > 0, got {position.entry_price}")
    if position.leverage < 1:
        errors.append(f"leverage must be >= 1, got {position.leverage}")

    expected_notional = position.collateral * position.leverage
    if not math.isclose(position.notional, expected_notional, rel_tol=_REL_TOL):
        errors.append(
            f"notional ({position.notional}) != collateral x leverage ({expected_notional})"
        )

    if position.entry_price > 0:
        expected_size = position.notional / position.entry_price
        if not math.isclose(position.size_index, expected_size, rel_tol=_REL_TOL):
            errors.append(
                f"size_index ({position.size_index}) != notional / entry_price ({expected_size})"
            )

    if not 0 < position.maintenance_margin < position.notional:
        errors.append(
            f"maintenance_margin ({position.maintenance_margin}) must be in (0, notional)"
        )

    return errors
