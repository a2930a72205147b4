"""
Account ledger with invariants.

Maintains the cross-margin account model:
- deposited: collateral deposits minus withdrawals
- realized_pnl: gross PnL of every closed/liquidated position
- total_fees_paid: open/close fees and liquidation penalties
- total_funding_paid: funding settled across all positions (negative = received)

Derived metrics (recomputed after every mutation, never authoritative):
- raw_equity = deposited + realized_pnl - total_fees_paid - total_funding_paid
               + sum(unrealized_pnl) - sum(realized_funding)
- equity = max(0, raw_equity)
- total_initial_margin = sum(notional x IMF)
- total_maintenance_margin = sum(maintenance_margin)
- free_margin = max(0, raw_equity - total_initial_margin)
- margin_ratio = total_maintenance_margin / raw_equity   (0 if raw_equity <= 0)
- account_leverage = total_notional / raw_equity         (0 if raw_equity <= 0)

Invariants:
1. deposited >= 0
2. equity >= 0 (clamped)
3. free_margin <= equity
4. the cached metrics equal compute_metrics() of the current state
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .types import AccountMetrics, AccountState, Position, RejectReason


@dataclass
class LedgerConfig:
    """Configuration for ledger accounting."""
    initial_margin_fraction: float = 0.20
    debug_check_invariants: bool = False  # Check invariants after every mutation


class AccountLedger:
    """
    Account ledger for a single simulated session.

    Owns balances and the cached metrics snapshot. Does not own positions:
    every recompute is handed the current book contents.
    """

    def __init__(self, config: Optional[LedgerConfig] = None):
        self._config = config or LedgerConfig()
        self.reset()

    def reset(self) -> None:
        """Zero all balances (new session)."""
        self._deposited = 0.0
        self._realized_pnl = 0.0
        self._total_fees_paid = 0.0
        self._total_funding_paid = 0.0
        self._metrics = AccountMetrics()

    # ─────────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> AccountState:
        """Get current account balances."""
        return AccountState(
            deposited=self._deposited,
            realized_pnl=self._realized_pnl,
            total_fees_paid=self._total_fees_paid,
            total_funding_paid=self._total_funding_paid,
        )

    @property
    def metrics(self) -> AccountMetrics:
        """Metrics as of the last recompute."""
        return self._metrics

    @property
    def deposited(self) -> float:
        return self._deposited

    # ─────────────────────────────────────────────────────────────────────────
    # Metrics
    # ─────────────────────────────────────────────────────────────────────────

    def compute_metrics(self, positions: Iterable[Position]) -> AccountMetrics:
        """
        Compute account metrics from current balances and positions.

        Pure: does not touch the cached snapshot.
        """
        positions = list(positions)
        imf = self._config.initial_margin_fraction

        total_unrealized = sum(p.unrealized_pnl for p in positions)
        total_position_funding = sum(p.realized_funding for p in positions)
        total_notional = sum(p.notional for p in positions)
        total_initial_margin = sum(p.notional * imf for p in positions)
        total_maintenance_margin = sum(p.maintenance_margin for p in positions)

        raw_equity = (
            self._deposited
            + self._realized_pnl
            - self._total_fees_paid
            - self._total_funding_paid
            + total_unrealized
            - total_position_funding
        )

        if raw_equity > 0:
            margin_ratio = total_maintenance_margin / raw_equity
            account_leverage = total_notional / raw_equity
        else:
            margin_ratio = 0.0
            account_leverage = 0.0

        return AccountMetrics(
            equity=max(0.0, raw_equity),
            total_initial_margin=total_initial_margin,
            total_maintenance_margin=total_maintenance_margin,
            free_margin=max(0.0, raw_equity - total_initial_margin),
            margin_ratio=margin_ratio,
            account_leverage=account_leverage,
            total_unrealized_pnl=total_unrealized,
            total_notional=total_notional,
            raw_equity=raw_equity,
        )

    def recompute(self, positions: Iterable[Position]) -> AccountMetrics:
        """Recompute and cache metrics. Called after every mutation."""
        positions = list(positions)
        self._metrics = self.compute_metrics(positions)

        # Debug mode: check invariants after every mutation
        if self._config.debug_check_invariants:
            errors = self.check_invariants(positions)
            if errors:
                raise AssertionError(f"Ledger invariant violation: {errors}")

        return self._metrics

    def check_invariants(self, positions: Iterable[Position]) -> List[str]:
        """
        Check all ledger invariants.

        Returns:
            List of error messages (empty if all invariants hold)
        """
        errors = []
        m = self._metrics

        if self._deposited < -1e-9:
            errors.append(f"Invariant violated: deposited ({self._deposited:.8f}) < 0")

        if m.equity < 0:
            errors.append(f"Invariant violated: equity ({m.equity:.8f}) < 0")

        if m.free_margin > m.equity + 1e-9:
            errors.append(
                f"Invariant violated: free_margin ({m.free_margin:.8f}) > equity ({m.equity:.8f})"
            )

        expected = self.compute_metrics(positions)
        if abs(expected.raw_equity - m.raw_equity) > 1e-8:
            errors.append(
                f"Invariant violated: cached equity ({m.raw_equity:.8f}) != "
                f"recomputed ({expected.raw_equity:.8f})"
            )

        return errors

    # ─────────────────────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────────────────────

    def deposit(self, amount: float) -> Optional[RejectReason]:
        """
        Add collateral to the account.

        Returns:
            None on success, INVALID_AMOUNT if amount is not a positive number
        """
        if not _is_positive(amount):
            return RejectReason.INVALID_AMOUNT
        self._deposited += amount
        return None

    def withdraw(self, amount: float) -> Optional[RejectReason]:
        """
        Remove collateral from the account.

        Bounded by free margin of the current metrics snapshot.

        Returns:
            None on success, INVALID_AMOUNT or EXCEEDS_FREE_MARGIN otherwise
        """
        if not _is_positive(amount):
            return RejectReason.INVALID_AMOUNT
        if amount > self._metrics.free_margin:
            return RejectReason.EXCEEDS_FREE_MARGIN
        # Withdrawing realized profits beyond deposits draws down realized_pnl
        from_deposit = min(amount, self._deposited)
        self._deposited -= from_deposit
        self._realized_pnl -= amount - from_deposit
        return None

    # ─────────────────────────────────────────────────────────────────────────
    # Trade Accounting
    # ─────────────────────────────────────────────────────────────────────────

    def apply_open_fee(self, fee: float) -> None:
        """Charge the taker fee for a new position."""
        self._total_fees_paid += fee

    def apply_close(self, gross_pnl: float, close_fee: float) -> None:
        """
        Realize a closed position.

        Args:
            gross_pnl: Gross PnL (before fees and funding)
            close_fee: Taker fee on the closing fill
        """
        self._realized_pnl += gross_pnl
        self._total_fees_paid += close_fee

    def apply_funding(self, payment: float) -> None:
        """
        Record a funding payment.

        Positive = paid, negative = received.
        """
        self._total_funding_paid += payment

    def apply_liquidation(self, unrealized_pnl: float, penalty: float) -> None:
        """
        Realize a liquidated position.

        Args:
            unrealized_pnl: PnL at the liquidation mark price
            penalty: Liquidation penalty
        """
        self._realized_pnl += unrealized_pnl
        self._total_fees_paid += penalty


def _is_positive(amount: float) -> bool:
    try:
        return math.isfinite(amount) and amount > 0
    except TypeError:
        return False
