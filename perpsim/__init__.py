"""
PERPSIM - Simulated Perpetual Futures Ledger

Single-account, cross-margin perpetual simulation: collateral, leveraged
positions, funding accrual and mark-based liquidation against a live
reference price.
"""

__version__ = "1.0.0"
__author__ = "PERPSIM"
