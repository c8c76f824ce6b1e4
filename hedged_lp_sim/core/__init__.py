"""Core fixed-point, liquidity and hedge math"""

from .errors import (
    HedgeError, InvalidPriceRange, PriceOutOfRange, DivisionByZero, InvalidInput,
    FixedPointOverflow, FixedPointUnderflow, InsufficientFunds, SlippageExceeded,
    AtomicSequenceFailed, Unauthorized, PositionNotFound, AlreadyClosed,
    InvalidStateTransition
)
from .liquidity_math import LiquidityAllocation, split_value_by_range, simulate_amounts_after_price_move
from .hedge_solver import (
    AllocationMode, HedgeAllocation, allocate_capital, solve_equal_pnl_allocation, static_allocation
)

__all__ = [
    "HedgeError", "InvalidPriceRange", "PriceOutOfRange", "DivisionByZero", "InvalidInput",
    "FixedPointOverflow", "FixedPointUnderflow", "InsufficientFunds", "SlippageExceeded",
    "AtomicSequenceFailed", "Unauthorized", "PositionNotFound", "AlreadyClosed",
    "InvalidStateTransition",
    "LiquidityAllocation", "split_value_by_range", "simulate_amounts_after_price_move",
    "AllocationMode", "HedgeAllocation", "allocate_capital", "solve_equal_pnl_allocation", "static_allocation"
]
