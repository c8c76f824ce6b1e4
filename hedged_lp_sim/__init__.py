"""
Hedged LP Simulator

Delta-neutral liquidity provision: sizes a concentrated-liquidity position
and an offsetting leveraged short, and manages both through atomic
open/close sequences on in-process market collaborators.
"""

__version__ = "1.0.0"

# Core math
from .core.errors import (
    HedgeError, InvalidPriceRange, PriceOutOfRange, DivisionByZero, InvalidInput,
    InsufficientFunds, AtomicSequenceFailed, PositionNotFound, AlreadyClosed, Unauthorized
)
from .core.fixed_point import WAD, mul_div, from_number, to_float
from .core.liquidity_math import split_value_by_range, simulate_amounts_after_price_move
from .core.hedge_solver import HedgeAllocation, solve_equal_pnl_allocation, static_allocation
from .core.rollback import RollbackLog

# Engine
from .engine.config import AllocationMode, StrategyConfig
from .engine.position_manager import PositionManager, CloseResult
from .engine.hedge_orchestrator import HedgeOrchestrator, HedgedCompositePosition
from .engine.deployment import Deployment, create_deployment

# Analysis
from .analysis.hedge_pnl import build_pnl_sweep, summarize_sweep

__all__ = [
    # Core
    "HedgeError", "InvalidPriceRange", "PriceOutOfRange", "DivisionByZero", "InvalidInput",
    "InsufficientFunds", "AtomicSequenceFailed", "PositionNotFound", "AlreadyClosed", "Unauthorized",
    "WAD", "mul_div", "from_number", "to_float",
    "split_value_by_range", "simulate_amounts_after_price_move",
    "HedgeAllocation", "solve_equal_pnl_allocation", "static_allocation",
    "RollbackLog",

    # Engine
    "AllocationMode", "StrategyConfig", "PositionManager", "CloseResult",
    "HedgeOrchestrator", "HedgedCompositePosition", "Deployment", "create_deployment",

    # Analysis
    "build_pnl_sweep", "summarize_sweep",
]
