"""Position lifecycle engine, orchestration and configuration"""

from .config import AllocationMode, ReserveConfig, StrategyConfig, load_strategy_config
from .position_ledger import LeveragedPosition, PositionLedger, PositionState
from .position_manager import CloseResult, PositionManager
from .hedge_orchestrator import HedgedCloseResult, HedgedCompositePosition, HedgeOrchestrator, LPDeposit
from .deployment import Deployment, create_deployment

__all__ = [
    "AllocationMode", "ReserveConfig", "StrategyConfig", "load_strategy_config",
    "LeveragedPosition", "PositionLedger", "PositionState",
    "CloseResult", "PositionManager",
    "HedgedCloseResult", "HedgedCompositePosition", "HedgeOrchestrator", "LPDeposit",
    "Deployment", "create_deployment"
]
