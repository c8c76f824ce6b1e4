"""External collaborator contracts and their in-process implementations"""

from .interfaces import (
    AccountData, MintResult, TokenAdapter, SwapCollaborator,
    LendingCollaborator, ConcentratedLiquidityCollaborator
)
from .tokens import TokenLedger
from .swap_router import SpotSwapRouter
from .lending import LendingPool, AssetReserve
from .cl_pool import ConcentratedLiquidityPool, LPPosition

__all__ = [
    "AccountData", "MintResult", "TokenAdapter", "SwapCollaborator",
    "LendingCollaborator", "ConcentratedLiquidityCollaborator",
    "TokenLedger", "SpotSwapRouter", "LendingPool", "AssetReserve",
    "ConcentratedLiquidityPool", "LPPosition"
]
