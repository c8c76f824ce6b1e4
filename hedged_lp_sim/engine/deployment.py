#!/usr/bin/env python3
"""
Deployment Wiring

Builds one self-contained engine instance: a shared rollback log, the token
ledger, the market collaborators and the engine components on top, with
consistent prices across the pool, the swap router and the lending pool.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..core.fixed_point import WAD, from_number, isqrt
from ..core.rollback import RollbackLog
from ..core.uniswap_v3_math import Q96, raw_price, sqrt_price_x96_to_tick
from ..markets.cl_pool import ConcentratedLiquidityPool
from ..markets.lending import LendingPool
from ..markets.swap_router import SpotSwapRouter
from ..markets.tokens import TokenLedger
from .config import StrategyConfig
from .hedge_orchestrator import HedgeOrchestrator
from .position_manager import PositionManager

logger = logging.getLogger(__name__)

DEFAULT_INVENTORY = 100_000_000  # whole tokens seeded into each venue


@dataclass
class Deployment:
    """All components of one engine instance, sharing one rollback log"""
    config: StrategyConfig
    rollback: RollbackLog
    tokens: TokenLedger
    swap: SpotSwapRouter
    lending: LendingPool
    pool: ConcentratedLiquidityPool
    manager: PositionManager
    orchestrator: HedgeOrchestrator
    token0: str
    token1: str
    owner: str

    def set_market_price(self, human_price: int) -> None:
        """Move every venue to human_price (whole token1 per whole token0, 18 decimals)"""
        self.pool.set_price(human_price)
        self.swap.set_price(self.token0, self.token1, human_price)
        self.lending.set_asset_price(self.token0, human_price)
        logger.debug("Market price set to %d", human_price)

    def tick_for_price(self, human_price: int) -> int:
        price = raw_price(human_price, self.tokens.decimals(self.token0), self.tokens.decimals(self.token1))
        return sqrt_price_x96_to_tick(isqrt(price * Q96 * Q96 // WAD))

    def units(self, token: str, amount) -> int:
        """Whole-token amount to base units"""
        return from_number(amount) * 10 ** self.tokens.decimals(token) // WAD

    def fund_user(self, user: str, amount0: int, amount1: int) -> None:
        """Mint base units to user and approve the orchestrator for them"""
        self.tokens.mint(self.token0, user, amount0)
        self.tokens.mint(self.token1, user, amount1)
        self.tokens.approve(self.token0, user, self.orchestrator.address, amount0)
        self.tokens.approve(self.token1, user, self.orchestrator.address, amount1)


def _reserve_params(config: StrategyConfig, symbol: str, default_ltv: int, default_threshold: int):
    try:
        reserve = config.reserve_for(symbol)
    except KeyError:
        return default_ltv, default_threshold
    return reserve.ltv_bps, reserve.liquidation_threshold_bps


def create_deployment(config: Optional[StrategyConfig] = None,
                      human_price: int = from_number("0.05"),
                      token0: str = "HBAR", token1: str = "USDC",
                      decimals0: int = 8, decimals1: int = 6,
                      owner: str = "owner",
                      inventory: int = DEFAULT_INVENTORY) -> Deployment:
    """Create and seed a deployment with token0 as the volatile asset and token1 as the base asset"""
    config = config or StrategyConfig()
    rollback = RollbackLog()

    tokens = TokenLedger(rollback)
    tokens.register_token(token0, decimals0)
    tokens.register_token(token1, decimals1)

    swap = SpotSwapRouter("swap_router", tokens, config.swap_fee_bps, rollback)
    lending = LendingPool("lending_pool", tokens, config.flash_fee_bps, rollback)

    ltv1, threshold1 = _reserve_params(config, token1, 8000, 8500)
    ltv0, threshold0 = _reserve_params(config, token0, 6000, 7000)
    lending.list_reserve(token1, WAD, ltv1, threshold1)
    lending.list_reserve(token0, human_price, ltv0, threshold0)

    pool = ConcentratedLiquidityPool("cl_pool", token0, token1, tokens, rollback=rollback)
    manager = PositionManager("position_manager", tokens, swap, lending, config, rollback)
    orchestrator = HedgeOrchestrator("hedge_orchestrator", owner, tokens, pool, swap, manager, config, rollback)

    deployment = Deployment(
        config=config,
        rollback=rollback,
        tokens=tokens,
        swap=swap,
        lending=lending,
        pool=pool,
        manager=manager,
        orchestrator=orchestrator,
        token0=token0,
        token1=token1,
        owner=owner,
    )

    # The pool has no swap flow, so its inventory settles what a price move shifts between the two sides
    for venue in (swap.address, lending.address, pool.address):
        tokens.mint(token0, venue, inventory * 10 ** decimals0)
        tokens.mint(token1, venue, inventory * 10 ** decimals1)

    deployment.set_market_price(human_price)
    logger.info("Deployment created: %s/%s at %.6f", token0, token1, human_price / WAD)
    return deployment
