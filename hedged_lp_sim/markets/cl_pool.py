#!/usr/bin/env python3
"""
In-Process Concentrated Liquidity Pool

A single token0/token1 pool holding tick-ranged positions keyed by token id.
Uses the integer Uniswap V3 amount/liquidity formulas in Q64.96. The price
is set explicitly; swaps against the pool are out of scope.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from ..core.errors import InvalidInput, InvalidPriceRange, Unauthorized
from ..core.fixed_point import isqrt, WAD
from ..core.rollback import RollbackLog, journaled
from ..core.uniswap_v3_math import (
    MAX_TICK, MIN_TICK, Q96, get_amounts_for_liquidity, get_liquidity_for_amounts,
    raw_price, sqrt_price_x96_to_price, sqrt_price_x96_to_tick, tick_to_sqrt_price_x96
)
from .interfaces import ConcentratedLiquidityCollaborator, MintResult
from .tokens import TokenLedger

logger = logging.getLogger(__name__)


@dataclass
class LPPosition:
    """Liquidity position within a tick range"""
    owner: str
    tick_lower: int
    tick_upper: int
    liquidity: int
    tokens_owed0: int = 0
    tokens_owed1: int = 0


class ConcentratedLiquidityPool(ConcentratedLiquidityCollaborator):
    """Concentrated-liquidity pool collaborator"""

    def __init__(self, address: str, token0: str, token1: str, tokens: TokenLedger,
                 sqrt_price_x96: int = Q96, rollback: Optional[RollbackLog] = None):
        if token0 == token1:
            raise InvalidInput("Pool tokens must differ")
        self.address = address
        self.token0 = token0
        self.token1 = token1
        self.tokens = tokens
        self.rollback = rollback or tokens.rollback
        self._sqrt_price_x96 = sqrt_price_x96
        self.positions: Dict[int, LPPosition] = {}
        self.next_token_id = 1

    @property
    def sqrt_price_x96(self) -> int:
        return self._sqrt_price_x96

    @property
    def tick_current(self) -> int:
        return sqrt_price_x96_to_tick(self._sqrt_price_x96)

    def set_sqrt_price_x96(self, sqrt_price_x96: int) -> None:
        if sqrt_price_x96 <= 0:
            raise InvalidInput(f"sqrt price must be positive, got {sqrt_price_x96}")
        self._sqrt_price_x96 = sqrt_price_x96

    def set_price(self, human_price: int) -> None:
        """Set whole-token1-per-whole-token0 price (18 decimals)"""
        price = raw_price(human_price, self.tokens.decimals(self.token0), self.tokens.decimals(self.token1))
        self.set_sqrt_price_x96(isqrt(price * Q96 * Q96 // WAD))

    def get_price(self) -> int:
        """Raw price, token1 base units per token0 base unit (18 decimals)"""
        return sqrt_price_x96_to_price(self._sqrt_price_x96)

    # Journaled position helpers

    def _store_position(self, token_id: int, position: LPPosition) -> None:
        previous = self.positions.get(token_id)
        self.positions[token_id] = position

        def undo():
            if previous is None:
                self.positions.pop(token_id, None)
            else:
                self.positions[token_id] = previous

        self.rollback.record(f"lp position {token_id}", undo)

    def _position_for(self, owner: str, token_id: int) -> LPPosition:
        position = self.positions.get(token_id)
        if position is None:
            raise InvalidInput(f"Unknown LP token id {token_id}")
        if position.owner != owner:
            raise Unauthorized(f"{owner} does not own LP token {token_id}")
        return position

    def _range_sqrt_prices(self, tick_lower: int, tick_upper: int) -> Tuple[int, int]:
        if tick_lower >= tick_upper:
            raise InvalidPriceRange(tick_lower, tick_upper)
        if tick_lower < MIN_TICK or tick_upper > MAX_TICK:
            raise InvalidInput(f"Ticks [{tick_lower}, {tick_upper}] out of bounds")
        return tick_to_sqrt_price_x96(tick_lower), tick_to_sqrt_price_x96(tick_upper)

    def _add_liquidity(self, owner: str, tick_lower: int, tick_upper: int,
                       amount0_desired: int, amount1_desired: int) -> Tuple[int, int, int]:
        sqrt_a, sqrt_b = self._range_sqrt_prices(tick_lower, tick_upper)
        liquidity = get_liquidity_for_amounts(
            self._sqrt_price_x96, sqrt_a, sqrt_b, amount0_desired, amount1_desired
        )
        if liquidity == 0:
            raise InvalidInput("Desired amounts mint zero liquidity")

        amount0, amount1 = get_amounts_for_liquidity(self._sqrt_price_x96, sqrt_a, sqrt_b, liquidity, round_up=True)
        amount0 = min(amount0, amount0_desired)
        amount1 = min(amount1, amount1_desired)

        self.tokens.transfer(self.token0, owner, self.address, amount0)
        self.tokens.transfer(self.token1, owner, self.address, amount1)
        return liquidity, amount0, amount1

    # ConcentratedLiquidityCollaborator

    @journaled
    def mint(self, owner: str, tick_lower: int, tick_upper: int,
             amount0_desired: int, amount1_desired: int) -> MintResult:
        liquidity, amount0, amount1 = self._add_liquidity(
            owner, tick_lower, tick_upper, amount0_desired, amount1_desired
        )

        token_id = self.next_token_id
        self.next_token_id += 1
        self.rollback.record(f"lp token id {token_id}", lambda: setattr(self, "next_token_id", token_id))
        self._store_position(token_id, LPPosition(owner, tick_lower, tick_upper, liquidity))

        logger.info("Minted LP %d [%d, %d] L=%d using %d/%d", token_id, tick_lower, tick_upper,
                    liquidity, amount0, amount1)
        return MintResult(token_id, liquidity, amount0, amount1)

    @journaled
    def increase_liquidity(self, owner: str, token_id: int,
                           amount0_desired: int, amount1_desired: int) -> MintResult:
        position = self._position_for(owner, token_id)
        liquidity, amount0, amount1 = self._add_liquidity(
            owner, position.tick_lower, position.tick_upper, amount0_desired, amount1_desired
        )
        self._store_position(token_id, replace(position, liquidity=position.liquidity + liquidity))
        return MintResult(token_id, liquidity, amount0, amount1)

    @journaled
    def decrease_liquidity(self, owner: str, token_id: int, liquidity: int) -> Tuple[int, int]:
        """Burn liquidity; the released amounts become owed until collect()"""
        position = self._position_for(owner, token_id)
        if not 0 < liquidity <= position.liquidity:
            raise InvalidInput(f"Cannot remove {liquidity} of {position.liquidity} liquidity")

        sqrt_a, sqrt_b = self._range_sqrt_prices(position.tick_lower, position.tick_upper)
        amount0, amount1 = get_amounts_for_liquidity(self._sqrt_price_x96, sqrt_a, sqrt_b, liquidity)

        self._store_position(token_id, replace(
            position,
            liquidity=position.liquidity - liquidity,
            tokens_owed0=position.tokens_owed0 + amount0,
            tokens_owed1=position.tokens_owed1 + amount1,
        ))
        return amount0, amount1

    @journaled
    def collect(self, owner: str, token_id: int) -> Tuple[int, int]:
        position = self._position_for(owner, token_id)
        amount0, amount1 = position.tokens_owed0, position.tokens_owed1

        self.tokens.transfer(self.token0, self.address, owner, amount0)
        self.tokens.transfer(self.token1, self.address, owner, amount1)
        self._store_position(token_id, replace(position, tokens_owed0=0, tokens_owed1=0))
        return amount0, amount1

    @journaled
    def accrue_fees(self, token_id: int, fee0: int, fee1: int) -> None:
        """Credit trading fees to a position; the pool must already hold them"""
        position = self.positions.get(token_id)
        if position is None:
            raise InvalidInput(f"Unknown LP token id {token_id}")
        self._store_position(token_id, replace(
            position,
            tokens_owed0=position.tokens_owed0 + fee0,
            tokens_owed1=position.tokens_owed1 + fee1,
        ))

    def position_amounts(self, token_id: int) -> Tuple[int, int]:
        """Current token amounts of a position's liquidity, excluding owed tokens"""
        position = self.positions[token_id]
        sqrt_a, sqrt_b = self._range_sqrt_prices(position.tick_lower, position.tick_upper)
        return get_amounts_for_liquidity(self._sqrt_price_x96, sqrt_a, sqrt_b, position.liquidity)
