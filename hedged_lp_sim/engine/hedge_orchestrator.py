#!/usr/bin/env python3
"""
Hedge Orchestrator

Top-level hedged LP vault manager. Users deposit both pool tokens; a
privileged operator then opens a hedged position for a user over a tick
range: the deposit is valued at the pool price, split between an LP leg and
a short leg, rebalanced through the swap collaborator, and turned into one
concentrated-liquidity mint plus one leveraged short on the position manager.

Token roles follow the pool: token0 is the volatile (leveraged) asset and
token1 is the base asset the short is collateralized with.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, NamedTuple, Optional, Tuple

from ..core.errors import (
    AlreadyClosed, AtomicSequenceFailed, HedgeError, InvalidInput, InvalidPriceRange, Unauthorized
)
from ..core.fixed_point import BPS, bps_of, div, mul
from ..core.hedge_solver import HedgeAllocation, allocate_capital
from ..core.liquidity_math import position_value, split_value_by_range
from ..core.rollback import RollbackLog
from ..core.uniswap_v3_math import (
    sqrt_price_x96_to_price, sqrt_price_x96_to_wad, tick_to_price, tick_to_sqrt_price_x96
)
from ..markets.interfaces import ConcentratedLiquidityCollaborator, SwapCollaborator, TokenAdapter
from .config import AllocationMode, StrategyConfig
from .position_manager import PositionManager

logger = logging.getLogger(__name__)


@dataclass
class LPDeposit:
    """Idle funds a user holds inside the orchestrator"""
    amount0: int = 0
    amount1: int = 0
    composite_id: Optional[int] = None
    has_active_position: bool = False


@dataclass
class HedgedCompositePosition:
    """One LP mint linked to one leveraged short; kept after close for history"""
    user: str
    composite_id: int
    lp_token_id: int
    leveraged_position_id: Optional[int]
    tick_lower: int
    tick_upper: int
    lp_amount0: int
    lp_amount1: int
    liquidity: int
    short_supplied: int
    allocation_mode: AllocationMode
    lp_value: int
    short_value: int
    active: bool = True


class HedgedCloseResult(NamedTuple):
    composite_id: int
    amount0_returned: int
    amount1_returned: int
    short_pnl: int


class HedgeOrchestrator:
    """Sizes, opens and closes hedged LP positions on behalf of depositors"""

    def __init__(self, address: str, owner: str, tokens: TokenAdapter,
                 pool: ConcentratedLiquidityCollaborator, swap: SwapCollaborator,
                 manager: PositionManager, config: Optional[StrategyConfig] = None,
                 rollback: Optional[RollbackLog] = None):
        self.address = address
        self.owner = owner
        self.operator: Optional[str] = None
        self.tokens = tokens
        self.pool = pool
        self.swap = swap
        self.manager = manager
        self.config = config or StrategyConfig()
        self.rollback = rollback or manager.rollback
        self.token0 = pool.token0
        self.token1 = pool.token1
        self._deposits: Dict[str, LPDeposit] = {}
        self._composites: List[HedgedCompositePosition] = []

    # Access control

    def set_operator(self, caller: str, operator: Optional[str]) -> None:
        if caller != self.owner:
            raise Unauthorized(f"{caller} is not the owner")
        self.operator = operator
        logger.info("Operator set to %s", operator)

    def _require_privileged(self, caller: str) -> None:
        if caller != self.owner and (self.operator is None or caller != self.operator):
            raise Unauthorized(f"{caller} is neither owner nor operator")

    # Journaled state helpers

    def _set_deposit(self, user: str, deposit: LPDeposit) -> None:
        previous = self._deposits.get(user)
        self._deposits[user] = deposit

        def undo():
            if previous is None:
                self._deposits.pop(user, None)
            else:
                self._deposits[user] = previous

        self.rollback.record(f"deposit {user}", undo)

    def _store_composite(self, composite: HedgedCompositePosition) -> None:
        if composite.composite_id == len(self._composites):
            self._composites.append(composite)
            self.rollback.record(f"create composite {composite.composite_id}", self._composites.pop)
            return
        previous = self._composites[composite.composite_id]
        self._composites[composite.composite_id] = composite
        self.rollback.record(
            f"update composite {composite.composite_id}",
            lambda: self._composites.__setitem__(composite.composite_id, previous)
        )

    # Deposits

    def deposit_for_lp(self, user: str, amount0: int, amount1: int) -> LPDeposit:
        """Pull both pool tokens from user (allowance required) and credit their deposit"""
        if amount0 < 0 or amount1 < 0 or amount0 + amount1 == 0:
            raise InvalidInput(f"Deposit amounts must be non-negative and not both zero, got {amount0}/{amount1}")

        with self.rollback.atomic(f"deposit:{user}"):
            deposit = self.get_user_lp_deposit(user)
            if deposit.has_active_position:
                raise InvalidInput(f"{user} has an active hedged position")

            self.tokens.transfer_from(self.token0, self.address, user, self.address, amount0)
            self.tokens.transfer_from(self.token1, self.address, user, self.address, amount1)
            deposit = replace(deposit, amount0=deposit.amount0 + amount0, amount1=deposit.amount1 + amount1)
            self._set_deposit(user, deposit)

        logger.info("%s deposited %d %s and %d %s", user, amount0, self.token0, amount1, self.token1)
        return deposit

    def get_user_lp_deposit(self, user: str) -> LPDeposit:
        return self._deposits.get(user, LPDeposit())

    def withdraw_lp_deposit(self, user: str) -> Tuple[int, int]:
        """Return a user's idle funds; not allowed while a position is active"""
        with self.rollback.atomic(f"withdraw:{user}"):
            deposit = self.get_user_lp_deposit(user)
            if deposit.has_active_position:
                raise InvalidInput(f"{user} has an active hedged position")

            self.tokens.transfer(self.token0, self.address, user, deposit.amount0)
            self.tokens.transfer(self.token1, self.address, user, deposit.amount1)
            self._set_deposit(user, replace(deposit, amount0=0, amount1=0))

        logger.info("%s withdrew %d %s and %d %s", user, deposit.amount0, self.token0, deposit.amount1, self.token1)
        return deposit.amount0, deposit.amount1

    # Sizing

    def plan_allocation(self, total_value: int, tick_lower: int, tick_upper: int,
                        mode: AllocationMode, target_price: Optional[int] = None,
                        short_price: Optional[int] = None) -> HedgeAllocation:
        """Split total_value (token1 units) between the LP and short legs on raw pool prices"""
        return allocate_capital(
            total_value,
            sqrt_price_x96_to_price(self.pool.sqrt_price_x96),
            tick_to_price(tick_lower),
            tick_to_price(tick_upper),
            mode,
            target_price,
            short_price,
            self.config.static_lp_share_bps,
            self.config.reference_lp_value_wad,
        )

    def _lp_token_targets(self, tick_lower: int, tick_upper: int, lp_value: int, price: int) -> Tuple[int, int]:
        sqrt_price = sqrt_price_x96_to_wad(self.pool.sqrt_price_x96)
        sqrt_lower = sqrt_price_x96_to_wad(tick_to_sqrt_price_x96(tick_lower))
        sqrt_upper = sqrt_price_x96_to_wad(tick_to_sqrt_price_x96(tick_upper))

        amount0, amount1 = split_value_by_range(sqrt_price, sqrt_lower, sqrt_upper, lp_value)
        if sqrt_price == sqrt_lower and amount0:
            # The lower edge returns the value itself; convert it to token0 units
            amount0 = div(amount0, price)
        return amount0, amount1

    def _rebalance(self, held0: int, held1: int, want0: int, price: int) -> Tuple[int, int]:
        """Swap between the pool tokens so roughly want0 of token0 is held"""
        tolerance = BPS - self.config.max_rebalance_slippage_bps

        if held0 > want0:
            sell0 = held0 - want0
            min_out = bps_of(self.swap.quote(self.token0, self.token1, sell0), tolerance)
            bought1 = self.swap.swap_exact_in(self.address, self.token0, self.token1, sell0, min_out)
            return want0, held1 + bought1

        if held0 < want0:
            sell1 = min(mul(want0 - held0, price), held1)
            if sell1 == 0:
                return held0, held1
            min_out = bps_of(self.swap.quote(self.token1, self.token0, sell1), tolerance)
            bought0 = self.swap.swap_exact_in(self.address, self.token1, self.token0, sell1, min_out)
            return held0 + bought0, held1 - sell1

        return held0, held1

    # Hedged positions

    def open_hedged_lp_for_user(self, caller: str, user: str, tick_lower: int, tick_upper: int,
                                mode: Optional[AllocationMode] = None, target_price: Optional[int] = None,
                                short_price: Optional[int] = None) -> HedgedCompositePosition:
        """
        Turn a user's deposit into an LP mint over [tick_lower, tick_upper]
        plus an offsetting leveraged short. Owner or operator only.
        """
        self._require_privileged(caller)
        if tick_lower >= tick_upper:
            raise InvalidPriceRange(tick_lower, tick_upper)
        mode = mode or self.config.default_allocation_mode

        with self.rollback.atomic(f"open_hedged:{user}"):
            deposit = self.get_user_lp_deposit(user)
            if deposit.has_active_position:
                raise InvalidInput(f"{user} already has an active hedged position")
            if deposit.amount0 + deposit.amount1 == 0:
                raise InvalidInput(f"{user} has no deposit")

            price = sqrt_price_x96_to_price(self.pool.sqrt_price_x96)
            total_value = position_value(deposit.amount0, deposit.amount1, price)
            allocation = self.plan_allocation(total_value, tick_lower, tick_upper, mode, target_price, short_price)
            want0, _ = self._lp_token_targets(tick_lower, tick_upper, allocation.lp_value, price)

            try:
                held0, held1 = self._rebalance(deposit.amount0, deposit.amount1, want0, price)

                short_supplied = min(allocation.short_value, held1)
                leveraged_position_id = None
                if short_supplied > 0:
                    self.tokens.approve(self.token1, self.address, self.manager.address, short_supplied)
                    leveraged_position_id = self.manager.open(
                        self.address, self.token1, self.token0, short_supplied, self.config.hedge_leverage_wad
                    )
                    returned = self.manager.get_position(self.address, leveraged_position_id).returned_at_open
                    held1 = held1 - short_supplied + returned

                minted = self.pool.mint(self.address, tick_lower, tick_upper, held0, held1)
            except AtomicSequenceFailed:
                raise
            except HedgeError as exc:
                raise AtomicSequenceFailed(f"Hedged open for {user} aborted: {exc}") from exc

            composite = HedgedCompositePosition(
                user=user,
                composite_id=len(self._composites),
                lp_token_id=minted.token_id,
                leveraged_position_id=leveraged_position_id,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                lp_amount0=minted.amount0,
                lp_amount1=minted.amount1,
                liquidity=minted.liquidity,
                short_supplied=short_supplied,
                allocation_mode=mode,
                lp_value=allocation.lp_value,
                short_value=allocation.short_value,
            )
            self._store_composite(composite)
            self._set_deposit(user, LPDeposit(
                amount0=held0 - minted.amount0,
                amount1=held1 - minted.amount1,
                composite_id=composite.composite_id,
                has_active_position=True,
            ))

        logger.info(
            "Opened hedged position %d for %s [%d, %d] (%s): LP %d/%d, short %d",
            composite.composite_id, user, tick_lower, tick_upper, mode.value,
            minted.amount0, minted.amount1, short_supplied
        )
        return composite

    def close_hedged_lp_for_user(self, caller: str, user: str) -> HedgedCloseResult:
        """Remove the LP leg, close the short and credit everything to the user's deposit"""
        self._require_privileged(caller)

        with self.rollback.atomic(f"close_hedged:{user}"):
            deposit = self.get_user_lp_deposit(user)
            if not deposit.has_active_position:
                raise AlreadyClosed(f"{user} has no active hedged position")
            composite = self._composites[deposit.composite_id]

            try:
                if composite.liquidity:
                    self.pool.decrease_liquidity(self.address, composite.lp_token_id, composite.liquidity)
                amount0, amount1 = self.pool.collect(self.address, composite.lp_token_id)

                short_pnl = 0
                if composite.leveraged_position_id is not None:
                    closed = self.manager.close(self.address, composite.leveraged_position_id)
                    amount0 += closed.leveraged_returned
                    amount1 += closed.base_returned
                    short_pnl = closed.realized_pnl
            except AtomicSequenceFailed:
                raise
            except HedgeError as exc:
                raise AtomicSequenceFailed(f"Hedged close for {user} aborted: {exc}") from exc

            self._store_composite(replace(composite, active=False))
            self._set_deposit(user, replace(
                deposit,
                amount0=deposit.amount0 + amount0,
                amount1=deposit.amount1 + amount1,
                has_active_position=False,
            ))

        logger.info("Closed hedged position %d for %s: returned %d/%d, short pnl %d",
                    composite.composite_id, user, amount0, amount1, short_pnl)
        return HedgedCloseResult(composite.composite_id, amount0, amount1, short_pnl)

    # Views

    def get_composite(self, composite_id: int) -> HedgedCompositePosition:
        if not 0 <= composite_id < len(self._composites):
            raise KeyError(f"No composite position {composite_id}")
        return self._composites[composite_id]

    def composite_positions(self, user: Optional[str] = None) -> List[HedgedCompositePosition]:
        return [c for c in self._composites if user is None or c.user == user]
