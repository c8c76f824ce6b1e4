#!/usr/bin/env python3
"""
Position Manager

Opens and closes leveraged short positions with flash-loan-backed atomic
sequences against a lending collaborator and a swap collaborator.

Open:  pull collateral -> record position -> flash-borrow base -> supply
       collateral -> borrow leveraged asset -> swap it to base -> repay the
       flash loan -> return leftover base to the owner.
Close: flash-borrow leveraged asset -> repay debt -> withdraw collateral ->
       swap collateral to leveraged asset -> repay the flash loan -> return
       the rest to the owner.

Every position opened by one manager shares the manager's lending account,
so account_data() reports aggregate exposure across all of them.
"""

import logging
from typing import List, NamedTuple, Optional

from ..core.errors import (
    AlreadyClosed, AtomicSequenceFailed, HedgeError, InvalidInput
)
from ..core.fixed_point import WAD, mul, mul_div, mul_div_rounding_up
from ..core.rollback import RollbackLog
from ..markets.interfaces import AccountData, LendingCollaborator, SwapCollaborator, TokenAdapter
from .config import StrategyConfig
from .position_ledger import LeveragedPosition, PositionLedger, PositionState

logger = logging.getLogger(__name__)


class CloseResult(NamedTuple):
    """Amounts returned to the owner by a close and the signed PnL in base units"""
    position_id: int
    base_returned: int
    leveraged_returned: int
    realized_pnl: int


class PositionManager:
    """Lifecycle manager for leveraged short positions"""

    def __init__(self, address: str, tokens: TokenAdapter, swap: SwapCollaborator,
                 lending: LendingCollaborator, config: Optional[StrategyConfig] = None,
                 rollback: Optional[RollbackLog] = None):
        self.address = address
        self.tokens = tokens
        self.swap = swap
        self.lending = lending
        self.config = config or StrategyConfig()
        self.rollback = rollback or RollbackLog()
        self.ledger = PositionLedger(self.rollback)

    # Quotes

    def _units_needed(self, token_in: str, token_out: str, amount_out: int) -> int:
        """token_in needed to receive amount_out of token_out, padded by the open markup"""
        unit_out = self.swap.quote(token_in, token_out, WAD)
        if unit_out == 0:
            raise AtomicSequenceFailed(f"Swap quote {token_in}->{token_out} is zero")
        return mul_div(mul(amount_out, self.config.open_borrow_markup_wad), WAD, unit_out)

    # Lifecycle

    def open(self, owner: str, base_asset: str, leveraged_asset: str,
             supplied_amount: int, leverage_multiplier: int) -> int:
        """
        Open a leveraged short for owner and return its position id.

        supplied_amount of base_asset is pulled from owner (requires an
        allowance for the manager). leverage_multiplier is 18-decimal and
        must be >= 1.0; exactly 1.0 supplies the collateral without
        borrowing.
        """
        if supplied_amount <= 0:
            raise InvalidInput(f"Supplied amount must be positive, got {supplied_amount}")
        if leverage_multiplier < WAD:
            raise InvalidInput(f"Leverage multiplier must be >= 1.0, got {leverage_multiplier}")
        if base_asset == leveraged_asset:
            raise InvalidInput("Base and leveraged assets must differ")

        with self.rollback.atomic(f"open:{owner}"):
            self.tokens.transfer_from(base_asset, self.address, owner, self.address, supplied_amount)

            borrow_notional = mul(supplied_amount, leverage_multiplier - WAD)

            position = self.ledger.create(owner, base_asset, leveraged_asset, supplied_amount, leverage_multiplier)
            position_id = position.position_id
            self.ledger.transition(owner, position_id, PositionState.OPEN)

            try:
                if borrow_notional == 0:
                    self.lending.supply_collateral(self.address, base_asset, supplied_amount)
                    fills = {"borrowed": 0, "scaled": 0, "proceeds": 0, "owed": 0}
                else:
                    fills = self._leverage_up(base_asset, leveraged_asset, supplied_amount, borrow_notional)
            except AtomicSequenceFailed:
                raise
            except HedgeError as exc:
                raise AtomicSequenceFailed(f"Open of {owner}/{position_id} aborted: {exc}") from exc

            returned = fills["proceeds"] - fills["owed"]
            self.tokens.transfer(base_asset, self.address, owner, returned)

            self.ledger.update(
                owner, position_id,
                borrow_notional=borrow_notional,
                borrowed_amount_at_open=fills["borrowed"],
                scaled_debt=fills["scaled"],
                collateral_amount=supplied_amount + borrow_notional,
                returned_at_open=returned,
            )

        logger.info(
            "Opened position %s/%d: supplied %d %s at %.4fx, borrowed %d %s, returned %d",
            owner, position_id, supplied_amount, base_asset, leverage_multiplier / WAD,
            fills["borrowed"], leveraged_asset, returned
        )
        return position_id

    def _leverage_up(self, base_asset: str, leveraged_asset: str, supplied_amount: int, borrow_notional: int) -> dict:
        fills = {}

        def on_flash_loan(asset: str, amount: int, fee: int) -> None:
            self.lending.supply_collateral(self.address, base_asset, supplied_amount + amount)

            owed = amount + fee
            borrow_amount = self._units_needed(leveraged_asset, base_asset, owed)
            fills["scaled"] = self.lending.borrow(self.address, leveraged_asset, borrow_amount)
            fills["borrowed"] = borrow_amount

            proceeds = self.swap.swap_exact_in(self.address, leveraged_asset, base_asset, borrow_amount, owed)
            fills["proceeds"] = proceeds
            fills["owed"] = owed

            self.tokens.approve(base_asset, self.address, self.lending.address, owed)

        self.lending.flash_loan(self.address, base_asset, borrow_notional, on_flash_loan)
        return fills

    def close(self, owner: str, position_id: int) -> CloseResult:
        """Unwind an open position and return everything left to its owner"""
        with self.rollback.atomic(f"close:{owner}/{position_id}"):
            position = self.ledger.get(owner, position_id)
            if not position.is_open:
                raise AlreadyClosed(f"Position {owner}/{position_id} is {position.state.value}")

            self.ledger.transition(owner, position_id, PositionState.CLOSING)
            debt = self.position_debt(owner, position_id)

            try:
                if debt == 0:
                    self.lending.withdraw(self.address, position.base_asset, position.collateral_amount)
                    base_returned, leveraged_returned = position.collateral_amount, 0
                else:
                    base_returned, leveraged_returned = self._unwind(position, debt)
            except AtomicSequenceFailed:
                raise
            except HedgeError as exc:
                raise AtomicSequenceFailed(f"Close of {owner}/{position_id} aborted: {exc}") from exc

            self.tokens.transfer(position.base_asset, self.address, owner, base_returned)
            self.tokens.transfer(position.leveraged_asset, self.address, owner, leveraged_returned)

            leveraged_value = 0
            if leveraged_returned:
                leveraged_value = self.swap.quote(position.leveraged_asset, position.base_asset, leveraged_returned)
            realized_pnl = position.returned_at_open + base_returned + leveraged_value - position.supplied_amount

            self.ledger.update(owner, position_id, scaled_debt=0)
            self.ledger.transition(owner, position_id, PositionState.CLOSED)

        logger.info(
            "Closed position %s/%d: returned %d %s and %d %s, pnl %d",
            owner, position_id, base_returned, position.base_asset,
            leveraged_returned, position.leveraged_asset, realized_pnl
        )
        return CloseResult(position_id, base_returned, leveraged_returned, realized_pnl)

    def _unwind(self, position: LeveragedPosition, debt: int):
        result = {}
        loan_amount = max(mul(debt, self.config.close_repay_buffer_wad), debt)

        def on_flash_loan(asset: str, amount: int, fee: int) -> None:
            repaid = self.lending.repay(self.address, position.leveraged_asset, debt)
            self.lending.withdraw(self.address, position.base_asset, position.collateral_amount)

            # Leveraged asset still held is amount - repaid; amount + fee is owed
            shortfall = repaid + fee
            base_in = min(
                self._units_needed(position.base_asset, position.leveraged_asset, shortfall),
                position.collateral_amount
            )
            bought = self.swap.swap_exact_in(
                self.address, position.base_asset, position.leveraged_asset, base_in, shortfall
            )
            self.tokens.approve(position.leveraged_asset, self.address, self.lending.address, amount + fee)

            result["base"] = position.collateral_amount - base_in
            result["leveraged"] = bought - shortfall

        self.lending.flash_loan(self.address, position.leveraged_asset, loan_amount, on_flash_loan)
        return result["base"], result["leveraged"]

    # Views

    def get_position(self, owner: str, position_id: int) -> LeveragedPosition:
        return self.ledger.get(owner, position_id)

    def positions_of(self, owner: str) -> List[LeveragedPosition]:
        return self.ledger.positions_of(owner)

    def position_debt(self, owner: str, position_id: int) -> int:
        """Outstanding debt of one position, capped at the account's total debt"""
        position = self.ledger.get(owner, position_id)
        if position.scaled_debt == 0:
            return 0
        index = self.lending.borrow_index(position.leveraged_asset)
        own_debt = mul_div_rounding_up(position.scaled_debt, index, WAD)
        return min(own_debt, self.lending.debt_of(self.address, position.leveraged_asset))

    def account_data(self) -> AccountData:
        """Aggregate lending account of the manager, shared by every position"""
        return self.lending.account_data(self.address)
