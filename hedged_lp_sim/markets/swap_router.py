#!/usr/bin/env python3
"""
Spot Swap Router

Exact-input swaps at an explicitly set spot price minus a fee haircut.
Prices are raw (token_out base units per token_in base unit, 18 decimals),
so token decimals only matter when a human price is set. An extra slippage
haircut can be configured to model adverse execution.
"""

import logging
from typing import Dict, Optional, Tuple

from ..core.errors import InvalidInput, SlippageExceeded
from ..core.fixed_point import BPS, WAD, bps_of, mul, mul_div
from ..core.rollback import RollbackLog, journaled
from ..core.uniswap_v3_math import raw_price
from .interfaces import SwapCollaborator
from .tokens import TokenLedger

logger = logging.getLogger(__name__)


class SpotSwapRouter(SwapCollaborator):
    """Swap collaborator quoting from spot prices and its own inventory"""

    def __init__(self, address: str, tokens: TokenLedger, fee_bps: int = 30,
                 rollback: Optional[RollbackLog] = None):
        if not 0 <= fee_bps < BPS:
            raise InvalidInput(f"fee_bps must be within [0, {BPS}), got {fee_bps}")
        self.address = address
        self.tokens = tokens
        self.fee_bps = fee_bps
        self.slippage_bps = 0
        self.rollback = rollback or tokens.rollback
        self._prices: Dict[Tuple[str, str], int] = {}

    def set_price(self, token0: str, token1: str, human_price: int) -> None:
        """Set whole-token1-per-whole-token0 price (18 decimals) for both directions"""
        if human_price <= 0:
            raise InvalidInput(f"Price must be positive, got {human_price}")
        price = raw_price(human_price, self.tokens.decimals(token0), self.tokens.decimals(token1))
        self._prices[(token0, token1)] = price
        self._prices[(token1, token0)] = mul_div(WAD, WAD, price)
        logger.debug("Spot price %s/%s set to %d (raw %d)", token0, token1, human_price, price)

    def set_slippage(self, slippage_bps: int) -> None:
        if not 0 <= slippage_bps <= BPS:
            raise InvalidInput(f"slippage_bps must be within [0, {BPS}], got {slippage_bps}")
        self.slippage_bps = slippage_bps

    def spot_price(self, token_in: str, token_out: str) -> int:
        try:
            return self._prices[(token_in, token_out)]
        except KeyError:
            raise InvalidInput(f"No price for {token_in}->{token_out}") from None

    def quote(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Spot conversion with the fee haircut; execution slippage not included"""
        gross = mul(amount_in, self.spot_price(token_in, token_out))
        return gross - bps_of(gross, self.fee_bps)

    @journaled
    def swap_exact_in(self, caller: str, token_in: str, token_out: str, amount_in: int, min_out: int) -> int:
        quoted = self.quote(token_in, token_out, amount_in)
        amount_out = quoted - bps_of(quoted, self.slippage_bps)

        if amount_out < min_out:
            raise SlippageExceeded(amount_out, min_out)

        self.tokens.transfer(token_in, caller, self.address, amount_in)
        self.tokens.transfer(token_out, self.address, caller, amount_out)

        logger.debug("Swap %d %s -> %d %s for %s", amount_in, token_in, amount_out, token_out, caller)
        return amount_out
