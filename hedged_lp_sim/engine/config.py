#!/usr/bin/env python3
"""
Configuration schemas for the hedged LP engine.

Pydantic schemas for strategy parameters and lending reserve parameters.
Human-readable multipliers are stored as floats and exposed as 18-decimal
fixed-point ints for the engine.
"""

import json
from pathlib import Path
from typing import List, Union

from pydantic import BaseModel, Field, field_validator

from ..core.fixed_point import from_number
from ..core.hedge_solver import AllocationMode


class ReserveConfig(BaseModel):
    """Collateral parameters of one lending reserve"""
    symbol: str
    ltv_bps: int = Field(ge=0, le=10_000, description="Loan-to-value in basis points")
    liquidation_threshold_bps: int = Field(ge=0, le=10_000, description="Liquidation threshold in basis points")

    @field_validator("liquidation_threshold_bps")
    @classmethod
    def threshold_above_ltv(cls, v, info):
        ltv = info.data.get("ltv_bps")
        if ltv is not None and v < ltv:
            raise ValueError("liquidation_threshold_bps must be >= ltv_bps")
        return v


class StrategyConfig(BaseModel):
    """Strategy parameters for position sizing and the atomic sequences"""

    # Safety constants, independently tunable
    open_borrow_markup: float = Field(
        1.02, gt=1.0, le=1.5,
        description="Pads the leveraged-asset borrow so the swap-back always covers loan + fee"
    )
    close_repay_buffer: float = Field(
        1.001, gt=1.0, le=1.5,
        description="Flash-loan size over outstanding debt, absorbs interest accrued since the quote"
    )

    # Hedge leg
    hedge_leverage: float = Field(2.0, ge=1.0, le=10.0, description="Leverage multiplier of the short leg")

    # Allocation
    default_allocation_mode: AllocationMode = AllocationMode.STATIC
    static_lp_share_bps: int = Field(7900, ge=0, le=10_000, description="LP share of capital for the static split")
    reference_lp_value: float = Field(1000.0, gt=0, description="Virtual LP size used by the equal-PnL solver")
    max_rebalance_slippage_bps: int = Field(100, ge=0, le=10_000, description="Minimum-out tolerance of deposit rebalancing swaps")

    # Market stand-ins
    flash_fee_bps: int = Field(5, ge=0, lt=10_000)
    swap_fee_bps: int = Field(30, ge=0, lt=10_000)
    reserves: List[ReserveConfig] = Field(default_factory=lambda: [
        ReserveConfig(symbol="USDC", ltv_bps=8000, liquidation_threshold_bps=8500),
        ReserveConfig(symbol="HBAR", ltv_bps=6000, liquidation_threshold_bps=7000),
    ])

    @property
    def open_borrow_markup_wad(self) -> int:
        return from_number(self.open_borrow_markup)

    @property
    def close_repay_buffer_wad(self) -> int:
        return from_number(self.close_repay_buffer)

    @property
    def hedge_leverage_wad(self) -> int:
        return from_number(self.hedge_leverage)

    @property
    def reference_lp_value_wad(self) -> int:
        return from_number(self.reference_lp_value)

    def reserve_for(self, symbol: str) -> ReserveConfig:
        for reserve in self.reserves:
            if reserve.symbol == symbol:
                return reserve
        raise KeyError(f"No reserve configured for {symbol}")


def load_strategy_config(path: Union[str, Path]) -> StrategyConfig:
    """Load a StrategyConfig from a JSON file"""
    with open(path, "r") as f:
        return StrategyConfig.model_validate(json.load(f))
