#!/usr/bin/env python3
"""
In-Process Lending Pool

Collateralized lending market used as the short leg's credit line:
- Per-asset reserves with collateral parameters and a kinked borrow rate
- Scaled debt against a compounding borrow index
- Aggregate account data per account (one credit line per account)
- Flash loans repaid within the same atomic unit
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..core.errors import AtomicSequenceFailed, InsufficientFunds, InvalidInput
from ..core.fixed_point import (
    BPS, MAX_UINT256, WAD, bps_of, div, mul, mul_div, mul_div_rounding_up
)
from ..core.rollback import RollbackLog, journaled
from ..core.uniswap_v3_math import raw_price
from .interfaces import AccountData, FlashLoanCallback, LendingCollaborator
from .tokens import TokenLedger

logger = logging.getLogger(__name__)


@dataclass
class AssetReserve:
    """Individual asset reserve within the lending pool"""
    asset: str
    price: int  # base-currency value of one base unit, 18 decimals
    ltv_bps: int
    liquidation_threshold_bps: int
    total_collateral: int = 0
    total_scaled_debt: int = 0
    borrow_index: int = WAD

    # Kinked interest rate model (per-block rates, 18 decimals)
    base_rate_per_block: int = 0
    multiplier_per_block: int = 11415525114
    jump_per_block: int = 253678335870
    kink: int = 800_000_000_000_000_000

    @property
    def total_debt(self) -> int:
        return mul(self.total_scaled_debt, self.borrow_index)


def _compound(rate_per_block: int, blocks: int) -> int:
    """(1 + rate) ** blocks in 18 decimals, square-and-multiply"""
    result = WAD
    base = WAD + rate_per_block
    while blocks:
        if blocks & 1:
            result = mul(result, base)
        base = mul(base, base)
        blocks >>= 1
    return result


class LendingPool(LendingCollaborator):
    """Lending collaborator with scaled debt and flash loans"""

    def __init__(self, address: str, tokens: TokenLedger, flash_fee_bps: int = 5,
                 rollback: Optional[RollbackLog] = None):
        if not 0 <= flash_fee_bps < BPS:
            raise InvalidInput(f"flash_fee_bps must be within [0, {BPS}), got {flash_fee_bps}")
        self.address = address
        self.tokens = tokens
        self.flash_fee_bps = flash_fee_bps
        self.rollback = rollback or tokens.rollback
        self.reserves: Dict[str, AssetReserve] = {}
        self._collateral: Dict[Tuple[str, str], int] = {}
        self._scaled_debt: Dict[Tuple[str, str], int] = {}

    # Journaled state helpers

    def _set_entry(self, table: Dict, key, value: int, label: str) -> None:
        old = table.get(key, 0)
        table[key] = value
        self.rollback.record(f"{label} {key} {old} -> {value}", lambda: table.__setitem__(key, old))

    def _set_reserve(self, reserve: AssetReserve, field_name: str, value: int) -> None:
        old = getattr(reserve, field_name)
        setattr(reserve, field_name, value)
        self.rollback.record(
            f"reserve {reserve.asset}.{field_name} {old} -> {value}",
            lambda: setattr(reserve, field_name, old)
        )

    # Reserve configuration

    def list_reserve(self, asset: str, human_price: int, ltv_bps: int, liquidation_threshold_bps: int) -> AssetReserve:
        if not 0 <= ltv_bps <= liquidation_threshold_bps <= BPS:
            raise InvalidInput(
                f"Need 0 <= ltv ({ltv_bps}) <= liquidation threshold ({liquidation_threshold_bps}) <= {BPS}"
            )
        reserve = AssetReserve(
            asset=asset,
            price=self._raw_price(asset, human_price),
            ltv_bps=ltv_bps,
            liquidation_threshold_bps=liquidation_threshold_bps,
        )
        self.reserves[asset] = reserve
        return reserve

    def set_asset_price(self, asset: str, human_price: int) -> None:
        self._reserve(asset).price = self._raw_price(asset, human_price)

    def _raw_price(self, asset: str, human_price: int) -> int:
        if human_price <= 0:
            raise InvalidInput(f"Price must be positive, got {human_price}")
        return raw_price(human_price, self.tokens.decimals(asset), 18)

    def _reserve(self, asset: str) -> AssetReserve:
        try:
            return self.reserves[asset]
        except KeyError:
            raise InvalidInput(f"Asset {asset} is not listed") from None

    # Interest

    def utilization_rate(self, asset: str) -> int:
        reserve = self._reserve(asset)
        debt = reserve.total_debt
        cash = self.tokens.balance_of(asset, self.address)
        if debt + cash == 0:
            return 0
        return mul_div(debt, WAD, debt + cash)

    def borrow_rate_per_block(self, asset: str) -> int:
        """Borrow rate per block using the kinked interest model"""
        reserve = self._reserve(asset)
        utilization = self.utilization_rate(asset)

        if utilization <= reserve.kink:
            return reserve.base_rate_per_block + mul(utilization, reserve.multiplier_per_block)

        base_rate = reserve.base_rate_per_block + mul(reserve.kink, reserve.multiplier_per_block)
        return base_rate + mul(utilization - reserve.kink, reserve.jump_per_block)

    @journaled
    def accrue_interest(self, asset: str, blocks: int) -> int:
        """Compound the borrow index over a number of blocks; returns the new index"""
        if blocks < 0:
            raise InvalidInput(f"blocks must be non-negative, got {blocks}")
        reserve = self._reserve(asset)
        factor = _compound(self.borrow_rate_per_block(asset), blocks)
        self._set_reserve(reserve, "borrow_index", mul(reserve.borrow_index, factor))
        return reserve.borrow_index

    def borrow_index(self, asset: str) -> int:
        return self._reserve(asset).borrow_index

    # Account state

    def collateral_of(self, account: str, asset: str) -> int:
        return self._collateral.get((account, asset), 0)

    def scaled_debt_of(self, account: str, asset: str) -> int:
        return self._scaled_debt.get((account, asset), 0)

    def debt_of(self, account: str, asset: str) -> int:
        return mul_div_rounding_up(self.scaled_debt_of(account, asset), self._reserve(asset).borrow_index, WAD)

    def _values(self, account: str) -> Tuple[int, int, int, int]:
        """(collateral value, ltv-weighted value, threshold-weighted value, debt value)"""
        collateral = weighted_ltv = weighted_threshold = debt = 0
        for asset, reserve in self.reserves.items():
            amount = self.collateral_of(account, asset)
            if amount:
                value = mul(amount, reserve.price)
                collateral += value
                weighted_ltv += bps_of(value, reserve.ltv_bps)
                weighted_threshold += bps_of(value, reserve.liquidation_threshold_bps)
            owed = self.debt_of(account, asset)
            if owed:
                debt += mul(owed, reserve.price)
        return collateral, weighted_ltv, weighted_threshold, debt

    def account_data(self, account: str) -> AccountData:
        """Aggregate position of an account across every reserve"""
        collateral, weighted_ltv, weighted_threshold, debt = self._values(account)

        ltv = mul_div(weighted_ltv, BPS, collateral) if collateral else 0
        threshold = mul_div(weighted_threshold, BPS, collateral) if collateral else 0
        health_factor = div(weighted_threshold, debt) if debt else MAX_UINT256

        return AccountData(
            collateral=collateral,
            debt=debt,
            available=max(weighted_ltv - debt, 0),
            liquidation_threshold=threshold,
            ltv=ltv,
            health_factor=health_factor,
        )

    # LendingCollaborator

    @journaled
    def supply_collateral(self, account: str, asset: str, amount: int) -> None:
        reserve = self._reserve(asset)
        self.tokens.transfer(asset, account, self.address, amount)
        self._set_entry(self._collateral, (account, asset), self.collateral_of(account, asset) + amount, "collateral")
        self._set_reserve(reserve, "total_collateral", reserve.total_collateral + amount)

    @journaled
    def withdraw(self, account: str, asset: str, amount: int) -> None:
        reserve = self._reserve(asset)
        held = self.collateral_of(account, asset)
        if amount > held:
            raise InsufficientFunds(asset, f"{account} (collateral)", amount, held)

        _, _, weighted_threshold, debt = self._values(account)
        remaining_threshold = weighted_threshold - bps_of(mul(amount, reserve.price), reserve.liquidation_threshold_bps)
        if debt and remaining_threshold < debt:
            raise InsufficientFunds(asset, f"{account} (health factor)", debt, max(remaining_threshold, 0))

        self._set_entry(self._collateral, (account, asset), held - amount, "collateral")
        self._set_reserve(reserve, "total_collateral", reserve.total_collateral - amount)
        self.tokens.transfer(asset, self.address, account, amount)

    @journaled
    def borrow(self, account: str, asset: str, amount: int) -> int:
        reserve = self._reserve(asset)
        if amount <= 0:
            raise InvalidInput(f"Borrow amount must be positive, got {amount}")

        cash = self.tokens.balance_of(asset, self.address)
        if cash < amount:
            raise InsufficientFunds(asset, f"{self.address} (liquidity)", amount, cash)

        _, weighted_ltv, _, debt = self._values(account)
        new_debt = debt + mul(amount, reserve.price)
        if new_debt > weighted_ltv:
            raise InsufficientFunds(asset, f"{account} (borrow capacity)", new_debt, weighted_ltv)

        scaled = mul_div_rounding_up(amount, WAD, reserve.borrow_index)
        self._set_entry(self._scaled_debt, (account, asset), self.scaled_debt_of(account, asset) + scaled, "debt")
        self._set_reserve(reserve, "total_scaled_debt", reserve.total_scaled_debt + scaled)
        self.tokens.transfer(asset, self.address, account, amount)
        logger.debug("%s borrowed %d %s (scaled %d)", account, amount, asset, scaled)
        return scaled

    @journaled
    def repay(self, account: str, asset: str, amount: int) -> int:
        reserve = self._reserve(asset)
        debt = self.debt_of(account, asset)
        repaid = min(amount, debt)
        if repaid == 0:
            return 0

        self.tokens.transfer(asset, account, self.address, repaid)

        held_scaled = self.scaled_debt_of(account, asset)
        if repaid == debt:
            burned = held_scaled
        else:
            burned = min(mul_div(repaid, WAD, reserve.borrow_index), held_scaled)
        self._set_entry(self._scaled_debt, (account, asset), held_scaled - burned, "debt")
        self._set_reserve(reserve, "total_scaled_debt", max(reserve.total_scaled_debt - burned, 0))
        return repaid

    def flash_fee(self, amount: int) -> int:
        return mul_div_rounding_up(amount, self.flash_fee_bps, BPS)

    def flash_loan(self, receiver: str, asset: str, amount: int, callback: FlashLoanCallback) -> int:
        """
        Lend amount to receiver, run callback, then pull amount + fee using the
        receiver's allowance. Any failure undoes everything the callback did.
        """
        self._reserve(asset)
        if amount <= 0:
            raise InvalidInput(f"Flash loan amount must be positive, got {amount}")

        fee = self.flash_fee(amount)
        with self.rollback.atomic(f"flash_loan:{asset}:{amount}"):
            self.tokens.transfer(asset, self.address, receiver, amount)
            callback(asset, amount, fee)
            try:
                self.tokens.transfer_from(asset, self.address, receiver, self.address, amount + fee)
            except InsufficientFunds as exc:
                raise AtomicSequenceFailed(f"Flash loan of {amount} {asset} not repaid: {exc}") from exc

        logger.debug("Flash loan %d %s to %s, fee %d", amount, asset, receiver, fee)
        return fee
