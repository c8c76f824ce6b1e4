#!/usr/bin/env python3
"""
Collaborator Contracts

Interfaces of the external systems the engine consumes. The engine only
talks to these; the in-process implementations in this package are
deterministic stand-ins used for simulation and tests.
"""

from abc import ABC, abstractmethod
from typing import Callable, NamedTuple, Tuple


class AccountData(NamedTuple):
    """Aggregate lending account state, values in base currency (18 decimals)"""
    collateral: int
    debt: int
    available: int
    liquidation_threshold: int  # bps
    ltv: int  # bps
    health_factor: int  # 18 decimals, MAX_UINT256 when there is no debt


class MintResult(NamedTuple):
    token_id: int
    liquidity: int
    amount0: int
    amount1: int


# Callback receives (asset, amount, fee) and must leave amount + fee approved for the lender
FlashLoanCallback = Callable[[str, int, int], None]


class TokenAdapter(ABC):
    """Token transfer, approval and metadata"""

    @abstractmethod
    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        pass

    @abstractmethod
    def transfer_from(self, token: str, spender: str, sender: str, recipient: str, amount: int) -> None:
        pass

    @abstractmethod
    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        pass

    @abstractmethod
    def balance_of(self, token: str, holder: str) -> int:
        pass

    @abstractmethod
    def decimals(self, token: str) -> int:
        pass


class SwapCollaborator(ABC):
    """Price quoting and exact-input swaps on an external exchange"""

    @abstractmethod
    def quote(self, token_in: str, token_out: str, amount_in: int) -> int:
        pass

    @abstractmethod
    def swap_exact_in(self, caller: str, token_in: str, token_out: str, amount_in: int, min_out: int) -> int:
        pass


class LendingCollaborator(ABC):
    """Collateralized lending market with a flash-loan primitive"""

    address: str

    @abstractmethod
    def supply_collateral(self, account: str, asset: str, amount: int) -> None:
        pass

    @abstractmethod
    def withdraw(self, account: str, asset: str, amount: int) -> None:
        pass

    @abstractmethod
    def borrow(self, account: str, asset: str, amount: int) -> int:
        """Returns the scaled debt added"""

    @abstractmethod
    def repay(self, account: str, asset: str, amount: int) -> int:
        """Returns the amount actually repaid"""

    @abstractmethod
    def debt_of(self, account: str, asset: str) -> int:
        pass

    @abstractmethod
    def borrow_index(self, asset: str) -> int:
        pass

    @abstractmethod
    def account_data(self, account: str) -> AccountData:
        pass

    @abstractmethod
    def flash_loan(self, receiver: str, asset: str, amount: int, callback: FlashLoanCallback) -> int:
        """Lend amount, run callback synchronously, pull amount + fee back. Returns the fee."""


class ConcentratedLiquidityCollaborator(ABC):
    """Concentrated-liquidity pool positions keyed by token id"""

    token0: str
    token1: str

    @property
    @abstractmethod
    def sqrt_price_x96(self) -> int:
        pass

    @abstractmethod
    def mint(self, owner: str, tick_lower: int, tick_upper: int,
             amount0_desired: int, amount1_desired: int) -> MintResult:
        pass

    @abstractmethod
    def increase_liquidity(self, owner: str, token_id: int,
                           amount0_desired: int, amount1_desired: int) -> MintResult:
        pass

    @abstractmethod
    def decrease_liquidity(self, owner: str, token_id: int, liquidity: int) -> Tuple[int, int]:
        pass

    @abstractmethod
    def collect(self, owner: str, token_id: int) -> Tuple[int, int]:
        pass
