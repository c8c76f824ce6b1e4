#!/usr/bin/env python3
"""
In-Process Token Ledger

Balances, allowances and decimals for every token of a deployment. All
mutations are journaled in the shared rollback log.
"""

from typing import Dict, Optional, Tuple

from ..core.errors import InsufficientFunds, InvalidInput
from ..core.rollback import RollbackLog, journaled
from .interfaces import TokenAdapter


class TokenLedger(TokenAdapter):
    """Token adapter backed by in-memory balance tables"""

    def __init__(self, rollback: Optional[RollbackLog] = None):
        self.rollback = rollback or RollbackLog()
        self._decimals: Dict[str, int] = {}
        self._balances: Dict[Tuple[str, str], int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}

    def register_token(self, token: str, decimals: int = 18) -> None:
        if not 0 <= decimals <= 36:
            raise InvalidInput(f"Unsupported decimals for {token}: {decimals}")
        self._decimals[token] = decimals

    def _require_token(self, token: str) -> None:
        if token not in self._decimals:
            raise InvalidInput(f"Unknown token {token}")

    def _require_amount(self, amount: int) -> None:
        if not isinstance(amount, int) or amount < 0:
            raise InvalidInput(f"Token amount must be a non-negative int, got {amount!r}")

    def _set_balance(self, token: str, holder: str, value: int) -> None:
        key = (token, holder)
        old = self._balances.get(key, 0)
        self._balances[key] = value
        self.rollback.record(
            f"balance {token}/{holder} {old} -> {value}",
            lambda: self._balances.__setitem__(key, old)
        )

    def _set_allowance(self, token: str, owner: str, spender: str, value: int) -> None:
        key = (token, owner, spender)
        old = self._allowances.get(key, 0)
        self._allowances[key] = value
        self.rollback.record(
            f"allowance {token}/{owner}->{spender} {old} -> {value}",
            lambda: self._allowances.__setitem__(key, old)
        )

    # Test setup

    @journaled
    def mint(self, token: str, holder: str, amount: int) -> None:
        self._require_token(token)
        self._require_amount(amount)
        self._set_balance(token, holder, self.balance_of(token, holder) + amount)

    # TokenAdapter

    @journaled
    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        self._require_token(token)
        self._require_amount(amount)
        if amount == 0 or sender == recipient:
            return

        available = self.balance_of(token, sender)
        if available < amount:
            raise InsufficientFunds(token, sender, amount, available)

        self._set_balance(token, sender, available - amount)
        self._set_balance(token, recipient, self.balance_of(token, recipient) + amount)

    @journaled
    def transfer_from(self, token: str, spender: str, sender: str, recipient: str, amount: int) -> None:
        self._require_token(token)
        self._require_amount(amount)

        allowed = self.allowance(token, sender, spender)
        if allowed < amount:
            raise InsufficientFunds(token, f"{sender} (allowance for {spender})", amount, allowed)

        self.transfer(token, sender, recipient, amount)
        self._set_allowance(token, sender, spender, allowed - amount)

    @journaled
    def approve(self, token: str, owner: str, spender: str, amount: int) -> None:
        self._require_token(token)
        self._require_amount(amount)
        self._set_allowance(token, owner, spender, amount)

    def allowance(self, token: str, owner: str, spender: str) -> int:
        return self._allowances.get((token, owner, spender), 0)

    def balance_of(self, token: str, holder: str) -> int:
        self._require_token(token)
        return self._balances.get((token, holder), 0)

    def decimals(self, token: str) -> int:
        self._require_token(token)
        return self._decimals[token]

    def total_supply(self, token: str) -> int:
        self._require_token(token)
        return sum(amount for (name, _), amount in self._balances.items() if name == token)
