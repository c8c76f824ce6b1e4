#!/usr/bin/env python3
"""
Error taxonomy for the hedged LP engine.

Every failure is local, synchronous and non-retryable: the caller re-derives
fresh inputs and retries the whole operation.
"""


class HedgeError(Exception):
    """Base class for all engine errors"""


# Math errors

class InvalidPriceRange(HedgeError, ValueError):
    """Lower bound is not strictly below the upper bound"""

    def __init__(self, lower: int, upper: int):
        super().__init__(f"Invalid price range: lower {lower} >= upper {upper}")
        self.lower = lower
        self.upper = upper


class PriceOutOfRange(HedgeError, ValueError):
    """A price argument lies outside [lower, upper]"""

    def __init__(self, price: int, lower: int, upper: int):
        super().__init__(f"Price {price} outside range [{lower}, {upper}]")
        self.price = price
        self.lower = lower
        self.upper = upper


class DivisionByZero(HedgeError, ZeroDivisionError):
    """A computed denominator is exactly zero"""


class InvalidInput(HedgeError, ValueError):
    """A magnitude or argument is outside what the engine can represent"""


class FixedPointOverflow(InvalidInput):
    """Result would not fit in an unsigned 256-bit word"""


class FixedPointUnderflow(InvalidInput):
    """Unsigned subtraction would go below zero"""


# Funds and execution errors

class InsufficientFunds(HedgeError):
    """Holder balance or allowance is smaller than the required amount"""

    def __init__(self, token: str, holder: str, required: int, available: int):
        super().__init__(
            f"{holder} has {available} {token}, needs {required}"
        )
        self.token = token
        self.holder = holder
        self.required = required
        self.available = available


class SlippageExceeded(HedgeError):
    """Swap output fell below the caller's minimum"""

    def __init__(self, amount_out: int, min_out: int):
        super().__init__(f"Swap returned {amount_out}, minimum was {min_out}")
        self.amount_out = amount_out
        self.min_out = min_out


class AtomicSequenceFailed(HedgeError):
    """A step of a borrow/swap/repay chain could not complete; everything was rolled back"""


class Unauthorized(HedgeError):
    """Caller is not allowed to run a privileged operation"""


# Lifecycle errors

class PositionNotFound(HedgeError, KeyError):
    """No position exists for (owner, position_id)"""

    def __init__(self, owner: str, position_id: int):
        super().__init__(f"No position {position_id} for owner {owner}")
        self.owner = owner
        self.position_id = position_id

    def __str__(self):
        return self.args[0]


class AlreadyClosed(HedgeError):
    """Position is not open"""


class InvalidStateTransition(HedgeError):
    """Position lifecycle transition is not allowed"""
