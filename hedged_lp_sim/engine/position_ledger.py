#!/usr/bin/env python3
"""
Position Ledger

Store of leveraged short positions per owner. Ids are dense and start at 0
for every owner: a new position's id is the length of the owner's list at
creation. Records are never removed; closing only moves the state.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional

from ..core.errors import InvalidStateTransition, PositionNotFound
from ..core.rollback import RollbackLog, journaled


class PositionState(str, Enum):
    """Lifecycle of a leveraged position"""
    PENDING = "pending"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


ALLOWED_TRANSITIONS = {
    PositionState.PENDING: {PositionState.OPEN},
    PositionState.OPEN: {PositionState.CLOSING},
    PositionState.CLOSING: {PositionState.CLOSED},
    PositionState.CLOSED: set(),
}


@dataclass
class LeveragedPosition:
    """One leveraged short, amounts in base units of their asset"""
    owner: str
    position_id: int
    base_asset: str
    leveraged_asset: str
    supplied_amount: int
    leverage_multiplier: int  # 18 decimals
    borrow_notional: int = 0  # base asset flash-borrowed at open
    borrowed_amount_at_open: int = 0  # leveraged asset borrowed from the lender
    scaled_debt: int = 0
    collateral_amount: int = 0
    returned_at_open: int = 0  # leftover base sent back to the owner
    state: PositionState = PositionState.PENDING

    @property
    def is_closed(self) -> bool:
        return self.state == PositionState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == PositionState.OPEN


class PositionLedger:
    """Owner-scoped position lists with journaled mutations"""

    def __init__(self, rollback: Optional[RollbackLog] = None):
        self.rollback = rollback or RollbackLog()
        self._positions: Dict[str, List[LeveragedPosition]] = {}

    @journaled
    def create(self, owner: str, base_asset: str, leveraged_asset: str,
               supplied_amount: int, leverage_multiplier: int) -> LeveragedPosition:
        positions = self._positions.setdefault(owner, [])
        position = LeveragedPosition(
            owner=owner,
            position_id=len(positions),
            base_asset=base_asset,
            leveraged_asset=leveraged_asset,
            supplied_amount=supplied_amount,
            leverage_multiplier=leverage_multiplier,
        )
        positions.append(position)
        self.rollback.record(f"create position {owner}/{position.position_id}", positions.pop)
        return position

    def get(self, owner: str, position_id: int) -> LeveragedPosition:
        positions = self._positions.get(owner, [])
        if not 0 <= position_id < len(positions):
            raise PositionNotFound(owner, position_id)
        return positions[position_id]

    def _store(self, position: LeveragedPosition) -> LeveragedPosition:
        positions = self._positions[position.owner]
        previous = positions[position.position_id]
        positions[position.position_id] = position
        self.rollback.record(
            f"update position {position.owner}/{position.position_id}",
            lambda: positions.__setitem__(position.position_id, previous)
        )
        return position

    @journaled
    def transition(self, owner: str, position_id: int, new_state: PositionState) -> LeveragedPosition:
        position = self.get(owner, position_id)
        if new_state not in ALLOWED_TRANSITIONS[position.state]:
            raise InvalidStateTransition(
                f"Position {owner}/{position_id} cannot move {position.state.value} -> {new_state.value}"
            )
        return self._store(replace(position, state=new_state))

    @journaled
    def update(self, owner: str, position_id: int, /, **changes) -> LeveragedPosition:
        """Replace accounting fields; state only moves through transition()"""
        if "state" in changes or "owner" in changes or "position_id" in changes:
            raise InvalidStateTransition("Use transition() to change state; owner and id are fixed")
        return self._store(replace(self.get(owner, position_id), **changes))

    def positions_of(self, owner: str) -> List[LeveragedPosition]:
        return list(self._positions.get(owner, []))

    def open_positions(self, owner: Optional[str] = None) -> List[LeveragedPosition]:
        owners = [owner] if owner is not None else list(self._positions)
        return [
            position
            for name in owners
            for position in self._positions.get(name, [])
            if position.is_open
        ]

    def count(self, owner: str) -> int:
        return len(self._positions.get(owner, []))
