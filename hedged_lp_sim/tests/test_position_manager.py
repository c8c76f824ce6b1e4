#!/usr/bin/env python3
"""
Position Manager Test Suite

Test scenarios:
1. Leveraged open through a flash loan and its bookkeeping
2. Atomic failure: slippage, capacity and allowance errors leave no trace
3. Close: debt repaid, collateral released, PnL realized, double close
4. Shared credit line across positions and interest accrual
5. Position ledger lifecycle rules
"""

import threading

import pytest

from hedged_lp_sim.core.errors import (
    AlreadyClosed, AtomicSequenceFailed, InsufficientFunds, InvalidInput,
    InvalidStateTransition, PositionNotFound, SlippageExceeded
)
from hedged_lp_sim.core.fixed_point import WAD, from_number
from hedged_lp_sim.core.rollback import RollbackLog
from hedged_lp_sim.engine.position_ledger import PositionLedger, PositionState

ALICE = "alice"
BOB = "bob"
LEVERAGE = from_number("1.25")


class TestOpenPosition:
    """Flash-loan-backed leveraged open"""

    @pytest.fixture(autouse=True)
    def _deployment(self, flat_deployment, fund_base):
        self.deployment = flat_deployment
        self.manager = flat_deployment.manager
        self.tokens = flat_deployment.tokens
        self.base = flat_deployment.token1
        self.leveraged = flat_deployment.token0
        fund_base(flat_deployment, ALICE, 100 * WAD)

    def _open(self, owner=ALICE, amount=100 * WAD, leverage=LEVERAGE):
        return self.manager.open(owner, self.base, self.leveraged, amount, leverage)

    def test_open_records_position(self):
        position_id = self._open()
        position = self.manager.get_position(ALICE, position_id)

        assert position_id == 0
        assert position.state == PositionState.OPEN
        assert position.supplied_amount == 100 * WAD
        assert position.borrow_notional == 25 * WAD
        assert position.collateral_amount == 125 * WAD
        assert position.scaled_debt > 0
        assert position.borrowed_amount_at_open > 25 * WAD, "Borrow covers flash fee, markup and swap fee"
        assert abs(position.returned_at_open - from_number("0.50025")) < 10 ** 12

    def test_open_moves_funds(self):
        position_id = self._open()
        position = self.manager.get_position(ALICE, position_id)

        assert self.tokens.balance_of(self.base, ALICE) == position.returned_at_open
        assert self.tokens.allowance(self.base, ALICE, self.manager.address) == 0
        assert self.deployment.lending.collateral_of(self.manager.address, self.base) == 125 * WAD
        assert self.manager.position_debt(ALICE, position_id) == position.borrowed_amount_at_open
        assert self.tokens.balance_of(self.base, self.manager.address) == 0
        assert self.tokens.balance_of(self.leveraged, self.manager.address) == 0

    def test_ids_are_dense_per_owner(self, fund_base):
        fund_base(self.deployment, ALICE, 100 * WAD)
        fund_base(self.deployment, BOB, 100 * WAD)

        assert self._open(amount=50 * WAD) == 0
        assert self._open(amount=50 * WAD) == 1
        assert self._open(owner=BOB) == 0
        assert [p.position_id for p in self.manager.positions_of(ALICE)] == [0, 1]

    def test_unit_leverage_borrows_nothing(self):
        position_id = self._open(leverage=WAD)
        position = self.manager.get_position(ALICE, position_id)

        assert position.borrow_notional == 0
        assert position.scaled_debt == 0
        assert position.collateral_amount == 100 * WAD
        assert self.manager.position_debt(ALICE, position_id) == 0

    def test_input_validation(self):
        with pytest.raises(InvalidInput):
            self._open(leverage=from_number("0.99"))
        with pytest.raises(InvalidInput):
            self._open(amount=0)
        with pytest.raises(InvalidInput):
            self.manager.open(ALICE, self.base, self.base, 100 * WAD, LEVERAGE)
        assert self.manager.ledger.count(ALICE) == 0

    def test_slippage_rolls_back_everything(self):
        self.deployment.swap.set_slippage(500)

        with pytest.raises(AtomicSequenceFailed) as excinfo:
            self._open()

        assert isinstance(excinfo.value.__cause__, SlippageExceeded)
        assert self.manager.ledger.count(ALICE) == 0
        assert self.tokens.balance_of(self.base, ALICE) == 100 * WAD
        assert self.tokens.allowance(self.base, ALICE, self.manager.address) == 100 * WAD
        data = self.manager.account_data()
        assert data.collateral == 0
        assert data.debt == 0

    def test_borrow_capacity_exceeded(self):
        with pytest.raises(AtomicSequenceFailed) as excinfo:
            self._open(leverage=10 * WAD)

        assert isinstance(excinfo.value.__cause__, InsufficientFunds)
        assert self.manager.ledger.count(ALICE) == 0
        assert self.tokens.balance_of(self.base, ALICE) == 100 * WAD

    def test_missing_allowance(self):
        with pytest.raises(InsufficientFunds):
            self._open(owner=BOB)
        assert self.manager.ledger.count(BOB) == 0

    def test_concurrent_opens_get_distinct_ids(self, fund_base):
        fund_base(self.deployment, ALICE, 300 * WAD)
        ids, errors = [], []

        def worker():
            try:
                ids.append(self._open(amount=10 * WAD))
            except Exception as exc:  # surfaced by the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert sorted(ids) == list(range(8))


class TestClosePosition:
    """Flash-loan-backed unwind"""

    @pytest.fixture(autouse=True)
    def _deployment(self, flat_deployment, fund_base):
        self.deployment = flat_deployment
        self.manager = flat_deployment.manager
        self.tokens = flat_deployment.tokens
        self.base = flat_deployment.token1
        self.leveraged = flat_deployment.token0
        fund_base(flat_deployment, ALICE, 100 * WAD)
        self.position_id = self.manager.open(ALICE, self.base, self.leveraged, 100 * WAD, LEVERAGE)

    def test_close_returns_funds(self):
        result = self.manager.close(ALICE, self.position_id)
        position = self.manager.get_position(ALICE, self.position_id)

        assert result.position_id == self.position_id
        assert position.state == PositionState.CLOSED
        assert position.scaled_debt == 0
        assert position.collateral_amount == 125 * WAD, "Collateral size kept for history"

        assert result.base_returned > 95 * WAD
        assert -2 * WAD < result.realized_pnl < 0, "Fees make a flat-price round trip slightly negative"
        assert self.tokens.balance_of(self.base, ALICE) == position.returned_at_open + result.base_returned
        assert self.tokens.balance_of(self.leveraged, ALICE) == result.leveraged_returned

        assert self.deployment.lending.debt_of(self.manager.address, self.leveraged) == 0
        assert self.deployment.lending.collateral_of(self.manager.address, self.base) == 0
        assert self.manager.ledger.open_positions() == []

    def test_double_close(self):
        self.manager.close(ALICE, self.position_id)
        balance = self.tokens.balance_of(self.base, ALICE)

        with pytest.raises(AlreadyClosed):
            self.manager.close(ALICE, self.position_id)
        assert self.manager.get_position(ALICE, self.position_id).state == PositionState.CLOSED
        assert self.tokens.balance_of(self.base, ALICE) == balance

    def test_unknown_position(self):
        with pytest.raises(PositionNotFound):
            self.manager.close(ALICE, 7)
        with pytest.raises(PositionNotFound):
            self.manager.close(BOB, 0)

    def test_unit_leverage_round_trip(self, fund_base):
        fund_base(self.deployment, BOB, 100 * WAD)
        position_id = self.manager.open(BOB, self.base, self.leveraged, 100 * WAD, WAD)
        result = self.manager.close(BOB, position_id)

        assert result.base_returned == 100 * WAD
        assert result.leveraged_returned == 0
        assert result.realized_pnl == 0

    def test_close_slippage_keeps_position_open(self):
        debt = self.manager.position_debt(ALICE, self.position_id)
        self.deployment.swap.set_slippage(500)

        with pytest.raises(AtomicSequenceFailed) as excinfo:
            self.manager.close(ALICE, self.position_id)

        assert isinstance(excinfo.value.__cause__, SlippageExceeded)
        assert self.manager.get_position(ALICE, self.position_id).state == PositionState.OPEN
        assert self.manager.position_debt(ALICE, self.position_id) == debt
        assert self.deployment.lending.collateral_of(self.manager.address, self.base) == 125 * WAD

    def test_close_after_price_drop_profits(self):
        """A short gains when the leveraged asset falls"""
        self.deployment.set_market_price(from_number("0.8"))
        result = self.manager.close(ALICE, self.position_id)
        assert result.realized_pnl > 0

    def test_close_with_accrued_interest(self):
        debt_before = self.manager.position_debt(ALICE, self.position_id)
        self.deployment.lending.reserves[self.leveraged].base_rate_per_block = 10 ** 12
        self.deployment.lending.accrue_interest(self.leveraged, 1000)

        assert self.manager.position_debt(ALICE, self.position_id) > debt_before
        self.manager.close(ALICE, self.position_id)
        assert self.deployment.lending.debt_of(self.manager.address, self.leveraged) == 0


class TestSharedCreditLine:
    """Every position of a manager draws on one lending account"""

    def test_account_data_aggregates_positions(self, flat_deployment, fund_base):
        manager = flat_deployment.manager
        base, leveraged = flat_deployment.token1, flat_deployment.token0
        fund_base(flat_deployment, ALICE, 100 * WAD)
        fund_base(flat_deployment, BOB, 100 * WAD)

        alice_id = manager.open(ALICE, base, leveraged, 100 * WAD, LEVERAGE)
        bob_id = manager.open(BOB, base, leveraged, 100 * WAD, LEVERAGE)
        data = manager.account_data()

        assert data.collateral == 250 * WAD
        assert data.debt == manager.position_debt(ALICE, alice_id) + manager.position_debt(BOB, bob_id)
        assert data.health_factor > WAD

        manager.close(ALICE, alice_id)
        after = manager.account_data()
        assert after.collateral == 125 * WAD
        assert after.debt == manager.position_debt(BOB, bob_id)


class TestPositionLedger:
    """Lifecycle and journaling of position records"""

    def setup_method(self):
        self.rollback = RollbackLog()
        self.ledger = PositionLedger(self.rollback)

    def _create(self, owner=ALICE):
        return self.ledger.create(owner, "USDC", "HBAR", 100, WAD)

    def test_lifecycle(self):
        position = self._create()
        assert position.state == PositionState.PENDING

        for state in (PositionState.OPEN, PositionState.CLOSING, PositionState.CLOSED):
            position = self.ledger.transition(ALICE, 0, state)
        assert position.is_closed

    def test_illegal_transitions(self):
        self._create()
        with pytest.raises(InvalidStateTransition):
            self.ledger.transition(ALICE, 0, PositionState.CLOSED)
        self.ledger.transition(ALICE, 0, PositionState.OPEN)
        with pytest.raises(InvalidStateTransition):
            self.ledger.transition(ALICE, 0, PositionState.PENDING)

    def test_update_cannot_change_identity_or_state(self):
        self._create()
        with pytest.raises(InvalidStateTransition):
            self.ledger.update(ALICE, 0, state=PositionState.CLOSED)
        with pytest.raises(InvalidStateTransition):
            self.ledger.update(ALICE, 0, position_id=3)
        assert self.ledger.update(ALICE, 0, scaled_debt=42).scaled_debt == 42

    def test_failed_unit_removes_created_position(self):
        with pytest.raises(RuntimeError):
            with self.rollback.atomic():
                self._create()
                self.ledger.transition(ALICE, 0, PositionState.OPEN)
                raise RuntimeError("abort")
        assert self.ledger.count(ALICE) == 0
        with pytest.raises(PositionNotFound):
            self.ledger.get(ALICE, 0)

    def test_open_positions_filter(self):
        self._create()
        self._create(BOB)
        self.ledger.transition(BOB, 0, PositionState.OPEN)

        assert [p.owner for p in self.ledger.open_positions()] == [BOB]
        assert self.ledger.open_positions(ALICE) == []
