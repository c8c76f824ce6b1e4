#!/usr/bin/env python3
"""Shared fixtures for the hedged LP test suite"""

import pytest

from hedged_lp_sim.core.fixed_point import WAD, from_number
from hedged_lp_sim.engine.deployment import create_deployment


@pytest.fixture
def flat_deployment():
    """18-decimal tokens at a 1.0 price, so token amounts and values coincide"""
    return create_deployment(human_price=WAD, decimals0=18, decimals1=18)


@pytest.fixture
def hbar_deployment():
    """HBAR (8 decimals) / USDC (6 decimals) at 0.05 USDC per HBAR"""
    return create_deployment(human_price=from_number("0.05"))


@pytest.fixture
def fund_base():
    """Mint base asset to an owner and approve the position manager for it"""

    def fund(deployment, owner: str, amount: int) -> None:
        deployment.tokens.mint(deployment.token1, owner, amount)
        allowance = deployment.tokens.allowance(deployment.token1, owner, deployment.manager.address)
        deployment.tokens.approve(deployment.token1, owner, deployment.manager.address, allowance + amount)

    return fund
