"""
Shared fixtures for the ArFS SDK tests.
"""

import random

import pytest

from sdk.arfs_sdk.community import ArDriveCommunityOracle
from sdk.arfs_sdk.config import Settings
from sdk.arfs_sdk.ledger.memory import InMemoryLedger
from tests.factories import COMMUNITY_STATE, FakeWallet, StaticContractOracle


@pytest.fixture
def settings():
    """Settings with no retry delays."""
    return Settings(chunk_retry_delay=0, max_chunk_retries=0)


@pytest.fixture
def wallet():
    return FakeWallet()


@pytest.fixture
def ledger(wallet):
    """In-memory ledger with a funded wallet."""
    ledger = InMemoryLedger()
    ledger.fund(wallet.address, 10**12)
    return ledger


@pytest.fixture
def contract_oracle():
    return StaticContractOracle(COMMUNITY_STATE)


@pytest.fixture
def community_oracle(contract_oracle):
    return ArDriveCommunityOracle(contract_oracle, rng=random.Random(7))
