"""
Unit tests for the community tip oracle.

Tests cover:
- Tip computation and minimum
- Holder weights with vaults
- Weighted selection distribution
- Contract cache reads over HTTP
"""

import random
from collections import Counter

import httpx
import pytest

from sdk.arfs_sdk.community import (
    MINIMUM_TIP_WINSTON,
    ArDriveCommunityOracle,
    VertoContractOracle,
    compute_tip,
    fee_percentage,
    holder_weights,
    weighted_random,
)
from sdk.arfs_sdk.config import Settings
from sdk.arfs_sdk.errors import LedgerConnectionError, LedgerError, SelectionError
from tests.factories import COMMUNITY_STATE, StaticContractOracle


class TestTip:
    def test_percentage_of_cost(self):
        assert compute_tip(10_000_000_000, 15) == 1_500_000_000

    def test_minimum_applies(self):
        assert compute_tip(0, 15) == MINIMUM_TIP_WINSTON
        assert compute_tip(1_000, 15) == MINIMUM_TIP_WINSTON

    def test_floor(self):
        assert compute_tip(100_000_001, 15) == 15_000_000

    def test_fee_setting_read(self):
        assert fee_percentage(COMMUNITY_STATE) == 15.0

    def test_missing_fee_setting(self):
        with pytest.raises(LedgerError):
            fee_percentage({"settings": [["quorum", 1]]})


class TestHolderWeights:
    def test_vault_balances_added(self):
        weights = holder_weights(COMMUNITY_STATE)
        assert weights["holder-a"] == pytest.approx(600 / 2000)
        assert weights["holder-b"] == pytest.approx(1400 / 2000)
        assert sum(weights.values()) == pytest.approx(1.0)

    def test_vault_only_holder(self):
        weights = holder_weights({"balances": {}, "vault": {"v": [{"balance": 5}]}})
        assert weights == {"v": 1.0}

    def test_empty_table(self):
        assert holder_weights({"balances": {}, "vault": {}}) == {}

    def test_zero_balances(self):
        assert holder_weights({"balances": {"a": 0}}) == {}


class TestWeightedRandom:
    def test_empty_returns_none(self):
        assert weighted_random({}, random.Random(1)) is None

    def test_zero_weight_never_selected(self):
        rng = random.Random(3)
        picks = {weighted_random({"a": 0.0, "b": 1.0}, rng) for _ in range(200)}
        assert picks == {"b"}

    def test_heavy_holder_dominates(self):
        """With 0.99 of the weight, a holder wins well over 95% of 10k draws."""
        rng = random.Random(42)
        counts = Counter(weighted_random({"heavy": 0.99, "light": 0.01}, rng) for _ in range(10_000))
        assert counts["heavy"] / 10_000 > 0.95
        assert counts["light"] > 0


class TestArDriveCommunityOracle:
    @pytest.mark.asyncio
    async def test_tip_from_contract(self):
        oracle = ArDriveCommunityOracle(StaticContractOracle(COMMUNITY_STATE))
        assert await oracle.get_community_winston_tip(10**12) == 15 * 10**10

    @pytest.mark.asyncio
    async def test_select_token_holder(self):
        oracle = ArDriveCommunityOracle(StaticContractOracle(COMMUNITY_STATE), rng=random.Random(1))
        assert await oracle.select_token_holder() in {"holder-a", "holder-b"}

    @pytest.mark.asyncio
    async def test_seeded_selection_is_reproducible(self):
        picks1 = [
            await ArDriveCommunityOracle(StaticContractOracle(COMMUNITY_STATE), random.Random(9)).select_token_holder()
            for _ in range(3)
        ]
        picks2 = [
            await ArDriveCommunityOracle(StaticContractOracle(COMMUNITY_STATE), random.Random(9)).select_token_holder()
            for _ in range(3)
        ]
        assert picks1 == picks2

    @pytest.mark.asyncio
    async def test_empty_table_raises(self):
        oracle = ArDriveCommunityOracle(StaticContractOracle({"balances": {}, "vault": {}, "settings": []}))
        with pytest.raises(SelectionError):
            await oracle.select_token_holder()


class TestVertoContractOracle:
    """Tests for the HTTP contract reader."""

    @pytest.fixture
    def settings(self):
        return Settings(contract_cache_url="https://cache.test", community_contract_id="contract-1")

    @pytest.mark.asyncio
    async def test_reads_and_caches_state(self, settings):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"state": COMMUNITY_STATE})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        oracle = VertoContractOracle(settings, client=client)

        assert await oracle.get_community_contract() == COMMUNITY_STATE
        assert await oracle.get_community_contract() == COMMUNITY_STATE
        assert len(requests) == 1
        assert str(requests[0].url) == "https://cache.test/contract-1"
        await oracle.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self, settings):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        oracle = VertoContractOracle(settings, client=client)
        with pytest.raises(LedgerError) as exc_info:
            await oracle.get_community_contract()
        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_missing_state(self, settings):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        oracle = VertoContractOracle(settings, client=client)
        with pytest.raises(LedgerError):
            await oracle.get_community_contract()

    @pytest.mark.asyncio
    async def test_transport_error(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        oracle = VertoContractOracle(settings, client=client)
        with pytest.raises(LedgerConnectionError):
            await oracle.get_community_contract()
