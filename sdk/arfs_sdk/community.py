"""
Community tip oracle.

Computes the community tip owed for an upload and picks the token holder
that receives it. The community contract state (balances, vaults and
settings) comes from a ContractOracle; VertoContractOracle reads it from a
contract cache over HTTP.

Invariants:
    - A tip is never below MINIMUM_TIP_WINSTON, even for zero cost
    - Holder weight is balance plus the sum of its vault balances
    - Selection is one weighted-random draw; the RNG is injectable
    - An empty or weightless holder table raises SelectionError
"""

from __future__ import annotations

import logging
import math
import random
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

import httpx

from .config import Settings
from .errors import LedgerConnectionError, LedgerError, SelectionError
from .types import ArweaveAddress, Winston

logger = logging.getLogger(__name__)

# 0.00001 AR
MINIMUM_TIP_WINSTON: Winston = 10_000_000

FEE_SETTING_KEY = "fee"


@runtime_checkable
class ContractOracle(Protocol):
    """Source of the community contract state."""

    async def get_community_contract(self) -> Dict[str, Any]:
        """Contract state with "balances", "vault" and "settings"."""
        ...


class VertoContractOracle:
    """Reads the community contract from a Verto-style contract cache.

    GET {contract_cache_url}/{contract_id} returns {"state": {...}}.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._client = client or httpx.AsyncClient(timeout=self.settings.request_timeout)
        self._cached: Optional[Dict[str, Any]] = None

    async def close(self) -> None:
        await self._client.aclose()

    async def get_community_contract(self) -> Dict[str, Any]:
        if self._cached is not None:
            return self._cached
        url = f"{self.settings.contract_cache_url.rstrip('/')}/{self.settings.community_contract_id}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise LedgerConnectionError(f"Contract read failed: {e}", url=url) from e
        if response.status_code >= 400:
            raise LedgerError(
                f"Contract read returned {response.status_code}",
                code="HTTP_ERROR",
                details={"status_code": response.status_code, "url": url},
            )
        body = response.json()
        if not isinstance(body, dict) or not isinstance(body.get("state"), dict):
            raise LedgerError("Contract cache response has no state", code="CONTRACT_ERROR", details={"url": url})
        self._cached = body["state"]
        logger.debug("Community contract loaded", extra={"contract_id": self.settings.community_contract_id})
        return self._cached


def fee_percentage(contract: Mapping[str, Any]) -> float:
    """Tip percentage from the contract's settings pairs.

    Raises:
        LedgerError: If the contract carries no fee setting
    """
    for entry in contract.get("settings", []):
        if len(entry) == 2 and entry[0] == FEE_SETTING_KEY:
            return float(entry[1])
    raise LedgerError("Community contract has no fee setting", code="CONTRACT_ERROR")


def compute_tip(data_cost: Winston, fee_pct: float) -> Winston:
    return max(math.floor(data_cost * fee_pct / 100), MINIMUM_TIP_WINSTON)


def holder_weights(contract: Mapping[str, Any]) -> Dict[ArweaveAddress, float]:
    """Normalized holder weights; empty when nothing is held."""
    balances: Dict[ArweaveAddress, float] = {
        addr: float(balance) for addr, balance in contract.get("balances", {}).items()
    }
    for addr, locks in contract.get("vault", {}).items():
        if not locks:
            continue
        vaulted = sum(float(lock["balance"]) for lock in locks)
        balances[addr] = balances.get(addr, 0.0) + vaulted

    total = sum(balances.values())
    if total <= 0:
        return {}
    return {addr: balance / total for addr, balance in balances.items()}


def weighted_random(weights: Mapping[str, float], rng: random.Random) -> Optional[str]:
    """Draw one key with probability proportional to its weight."""
    items: List[tuple[str, float]] = [(k, w) for k, w in weights.items() if w > 0]
    if not items:
        return None
    point = rng.random() * sum(w for _, w in items)
    cumulative = 0.0
    for key, weight in items:
        cumulative += weight
        if point < cumulative:
            return key
    return items[-1][0]


class ArDriveCommunityOracle:
    """Tip amounts and tip recipients for the community contract.

    Example:
        >>> oracle = ArDriveCommunityOracle(VertoContractOracle(settings))
        >>> tip = await oracle.get_community_winston_tip(data_cost)
        >>> recipient = await oracle.select_token_holder()
    """

    def __init__(self, contract_oracle: ContractOracle, rng: random.Random | None = None) -> None:
        self.contract_oracle = contract_oracle
        self.rng = rng or random.Random()

    async def get_community_winston_tip(self, data_cost: Winston) -> Winston:
        contract = await self.contract_oracle.get_community_contract()
        return compute_tip(data_cost, fee_percentage(contract))

    async def select_token_holder(self) -> ArweaveAddress:
        """Pick a holder, weighted by balance plus vaulted balance.

        Raises:
            SelectionError: If no holder carries any weight
        """
        contract = await self.contract_oracle.get_community_contract()
        weights = holder_weights(contract)
        holder = weighted_random(weights, self.rng)
        if holder is None:
            raise SelectionError(
                "Token holder target could not be determined for community tip distribution",
                holder_count=len(contract.get("balances", {})),
            )
        logger.debug("Token holder selected", extra={"holder": holder, "holder_count": len(weights)})
        return holder
