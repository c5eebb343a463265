"""
HTTP ledger gateway built on httpx.

Talks to a gateway's GraphQL endpoint for tag queries and to its REST
endpoints for data, prices, balances, status and submissions.

Invariants:
    - One AsyncClient per gateway instance, closed by close()/__aexit__
    - httpx transport errors surface as LedgerConnectionError
    - Non-2xx responses surface as LedgerError carrying the status code
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from ..config import Settings
from ..crypto import b64url_decode, b64url_encode
from ..errors import LedgerConnectionError, LedgerError
from ..types import GQLTag, TransactionID, Winston
from .base import (
    BUNDLE_FORMAT,
    BUNDLE_VERSION,
    CHUNK_SIZE,
    ChunkUploader,
    DataItem,
    QueryPage,
    TagFilter,
    Transaction,
    TransactionStatus,
    Wallet,
    serialize_bundle,
    sign_record,
)
from .graphql import build_query, parse_query_response

logger = logging.getLogger(__name__)


class HttpLedgerGateway:
    """LedgerGateway over a gateway's HTTP API.

    Example:
        >>> async with HttpLedgerGateway(Settings()) as gateway:
        ...     page = await gateway.query([TagFilter.of("Drive-Id", drive_id)])
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            settings: SDK settings (loaded from env if not provided)
            client: Optional preconfigured httpx client
        """
        self.settings = settings or Settings()
        self._base_url = self.settings.gateway_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self.settings.request_timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpLedgerGateway:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise LedgerConnectionError(f"{method} {path} failed: {e}", url=self._base_url + path) from e
        if response.status_code >= 400:
            raise LedgerError(
                f"{method} {path} returned {response.status_code}",
                code="HTTP_ERROR",
                details={"status_code": response.status_code, "path": path},
            )
        return response

    # Queries

    async def query(
        self,
        filters: Sequence[TagFilter],
        cursor: Optional[str] = None,
        first: int = 100,
    ) -> QueryPage:
        body = build_query(filters, cursor=cursor, first=first)
        response = await self._request("POST", "/graphql", json=body)
        return parse_query_response(response.json())

    async def get_data(self, tx_id: TransactionID) -> bytes:
        response = await self._request("GET", f"/{tx_id}")
        return response.content

    async def get_tags(self, tx_id: TransactionID) -> tuple[GQLTag, ...]:
        response = await self._request("GET", f"/tx/{tx_id}/tags")
        return tuple(
            GQLTag(b64url_decode(t["name"]).decode("utf-8"), b64url_decode(t["value"]).decode("utf-8"))
            for t in response.json()
        )

    # Writes

    async def create_transaction(
        self,
        data: bytes,
        wallet: Wallet,
        reward: Optional[Winston] = None,
        target: str = "",
        quantity: Winston = 0,
    ) -> Transaction:
        if reward is None:
            path = f"/price/{len(data)}/{target}" if target else f"/price/{len(data)}"
            response = await self._request("GET", path)
            reward = int(response.text)
        anchor = (await self._request("GET", "/tx_anchor")).text
        return Transaction(
            data=data,
            reward=reward,
            owner=wallet.address,
            target=target,
            quantity=quantity,
            anchor=anchor,
        )

    async def sign(self, transaction: Transaction, wallet: Wallet) -> None:
        await sign_record(transaction, wallet)

    async def get_uploader(self, transaction: Transaction) -> ChunkUploader:
        return ChunkUploader(self, transaction)

    async def post_transaction_header(self, transaction: Transaction) -> None:
        await self._request("POST", "/tx", json=self._transaction_json(transaction, include_data=False))

    async def post_chunk(self, transaction: Transaction, index: int, chunk: bytes) -> None:
        await self._request(
            "POST",
            "/chunk",
            json={
                "tx_id": transaction.id,
                "offset": str(index * CHUNK_SIZE),
                "chunk": b64url_encode(chunk),
            },
        )

    async def post_transaction(self, transaction: Transaction) -> None:
        if not transaction.id:
            raise LedgerError("Transaction must be signed before posting")
        await self._request("POST", "/tx", json=self._transaction_json(transaction, include_data=True))
        logger.info("Transaction posted", extra={"tx_id": transaction.id})

    async def create_data_item(
        self,
        data: bytes,
        tags: Sequence[GQLTag],
        wallet: Wallet,
    ) -> DataItem:
        item = DataItem(data=data, tags=list(tags))
        await sign_record(item, wallet)
        return item

    async def bundle(self, data_items: Sequence[DataItem], wallet: Wallet) -> Transaction:
        tx = await self.create_transaction(serialize_bundle(data_items), wallet)
        tx.add_tag("Bundle-Format", BUNDLE_FORMAT)
        tx.add_tag("Bundle-Version", BUNDLE_VERSION)
        return tx

    # Reads

    async def get_balance(self, address: str) -> Winston:
        response = await self._request("GET", f"/wallet/{address}/balance")
        return int(response.text)

    async def get_status(self, tx_id: TransactionID) -> TransactionStatus:
        try:
            response = await self._client.get(f"/tx/{tx_id}/status")
        except httpx.HTTPError as e:
            raise LedgerConnectionError(f"Status of {tx_id} failed: {e}", url=self._base_url) from e
        # 202 means pending, 404 means unknown
        if response.status_code in (202, 404):
            return TransactionStatus()
        if response.status_code >= 400:
            raise LedgerError(
                f"Status of {tx_id} returned {response.status_code}",
                code="HTTP_ERROR",
                details={"status_code": response.status_code},
            )
        body = response.json()
        return TransactionStatus(
            block_height=body.get("block_height"),
            number_of_confirmations=int(body.get("number_of_confirmations", 0)),
        )

    async def get_mempool(self) -> list[TransactionID]:
        response = await self._request("GET", "/tx/pending")
        return list(response.json())

    @staticmethod
    def _transaction_json(transaction: Transaction, include_data: bool) -> dict[str, Any]:
        return {
            "format": 2,
            "id": transaction.id,
            "last_tx": transaction.anchor,
            "owner": transaction.owner,
            "target": transaction.target,
            "quantity": str(transaction.quantity),
            "reward": str(transaction.reward),
            "tags": [
                {"name": b64url_encode(t.name.encode()), "value": b64url_encode(t.value.encode())}
                for t in transaction.tags
            ],
            "data_size": str(transaction.data_size),
            "data": b64url_encode(transaction.data) if include_data else "",
            "signature": b64url_encode(transaction.signature),
        }
