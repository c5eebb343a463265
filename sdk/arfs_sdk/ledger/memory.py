"""
In-memory ledger gateway implementation for testing.

This module provides a simple in-memory ledger for:
- Unit tests
- Integration tests
- Local development without a network

Invariants:
    - All data is lost on process exit
    - Records are append-only; nothing is ever updated in place
    - A record becomes queryable only once its upload completes
    - Bundle transactions expose their data items when they complete

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the LedgerGateway protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..errors import LedgerError
from ..types import GQLTag, TransactionID, Winston
from .base import (
    BUNDLE_FORMAT,
    BUNDLE_VERSION,
    BlockInfo,
    ChunkUploader,
    DataItem,
    LedgerEdge,
    LedgerNode,
    PageInfo,
    QueryPage,
    TagFilter,
    Transaction,
    TransactionStatus,
    Wallet,
    parse_bundle,
    serialize_bundle,
    sign_record,
)

logger = logging.getLogger(__name__)


@dataclass
class _StoredRecord:
    node: LedgerNode
    data: bytes
    block_height: Optional[int] = None


@dataclass
class _PendingUpload:
    transaction: Transaction
    received: Dict[int, bytes]


class InMemoryLedger:
    """In-memory implementation of LedgerGateway for testing.

    Fees are a flat base plus a per-byte price. Posting a transaction
    deducts reward and quantity from the owner's balance and credits the
    target. Records sit in the mempool until mine() is called.

    Attributes:
        base_fee: Winston charged per transaction
        fee_per_byte: Winston charged per payload byte

    Example:
        >>> ledger = InMemoryLedger()
        >>> ledger.fund("addr", 10**12)
        >>> tx = await ledger.create_transaction(b"hello", wallet)
        >>> await ledger.sign(tx, wallet)
        >>> await ledger.post_transaction(tx)
    """

    def __init__(self, base_fee: Winston = 1_000, fee_per_byte: Winston = 10) -> None:
        self.base_fee = base_fee
        self.fee_per_byte = fee_per_byte
        self._records: Dict[TransactionID, _StoredRecord] = {}
        self._order: List[TransactionID] = []
        self._pending: Dict[TransactionID, _PendingUpload] = {}
        self._balances: Dict[str, Winston] = defaultdict(int)
        self._height = 0
        self._failures: Dict[str, List[Exception]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.query_count = 0

    # Fees and balances

    def price(self, byte_count: int) -> Winston:
        return self.base_fee + self.fee_per_byte * byte_count

    def fund(self, address: str, winston: Winston) -> None:
        self._balances[address] += winston

    async def get_balance(self, address: str) -> Winston:
        return self._balances[address]

    # Queries

    async def query(
        self,
        filters: Sequence[TagFilter],
        cursor: Optional[str] = None,
        first: int = 100,
    ) -> QueryPage:
        self.query_count += 1
        async with self._lock:
            matching = [
                (index, self._records[tx_id].node)
                for index, tx_id in enumerate(self._order)
                if all(f.matches(self._records[tx_id].node.tags) for f in filters)
            ]
        start = int(cursor) if cursor else -1
        remaining = [(i, n) for i, n in matching if i > start]
        page = remaining[:first]
        edges = tuple(LedgerEdge(cursor=str(i), node=n) for i, n in page)
        return QueryPage(edges=edges, page_info=PageInfo(has_next_page=len(remaining) > first))

    async def get_data(self, tx_id: TransactionID) -> bytes:
        record = self._records.get(tx_id)
        if record is None:
            raise LedgerError(f"Transaction {tx_id} not found", code="TX_NOT_FOUND")
        return record.data

    async def get_tags(self, tx_id: TransactionID) -> tuple[GQLTag, ...]:
        record = self._records.get(tx_id)
        if record is None:
            raise LedgerError(f"Transaction {tx_id} not found", code="TX_NOT_FOUND")
        return record.node.tags

    # Writes

    async def create_transaction(
        self,
        data: bytes,
        wallet: Wallet,
        reward: Optional[Winston] = None,
        target: str = "",
        quantity: Winston = 0,
    ) -> Transaction:
        return Transaction(
            data=data,
            reward=self.price(len(data)) if reward is None else reward,
            owner=wallet.address,
            target=target,
            quantity=quantity,
        )

    async def sign(self, transaction: Transaction, wallet: Wallet) -> None:
        await sign_record(transaction, wallet)

    async def get_uploader(self, transaction: Transaction) -> ChunkUploader:
        return ChunkUploader(self, transaction)

    async def post_transaction_header(self, transaction: Transaction) -> None:
        self._maybe_fail("header")
        self._charge(transaction)
        self._pending[transaction.id] = _PendingUpload(transaction=transaction, received={})
        logger.debug("Transaction header accepted", extra={"tx_id": transaction.id})

    async def post_chunk(self, transaction: Transaction, index: int, chunk: bytes) -> None:
        self._maybe_fail("chunk")
        pending = self._pending.get(transaction.id)
        if pending is None:
            raise LedgerError(f"No header posted for {transaction.id}")
        pending.received[index] = chunk
        if len(pending.received) == len(transaction.chunks()):
            del self._pending[transaction.id]
            data = b"".join(pending.received[i] for i in sorted(pending.received))
            await self._commit(transaction.id, transaction.owner, transaction.tags, data)

    async def post_transaction(self, transaction: Transaction) -> None:
        if not transaction.id:
            raise LedgerError("Transaction must be signed before posting")
        self._maybe_fail("post")
        self._charge(transaction)
        await self._commit(transaction.id, transaction.owner, transaction.tags, transaction.data)

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

    # Status

    async def get_status(self, tx_id: TransactionID) -> TransactionStatus:
        record = self._records.get(tx_id)
        if record is None or record.block_height is None:
            return TransactionStatus()
        return TransactionStatus(
            block_height=record.block_height,
            number_of_confirmations=self._height - record.block_height,
        )

    async def get_mempool(self) -> list[TransactionID]:
        return [tx_id for tx_id in self._order if self._records[tx_id].block_height is None]

    # Internals

    def _charge(self, transaction: Transaction) -> None:
        cost = transaction.reward + transaction.quantity
        if self._balances[transaction.owner] < cost:
            raise LedgerError(
                f"Balance of {transaction.owner} too low for {transaction.id}",
                code="INSUFFICIENT_BALANCE",
            )
        self._balances[transaction.owner] -= cost
        if transaction.target:
            self._balances[transaction.target] += transaction.quantity

    async def _commit(
        self,
        tx_id: TransactionID,
        owner: str,
        tags: Sequence[GQLTag],
        data: bytes,
    ) -> None:
        async with self._lock:
            self._store(tx_id, owner, tags, data)
            tag_map = {t.name: t.value for t in tags}
            if tag_map.get("Bundle-Format") == BUNDLE_FORMAT:
                for item in parse_bundle(data):
                    self._store(item.id, item.owner, item.tags, item.data)

    def _store(self, tx_id: TransactionID, owner: str, tags: Sequence[GQLTag], data: bytes) -> None:
        if tx_id in self._records:
            raise LedgerError(f"Transaction {tx_id} already exists", code="TX_EXISTS")
        node = LedgerNode(id=tx_id, tags=tuple(tags), owner=owner)
        self._records[tx_id] = _StoredRecord(node=node, data=data)
        self._order.append(tx_id)
        logger.debug("Record committed", extra={"tx_id": tx_id, "size": len(data)})

    def _maybe_fail(self, operation: str) -> None:
        queue = self._failures.get(operation)
        if queue:
            raise queue.pop(0)

    # Testing helpers

    def inject_failure(self, operation: str, exception: Exception, times: int = 1) -> None:
        """Make the next `times` calls of an operation raise.

        Args:
            operation: One of "header", "chunk", "post"
            exception: Exception to raise
            times: Number of consecutive failures
        """
        self._failures[operation].extend([exception] * times)

    def mine(self, blocks: int = 1) -> None:
        """Mine all mempool records into the next block, then add empty blocks."""
        self._height += 1
        for tx_id in self._order:
            record = self._records[tx_id]
            if record.block_height is None:
                record.block_height = self._height
                record.node = LedgerNode(
                    id=record.node.id,
                    tags=record.node.tags,
                    owner=record.node.owner,
                    block=BlockInfo(height=self._height, timestamp=self._height),
                )
        self._height += blocks - 1

    def get_all_records(self) -> List[LedgerNode]:
        return [self._records[tx_id].node for tx_id in self._order]

    def get_record_count(self) -> int:
        return len(self._order)

    def append_record(
        self,
        tags: Sequence[GQLTag],
        data: bytes,
        tx_id: Optional[TransactionID] = None,
        owner: str = "",
    ) -> TransactionID:
        """Store a record directly, bypassing signing and fees."""
        tx_id = tx_id or f"tx-{len(self._order):06d}"
        self._store(tx_id, owner, tags, data)
        return tx_id
