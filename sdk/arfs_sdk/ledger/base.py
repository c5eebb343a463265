"""
Base protocol and types for the ledger gateway abstraction.

This module defines the LedgerGateway protocol every backend implements,
along with the records it exchanges: tag filters, query pages, transactions,
data items and the chunk uploader used to push a transaction's data.

Invariants:
    - A transaction's ID is derived from its signature and never changes
    - Tag filters are AND-combined; the values of one filter are OR-combined
    - Query pages are ordered; cursors are opaque to callers
    - A ChunkUploader holds the only mutable offset state of an upload

How to change safely:
    - Protocol changes require updating all implementations
    - Keep signature_data() stable or previously signed records break
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import (
    AsyncIterator,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from ..crypto import b64url_decode, b64url_encode
from ..errors import LedgerError
from ..types import GQLTag, TransactionID, Winston

logger = logging.getLogger(__name__)

CHUNK_SIZE = 256 * 1024
ANCHOR_SIZE = 32


def new_anchor() -> str:
    """Random anchor; two records with equal content still get distinct IDs."""
    return b64url_encode(os.urandom(ANCHOR_SIZE))


@dataclass(frozen=True)
class TagFilter:
    """Query predicate on one tag.

    Attributes:
        name: Tag name
        values: Accepted values (any of them matches)
    """

    name: str
    values: tuple[str, ...]

    @classmethod
    def of(cls, name: str, value: str | Sequence[str]) -> TagFilter:
        if isinstance(value, str):
            return cls(name=name, values=(value,))
        return cls(name=name, values=tuple(value))

    def matches(self, tags: Sequence[GQLTag]) -> bool:
        return any(t.name == self.name and t.value in self.values for t in tags)


@dataclass(frozen=True)
class BlockInfo:
    """Block a record was mined in."""

    height: int
    timestamp: int


@dataclass(frozen=True)
class LedgerNode:
    """One ledger record as returned by a query."""

    id: TransactionID
    tags: tuple[GQLTag, ...]
    owner: str = ""
    block: Optional[BlockInfo] = None

    def tag_value(self, name: str) -> Optional[str]:
        """First value of the named tag, or None."""
        for tag in self.tags:
            if tag.name == name:
                return tag.value
        return None


@dataclass(frozen=True)
class LedgerEdge:
    cursor: str
    node: LedgerNode


@dataclass(frozen=True)
class PageInfo:
    has_next_page: bool


@dataclass(frozen=True)
class QueryPage:
    """One page of query results."""

    edges: tuple[LedgerEdge, ...]
    page_info: PageInfo


@dataclass(frozen=True)
class TransactionStatus:
    """Confirmation status of a transaction.

    Attributes:
        block_height: Height of the including block, None when not mined
        number_of_confirmations: Blocks mined on top of it
    """

    block_height: Optional[int] = None
    number_of_confirmations: int = 0


@dataclass
class Transaction:
    """A ledger transaction before or after signing.

    Attributes:
        data: Payload bytes
        reward: Fee in winston
        owner: Signer address
        target: Recipient of a transfer ("" for data transactions)
        quantity: Transferred amount in winston
        tags: Tags in insertion order
        anchor: Gateway anchor (last_tx) covered by the signature
        id: Transaction ID, set on signing
        signature: Signature bytes, set on signing
    """

    data: bytes
    reward: Winston
    owner: str = ""
    target: str = ""
    quantity: Winston = 0
    tags: list[GQLTag] = field(default_factory=list)
    anchor: str = field(default_factory=new_anchor)
    id: TransactionID = ""
    signature: bytes = b""

    def add_tag(self, name: str, value: str) -> None:
        if self.signature:
            raise LedgerError(f"Cannot add tag {name} to signed transaction {self.id}")
        self.tags.append(GQLTag(name, value))

    @property
    def data_size(self) -> int:
        return len(self.data)

    def signature_data(self) -> bytes:
        """Canonical bytes covered by the signature."""
        body = {
            "owner": self.owner,
            "target": self.target,
            "quantity": str(self.quantity),
            "reward": str(self.reward),
            "anchor": self.anchor,
            "data_hash": hashlib.sha256(self.data).hexdigest(),
            "tags": [t.to_dict() for t in self.tags],
        }
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def set_signature(self, signature: bytes) -> None:
        self.signature = signature
        self.id = b64url_encode(hashlib.sha256(signature).digest())

    def chunks(self) -> list[bytes]:
        """Data split into upload chunks (at least one, possibly empty)."""
        if not self.data:
            return [b""]
        return [self.data[i : i + CHUNK_SIZE] for i in range(0, len(self.data), CHUNK_SIZE)]


@dataclass
class DataItem:
    """An individually signed record meant to be bundled.

    Attributes:
        data: Payload bytes
        tags: Tags in insertion order
        owner: Signer address
        anchor: Random anchor covered by the signature
        id: Item ID, set on signing
        signature: Signature bytes, set on signing
    """

    data: bytes
    tags: list[GQLTag] = field(default_factory=list)
    owner: str = ""
    anchor: str = field(default_factory=new_anchor)
    id: TransactionID = ""
    signature: bytes = b""

    def signature_data(self) -> bytes:
        body = {
            "owner": self.owner,
            "anchor": self.anchor,
            "data_hash": hashlib.sha256(self.data).hexdigest(),
            "tags": [t.to_dict() for t in self.tags],
        }
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def set_signature(self, signature: bytes) -> None:
        self.signature = signature
        self.id = b64url_encode(hashlib.sha256(signature).digest())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner": self.owner,
            "anchor": self.anchor,
            "signature": b64url_encode(self.signature),
            "tags": [t.to_dict() for t in self.tags],
            "data": b64url_encode(self.data),
        }


@runtime_checkable
class Wallet(Protocol):
    """Signing identity. Key storage is the caller's concern."""

    @property
    def address(self) -> str:
        """Public address of the wallet."""
        ...

    async def sign(self, message: bytes) -> bytes:
        """Sign a message with the wallet's private key."""
        ...


class ChunkSink(Protocol):
    """Transport side of a chunked upload."""

    async def post_transaction_header(self, transaction: Transaction) -> None: ...

    async def post_chunk(self, transaction: Transaction, index: int, chunk: bytes) -> None: ...


class ChunkUploader:
    """Pushes one transaction's header and data chunks in order.

    The first upload_chunk() call posts the header; each following call posts
    the next chunk. A failed call leaves the offset unchanged, so calling
    upload_chunk() again retries the same step.

    Example:
        >>> uploader = await gateway.get_uploader(tx)
        >>> while not uploader.is_complete:
        ...     await uploader.upload_chunk()
    """

    def __init__(self, sink: ChunkSink, transaction: Transaction) -> None:
        if not transaction.id:
            raise LedgerError("Transaction must be signed before upload")
        self._sink = sink
        self.transaction = transaction
        self._chunks = transaction.chunks()
        self._header_posted = False
        self._next_index = 0

    @property
    def total_chunks(self) -> int:
        return len(self._chunks)

    @property
    def uploaded_chunks(self) -> int:
        return self._next_index

    @property
    def header_posted(self) -> bool:
        return self._header_posted

    @property
    def is_complete(self) -> bool:
        return self._header_posted and self._next_index >= len(self._chunks)

    @property
    def pct_complete(self) -> int:
        return int(self._next_index * 100 / len(self._chunks))

    async def upload_chunk(self) -> None:
        if self.is_complete:
            return
        if not self._header_posted:
            await self._sink.post_transaction_header(self.transaction)
            self._header_posted = True
            return
        index = self._next_index
        await self._sink.post_chunk(self.transaction, index, self._chunks[index])
        self._next_index = index + 1


@runtime_checkable
class LedgerGateway(Protocol):
    """Protocol for ledger backends.

    Query contract:
        - query() returns at most `first` edges after `cursor`
        - page_info.has_next_page is authoritative, regardless of edge count

    Write contract:
        - create_transaction() estimates the fee but does not sign
        - sign() sets the signature and the transaction ID
        - A transaction is visible to query() once its uploader completes
          (or, for bundles, once the bundle transaction completes)
    """

    @abstractmethod
    async def query(
        self,
        filters: Sequence[TagFilter],
        cursor: Optional[str] = None,
        first: int = 100,
    ) -> QueryPage:
        """Fetch one page of records matching all filters."""
        ...

    @abstractmethod
    async def get_data(self, tx_id: TransactionID) -> bytes:
        """Fetch the payload of a record.

        Raises:
            LedgerError: If the record does not exist
        """
        ...

    @abstractmethod
    async def get_tags(self, tx_id: TransactionID) -> tuple[GQLTag, ...]:
        """Fetch the tags of a record.

        Raises:
            LedgerError: If the record does not exist
        """
        ...

    @abstractmethod
    async def create_transaction(
        self,
        data: bytes,
        wallet: Wallet,
        reward: Optional[Winston] = None,
        target: str = "",
        quantity: Winston = 0,
    ) -> Transaction:
        """Create an unsigned transaction with an estimated reward."""
        ...

    @abstractmethod
    async def sign(self, transaction: Transaction, wallet: Wallet) -> None:
        """Sign a transaction in place."""
        ...

    @abstractmethod
    async def get_uploader(self, transaction: Transaction) -> ChunkUploader:
        """Create an uploader for a signed transaction."""
        ...

    @abstractmethod
    async def post_transaction(self, transaction: Transaction) -> None:
        """Submit a small signed transaction in one request."""
        ...

    @abstractmethod
    async def create_data_item(
        self,
        data: bytes,
        tags: Sequence[GQLTag],
        wallet: Wallet,
    ) -> DataItem:
        """Create and sign a data item for bundling."""
        ...

    @abstractmethod
    async def bundle(self, data_items: Sequence[DataItem], wallet: Wallet) -> Transaction:
        """Package data items into one unsigned outer transaction."""
        ...

    @abstractmethod
    async def get_balance(self, address: str) -> Winston:
        """Wallet balance in winston."""
        ...

    @abstractmethod
    async def get_status(self, tx_id: TransactionID) -> TransactionStatus:
        """Confirmation status of a transaction."""
        ...

    @abstractmethod
    async def get_mempool(self) -> list[TransactionID]:
        """IDs of transactions waiting to be mined."""
        ...


BUNDLE_FORMAT = "json"
BUNDLE_VERSION = "1.0.0"


def serialize_bundle(data_items: Sequence[DataItem]) -> bytes:
    """Encode signed data items as the payload of a bundle transaction."""
    unsigned = [item for item in data_items if not item.id]
    if unsigned:
        raise LedgerError(f"{len(unsigned)} data item(s) are not signed")
    return json.dumps({"items": [item.to_dict() for item in data_items]}).encode("utf-8")


def parse_bundle(data: bytes) -> list[DataItem]:
    """Decode the payload of a bundle transaction."""
    try:
        body = json.loads(data.decode("utf-8"))
        return [
            DataItem(
                data=b64url_decode(raw["data"]),
                tags=[GQLTag(t["name"], t["value"]) for t in raw["tags"]],
                owner=raw["owner"],
                anchor=raw["anchor"],
                id=raw["id"],
                signature=b64url_decode(raw["signature"]),
            )
            for raw in body["items"]
        ]
    except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise LedgerError(f"Malformed bundle payload: {e}") from e


async def sign_record(record: Transaction | DataItem, wallet: Wallet) -> None:
    """Sign a transaction or data item with the given wallet."""
    record.owner = wallet.address
    signature = await wallet.sign(record.signature_data())
    record.set_signature(signature)
    logger.debug("Record signed", extra={"tx_id": record.id, "owner": record.owner})


async def iter_query_pages(
    gateway: LedgerGateway,
    filters: Sequence[TagFilter],
    page_size: int = 100,
) -> AsyncIterator[QueryPage]:
    """Yield every page of a query, following cursors.

    The loop ends only when page_info.has_next_page is False. Empty pages
    that still report a next page are followed like any other.
    """
    cursor: Optional[str] = None
    page_number = 0
    while True:
        page = await gateway.query(filters, cursor=cursor, first=page_size)
        page_number += 1
        logger.debug(
            "Query page fetched",
            extra={"page": page_number, "edges": len(page.edges), "has_next_page": page.page_info.has_next_page},
        )
        yield page
        if not page.page_info.has_next_page:
            return
        if page.edges:
            cursor = page.edges[-1].cursor
