"""
Ledger gateway abstraction.

Backends:
- InMemoryLedger: tests and local development
- HttpLedgerGateway: a public gateway over HTTP
"""

from .base import (
    BlockInfo,
    ChunkUploader,
    DataItem,
    LedgerEdge,
    LedgerGateway,
    LedgerNode,
    PageInfo,
    QueryPage,
    TagFilter,
    Transaction,
    TransactionStatus,
    Wallet,
    iter_query_pages,
)
from .graphql import build_query, parse_query_response
from .http import HttpLedgerGateway
from .memory import InMemoryLedger

__all__ = [
    "BlockInfo",
    "ChunkUploader",
    "DataItem",
    "LedgerEdge",
    "LedgerGateway",
    "LedgerNode",
    "PageInfo",
    "QueryPage",
    "TagFilter",
    "Transaction",
    "TransactionStatus",
    "Wallet",
    "iter_query_pages",
    "build_query",
    "parse_query_response",
    "HttpLedgerGateway",
    "InMemoryLedger",
]
