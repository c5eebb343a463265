"""
GraphQL query construction and response parsing for ledger gateways.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from ..errors import LedgerError
from ..types import GQLTag
from .base import BlockInfo, LedgerEdge, LedgerNode, PageInfo, QueryPage, TagFilter

TRANSACTIONS_QUERY = """
query Transactions($tags: [TagFilter!], $cursor: String, $first: Int) {
  transactions(tags: $tags, after: $cursor, first: $first, sort: HEIGHT_DESC) {
    pageInfo {
      hasNextPage
    }
    edges {
      cursor
      node {
        id
        owner {
          address
        }
        tags {
          name
          value
        }
        block {
          height
          timestamp
        }
      }
    }
  }
}
""".strip()


def build_query(
    filters: Sequence[TagFilter],
    cursor: Optional[str] = None,
    first: int = 100,
) -> dict[str, Any]:
    """Build a GraphQL request body for a tag query.

    Args:
        filters: Tag predicates, AND-combined
        cursor: Cursor of the last edge already seen
        first: Page size

    Returns:
        JSON-serializable request body
    """
    variables: dict[str, Any] = {
        "tags": [{"name": f.name, "values": list(f.values)} for f in filters],
        "first": first,
    }
    if cursor:
        variables["cursor"] = cursor
    return {"query": TRANSACTIONS_QUERY, "variables": variables}


def parse_query_response(body: dict[str, Any]) -> QueryPage:
    """Turn a GraphQL response body into a QueryPage.

    Raises:
        LedgerError: If the response carries errors or is malformed
    """
    if body.get("errors"):
        messages = "; ".join(str(e.get("message", e)) for e in body["errors"])
        raise LedgerError(f"GraphQL query failed: {messages}", code="QUERY_ERROR")
    try:
        transactions = body["data"]["transactions"]
        edges = tuple(_parse_edge(edge) for edge in transactions["edges"])
        has_next_page = bool(transactions["pageInfo"]["hasNextPage"])
    except (KeyError, TypeError) as e:
        raise LedgerError(f"Malformed GraphQL response: {e}", code="QUERY_ERROR") from e
    return QueryPage(edges=edges, page_info=PageInfo(has_next_page=has_next_page))


def _parse_edge(edge: dict[str, Any]) -> LedgerEdge:
    node = edge["node"]
    block = node.get("block")
    return LedgerEdge(
        cursor=edge["cursor"],
        node=LedgerNode(
            id=node["id"],
            tags=tuple(GQLTag(t["name"], t["value"]) for t in node["tags"]),
            owner=(node.get("owner") or {}).get("address", ""),
            block=BlockInfo(height=block["height"], timestamp=block["timestamp"]) if block else None,
        ),
    )
