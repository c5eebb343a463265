"""
Revision filtering.

An entity's state is the reduction of all its ledger records to the most
recent one. These helpers perform that reduction over any sequence of
entities, preserving the order in which entity IDs first appear.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, TypeVar

from .entities import ArFSEntity

E = TypeVar("E", bound=ArFSEntity)


def latest_revisions(entities: Iterable[E]) -> List[E]:
    """Keep exactly one record per entity ID: the one with the highest unix_time.

    Ties keep the record that appears first in the input, so the result is
    deterministic for a given page order.

    Args:
        entities: Revisions of one or more entities, in source order

    Returns:
        One entity per distinct entity ID, ordered by first appearance
    """
    winners: Dict[str, E] = {}
    for entity in entities:
        current = winners.get(entity.entity_id)
        if current is None or entity.unix_time > current.unix_time:
            winners[entity.entity_id] = entity
    return list(winners.values())


def keep_where(entities: Iterable[E], predicate: Callable[[E], bool]) -> List[E]:
    """Latest revisions, then only those matching the predicate.

    The predicate sees winning revisions only, so a moved entity never
    reappears under its old parent through an older record.
    """
    return [entity for entity in latest_revisions(entities) if predicate(entity)]
